"""
URL configuration for chat API.

URL Structure:
    Chats:
        /chats/                  GET, POST
        /chats/{id}/             GET, PATCH
        /chats/{id}/members/     POST
        /chats/{id}/messages/    GET, POST

    Dialogs:
        /dialogs/{user_id}/      GET

All URLs are prefixed with /api/v1/chat/ in the main URL configuration.
WebSocket routes live in chat.routing.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from chat.views import ChatViewSet, DialogView

router = DefaultRouter()
router.register(r"chats", ChatViewSet, basename="chat")

app_name = "chat"

urlpatterns = [
    path("", include(router.urls)),
    path("dialogs/<uuid:user_id>/", DialogView.as_view(), name="dialog-detail"),
]
