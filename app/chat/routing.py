"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/<chat_id>/ - Subscribe to a chat and post messages

Authentication:
    JWT token should be passed as query parameter: ?token=<jwt_access_token>
    or as the subprotocol pair ["jwt", <token>]. JWTAuthMiddleware validates
    the token and attaches the user to the consumer's scope.
"""

from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path(
        "ws/chat/<uuid:chat_id>/",
        consumers.ChatStreamConsumer.as_asgi(),
    ),
]
