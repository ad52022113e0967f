"""
ViewSets for chat API.

This module provides REST API endpoints for the chat system:
- ChatViewSet: Chat list, creation, detail, update, members and messages
- DialogView: Look up the dialog shared with another user

URL Structure:
    /api/v1/chat/chats/                     GET, POST
    /api/v1/chat/chats/{id}/                GET, PATCH
    /api/v1/chat/chats/{id}/members/        POST
    /api/v1/chat/chats/{id}/messages/       GET (?q= to search), POST
    /api/v1/chat/dialogs/{user_id}/         GET

Design Decisions:
    - Views only parse input and shape output; all rules live in
      chat.services
    - Service error codes map to HTTP statuses in one place
      (ERROR_STATUS), with the body {"error": ..., "error_code": ...}
    - Messages posted over REST are broadcast to WebSocket listeners
      exactly like messages posted over a socket
"""

from __future__ import annotations

from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from chat.exceptions import StoreError
from chat.serializers import (
    ChatCreateSerializer,
    ChatDetailSerializer,
    ChatMemberSerializer,
    ChatSerializer,
    ChatSummarySerializer,
    ChatUpdateSerializer,
    MemberAddSerializer,
    MessageCreateSerializer,
    MessageSearchQuerySerializer,
    MessageSerializer,
    PageQuerySerializer,
)
from chat.services import ChatAssemblyService, ChatService, MessageDispatcher

ERROR_STATUS = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "PERMISSION_DENIED": status.HTTP_403_FORBIDDEN,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ALREADY_MEMBER": status.HTTP_409_CONFLICT,
    "STORE_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
}

PAGE_PARAMETERS = [
    OpenApiParameter("limit", int, description="Messages per page"),
    OpenApiParameter("offset", int, description="Most recent messages to skip"),
]


def error_response(result) -> Response:
    """Turn a failed ServiceResult into an HTTP response."""
    body = {"error": result.error, "error_code": result.error_code}
    if result.errors:
        body["errors"] = result.errors
    return Response(
        body,
        status=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
    )


def store_unavailable_response(exc: StoreError) -> Response:
    return Response(
        {"error": exc.message, "error_code": "STORE_UNAVAILABLE"},
        status=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


@extend_schema_view(
    list=extend_schema(
        operation_id="list_chats",
        summary="List chats",
        tags=["Chat - Chats"],
        responses={200: ChatSummarySerializer(many=True)},
    ),
    create=extend_schema(
        operation_id="create_chat",
        summary="Create chat",
        tags=["Chat - Chats"],
        request=ChatCreateSerializer,
        responses={201: ChatSerializer},
    ),
    retrieve=extend_schema(
        operation_id="get_chat",
        summary="Get chat",
        tags=["Chat - Chats"],
        parameters=PAGE_PARAMETERS,
        responses={200: ChatDetailSerializer},
    ),
    partial_update=extend_schema(
        operation_id="update_chat",
        summary="Update chat",
        tags=["Chat - Chats"],
        request=ChatUpdateSerializer,
        responses={200: ChatSerializer},
    ),
)
class ChatViewSet(viewsets.ViewSet):
    """
    ViewSet for chat operations.

    list:
        Get all chats of the current user with their last message,
        most recently active first.

    create:
        Create a channel, dialog or group.
        For dialogs: returns the existing dialog if there is one.

    retrieve:
        Get chat details, members and the newest page of messages.

    partial_update:
        Rename a chat or change its description. Admins only.

    members:
        Add users to a group or channel. Admins only.

    messages:
        GET a page of history (or search it with ?q=), or POST a new message.
    """

    permission_classes = [IsAuthenticated]
    lookup_value_regex = "[0-9a-fA-F-]{36}"

    def list(self, request):
        """List the current user's chats."""
        try:
            summaries = ChatAssemblyService().list_chats_for_user(request.user.id)
        except StoreError as e:
            return store_unavailable_response(e)
        return Response(ChatSummarySerializer(summaries, many=True).data)

    def create(self, request):
        """Create a chat."""
        serializer = ChatCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = ChatService().create_chat(
            creator_id=request.user.id,
            chat_type=data["chat_type"],
            name=data["name"],
            members=data["member_ids"],
            description=data["description"],
        )
        if not result.success:
            return error_response(result)
        return Response(ChatSerializer(result.data).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        """Get chat detail with a page of messages."""
        query = PageQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        result = ChatAssemblyService().get_chat_detail(
            request.user.id,
            pk,
            limit=query.validated_data["limit"],
            offset=query.validated_data["offset"],
        )
        if not result.success:
            return error_response(result)
        return Response(ChatDetailSerializer(result.data).data)

    def partial_update(self, request, pk=None):
        """Update chat name and/or description."""
        serializer = ChatUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ChatService().update_chat(
            request.user.id,
            pk,
            name=serializer.validated_data.get("name"),
            description=serializer.validated_data.get("description"),
        )
        if not result.success:
            return error_response(result)
        return Response(ChatSerializer(result.data).data)

    @extend_schema(
        operation_id="add_chat_members",
        summary="Add members",
        tags=["Chat - Members"],
        request=MemberAddSerializer,
        responses={
            201: ChatMemberSerializer(many=True),
            409: OpenApiResponse(description="A user is already a member"),
        },
    )
    @action(detail=True, methods=["post"])
    def members(self, request, pk=None):
        """Add users to a group or channel."""
        serializer = MemberAddSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ChatService().add_members(
            request.user.id,
            pk,
            serializer.validated_data["user_ids"],
            role=serializer.validated_data.get("role"),
        )
        if not result.success:
            return error_response(result)
        return Response(
            {"added": [str(member.user_id) for member in result.data]},
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        operation_id="chat_messages",
        summary="List, search or send messages",
        tags=["Chat - Messages"],
        parameters=[
            *PAGE_PARAMETERS,
            OpenApiParameter(
                "q", str, description="Only user messages containing this text"
            ),
        ],
        request=MessageCreateSerializer,
        responses={200: MessageSerializer(many=True), 201: MessageSerializer},
    )
    @action(detail=True, methods=["get", "post"])
    def messages(self, request, pk=None):
        """GET a page of history (?q= searches it), POST a new message."""
        if request.method == "POST":
            serializer = MessageCreateSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            result = MessageDispatcher().post_message(
                request.user.id, pk, serializer.validated_data["text"]
            )
            if not result.success:
                return error_response(result)
            return Response(
                MessageSerializer(result.data).data, status=status.HTTP_201_CREATED
            )

        if "q" in request.query_params:
            query = MessageSearchQuerySerializer(data=request.query_params)
            query.is_valid(raise_exception=True)
            result = ChatAssemblyService().search_messages(
                request.user.id,
                pk,
                query.validated_data["q"],
                limit=query.validated_data["limit"],
                offset=query.validated_data["offset"],
            )
            if not result.success:
                return error_response(result)
            return Response(MessageSerializer(result.data, many=True).data)

        query = PageQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        result = ChatAssemblyService().get_messages(
            request.user.id,
            pk,
            limit=query.validated_data["limit"],
            offset=query.validated_data["offset"],
        )
        if not result.success:
            return error_response(result)
        return Response(MessageSerializer(result.data, many=True).data)


class DialogView(APIView):
    """
    Find the dialog between the current user and another user.

    GET /api/v1/chat/dialogs/{user_id}/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="find_dialog",
        summary="Find dialog with user",
        tags=["Chat - Chats"],
        responses={
            200: ChatSerializer,
            404: OpenApiResponse(description="No dialog with this user"),
        },
    )
    def get(self, request, user_id):
        result = ChatService().find_dialog(request.user.id, user_id)
        if not result.success:
            return error_response(result)
        return Response(ChatSerializer(result.data).data)
