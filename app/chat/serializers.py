"""
Serializers for chat API.

This module provides serializers for the chat system:
- Chat serializers (summary, detail, create, update)
- Member serializers (read, add)
- Message serializers (read, create)

Serializer Hierarchy:
    ChatSerializer: Chat metadata
    ChatSummarySerializer: One row of the chat list (ChatSummary)
    ChatDetailSerializer: Chat with members, messages and flags (ChatDetail)
    ChatCreateSerializer: Channel/dialog/group creation
    ChatUpdateSerializer: Name/description update

    ChatMemberSerializer: Member with user info
    MemberAddSerializer: Add users to a chat

    MessageSerializer: Message as stored and as pushed over WebSockets
    MessageCreateSerializer: Send new message
    PageQuerySerializer: limit/offset query parameters
    MessageSearchQuerySerializer: q plus limit/offset

Design Decisions:
    - Read and write serializers are separate for clarity
    - Summary and detail serializers read service dataclasses, not models
    - MessageSerializer nests the sender; every message handed to it comes
      with its sender already loaded, so live delivery needs no query
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.serializers import UserSerializer
from chat.constants import MESSAGE_CONFIG, PAGINATION_CONFIG
from chat.models import Chat, ChatMember, ChatRole, ChatType, Message


# =============================================================================
# Message Serializers
# =============================================================================


class MessageSerializer(serializers.ModelSerializer):
    """
    Message serializer for history pages and live delivery.

    sender is the author for user messages and the subject user for
    system messages; null once that user is deleted.
    """

    chat_id = serializers.UUIDField(read_only=True)
    sender_id = serializers.UUIDField(read_only=True, allow_null=True)
    sender = UserSerializer(read_only=True, allow_null=True)

    class Meta:
        model = Message
        fields = [
            "id",
            "chat_id",
            "sender_id",
            "sender",
            "text",
            "kind",
            "created_at",
        ]
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    """Serializer for sending messages."""

    text = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_CONTENT_LENGTH,
        trim_whitespace=False,
        help_text="Message text (max 10,000 characters)",
    )


class PageQuerySerializer(serializers.Serializer):
    """Query parameters for history pages."""

    limit = serializers.IntegerField(
        required=False,
        min_value=0,
        default=PAGINATION_CONFIG.DEFAULT_LIMIT,
        help_text=f"Messages per page (max {PAGINATION_CONFIG.MAX_LIMIT})",
    )
    offset = serializers.IntegerField(
        required=False,
        min_value=0,
        default=0,
        help_text="Number of most recent messages to skip",
    )


class MessageSearchQuerySerializer(PageQuerySerializer):
    """Query parameters for searching a chat's messages."""

    q = serializers.CharField(
        min_length=MESSAGE_CONFIG.SEARCH_MIN_QUERY_LENGTH,
        help_text=(
            f"Text to search for (min {MESSAGE_CONFIG.SEARCH_MIN_QUERY_LENGTH} characters)"
        ),
    )


# =============================================================================
# Member Serializers
# =============================================================================


class ChatMemberSerializer(serializers.ModelSerializer):
    """Read serializer for chat members."""

    user = UserSerializer(read_only=True)

    class Meta:
        model = ChatMember
        fields = [
            "user",
            "role",
            "created_at",
        ]
        read_only_fields = fields


class MemberAddSerializer(serializers.Serializer):
    """Serializer for adding users to a group or channel."""

    user_ids = serializers.ListField(
        child=serializers.UUIDField(),
        allow_empty=False,
        help_text="Users to add",
    )
    role = serializers.ChoiceField(
        choices=ChatRole.choices,
        required=False,
        allow_null=True,
        help_text="Role for the new members; defaults by chat type",
    )


# =============================================================================
# Chat Serializers
# =============================================================================


class ChatSerializer(serializers.ModelSerializer):
    """Chat metadata."""

    class Meta:
        model = Chat
        fields = [
            "id",
            "chat_type",
            "name",
            "description",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ChatSummarySerializer(serializers.Serializer):
    """Serializer for chat list rows (ChatSummary)."""

    id = serializers.UUIDField(source="chat.id", read_only=True)
    chat_type = serializers.IntegerField(source="chat.chat_type", read_only=True)
    title = serializers.CharField(read_only=True)
    role = serializers.IntegerField(read_only=True)
    last_message = MessageSerializer(read_only=True, allow_null=True)


class ChatDetailSerializer(serializers.Serializer):
    """Serializer for the chat detail view (ChatDetail)."""

    id = serializers.UUIDField(source="chat.id", read_only=True)
    chat_type = serializers.IntegerField(source="chat.chat_type", read_only=True)
    title = serializers.CharField(read_only=True)
    description = serializers.CharField(source="chat.description", read_only=True)
    role = serializers.IntegerField(read_only=True)
    is_admin = serializers.BooleanField(read_only=True)
    can_write = serializers.BooleanField(read_only=True)
    is_member = serializers.BooleanField(read_only=True)
    is_private = serializers.BooleanField(read_only=True)
    members = ChatMemberSerializer(many=True, read_only=True)
    messages = MessageSerializer(many=True, read_only=True)


class ChatCreateSerializer(serializers.Serializer):
    """
    Serializer for creating chats.

    Groups and channels need a name. Dialogs need exactly one entry in
    member_ids; the service enforces both.
    """

    chat_type = serializers.ChoiceField(
        choices=ChatType.choices,
        help_text="0=channel, 1=dialog, 2=group",
    )
    name = serializers.CharField(
        max_length=255,
        required=False,
        allow_blank=True,
        default="",
        help_text="Chat name (required for groups and channels)",
    )
    description = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
        help_text="Chat description",
    )
    member_ids = serializers.ListField(
        child=serializers.UUIDField(),
        required=False,
        default=list,
        help_text="Users to add besides the creator",
    )


class ChatUpdateSerializer(serializers.Serializer):
    """Serializer for renaming a chat or changing its description."""

    name = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide name or description")
        return attrs
