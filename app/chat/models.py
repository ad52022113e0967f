"""
Chat system models.

This module defines the persisted side of the chat core:
- Chats of three kinds (channel, dialog, group)
- Memberships with a single role per (user, chat) pair
- Immutable, totally ordered messages

Models:
    Chat: Named conversation container
    ChatMember: A user's role within a chat
    Message: User-authored or system-generated message

Design Decisions:
    - Chat type and member role are stored as small integers that are part
      of the wire format (channel=0, dialog=1, group=2; admin=0, member=1,
      viewer=2)
    - A chat and its initial members are created in one transaction
    - Messages are never edited or deleted; created_at is assigned by the
      dispatcher so persistence order and timestamp order agree
"""

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import BaseModel


class ChatType(models.IntegerChoices):
    """
    Kind of chat.

    CHANNEL: Broadcast chat, admins write and everyone else reads
    DIALOG: Private 1:1 conversation between exactly two users
    GROUP: Multi-user conversation where members can write
    """

    CHANNEL = 0, "Channel"
    DIALOG = 1, "Dialog"
    GROUP = 2, "Group"


class ChatRole(models.IntegerChoices):
    """
    Role of a user within a chat.

    ADMIN: Write and manage membership, rename the chat
    MEMBER: Write messages
    VIEWER: Read only
    """

    ADMIN = 0, "Admin"
    MEMBER = 1, "Member"
    VIEWER = 2, "Viewer"


class MessageKind(models.TextChoices):
    """
    Origin of a message.

    USER: Text written by a chat member
    SYSTEM: Generated by the server, e.g. join notifications
    """

    USER = "user", "User message"
    SYSTEM = "system", "System message"


class Chat(BaseModel):
    """
    A conversation between users.

    Fields:
        id: Opaque UUID identifier
        chat_type: Channel, dialog or group
        name: Display name (empty for dialogs, which are titled per viewer)
        description: Free-form description, editable by admins

    Relationships:
        members: ChatMember rows for this chat
        messages: Message rows for this chat
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    chat_type = models.PositiveSmallIntegerField(
        choices=ChatType.choices,
        default=ChatType.GROUP,
        db_index=True,
        help_text="Kind of chat (0=channel, 1=dialog, 2=group)",
    )

    name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Display name of the chat",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Description of the chat",
    )

    class Meta:
        db_table = "chat_chat"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        """Return human-readable representation."""
        label = ChatType(self.chat_type).label
        return f"{label}: {self.name}" if self.name else f"{label}({self.pk})"

    @property
    def is_dialog(self) -> bool:
        """Check if this is a private 1:1 dialog."""
        return self.chat_type == ChatType.DIALOG


class ChatMember(BaseModel):
    """
    A user's membership in a chat.

    Constraints:
        - UniqueConstraint(chat, user): at most one role per user per chat
    """

    chat = models.ForeignKey(
        Chat,
        on_delete=models.CASCADE,
        related_name="members",
        help_text="Chat this membership belongs to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_memberships",
        help_text="Member user",
    )

    role = models.PositiveSmallIntegerField(
        choices=ChatRole.choices,
        default=ChatRole.MEMBER,
        help_text="Role in the chat (0=admin, 1=member, 2=viewer)",
    )

    class Meta:
        db_table = "chat_member"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["user", "chat"], name="chat_member_user_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["chat", "user"],
                name="unique_chat_member",
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        return f"Member: {self.user_id} in {self.chat_id} ({ChatRole(self.role).label})"


class Message(models.Model):
    """
    A message within a chat.

    Messages are immutable. Within a chat they are ordered by
    (created_at, id); history reads return them newest first.

    Fields:
        id: Opaque UUID identifier, assigned before persistence
        chat: Owning chat
        sender: Author for user messages, the subject user for system
            messages (e.g. the user who joined)
        text: Message body
        kind: user or system
        created_at: Assigned by the dispatcher at send time
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    chat = models.ForeignKey(
        Chat,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Chat this message belongs to",
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="chat_messages",
        help_text="Author, or the user a system message is about",
    )

    text = models.TextField(help_text="Message body")

    kind = models.CharField(
        max_length=10,
        choices=MessageKind.choices,
        default=MessageKind.USER,
        help_text="Origin of the message",
    )

    created_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the message was sent",
    )

    class Meta:
        db_table = "chat_message"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["chat", "-created_at", "-id"],
                name="chat_msg_history_idx",
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        preview = self.text[:50] + "..." if len(self.text) > 50 else self.text
        author = "System" if self.is_system_message else f"User {self.sender_id}"
        return f"{author}: {preview}"

    @property
    def is_system_message(self) -> bool:
        """Check if this is a server-generated message."""
        return self.kind == MessageKind.SYSTEM
