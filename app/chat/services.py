"""
Chat system service layer.

This module provides the business logic for the chat system, encapsulating
all operations on chats, memberships and messages.

Services:
    MessageDispatcher: Validate, authorize, persist and broadcast messages
    ChatService: Chat lifecycle (create, add members, update, find dialog)
    ChatAssemblyService: Read-side views (chat list, chat detail, history, search)

Design Principles:
    - Collaborators (store, listener registry) are injected and default to
      the Django store and the process-wide registry
    - Expected failures return ServiceResult.failure()
    - Unexpected failures raise exceptions
    - A message is persisted before it is broadcast; a failed persist is
      never broadcast
    - System messages are generated when users join a group or channel

Error codes:
    VALIDATION_ERROR: Malformed input (empty text, bad id, bad paging)
    NOT_FOUND: Chat or user does not exist, or caller is not a member
    PERMISSION_DENIED: Caller's role does not allow the operation
    ALREADY_MEMBER: A user in the request already belongs to the chat
    STORE_UNAVAILABLE: The database failed; nothing was broadcast

Usage:
    from chat.services import ChatAssemblyService, ChatService, MessageDispatcher

    result = ChatService().create_chat(
        creator_id=user.id,
        chat_type=ChatType.GROUP,
        name="Project Team",
        members=[user2.id, user3.id],
    )

    result = MessageDispatcher().post_message(user.id, chat.id, "Hello everyone!")
    if result.success:
        message = result.data
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.apps import apps

from core.helpers import coerce_uuid
from core.services import BaseService, ServiceResult

from chat.authorization import Capability, ChatAuthorizationService, role_allows
from chat.constants import MESSAGE_CONFIG, PAGINATION_CONFIG
from chat.exceptions import MembershipConflictError, StoreError
from chat.models import Chat, ChatRole, ChatType, Message, MessageKind
from chat.stores import DjangoChatStore

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from uuid import UUID

    from authentication.models import User
    from chat.models import ChatMember
    from chat.protocols import ChatStore
    from chat.registry import ListenerRegistry


def get_listener_registry() -> ListenerRegistry:
    """Return the process-wide listener registry owned by the chat app."""
    return apps.get_app_config("chat").listener_registry


# =============================================================================
# View models
# =============================================================================


@dataclass
class ChatSummary:
    """
    One row of a user's chat list.

    Attributes:
        chat: The chat
        title: Display title; for dialogs the other member's name
        role: The requesting user's role
        last_message: Most recent message, or None for an empty chat
    """

    chat: Chat
    title: str
    role: ChatRole
    last_message: Message | None

    @property
    def last_activity(self):
        if self.last_message is not None:
            return self.last_message.created_at
        return self.chat.created_at


@dataclass
class ChatDetail:
    """
    Everything a client needs to open a chat.

    Attributes:
        chat: The chat
        title: Display title; for dialogs the other member's name
        role: The requesting user's role
        members: All memberships, users loaded
        messages: Newest-first page of history
        is_admin: Requesting user is an admin
        can_write: Requesting user may post messages
        is_member: Requesting user is an admin or member (not a viewer)
        is_private: Chat is a dialog
    """

    chat: Chat
    title: str
    role: ChatRole
    members: list[ChatMember]
    messages: list[Message]
    is_admin: bool
    can_write: bool
    is_member: bool
    is_private: bool


def _dialog_title(chat: Chat, members: Iterable[ChatMember], viewer_id: UUID) -> str:
    """Title a chat for one viewer: dialogs are named after the other user."""
    if not chat.is_dialog:
        return chat.name
    for membership in members:
        if membership.user_id != viewer_id:
            return membership.user.display_name
    return chat.name


def _validate_page(limit, offset) -> tuple[int, int] | ServiceResult:
    """
    Normalize paging parameters.

    Returns:
        (limit, offset) with limit clamped to PAGINATION_CONFIG.MAX_LIMIT,
        or a VALIDATION_ERROR result
    """
    if limit is None:
        limit = PAGINATION_CONFIG.DEFAULT_LIMIT
    if offset is None:
        offset = 0
    try:
        limit = int(limit)
        offset = int(offset)
    except (TypeError, ValueError):
        return ServiceResult.failure(
            "limit and offset must be integers",
            error_code="VALIDATION_ERROR",
        )
    if limit < 0 or offset < 0:
        return ServiceResult.failure(
            "limit and offset must not be negative",
            error_code="VALIDATION_ERROR",
        )
    return min(limit, PAGINATION_CONFIG.MAX_LIMIT), offset


# =============================================================================
# Message Dispatcher
# =============================================================================


class MessageDispatcher(BaseService):
    """
    Write path for messages.

    Methods:
        post_message: Send a user message to a chat
        post_system_messages: Persist and broadcast server-generated messages
        announce_members: Post "<name> joined the chat" for new members

    Ordering:
        For each chat, timestamp assignment, persistence and broadcast run
        under the registry's ordering lock, so every listener sees messages
        in history order.
    """

    def __init__(
        self,
        store: ChatStore | None = None,
        registry: ListenerRegistry | None = None,
        authorization: ChatAuthorizationService | None = None,
    ):
        self.store = store or DjangoChatStore()
        self.registry = registry or get_listener_registry()
        self.authorization = authorization or ChatAuthorizationService(self.store)

    def post_message(self, sender_id: UUID, chat_id, text: str) -> ServiceResult[Message]:
        """
        Send a text message to a chat.

        Steps:
            1. Validate input (no store access on failure)
            2. Check the sender may write (Admin or Member)
            3. Build the message with a fresh id and send time
            4. Persist it
            5. Broadcast it to live listeners

        Args:
            sender_id: Authenticated user sending the message
            chat_id: Target chat (UUID or its string form)
            text: Message body

        Returns:
            ServiceResult with the persisted Message

        Error codes:
            VALIDATION_ERROR: Empty or too long text, malformed chat id
            PERMISSION_DENIED: Sender is not a member, or only a viewer
            STORE_UNAVAILABLE: Persisting failed; nothing was broadcast
        """
        chat_uuid = coerce_uuid(chat_id)
        if chat_uuid is None:
            return ServiceResult.failure(
                "Invalid chat id",
                error_code="VALIDATION_ERROR",
            )

        if not isinstance(text, str) or not text.strip():
            return ServiceResult.failure(
                "Message text cannot be empty",
                error_code="VALIDATION_ERROR",
            )

        if len(text) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            return ServiceResult.failure(
                f"Message text cannot exceed {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code="VALIDATION_ERROR",
            )

        try:
            membership = self.authorization.get_membership(sender_id, chat_uuid)
        except StoreError as e:
            return self.handle_exception(
                e, "Permission check failed", error_code="STORE_UNAVAILABLE"
            )

        if membership is None or not role_allows(membership.role, Capability.WRITE):
            self.get_logger().info(
                f"User {sender_id} denied write access to chat {chat_uuid}"
            )
            return ServiceResult.failure(
                "You are not allowed to write in this chat",
                error_code="PERMISSION_DENIED",
            )

        with self.registry.ordering_lock(chat_uuid):
            # The sender rides along so live delivery never queries for it
            message = Message(
                id=uuid.uuid4(),
                chat_id=chat_uuid,
                sender=membership.user,
                text=text,
                kind=MessageKind.USER,
                created_at=self.registry.next_timestamp(chat_uuid),
            )
            try:
                self.store.append_message(message)
            except StoreError as e:
                return self.handle_exception(
                    e,
                    f"Failed to persist message in chat {chat_uuid}",
                    error_code="STORE_UNAVAILABLE",
                )
            self._broadcast(chat_uuid, message)

        self.get_logger().debug(
            f"User {sender_id} sent message {message.id} to chat {chat_uuid}"
        )
        return ServiceResult.success(message)

    def post_system_messages(
        self, chat_id: UUID, events: Sequence[tuple[User | None, str]]
    ) -> ServiceResult[list[Message]]:
        """
        Persist and broadcast server-generated messages.

        Each event is a (subject_user, text) pair. Messages are posted
        in order; if persisting one fails, the ones before it remain.

        Error codes:
            STORE_UNAVAILABLE: Persisting failed
        """
        posted: list[Message] = []
        with self.registry.ordering_lock(chat_id):
            for user, text in events:
                message = Message(
                    id=uuid.uuid4(),
                    chat_id=chat_id,
                    sender=user,
                    text=text,
                    kind=MessageKind.SYSTEM,
                    created_at=self.registry.next_timestamp(chat_id),
                )
                try:
                    self.store.append_message(message)
                except StoreError as e:
                    return self.handle_exception(
                        e,
                        f"Failed to persist system message in chat {chat_id}",
                        error_code="STORE_UNAVAILABLE",
                    )
                self._broadcast(chat_id, message)
                posted.append(message)
        return ServiceResult.success(posted)

    def announce_members(
        self, chat_id: UUID, users: Iterable[User]
    ) -> ServiceResult[list[Message]]:
        """Post a join notification for each user."""
        events = [
            (user, MESSAGE_CONFIG.JOIN_TEMPLATE.format(name=user.display_name))
            for user in users
        ]
        return self.post_system_messages(chat_id, events)

    def _broadcast(self, chat_id: UUID, message: Message) -> int:
        # The message is already persisted; delivery problems stay here
        try:
            return self.registry.broadcast(chat_id, message)
        except Exception:
            self.get_logger().exception(
                f"Broadcast of message {message.id} to chat {chat_id} failed"
            )
            return 0


# =============================================================================
# Chat management
# =============================================================================


class ChatService(BaseService):
    """
    Service for chat lifecycle and membership.

    Methods:
        create_chat: Create a channel, group or dialog
        add_members: Add users to a group or channel (admin only)
        update_chat: Rename or re-describe a chat (admin only)
        find_dialog: Look up the dialog between two users
    """

    DEFAULT_MEMBER_ROLE = {
        ChatType.GROUP: ChatRole.MEMBER,
        ChatType.CHANNEL: ChatRole.VIEWER,
        ChatType.DIALOG: ChatRole.MEMBER,
    }

    def __init__(
        self,
        store: ChatStore | None = None,
        dispatcher: MessageDispatcher | None = None,
    ):
        self.store = store or DjangoChatStore()
        self.dispatcher = dispatcher or MessageDispatcher(store=self.store)
        self.authorization = self.dispatcher.authorization

    def create_chat(
        self,
        creator_id: UUID,
        chat_type,
        name: str = "",
        members: Iterable | None = None,
        description: str = "",
    ) -> ServiceResult[Chat]:
        """
        Create a chat with its initial members.

        The creator is always an admin of a group or channel. Listed
        members get the default role for the chat type (member for
        groups, viewer for channels). A dialog takes exactly one other
        user; both sides are members, and an existing dialog between the
        pair is returned instead of creating a second one.

        Chat and memberships are written in one transaction. Groups and
        channels then get a join message for every member, creator first.

        Args:
            creator_id: Authenticated user creating the chat
            chat_type: ChatType value
            name: Required for groups and channels, ignored for dialogs
            members: User ids to add besides the creator
            description: Optional description

        Returns:
            ServiceResult with the Chat

        Error codes:
            VALIDATION_ERROR: Bad chat type, missing name, bad member list
            NOT_FOUND: A listed user does not exist
            STORE_UNAVAILABLE: The chat could not be written
        """
        try:
            chat_type = ChatType(int(chat_type))
        except (TypeError, ValueError):
            return ServiceResult.failure(
                "Invalid chat type",
                error_code="VALIDATION_ERROR",
            )

        member_ids: list[UUID] = []
        for raw_id in members or []:
            member_id = coerce_uuid(raw_id)
            if member_id is None:
                return ServiceResult.failure(
                    f"Invalid user id: {raw_id}",
                    error_code="VALIDATION_ERROR",
                )
            if member_id != creator_id and member_id not in member_ids:
                member_ids.append(member_id)

        if chat_type == ChatType.DIALOG:
            if len(member_ids) != 1:
                return ServiceResult.failure(
                    "A dialog needs exactly one other user",
                    error_code="VALIDATION_ERROR",
                )
            name = ""
        else:
            name = name.strip() if name else ""
            if not name:
                return ServiceResult.failure(
                    "Chat name is required",
                    error_code="VALIDATION_ERROR",
                )

        try:
            users = self.store.get_users([creator_id, *member_ids])
            users_by_id = {user.id: user for user in users}
            missing = [str(u) for u in [creator_id, *member_ids] if u not in users_by_id]
            if missing:
                return ServiceResult.failure(
                    "User not found",
                    error_code="NOT_FOUND",
                    errors={"members": missing},
                )

            if chat_type == ChatType.DIALOG:
                existing = self.store.find_dialog(creator_id, member_ids[0])
                if existing is not None:
                    self.get_logger().debug(
                        f"Found existing dialog {existing.id} between users "
                        f"{creator_id} and {member_ids[0]}"
                    )
                    return ServiceResult.success(existing)
                roles = [(creator_id, ChatRole.MEMBER), (member_ids[0], ChatRole.MEMBER)]
            else:
                default_role = self.DEFAULT_MEMBER_ROLE[chat_type]
                roles = [(creator_id, ChatRole.ADMIN)]
                roles += [(member_id, default_role) for member_id in member_ids]

            chat = self.store.create_chat(
                Chat(chat_type=chat_type, name=name, description=description or ""),
                roles,
            )
        except StoreError as e:
            return self.handle_exception(
                e, "Failed to create chat", error_code="STORE_UNAVAILABLE"
            )

        self.get_logger().info(
            f"User {creator_id} created {chat_type.label.lower()} {chat.id} "
            f"with {len(roles)} members"
        )

        if chat_type != ChatType.DIALOG:
            announced = self.dispatcher.announce_members(
                chat.id, [users_by_id[user_id] for user_id, _ in roles]
            )
            if not announced:
                self.get_logger().warning(
                    f"Chat {chat.id} created without join messages: {announced.error}"
                )

        return ServiceResult.success(chat)

    def add_members(
        self,
        actor_id: UUID,
        chat_id,
        members: Iterable,
        role=None,
    ) -> ServiceResult[list[ChatMember]]:
        """
        Add users to a group or channel.

        Only admins may add members. If any listed user already belongs to
        the chat the whole request is rejected and nothing is written.
        Each new member gets a join message.

        Args:
            actor_id: Authenticated user performing the addition
            chat_id: Target chat
            members: User ids to add
            role: Optional ChatRole for the new members; defaults by chat type

        Returns:
            ServiceResult with the new ChatMember rows

        Error codes:
            VALIDATION_ERROR: Bad ids, empty list, bad role, chat is a dialog
            NOT_FOUND: Chat missing or actor not a member, or a user missing
            PERMISSION_DENIED: Actor is not an admin
            ALREADY_MEMBER: A listed user is already in the chat
            STORE_UNAVAILABLE: The database failed
        """
        chat_uuid = coerce_uuid(chat_id)
        if chat_uuid is None:
            return ServiceResult.failure("Invalid chat id", error_code="VALIDATION_ERROR")

        member_ids: list[UUID] = []
        for raw_id in members or []:
            member_id = coerce_uuid(raw_id)
            if member_id is None:
                return ServiceResult.failure(
                    f"Invalid user id: {raw_id}",
                    error_code="VALIDATION_ERROR",
                )
            if member_id not in member_ids:
                member_ids.append(member_id)
        if not member_ids:
            return ServiceResult.failure(
                "At least one user is required",
                error_code="VALIDATION_ERROR",
            )

        if role is not None:
            try:
                role = ChatRole(int(role))
            except (TypeError, ValueError):
                return ServiceResult.failure("Invalid role", error_code="VALIDATION_ERROR")

        try:
            actor_role = self.authorization.get_role(actor_id, chat_uuid)
            if actor_role is None:
                return ServiceResult.failure("Chat not found", error_code="NOT_FOUND")
            if not role_allows(actor_role, Capability.MANAGE_MEMBERS):
                return ServiceResult.failure(
                    "Only admins can add members",
                    error_code="PERMISSION_DENIED",
                )

            chat = self.store.get_chat(chat_uuid)
            if chat is None:
                return ServiceResult.failure("Chat not found", error_code="NOT_FOUND")
            if chat.is_dialog:
                return ServiceResult.failure(
                    "Members cannot be added to a dialog",
                    error_code="VALIDATION_ERROR",
                )

            users = self.store.get_users(member_ids)
            users_by_id = {user.id: user for user in users}
            missing = [str(u) for u in member_ids if u not in users_by_id]
            if missing:
                return ServiceResult.failure(
                    "User not found",
                    error_code="NOT_FOUND",
                    errors={"members": missing},
                )

            new_role = role if role is not None else self.DEFAULT_MEMBER_ROLE[chat.chat_type]
            created = self.store.add_members(
                chat_uuid, [(member_id, new_role) for member_id in member_ids]
            )
        except MembershipConflictError as e:
            return ServiceResult.failure(
                e.message,
                error_code="ALREADY_MEMBER",
                errors={"members": e.details.get("user_ids", [])},
            )
        except StoreError as e:
            return self.handle_exception(
                e, "Failed to add members", error_code="STORE_UNAVAILABLE"
            )

        self.get_logger().info(
            f"User {actor_id} added {len(created)} members to chat {chat_uuid}"
        )

        announced = self.dispatcher.announce_members(
            chat_uuid, [users_by_id[member_id] for member_id in member_ids]
        )
        if not announced:
            self.get_logger().warning(
                f"Members added to chat {chat_uuid} without join messages: {announced.error}"
            )

        return ServiceResult.success(created)

    def update_chat(
        self,
        actor_id: UUID,
        chat_id,
        name: str | None = None,
        description: str | None = None,
    ) -> ServiceResult[Chat]:
        """
        Change a chat's name and/or description. Admins only.

        Error codes:
            VALIDATION_ERROR: Nothing to change, or a blank name
            NOT_FOUND: Chat missing or actor not a member
            PERMISSION_DENIED: Actor is not an admin
            STORE_UNAVAILABLE: The database failed
        """
        chat_uuid = coerce_uuid(chat_id)
        if chat_uuid is None:
            return ServiceResult.failure("Invalid chat id", error_code="VALIDATION_ERROR")

        if name is None and description is None:
            return ServiceResult.failure(
                "Nothing to update",
                error_code="VALIDATION_ERROR",
            )
        if name is not None:
            name = name.strip()
            if not name:
                return ServiceResult.failure(
                    "Chat name cannot be empty",
                    error_code="VALIDATION_ERROR",
                )

        try:
            actor_role = self.authorization.get_role(actor_id, chat_uuid)
            if actor_role is None:
                return ServiceResult.failure("Chat not found", error_code="NOT_FOUND")
            if actor_role != ChatRole.ADMIN:
                return ServiceResult.failure(
                    "Only admins can update the chat",
                    error_code="PERMISSION_DENIED",
                )
            chat = self.store.update_chat(chat_uuid, name, description)
        except StoreError as e:
            return self.handle_exception(
                e, "Failed to update chat", error_code="STORE_UNAVAILABLE"
            )

        self.get_logger().info(f"User {actor_id} updated chat {chat_uuid}")
        return ServiceResult.success(chat)

    def find_dialog(self, user_id: UUID, other_user_id) -> ServiceResult[Chat]:
        """
        Return the dialog shared by two users.

        Error codes:
            VALIDATION_ERROR: Malformed id, or both ids are the same user
            NOT_FOUND: The users have no dialog
            STORE_UNAVAILABLE: The database failed
        """
        other_uuid = coerce_uuid(other_user_id)
        if other_uuid is None:
            return ServiceResult.failure("Invalid user id", error_code="VALIDATION_ERROR")
        if other_uuid == user_id:
            return ServiceResult.failure(
                "A dialog needs two different users",
                error_code="VALIDATION_ERROR",
            )

        try:
            dialog = self.store.find_dialog(user_id, other_uuid)
        except StoreError as e:
            return self.handle_exception(
                e, "Failed to look up dialog", error_code="STORE_UNAVAILABLE"
            )

        if dialog is None:
            return ServiceResult.failure("Dialog not found", error_code="NOT_FOUND")
        return ServiceResult.success(dialog)


# =============================================================================
# Chat Assembly
# =============================================================================


class ChatAssemblyService(BaseService):
    """
    Read-side composition of chats, members and messages.

    Methods:
        list_chats_for_user: Chat list with last messages, most recent first
        get_chat_detail: Chat metadata, members, a history page and flags
        get_messages: A history page on its own
        search_messages: Text search within one chat
    """

    def __init__(
        self,
        store: ChatStore | None = None,
        authorization: ChatAuthorizationService | None = None,
    ):
        self.store = store or DjangoChatStore()
        self.authorization = authorization or ChatAuthorizationService(self.store)

    def list_chats_for_user(self, user_id: UUID) -> list[ChatSummary]:
        """
        List every chat the user holds any role in.

        Each entry carries the chat's last message, or None if the chat
        is empty. Chats are ordered by most recent activity (last message,
        or creation time for empty chats), newest first.

        Raises:
            StoreError: The database failed
        """
        chats = self.store.get_chats(user_id)
        last_messages = self.store.get_last_message_per_chat(user_id)
        dialog_ids = [chat.id for chat in chats if chat.is_dialog]
        dialog_members = self.store.get_users_of_chats(dialog_ids) if dialog_ids else {}

        summaries = []
        for chat in chats:
            members = dialog_members.get(chat.id, [])
            summaries.append(
                ChatSummary(
                    chat=chat,
                    title=_dialog_title(chat, members, user_id),
                    role=ChatRole(chat.user_role),
                    last_message=last_messages.get(chat.id),
                )
            )

        summaries.sort(key=lambda summary: summary.last_activity, reverse=True)
        return summaries

    def get_chat_detail(
        self,
        user_id: UUID,
        chat_id,
        limit: int | None = None,
        offset: int | None = 0,
    ) -> ServiceResult[ChatDetail]:
        """
        Assemble the detail view of one chat.

        Membership is checked before anything else is read. A chat that
        does not exist and a chat the user is not in look the same.

        Args:
            user_id: Requesting user
            chat_id: Chat to open
            limit: Page size, clamped to PAGINATION_CONFIG.MAX_LIMIT
            offset: Number of most recent messages to skip

        Returns:
            ServiceResult with ChatDetail

        Error codes:
            VALIDATION_ERROR: Malformed chat id, negative paging values
            NOT_FOUND: Chat missing or user not a member
            STORE_UNAVAILABLE: The database failed
        """
        chat_uuid = coerce_uuid(chat_id)
        if chat_uuid is None:
            return ServiceResult.failure("Invalid chat id", error_code="VALIDATION_ERROR")

        page = _validate_page(limit, offset)
        if isinstance(page, ServiceResult):
            return page
        limit, offset = page

        try:
            role = self.authorization.get_role(user_id, chat_uuid)
            if role is None:
                return ServiceResult.failure("Chat not found", error_code="NOT_FOUND")

            chat = self.store.get_chat(chat_uuid)
            if chat is None:
                return ServiceResult.failure("Chat not found", error_code="NOT_FOUND")

            members = self.store.get_users_of_chat(chat_uuid)
            messages = self.store.get_messages(chat_uuid, limit, offset)
        except StoreError as e:
            return self.handle_exception(
                e, "Failed to load chat detail", error_code="STORE_UNAVAILABLE"
            )

        return ServiceResult.success(
            ChatDetail(
                chat=chat,
                title=_dialog_title(chat, members, user_id),
                role=role,
                members=members,
                messages=messages,
                is_admin=role == ChatRole.ADMIN,
                can_write=role_allows(role, Capability.WRITE),
                is_member=role in (ChatRole.ADMIN, ChatRole.MEMBER),
                is_private=chat.is_dialog,
            )
        )

    def get_messages(
        self,
        user_id: UUID,
        chat_id,
        limit: int | None = None,
        offset: int | None = 0,
    ) -> ServiceResult[list[Message]]:
        """
        Return a newest-first page of history.

        Reading past the end of history returns fewer messages or none.

        Error codes:
            VALIDATION_ERROR: Malformed chat id, negative paging values
            NOT_FOUND: Chat missing or user not a member
            STORE_UNAVAILABLE: The database failed
        """
        chat_uuid = coerce_uuid(chat_id)
        if chat_uuid is None:
            return ServiceResult.failure("Invalid chat id", error_code="VALIDATION_ERROR")

        page = _validate_page(limit, offset)
        if isinstance(page, ServiceResult):
            return page
        limit, offset = page

        try:
            if not self.authorization.can_read(user_id, chat_uuid):
                return ServiceResult.failure("Chat not found", error_code="NOT_FOUND")
            messages = self.store.get_messages(chat_uuid, limit, offset)
        except StoreError as e:
            return self.handle_exception(
                e, "Failed to load messages", error_code="STORE_UNAVAILABLE"
            )

        return ServiceResult.success(messages)

    def search_messages(
        self,
        user_id: UUID,
        chat_id,
        text: str,
        limit: int | None = None,
        offset: int | None = 0,
    ) -> ServiceResult[list[Message]]:
        """
        Search one chat's user messages by text, newest first.

        Matching is case-insensitive and on substrings. System messages
        are never matched. Membership is checked before searching.

        Args:
            user_id: Requesting user
            chat_id: Chat to search
            text: Text to look for (surrounding whitespace ignored)
            limit: Page size, clamped to PAGINATION_CONFIG.MAX_LIMIT
            offset: Number of most recent matches to skip

        Error codes:
            VALIDATION_ERROR: Malformed chat id, query too short, bad paging
            NOT_FOUND: Chat missing or user not a member
            STORE_UNAVAILABLE: The database failed
        """
        chat_uuid = coerce_uuid(chat_id)
        if chat_uuid is None:
            return ServiceResult.failure("Invalid chat id", error_code="VALIDATION_ERROR")

        query = text.strip() if isinstance(text, str) else ""
        if len(query) < MESSAGE_CONFIG.SEARCH_MIN_QUERY_LENGTH:
            return ServiceResult.failure(
                f"Search query must be at least "
                f"{MESSAGE_CONFIG.SEARCH_MIN_QUERY_LENGTH} characters",
                error_code="VALIDATION_ERROR",
            )

        page = _validate_page(limit, offset)
        if isinstance(page, ServiceResult):
            return page
        limit, offset = page

        try:
            if not self.authorization.can_read(user_id, chat_uuid):
                return ServiceResult.failure("Chat not found", error_code="NOT_FOUND")
            messages = self.store.search_messages(chat_uuid, query, limit, offset)
        except StoreError as e:
            return self.handle_exception(
                e, "Failed to search messages", error_code="STORE_UNAVAILABLE"
            )

        self.get_logger().debug(
            f"User {user_id} searched chat {chat_uuid}: {len(messages)} matches"
        )
        return ServiceResult.success(messages)
