"""
Protocol definitions for the chat persistence boundary.

Services depend on ChatStore rather than on the ORM directly, which keeps
the dispatcher and assembly logic testable with in-memory fakes.

Available Protocols:
    ChatStore: Durable chats, memberships and messages

Usage:
    from chat.protocols import ChatStore

    def last_page(store: ChatStore, chat_id):
        return store.get_messages(chat_id, limit=20, offset=0)

Note:
    - Every method may raise chat.exceptions.StoreError
    - add_members raises MembershipConflictError when a pair already exists
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from uuid import UUID

    from authentication.models import User
    from chat.models import Chat, ChatMember, Message


@runtime_checkable
class ChatStore(Protocol):
    """
    Protocol for the membership store.

    Reads return plain model instances. Writes that touch more than one
    row are atomic.
    """

    def get_chat(self, chat_id: UUID) -> Chat | None:
        """Return the chat, or None if it does not exist."""
        ...

    def get_chats(self, user_id: UUID) -> list[Chat]:
        """
        Return every chat the user holds any role in.

        Each chat carries a `user_role` attribute with the user's role.
        """
        ...

    def get_users_of_chat(self, chat_id: UUID) -> list[ChatMember]:
        """Return all memberships of a chat with users loaded."""
        ...

    def get_users_of_chats(self, chat_ids: Iterable[UUID]) -> dict[UUID, list[ChatMember]]:
        """Map each chat id to its memberships, users loaded, in one read."""
        ...

    def get_user_membership(self, user_id: UUID, chat_id: UUID) -> ChatMember | None:
        """Return the user's membership in the chat with the user loaded, or None."""
        ...

    def get_users(self, user_ids: Iterable[UUID]) -> list[User]:
        """Return the active users among the given ids."""
        ...

    def get_messages(self, chat_id: UUID, limit: int, offset: int) -> list[Message]:
        """
        Return a page of history, newest first.

        Skips the `offset` most recent messages and returns at most
        `limit` of the rest. Reading past the end yields fewer or none.
        Senders are loaded.
        """
        ...

    def search_messages(
        self, chat_id: UUID, text: str, limit: int, offset: int
    ) -> list[Message]:
        """Page of user messages containing `text`, newest first, senders loaded."""
        ...

    def get_last_message_per_chat(self, user_id: UUID) -> dict[UUID, Message]:
        """Map chat id to latest message for every chat of the user."""
        ...

    def create_chat(
        self, chat: Chat, members: Sequence[tuple[UUID, int]]
    ) -> Chat:
        """Persist a chat together with its initial (user_id, role) members."""
        ...

    def add_members(
        self, chat_id: UUID, members: Sequence[tuple[UUID, int]]
    ) -> list[ChatMember]:
        """Add (user_id, role) members; all or nothing."""
        ...

    def update_chat(
        self, chat_id: UUID, name: str | None, description: str | None
    ) -> Chat:
        """Change name and/or description. None leaves a field unchanged."""
        ...

    def append_message(self, message: Message) -> Message:
        """Persist a new, fully populated message."""
        ...

    def find_dialog(self, user_id: UUID, other_user_id: UUID) -> Chat | None:
        """Return the dialog shared by the two users, or None."""
        ...
