"""
Django ORM implementation of the membership store.

DjangoChatStore satisfies chat.protocols.ChatStore on top of the chat
models. Database failures are re-raised as StoreError so services never
have to know about django.db exceptions.

Usage:
    from chat.stores import DjangoChatStore

    store = DjangoChatStore()
    page = store.get_messages(chat_id, limit=50, offset=0)
"""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING

from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F, OuterRef, Subquery

from chat.exceptions import MembershipConflictError, StoreError
from chat.models import Chat, ChatMember, ChatType, Message, MessageKind

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from uuid import UUID

    from authentication.models import User

logger = logging.getLogger(__name__)


def translate_database_errors(func: Callable):
    """
    Re-raise database failures as StoreError.

    MembershipConflictError passes through untouched; it is raised
    deliberately inside the wrapped call.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except MembershipConflictError:
            raise
        except DatabaseError as e:
            logger.error(f"Store operation {func.__name__} failed: {e}")
            raise StoreError(
                f"Chat storage unavailable during {func.__name__}",
                details={"operation": func.__name__},
            ) from e

    return wrapper


class DjangoChatStore:
    """
    Membership store backed by the default database.

    Instances hold no state and may be shared between threads.
    """

    @translate_database_errors
    def get_chat(self, chat_id: UUID) -> Chat | None:
        return Chat.objects.filter(id=chat_id).first()

    @translate_database_errors
    def get_chats(self, user_id: UUID) -> list[Chat]:
        return list(
            Chat.objects.filter(members__user_id=user_id).annotate(
                user_role=F("members__role")
            )
        )

    @translate_database_errors
    def get_users_of_chat(self, chat_id: UUID) -> list[ChatMember]:
        return list(
            ChatMember.objects.filter(chat_id=chat_id)
            .select_related("user")
            .order_by("created_at", "id")
        )

    @translate_database_errors
    def get_users_of_chats(self, chat_ids: Iterable[UUID]) -> dict[UUID, list[ChatMember]]:
        memberships: dict[UUID, list[ChatMember]] = {}
        queryset = (
            ChatMember.objects.filter(chat_id__in=list(chat_ids))
            .select_related("user")
            .order_by("created_at", "id")
        )
        for membership in queryset:
            memberships.setdefault(membership.chat_id, []).append(membership)
        return memberships

    @translate_database_errors
    def get_user_membership(self, user_id: UUID, chat_id: UUID) -> ChatMember | None:
        return (
            ChatMember.objects.filter(user_id=user_id, chat_id=chat_id)
            .select_related("user")
            .first()
        )

    @translate_database_errors
    def get_users(self, user_ids: Iterable[UUID]) -> list[User]:
        User = get_user_model()
        return list(User.objects.filter(id__in=list(user_ids), is_active=True))

    @translate_database_errors
    def get_messages(self, chat_id: UUID, limit: int, offset: int) -> list[Message]:
        """
        Return a newest-first page of history.

        Ties on created_at are broken by id, matching Message.Meta.ordering
        in reverse, so pages never overlap.
        """
        if limit <= 0:
            return []
        queryset = (
            Message.objects.filter(chat_id=chat_id)
            .select_related("sender")
            .order_by("-created_at", "-id")
        )
        return list(queryset[offset : offset + limit])

    @translate_database_errors
    def search_messages(
        self, chat_id: UUID, text: str, limit: int, offset: int
    ) -> list[Message]:
        """
        Return user messages whose text contains `text`, newest first.

        Matching is case-insensitive substring matching so it behaves the
        same on every supported database.
        """
        if limit <= 0:
            return []
        queryset = (
            Message.objects.filter(
                chat_id=chat_id,
                kind=MessageKind.USER,
                text__icontains=text,
            )
            .select_related("sender")
            .order_by("-created_at", "-id")
        )
        return list(queryset[offset : offset + limit])

    @translate_database_errors
    def get_last_message_per_chat(self, user_id: UUID) -> dict[UUID, Message]:
        latest = (
            Message.objects.filter(chat_id=OuterRef("chat_id"))
            .order_by("-created_at", "-id")
            .values("id")[:1]
        )
        last_ids = (
            ChatMember.objects.filter(user_id=user_id)
            .annotate(last_message_id=Subquery(latest))
            .exclude(last_message_id__isnull=True)
            .values_list("last_message_id", flat=True)
        )
        messages = Message.objects.filter(id__in=list(last_ids)).select_related("sender")
        return {message.chat_id: message for message in messages}

    @translate_database_errors
    def create_chat(self, chat: Chat, members: Sequence[tuple[UUID, int]]) -> Chat:
        with transaction.atomic():
            chat.save(force_insert=True)
            ChatMember.objects.bulk_create(
                [
                    ChatMember(chat=chat, user_id=user_id, role=role)
                    for user_id, role in members
                ]
            )
        logger.debug(f"Stored chat {chat.id} with {len(members)} members")
        return chat

    @translate_database_errors
    def add_members(
        self, chat_id: UUID, members: Sequence[tuple[UUID, int]]
    ) -> list[ChatMember]:
        user_ids = [user_id for user_id, _ in members]
        try:
            with transaction.atomic():
                existing = list(
                    ChatMember.objects.filter(
                        chat_id=chat_id, user_id__in=user_ids
                    ).values_list("user_id", flat=True)
                )
                if existing:
                    raise MembershipConflictError(
                        "User is already a member of this chat",
                        details={"user_ids": [str(u) for u in existing]},
                    )
                created = ChatMember.objects.bulk_create(
                    [
                        ChatMember(chat_id=chat_id, user_id=user_id, role=role)
                        for user_id, role in members
                    ]
                )
        except IntegrityError as e:
            # Lost a race with a concurrent add of the same pair
            raise MembershipConflictError(
                "User is already a member of this chat",
                details={"user_ids": [str(u) for u in user_ids]},
            ) from e
        return created

    @translate_database_errors
    def update_chat(
        self, chat_id: UUID, name: str | None, description: str | None
    ) -> Chat:
        chat = Chat.objects.get(id=chat_id)
        update_fields = ["updated_at"]
        if name is not None:
            chat.name = name
            update_fields.append("name")
        if description is not None:
            chat.description = description
            update_fields.append("description")
        chat.save(update_fields=update_fields)
        return chat

    @translate_database_errors
    def append_message(self, message: Message) -> Message:
        message.save(force_insert=True)
        return message

    @translate_database_errors
    def find_dialog(self, user_id: UUID, other_user_id: UUID) -> Chat | None:
        return (
            Chat.objects.filter(chat_type=ChatType.DIALOG, members__user_id=user_id)
            .filter(members__user_id=other_user_id)
            .distinct()
            .first()
        )
