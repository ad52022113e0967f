"""
Service-level authorization for chat operations.

This module decides what a user may do in a chat from their role alone.
It is distinct from DRF permission classes, which only check that the
request is authenticated.

Key Components:
    Capability: The actions a role can be granted
    ROLE_CAPABILITIES: Closed role -> capability table
    ChatAuthorizationService: Membership lookups plus capability checks

Role Matrix:
    Admin: read, write, manage members
    Member: read, write
    Viewer: read
    (no membership): nothing

Usage:
    authorization = ChatAuthorizationService(DjangoChatStore())
    if not authorization.can_write(user.id, chat_id):
        return ServiceResult.failure("...", error_code="PERMISSION_DENIED")

Note:
    Results are never cached. Every check re-reads the membership from the
    store, so a role change is visible to the next call.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from chat.models import ChatRole

if TYPE_CHECKING:
    from uuid import UUID

    from chat.models import ChatMember
    from chat.protocols import ChatStore


class Capability(str, Enum):
    READ = "read"
    WRITE = "write"
    MANAGE_MEMBERS = "manage_members"


ROLE_CAPABILITIES: dict[ChatRole, frozenset[Capability]] = {
    ChatRole.ADMIN: frozenset(
        {Capability.READ, Capability.WRITE, Capability.MANAGE_MEMBERS}
    ),
    ChatRole.MEMBER: frozenset({Capability.READ, Capability.WRITE}),
    ChatRole.VIEWER: frozenset({Capability.READ}),
}

_missing_roles = set(ChatRole) - set(ROLE_CAPABILITIES)
if _missing_roles:
    raise ImportError(
        f"ROLE_CAPABILITIES has no entry for roles: {sorted(r.label for r in _missing_roles)}"
    )


def role_allows(role: ChatRole | int | None, capability: Capability) -> bool:
    """Check a role against the capability table. None (no role) allows nothing."""
    if role is None:
        return False
    return capability in ROLE_CAPABILITIES[ChatRole(role)]


class ChatAuthorizationService:
    """
    Role-based checks for one store.

    Holds no state beyond the store reference and is safe to share
    across threads.
    """

    def __init__(self, store: ChatStore):
        self.store = store

    def get_membership(self, user_id: UUID, chat_id: UUID) -> ChatMember | None:
        """Return the user's membership with the user loaded, or None."""
        return self.store.get_user_membership(user_id, chat_id)

    def get_role(self, user_id: UUID, chat_id: UUID) -> ChatRole | None:
        """
        Return the user's role in the chat.

        Returns:
            ChatRole, or None if the user is not a member or the chat
            does not exist
        """
        membership = self.get_membership(user_id, chat_id)
        if membership is None:
            return None
        return ChatRole(membership.role)

    def has_capability(
        self, user_id: UUID, chat_id: UUID, capability: Capability
    ) -> bool:
        return role_allows(self.get_role(user_id, chat_id), capability)

    def can_read(self, user_id: UUID, chat_id: UUID) -> bool:
        return self.has_capability(user_id, chat_id, Capability.READ)

    def can_write(self, user_id: UUID, chat_id: UUID) -> bool:
        return self.has_capability(user_id, chat_id, Capability.WRITE)

    def can_manage_members(self, user_id: UUID, chat_id: UUID) -> bool:
        return self.has_capability(user_id, chat_id, Capability.MANAGE_MEMBERS)
