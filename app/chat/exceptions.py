"""
Chat-specific exceptions.

Raised by the membership store; services translate them into
ServiceResult failures.
"""

from __future__ import annotations

from core.exceptions import ConflictError, ExternalServiceError


class StoreError(ExternalServiceError):
    """The backing database rejected or failed an operation."""

    default_error_code: str = "STORE_UNAVAILABLE"


class MembershipConflictError(ConflictError):
    """A membership for the (user, chat) pair already exists."""

    default_error_code: str = "ALREADY_MEMBER"
