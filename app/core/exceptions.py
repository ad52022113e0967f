"""
Base exception classes for application-wide error handling.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ConflictError - State conflicts (duplicates, concurrent modifications)
    └── ExternalServiceError - Backing service failures (database, network)

Usage:
    from core.exceptions import ConflictError

    raise ConflictError(
        "User is already a member of this chat",
        error_code="ALREADY_MEMBER",
        details={"user_ids": [str(user_id)]},
    )

Note:
    Expected business failures are reported with core.services.ServiceResult.
    These exceptions cover the cases a service cannot anticipate, such as a
    unique constraint losing a race or the database going away.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, metadata, etc.)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Duplicate entries (unique constraint violations)
    - Concurrent modification conflicts

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when a backing service call fails.

    Use for:
    - Database connection or query failures
    - Network timeouts
    - Service unavailability

    Note:
        These failures are transient from the caller's point of view.
        HTTP 503 Service Unavailable is the appropriate status.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
