"""
Small, dependency-free helper functions.

Functions:
    coerce_uuid: Parse a UUID from a string, UUID, or anything str()-able
"""

from __future__ import annotations

import uuid


def coerce_uuid(value) -> uuid.UUID | None:
    """
    Convert a value to a UUID.

    Args:
        value: UUID instance or string representation

    Returns:
        UUID if the value is well formed, None otherwise

    Example:
        coerce_uuid("550e8400-e29b-41d4-a716-446655440000")  # UUID(...)
        coerce_uuid("not-a-uuid")  # None
    """
    if isinstance(value, uuid.UUID):
        return value
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return None
