"""
Constants and configuration for chat module features.

This module centralizes configuration values for:
- Message operations (content limits, system message templates)
- History pagination
- Listener buffering defaults

Deployment-specific listener settings are read from settings.CHAT_LISTENER;
the values in LISTENER_CONFIG are the fallbacks.
Import example:
    from chat.constants import MESSAGE_CONFIG, PAGINATION_CONFIG
"""

from typing import Final


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    # Content limits
    MAX_CONTENT_LENGTH: Final[int] = 10000  # Characters

    # Search
    SEARCH_MIN_QUERY_LENGTH: Final[int] = 2

    # System message templates
    JOIN_TEMPLATE: Final[str] = "{name} joined the chat"


# =============================================================================
# Pagination Configuration
# =============================================================================


class PAGINATION_CONFIG:
    """Configuration for message history pages."""

    DEFAULT_LIMIT: Final[int] = 50
    MAX_LIMIT: Final[int] = 200


# =============================================================================
# Listener Configuration
# =============================================================================


class LISTENER_CONFIG:
    """
    Defaults for live listeners.

    A listener buffers messages that have been broadcast but not yet
    consumed. When the buffer is full the overflow policy decides what
    happens to the listener.
    """

    BUFFER_SIZE: Final[int] = 50
    OVERFLOW_POLICY: Final[str] = "drop_oldest"
    ECHO_TO_SENDER: Final[bool] = True

    # Seconds between buffer checks in the sync subscription iterator
    POLL_TIMEOUT_SECONDS: Final[float] = 1.0


# =============================================================================
# WebSocket Close Codes
# =============================================================================


class CLOSE_CODES:
    """Application close codes sent to WebSocket clients."""

    UNAUTHENTICATED: Final[int] = 4001
    NOT_FOUND: Final[int] = 4004
    EVICTED: Final[int] = 4008
