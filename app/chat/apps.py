"""
Chat application configuration.

This app provides the chat core with:
- Channels, dialogs and groups with admin/member/viewer roles
- Immutable, ordered message history
- Live fan-out of new messages to connected WebSocket listeners

The process-wide ListenerRegistry is created in ready() and lives on the
app config:

    from django.apps import apps

    registry = apps.get_app_config("chat").listener_registry
"""

import logging

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"

    listener_registry = None

    def ready(self):
        """Build the listener registry from settings.CHAT_LISTENER."""
        from chat.constants import LISTENER_CONFIG
        from chat.registry import ListenerRegistry

        options = getattr(settings, "CHAT_LISTENER", {})
        self.listener_registry = ListenerRegistry(
            buffer_size=options.get("BUFFER_SIZE", LISTENER_CONFIG.BUFFER_SIZE),
            overflow_policy=options.get(
                "OVERFLOW_POLICY", LISTENER_CONFIG.OVERFLOW_POLICY
            ),
            echo_to_sender=options.get(
                "ECHO_TO_SENDER", LISTENER_CONFIG.ECHO_TO_SENDER
            ),
        )
        logger.debug(f"Chat listener registry ready: {self.listener_registry!r}")
