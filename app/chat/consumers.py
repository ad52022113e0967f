"""
WebSocket consumers for the chat application.

This module implements the live delivery endpoint: a client subscribes to
one chat, receives every new message posted to it, and can post messages
over the same socket.

Consumers:
    ChatStreamConsumer: One connection, one chat, one registry listener

Authentication:
    Users are authenticated via JWT token passed as query parameter or
    subprotocol. JWTAuthMiddleware attaches the user to self.scope["user"].

Delivery:
    On connect the consumer registers a Listener with the process-wide
    ListenerRegistry. Broadcasts arrive on whichever thread posted the
    message; the listener's notifier wakes this consumer's event loop and
    a pump task drains the buffer to the socket. The listener is
    unregistered on every exit path.

Close codes:
    4001: Not authenticated
    4004: Chat does not exist or user may not read it
    4008: Listener evicted (buffer overflow under the disconnect policy)

Message Types (from client):
    - message: {"type": "message", "text": "Hello!"}

Message Types (to client):
    - message: {"type": "message", "message": {...}}
    - error: {"type": "error", "error": "...", "error_code": "..."}
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import TYPE_CHECKING

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.core.serializers.json import DjangoJSONEncoder

from chat.authorization import ChatAuthorizationService
from chat.constants import CLOSE_CODES
from chat.exceptions import StoreError
from chat.middleware import JWT_SUBPROTOCOL
from chat.registry import Listener
from chat.serializers import MessageSerializer
from chat.services import MessageDispatcher, get_listener_registry
from chat.stores import DjangoChatStore

if TYPE_CHECKING:
    from uuid import UUID

    from chat.registry import ListenerRegistry, RegistrationHandle

logger = logging.getLogger(__name__)


class ChatStreamConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer streaming one chat's messages.

    Handles:
        - Connection authentication and read authorization
        - Listener registration and cleanup
        - Forwarding broadcast messages to the client
        - Posting messages through the MessageDispatcher

    Attributes:
        chat_id: UUID of the subscribed chat
        listener: This connection's registry listener (after connect)
        handle: Registration handle used to unregister
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.chat_id: UUID | None = None
        self.registry: ListenerRegistry | None = None
        self.listener: Listener | None = None
        self.handle: RegistrationHandle | None = None
        self._wakeup: asyncio.Event | None = None
        self._pump_task: asyncio.Task | None = None
        self._disconnecting = False

    @classmethod
    async def encode_json(cls, content):
        return json.dumps(content, cls=DjangoJSONEncoder)

    async def connect(self):
        """
        Handle WebSocket connection.

        Validates:
            1. User is authenticated
            2. User holds a role in the chat

        On success, registers a listener and accepts the connection.
        """
        self.chat_id = self.scope["url_route"]["kwargs"]["chat_id"]
        user = self.scope.get("user")

        if not user or not user.is_authenticated:
            logger.warning(f"Rejected unauthenticated connection to chat {self.chat_id}")
            await self.close(code=CLOSE_CODES.UNAUTHENTICATED)
            return

        try:
            can_read = await self._can_read(user.id)
        except StoreError:
            logger.error(f"Could not check access of user {user.id} to chat {self.chat_id}")
            await self.close(code=1011)
            return

        if not can_read:
            logger.warning(f"User {user.id} may not read chat {self.chat_id}")
            await self.close(code=CLOSE_CODES.NOT_FOUND)
            return

        self.registry = get_listener_registry()
        self.listener = Listener(
            user_id=user.id,
            buffer_size=self.registry.buffer_size,
            overflow_policy=self.registry.overflow_policy,
        )
        loop = asyncio.get_running_loop()
        wakeup = asyncio.Event()
        self._wakeup = wakeup
        self.listener.set_notifier(lambda: loop.call_soon_threadsafe(wakeup.set))
        self.handle = self.registry.register(self.chat_id, self.listener)

        subprotocols = self.scope.get("subprotocols") or []
        subprotocol = JWT_SUBPROTOCOL if subprotocols[:1] == [JWT_SUBPROTOCOL] else None
        await self.accept(subprotocol=subprotocol)
        self._pump_task = asyncio.ensure_future(self._pump())

        logger.info(f"User {user.id} connected to chat {self.chat_id}")

    async def disconnect(self, close_code):
        """
        Handle WebSocket disconnection.

        Stops the pump and unregisters the listener if one was registered.
        """
        self._disconnecting = True
        if self._pump_task is not None:
            if not self._pump_task.done():
                self._pump_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._pump_task
            elif not self._pump_task.cancelled() and self._pump_task.exception():
                logger.error(
                    f"Delivery to chat {self.chat_id} stopped with an error",
                    exc_info=self._pump_task.exception(),
                )
        self._release()

        if self.listener is not None:
            logger.info(
                f"User {self.listener.user_id} disconnected from chat {self.chat_id} "
                f"(code {close_code})"
            )

    async def receive_json(self, content, **kwargs):
        """
        Handle incoming WebSocket frames.

        Expected message format:
            {"type": "message", "text": "Hello!"}

        Args:
            content: Parsed JSON message from client
        """
        message_type = content.get("type") if isinstance(content, dict) else None

        if message_type != "message":
            await self._send_error(
                f"Unknown message type: {message_type}", "VALIDATION_ERROR"
            )
            return

        result = await self._post_message(content.get("text"))
        if not result.success:
            await self._send_error(result.error, result.error_code)

    async def _pump(self):
        """Forward buffered messages to the socket until the listener closes."""
        try:
            while True:
                await self._wakeup.wait()
                self._wakeup.clear()
                for message in self.listener.drain():
                    await self.send_json(
                        {
                            "type": "message",
                            "message": MessageSerializer(message).data,
                        }
                    )
                if self.listener.closed:
                    break
        finally:
            evicted = self.listener.closed and not self._disconnecting
            self._release()

        if evicted:
            logger.warning(
                f"Listener for user {self.listener.user_id} on chat {self.chat_id} "
                f"was evicted; closing socket"
            )
            await self.close(code=CLOSE_CODES.EVICTED)

    def _release(self):
        if self.handle is not None:
            self.registry.unregister(self.handle)
            self.handle = None

    async def _send_error(self, error: str, error_code: str | None):
        await self.send_json(
            {
                "type": "error",
                "error": error,
                "error_code": error_code,
            }
        )

    @database_sync_to_async
    def _can_read(self, user_id) -> bool:
        """Check that the user holds any role in the chat."""
        return ChatAuthorizationService(DjangoChatStore()).can_read(user_id, self.chat_id)

    @database_sync_to_async
    def _post_message(self, text):
        """Post a message as the connected user via MessageDispatcher."""
        dispatcher = MessageDispatcher(registry=self.registry)
        return dispatcher.post_message(self.listener.user_id, self.chat_id, text)
