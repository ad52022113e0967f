"""
In-process registry of live chat listeners.

The registry maps a chat id to the listeners currently attached to it and
fans new messages out to them. It is the only path by which a message
reaches a connected client.

Classes:
    OverflowPolicy: What to do when a listener's buffer is full
    Listener: Bounded per-connection message buffer
    RegistrationHandle: Token returned by register(), used to unregister
    Subscription: Listener plus handle with context-manager cleanup
    ListenerRegistry: Thread-safe chat id -> listeners map

Concurrency:
    - A single lock guards the map; it is held only to mutate it or to
      take a snapshot for broadcast, never while delivering
    - Each listener has its own condition variable
    - offer() never blocks, so a slow consumer cannot stall a broadcast
    - ordering_lock(chat_id) serializes timestamp, persist and broadcast
      for one chat so delivery order matches history order
    - Per-chat ordering state is reference counted and dropped once no
      sender holds it and no listener is attached to the chat

Usage:
    from django.apps import apps

    registry = apps.get_app_config("chat").listener_registry

    with registry.subscribe(chat_id, user.id) as subscription:
        for message in subscription.messages(timeout=1.0):
            ...
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from django.utils import timezone

from chat.constants import LISTENER_CONFIG

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from uuid import UUID

    from chat.models import Message

logger = logging.getLogger(__name__)


class OverflowPolicy(str, Enum):
    """
    Behaviour when a listener's buffer is full.

    DROP_OLDEST: Discard the oldest buffered message and keep the listener
    DISCONNECT: Close the listener and evict it from the registry
    """

    DROP_OLDEST = "drop_oldest"
    DISCONNECT = "disconnect"


class Listener:
    """
    Bounded buffer of messages for one live connection.

    Producers call offer(); consumers either block on get() or, in async
    code, install a notifier and call drain() when woken.

    Attributes:
        id: Unique listener id
        user_id: Owner of the connection
        buffer_size: Maximum number of undelivered messages
        overflow_policy: OverflowPolicy applied when the buffer is full
        dropped: Count of messages discarded under DROP_OLDEST
    """

    def __init__(
        self,
        user_id: UUID | None = None,
        buffer_size: int = LISTENER_CONFIG.BUFFER_SIZE,
        overflow_policy: OverflowPolicy | str = LISTENER_CONFIG.OVERFLOW_POLICY,
    ):
        if buffer_size < 1:
            raise ValueError("Listener buffer_size must be at least 1")
        self.id = uuid.uuid4()
        self.user_id = user_id
        self.buffer_size = buffer_size
        self.overflow_policy = OverflowPolicy(overflow_policy)
        self.dropped = 0
        self._buffer: deque[Message] = deque()
        self._condition = threading.Condition()
        self._closed = False
        self._notifier: Callable[[], None] | None = None

    def __repr__(self) -> str:
        return (
            f"Listener(id={self.id}, user_id={self.user_id}, "
            f"buffered={len(self._buffer)}, closed={self._closed})"
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def set_notifier(self, notifier: Callable[[], None] | None) -> None:
        """
        Install a callback run after every accepted offer and on close.

        The callback runs on the producer's thread and must not block.
        """
        self._notifier = notifier

    def offer(self, message: Message) -> bool:
        """
        Buffer a message without blocking.

        Returns:
            True if the message was buffered. False if the listener is
            closed or overflowed under DISCONNECT; the caller should
            evict it.
        """
        with self._condition:
            if self._closed:
                return False
            if len(self._buffer) >= self.buffer_size:
                if self.overflow_policy == OverflowPolicy.DISCONNECT:
                    return False
                self._buffer.popleft()
                self.dropped += 1
            self._buffer.append(message)
            self._condition.notify()
        self._notify()
        return True

    def get(self, timeout: float | None = None) -> Message | None:
        """
        Block until a message is available.

        Returns:
            The oldest buffered message, or None on timeout or once the
            listener is closed and empty.
        """
        with self._condition:
            if not self._buffer and not self._closed:
                self._condition.wait(timeout)
            if self._buffer:
                return self._buffer.popleft()
            return None

    def drain(self) -> list[Message]:
        """Remove and return all buffered messages, oldest first."""
        with self._condition:
            messages = list(self._buffer)
            self._buffer.clear()
            return messages

    def close(self) -> None:
        """Mark closed and wake any waiter. Safe to call repeatedly."""
        with self._condition:
            if self._closed:
                return
            self._closed = True
            self._condition.notify_all()
        self._notify()

    def _notify(self) -> None:
        notifier = self._notifier
        if notifier is not None:
            notifier()


@dataclass(frozen=True)
class RegistrationHandle:
    """Identifies one registration; pass it back to unregister()."""

    chat_id: UUID
    listener_id: UUID


@dataclass
class ChatOrdering:
    """Ordering lock and last send time for one chat."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0
    last_timestamp: datetime | None = None


@dataclass
class Subscription:
    """
    A registered listener bundled with its handle.

    Closing the subscription unregisters the listener. close() is
    idempotent and the object can be used as a context manager.
    """

    registry: ListenerRegistry
    handle: RegistrationHandle
    listener: Listener
    _closed: bool = field(default=False, repr=False)

    @property
    def chat_id(self) -> UUID:
        return self.handle.chat_id

    def messages(
        self, timeout: float = LISTENER_CONFIG.POLL_TIMEOUT_SECONDS
    ) -> Iterator[Message]:
        """
        Yield messages as they arrive.

        Stops when no message arrives within `timeout` seconds or the
        listener is closed.
        """
        while True:
            message = self.listener.get(timeout=timeout)
            if message is None:
                return
            yield message

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.registry.unregister(self.handle)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ListenerRegistry:
    """
    Thread-safe map of chat id to live listeners.

    One instance per process, created by ChatConfig.ready() from
    settings.CHAT_LISTENER. Tests construct their own.

    Args:
        buffer_size: Buffer size for listeners created by subscribe()
        overflow_policy: Overflow policy for listeners created by subscribe()
        echo_to_sender: Deliver a user's own messages back to their listeners
    """

    def __init__(
        self,
        buffer_size: int = LISTENER_CONFIG.BUFFER_SIZE,
        overflow_policy: OverflowPolicy | str = LISTENER_CONFIG.OVERFLOW_POLICY,
        echo_to_sender: bool = LISTENER_CONFIG.ECHO_TO_SENDER,
    ):
        self.buffer_size = buffer_size
        self.overflow_policy = OverflowPolicy(overflow_policy)
        self.echo_to_sender = echo_to_sender
        self._lock = threading.Lock()
        self._listeners: dict[UUID, dict[UUID, Listener]] = {}
        self._ordering: dict[UUID, ChatOrdering] = {}

    def __repr__(self) -> str:
        return (
            f"ListenerRegistry(chats={len(self._listeners)}, "
            f"buffer_size={self.buffer_size}, "
            f"overflow_policy={self.overflow_policy.value})"
        )

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(self, chat_id: UUID, listener: Listener) -> RegistrationHandle:
        """
        Attach a listener to a chat.

        The caller is responsible for having checked read access.
        """
        with self._lock:
            self._listeners.setdefault(chat_id, {})[listener.id] = listener
        logger.debug(f"Registered listener {listener.id} on chat {chat_id}")
        return RegistrationHandle(chat_id=chat_id, listener_id=listener.id)

    def unregister(self, handle: RegistrationHandle) -> None:
        """
        Detach and close a listener.

        Unknown or already-removed handles are ignored.
        """
        with self._lock:
            bucket = self._listeners.get(handle.chat_id)
            listener = bucket.pop(handle.listener_id, None) if bucket else None
            if bucket is not None and not bucket:
                del self._listeners[handle.chat_id]
                self._discard_idle_ordering(handle.chat_id)
        if listener is not None:
            listener.close()
            logger.debug(
                f"Unregistered listener {handle.listener_id} from chat {handle.chat_id}"
            )

    def subscribe(self, chat_id: UUID, user_id: UUID | None = None) -> Subscription:
        """Create a listener with this registry's settings and register it."""
        listener = Listener(
            user_id=user_id,
            buffer_size=self.buffer_size,
            overflow_policy=self.overflow_policy,
        )
        handle = self.register(chat_id, listener)
        return Subscription(registry=self, handle=handle, listener=listener)

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def broadcast(self, chat_id: UUID, message: Message) -> int:
        """
        Deliver a message to every listener registered on the chat.

        Listeners registered after the snapshot is taken do not receive
        this message. A listener that fails or overflows under DISCONNECT
        is evicted; the others still receive the message.

        Returns:
            Number of listeners that accepted the message
        """
        with self._lock:
            listeners = list(self._listeners.get(chat_id, {}).values())
        if not listeners:
            return 0

        skip_user_id = None
        if not self.echo_to_sender and not message.is_system_message:
            skip_user_id = message.sender_id

        delivered = 0
        for listener in listeners:
            if skip_user_id is not None and listener.user_id == skip_user_id:
                continue
            try:
                accepted = listener.offer(message)
            except Exception:
                logger.warning(
                    f"Delivery to listener {listener.id} on chat {chat_id} failed; evicting",
                    exc_info=True,
                )
                self._evict(chat_id, listener)
                continue
            if accepted:
                delivered += 1
            else:
                logger.warning(
                    f"Listener {listener.id} on chat {chat_id} overflowed or closed; evicting"
                )
                self._evict(chat_id, listener)

        logger.debug(
            f"Broadcast message {message.id} on chat {chat_id} to {delivered} listeners"
        )
        return delivered

    @contextmanager
    def ordering_lock(self, chat_id: UUID) -> Iterator[None]:
        """
        Hold the lock that serializes message delivery for one chat.

        The chat's ordering state is created on first use and dropped on
        release when no other sender is waiting and no listener is attached.
        """
        with self._lock:
            ordering = self._ordering.get(chat_id)
            if ordering is None:
                ordering = self._ordering[chat_id] = ChatOrdering()
            ordering.holders += 1
        try:
            with ordering.lock:
                yield
        finally:
            with self._lock:
                ordering.holders -= 1
                self._discard_idle_ordering(chat_id)

    def next_timestamp(self, chat_id: UUID) -> datetime:
        """
        Return the send time for the next message in a chat.

        Strictly later than the previous value for the same chat while its
        ordering state is alive, so equal clock readings never tie.

        Raises:
            RuntimeError: If ordering_lock(chat_id) is not held
        """
        ordering = self._ordering.get(chat_id)
        if ordering is None or not ordering.lock.locked():
            raise RuntimeError(f"ordering_lock({chat_id}) must be held")
        now = timezone.now()
        last = ordering.last_timestamp
        if last is not None and now <= last:
            now = last + timedelta(microseconds=1)
        ordering.last_timestamp = now
        return now

    def ordering_state_count(self) -> int:
        """Number of chats with live ordering state."""
        with self._lock:
            return len(self._ordering)

    # -------------------------------------------------------------------------
    # Introspection and shutdown
    # -------------------------------------------------------------------------

    def listener_count(self, chat_id: UUID | None = None) -> int:
        """Count listeners on one chat, or on all chats when chat_id is None."""
        with self._lock:
            if chat_id is not None:
                return len(self._listeners.get(chat_id, {}))
            return sum(len(bucket) for bucket in self._listeners.values())

    def is_registered(self, handle: RegistrationHandle) -> bool:
        with self._lock:
            return handle.listener_id in self._listeners.get(handle.chat_id, {})

    def close_all(self) -> None:
        """Close and remove every listener, e.g. on process shutdown."""
        with self._lock:
            buckets = self._listeners
            self._listeners = {}
            for chat_id in list(self._ordering):
                self._discard_idle_ordering(chat_id)
        count = 0
        for bucket in buckets.values():
            for listener in bucket.values():
                listener.close()
                count += 1
        logger.info(f"Closed {count} listeners")

    def _discard_idle_ordering(self, chat_id: UUID) -> None:
        # Caller holds self._lock
        ordering = self._ordering.get(chat_id)
        if ordering is not None and ordering.holders == 0 and chat_id not in self._listeners:
            del self._ordering[chat_id]

    def _evict(self, chat_id: UUID, listener: Listener) -> None:
        self.unregister(RegistrationHandle(chat_id=chat_id, listener_id=listener.id))
        # The listener may already be gone from the map but must still be closed
        listener.close()
