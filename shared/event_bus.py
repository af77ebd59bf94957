"""
In-memory event bus for post-commit reactions.

Services publish an event after their write has committed. Subscribers are
either:

- inline: called synchronously inside the publishing request, in
  registration order (low-stock lifecycle, delivery routing)
- background: fire-and-forget tasks handed to a thread pool and never
  awaited by the publisher (denormalized name copies, free-text conversion)

A subscriber that raises is logged and never affects the publisher or the
other subscribers. In a real deployment background handlers would be a
queue consumer (SQS, a task queue, ...).
"""

import logging
import threading
from collections import defaultdict, deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import uuid4

from shared.models import utc_now

logger = logging.getLogger("event_bus")


@dataclass
class Event:
    """
    An immutable record of something that happened.

    Attributes:
        event_type: String name of the event type (used for routing)
        payload: The event-specific data
        source: Which service published the event
        event_id: Unique identifier for this event instance
        timestamp: When the event occurred
    """
    event_type: str
    payload: dict[str, Any]
    source: str
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utc_now)

    def __str__(self) -> str:
        return f"Event({self.event_type}, id={self.event_id[:8]}, source={self.source})"


EventHandler = Callable[[Event], None]


class EventBus:
    """
    Simple pub/sub with inline and background subscribers.

    Example usage:
        bus = EventBus(inline_background=True)
        bus.subscribe("InventoryItemChanged", low_stock.handle_item_changed)
        bus.subscribe("InventoryItemRenamed", refresh_names, background=True)
        bus.publish(Event("InventoryItemChanged", {"item_id": "item-001"}, "inventory-service"))
    """

    def __init__(self, inline_background: bool = False, max_workers: int = 2, event_log_size: int = 1000):
        """
        Args:
            inline_background: Run background handlers synchronously after the
                inline ones (deterministic, used by tests and the CLI).
            max_workers: Thread pool size for background handlers.
            event_log_size: How many recent events to keep for inspection.
                Older ones are dropped; 0 disables the log.
        """
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._background: dict[str, list[EventHandler]] = defaultdict(list)
        self._inline_background = inline_background
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()

        self._event_log: deque[Event] = deque(maxlen=event_log_size)
        self._log_events: bool = event_log_size > 0

    def subscribe(self, event_type: str, handler: EventHandler, background: bool = False) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: The type of event to subscribe to
            handler: Function to call when an event of this type is published
            background: Dispatch as a fire-and-forget task instead of inline
        """
        target = self._background if background else self._subscribers
        target[event_type].append(handler)
        logger.debug(f"Subscribed {'background' if background else 'inline'} handler to '{event_type}'")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to ALL events (useful for logging or audit)."""
        self._subscribers["*"].append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns:
            True if the handler was found and removed, False otherwise
        """
        for registry in (self._subscribers, self._background):
            if handler in registry.get(event_type, []):
                registry[event_type].remove(handler)
                return True
        return False

    def publish(self, event: Event) -> int:
        """
        Publish an event to all subscribers.

        Returns:
            Number of handlers that received (or were scheduled to receive) the event
        """
        if self._log_events:
            self._event_log.append(event)

        logger.info(f"Publishing: {event}")

        handlers = self._subscribers.get(event.event_type, []) + self._subscribers.get("*", [])
        for handler in handlers:
            self._invoke(handler, event)

        background = list(self._background.get(event.event_type, []))
        for handler in background:
            if self._inline_background:
                self._invoke(handler, event)
            else:
                self._schedule(handler, event)

        called = len(handlers) + len(background)
        if called == 0:
            logger.debug(f"No handlers for event type '{event.event_type}'")
        return called

    def wait_for_background(self, timeout: Optional[float] = None) -> None:
        """Block until every scheduled background task has finished."""
        with self._pending_lock:
            pending = list(self._pending)
        for future in pending:
            future.result(timeout=timeout)
        with self._pending_lock:
            self._pending.difference_update(pending)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        with self._pending_lock:
            self._pending.clear()

    def pending_count(self) -> int:
        """Background tasks scheduled but not yet finished."""
        with self._pending_lock:
            return len(self._pending)

    def get_subscriber_count(self, event_type: str) -> int:
        return len(self._subscribers.get(event_type, [])) + len(self._background.get(event_type, []))

    def get_event_log(self) -> list[Event]:
        """Get the most recent published events, oldest first."""
        return list(self._event_log)

    def clear_event_log(self) -> None:
        self._event_log.clear()

    def clear_subscribers(self) -> None:
        self._subscribers.clear()
        self._background.clear()

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="event-bus",
            )
        return self._executor

    def _schedule(self, handler: EventHandler, event: Event) -> None:
        future = self._get_executor().submit(self._invoke, handler, event)
        with self._pending_lock:
            self._pending.add(future)
        # Runs immediately in this thread if the task already finished.
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    @staticmethod
    def _invoke(handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
        except Exception as e:
            logger.error(f"Handler {getattr(handler, '__qualname__', handler)} failed for {event}: {e}")
