"""
Core Events — Subscriber Registry
===================================
Maps a topic to the handlers listening on it.

Two kinds of topics share this registry:
- audit event types, e.g. 'production.unit.toggled.v1'
- store change feeds, keyed by order id, used by the checklist
  adapters to push full order snapshots to subscribers

Rules:
- Multiple subscribers per topic allowed
- Same handler twice on one topic is forbidden
- In-memory only, thread-safe
"""

import logging
from threading import Lock
from typing import Callable

from core.events.errors import (
    DuplicateSubscriberError,
    EventBusError,
    InvalidEventTypeFormat,
)

logger = logging.getLogger("printshop.events")


def validate_event_type(event_type: str) -> str:
    """Audit event types follow engine.domain.action format."""
    if not event_type or not isinstance(event_type, str):
        raise InvalidEventTypeFormat(event_type or "")
    parts = event_type.strip().split(".")
    if len(parts) < 3 or not all(parts):
        raise InvalidEventTypeFormat(event_type)
    return event_type.strip()


class SubscriberRegistry:
    """
    In-memory registry of subscribers.

    Each entry maps a topic to a list of (handler, subscriber_name)
    tuples, kept in registration order.
    """

    def __init__(self):
        self._subscribers: dict[str, list[tuple[Callable, str]]] = {}
        self._lock = Lock()

    def register_subscriber(
        self,
        topic: str,
        handler: Callable,
        subscriber_name: str = "",
    ) -> None:
        if not topic or not isinstance(topic, str):
            raise EventBusError("topic must be a non-empty string.")
        if not callable(handler):
            raise EventBusError(
                f"Handler must be callable, got {type(handler)}."
            )

        handler_name = getattr(handler, "__qualname__", str(handler))

        with self._lock:
            handlers = self._subscribers.setdefault(topic, [])
            for existing_handler, _ in handlers:
                if existing_handler is handler:
                    raise DuplicateSubscriberError(topic, handler_name)
            handlers.append((handler, subscriber_name or handler_name))

        logger.debug(f"Subscriber registered: {handler_name} → {topic}")

    def unregister_subscriber(self, topic: str, handler: Callable) -> bool:
        """Remove a handler. Returns False if it was not registered."""
        with self._lock:
            handlers = self._subscribers.get(topic, [])
            for index, (existing_handler, _) in enumerate(handlers):
                if existing_handler is handler:
                    del handlers[index]
                    if not handlers:
                        self._subscribers.pop(topic, None)
                    return True
        return False

    def get_subscribers(self, topic: str) -> list[tuple[Callable, str]]:
        """Empty list when nobody listens (not an error)."""
        with self._lock:
            return list(self._subscribers.get(topic, []))

    def has_subscribers(self, topic: str) -> bool:
        with self._lock:
            return bool(self._subscribers.get(topic))

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))
