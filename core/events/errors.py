"""
Core Events — Errors
=====================
Error types for the notification layer.
"""


class EventBusError(Exception):
    """Base error for subscription and dispatch operations."""
    pass


class InvalidEventTypeFormat(EventBusError):
    """Event type does not follow engine.domain.action[.vN] format."""

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(
            f"Event type '{event_type}' does not follow "
            f"engine.domain.action format."
        )


class DuplicateSubscriberError(EventBusError):
    """Same handler already registered for this topic."""

    def __init__(self, topic: str, handler_name: str):
        self.topic = topic
        self.handler_name = handler_name
        super().__init__(
            f"Handler '{handler_name}' already registered "
            f"for topic '{topic}'."
        )
