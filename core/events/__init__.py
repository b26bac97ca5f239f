"""
Core Events — Public API
==========================
Topic-based subscriptions shared by audit events and store
change feeds.
"""

from core.events.dispatcher import AuditEvent, DispatchReport, dispatch, emit
from core.events.errors import (
    DuplicateSubscriberError,
    EventBusError,
    InvalidEventTypeFormat,
)
from core.events.registry import SubscriberRegistry, validate_event_type

__all__ = [
    "AuditEvent",
    "dispatch",
    "emit",
    "DispatchReport",
    "SubscriberRegistry",
    "validate_event_type",
    "EventBusError",
    "InvalidEventTypeFormat",
    "DuplicateSubscriberError",
]
