"""
Core Events — Dispatcher
==========================
Delivers a message to every subscriber of a topic.

Dispatch behavior:
1. Look up subscribers by topic
2. Execute handlers sequentially
3. Catch subscriber exceptions per handler
4. Log failure
5. Continue to next subscriber

A failing subscriber never undoes the write that triggered the
notification: the write already happened, listeners only observe it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from core.events.registry import SubscriberRegistry, validate_event_type

logger = logging.getLogger("printshop.events")


@dataclass
class DispatchReport:
    topic: str
    subscribers_notified: int = 0
    subscribers_failed: int = 0
    failures: list[dict] = field(default_factory=list)


def dispatch(topic: str, message: Any, registry: SubscriberRegistry) -> DispatchReport:
    """
    Call every handler registered for `topic` with `message`.

    Never raises: handler failures are caught, logged and reported.
    """
    report = DispatchReport(topic=topic)

    subscribers = registry.get_subscribers(topic)
    if not subscribers:
        return report

    for handler, subscriber_name in subscribers:
        try:
            handler(message)
            report.subscribers_notified += 1
        except Exception as exc:
            report.subscribers_failed += 1
            report.failures.append({
                "handler": subscriber_name,
                "error": str(exc),
                "error_type": type(exc).__name__,
            })
            logger.error(
                f"Subscriber failed: {subscriber_name} for {topic}: {exc}",
                exc_info=True,
            )

    logger.debug(
        f"Dispatch complete: {topic}: "
        f"{report.subscribers_notified} notified, "
        f"{report.subscribers_failed} failed"
    )
    return report


@dataclass(frozen=True)
class AuditEvent:
    """What services publish after a completed operation."""

    event_type: str
    payload: dict
    occurred_at: Any = None


def emit(
    registry: SubscriberRegistry | None,
    event_type: str,
    payload: dict,
    occurred_at: Any = None,
) -> DispatchReport | None:
    """Publish an audit event; a missing registry means nobody listens."""
    event_type = validate_event_type(event_type)
    if registry is None:
        return None
    return dispatch(
        event_type,
        AuditEvent(event_type=event_type, payload=payload, occurred_at=occurred_at),
        registry,
    )
