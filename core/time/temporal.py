"""
Core Time — Temporal Helpers
==============================
Pure helpers for intervals and ISO-8601 conversion at store
boundaries. No hidden clock access.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True)
class TimeWindow:
    """
    A closed time interval [start, end].

    Invariant: start <= end (enforced at construction).
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(
                f"TimeWindow start ({self.start}) must be <= end ({self.end})."
            )

    def contains(self, dt: datetime) -> bool:
        """Inclusive on both ends."""
        return self.start <= dt <= self.end


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are read as UTC; aware ones are converted."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso8601(dt: datetime) -> str:
    return ensure_utc(dt).isoformat()


def parse_iso8601(value: str) -> datetime:
    """Parse an ISO-8601 string (a trailing 'Z' is accepted)."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("timestamp must be a non-empty ISO-8601 string.")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))
