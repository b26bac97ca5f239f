"""
Core Time — Public API
========================
Injectable clock and temporal helpers.
"""

from core.time.clock import (
    Clock,
    FixedClock,
    SystemClock,
    get_default_clock,
    now_utc,
    set_default_clock,
)
from core.time.temporal import (
    TimeWindow,
    ensure_utc,
    parse_iso8601,
    to_iso8601,
)

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "get_default_clock",
    "set_default_clock",
    "now_utc",
    "TimeWindow",
    "ensure_utc",
    "parse_iso8601",
    "to_iso8601",
]
