"""
Billing Engine — Billing Periods
==================================
Weeks are ISO weeks (Monday 00:00 UTC → Sunday 23:59:59.999999),
months are calendar months in UTC. Both carry a closed TimeWindow.

    BillingPeriod.week_of(dt)    → "2025-W07"
    BillingPeriod.month_of(dt)   → "2025-02"
    BillingPeriod.from_id(id)    → parses either form back
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from core.time import TimeWindow, ensure_utc
from engines.billing.adjustments import AdjustmentScope
from engines.billing.errors import InvalidPeriodError

_WEEK_ID = re.compile(r"^(\d{4})-W(\d{2})$")
_MONTH_ID = re.compile(r"^(\d{4})-(\d{2})$")
_TICK = timedelta(microseconds=1)


@dataclass(frozen=True)
class BillingPeriod:
    period_id: str
    scope: AdjustmentScope
    window: TimeWindow

    @classmethod
    def week_of(cls, dt: datetime) -> "BillingPeriod":
        dt = ensure_utc(dt)
        year, week, weekday = dt.isocalendar()
        monday = datetime(dt.year, dt.month, dt.day, tzinfo=timezone.utc) - timedelta(
            days=weekday - 1
        )
        return cls(
            period_id=f"{year:04d}-W{week:02d}",
            scope=AdjustmentScope.WEEK,
            window=TimeWindow(start=monday, end=monday + timedelta(days=7) - _TICK),
        )

    @classmethod
    def month_of(cls, dt: datetime) -> "BillingPeriod":
        dt = ensure_utc(dt)
        start = datetime(dt.year, dt.month, 1, tzinfo=timezone.utc)
        if dt.month == 12:
            next_start = datetime(dt.year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            next_start = datetime(dt.year, dt.month + 1, 1, tzinfo=timezone.utc)
        return cls(
            period_id=f"{dt.year:04d}-{dt.month:02d}",
            scope=AdjustmentScope.MONTH,
            window=TimeWindow(start=start, end=next_start - _TICK),
        )

    @classmethod
    def from_id(cls, period_id: str) -> "BillingPeriod":
        text = (period_id or "").strip()
        match = _WEEK_ID.match(text)
        if match:
            year, week = int(match.group(1)), int(match.group(2))
            try:
                monday = datetime.fromisocalendar(year, week, 1)
            except ValueError as exc:
                raise InvalidPeriodError(text, str(exc)) from exc
            return cls.week_of(monday.replace(tzinfo=timezone.utc))
        match = _MONTH_ID.match(text)
        if match:
            year, month = int(match.group(1)), int(match.group(2))
            if not 1 <= month <= 12:
                raise InvalidPeriodError(text, f"month {month} out of range")
            return cls.month_of(datetime(year, month, 1, tzinfo=timezone.utc))
        raise InvalidPeriodError(text, "expected 'YYYY-Www' or 'YYYY-MM'")

    def contains(self, dt: datetime) -> bool:
        return self.window.contains(ensure_utc(dt))
