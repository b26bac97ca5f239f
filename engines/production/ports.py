"""
Production Engine — Store Ports
=================================
Contracts the engine expects from the realtime document store.
Adapters live under adapters/ (in-memory for tests, Django ORM).

No multi-key transactions are assumed. Consistency of the
per-order counter comes from full rescans, not from the store.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Protocol

from engines.production.models import ChecklistEntry, ProgressCounter

SnapshotCallback = Callable[[List[ChecklistEntry]], None]


class Subscription(Protocol):
    """Handle returned by subscribe(); unsubscribe() is idempotent."""

    def unsubscribe(self) -> None:
        ...  # pragma: no cover


class ChecklistStore(Protocol):
    """
    unit_key → {checked, actor, updated_at, order_id}.

    set() is last-write-wins by updated_at: an older write never
    replaces a newer entry. It returns the entry actually stored.
    """

    def get(self, unit_key: str) -> Optional[ChecklistEntry]:
        ...  # pragma: no cover

    def set(self, entry: ChecklistEntry) -> ChecklistEntry:
        ...  # pragma: no cover

    def query(self, order_id: str) -> List[ChecklistEntry]:
        ...  # pragma: no cover

    def delete(self, unit_key: str) -> bool:
        ...  # pragma: no cover

    def subscribe(self, order_id: str, callback: SnapshotCallback) -> Subscription:
        """Deliver the order's full entry list after every write to it."""
        ...  # pragma: no cover


class ProgressStore(Protocol):
    """order_id → {checked_count, total_count}, merge-write semantics."""

    def get(self, order_id: str) -> Optional[ProgressCounter]:
        ...  # pragma: no cover

    def merge(
        self,
        order_id: str,
        *,
        checked_count: Optional[int] = None,
        total_count: Optional[int] = None,
    ) -> ProgressCounter:
        """Write only the given fields; return the merged counter."""
        ...  # pragma: no cover
