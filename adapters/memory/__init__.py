"""
In-Memory Store Adapters
==========================
Dict-backed implementations of the production and billing ports.
Used by the test suite and for running the engines as a plain
library without a database.

Thread-safe; no persistence across process restarts.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Tuple

from core.events import SubscriberRegistry, dispatch
from engines.billing.adjustments import AdjustmentScope, BalanceAdjustment
from engines.billing.records import BillingRecord, RecordKind
from engines.billing.workflow import BillingNote, HandlingFeeOverride, InvoiceStatus
from engines.pricing.rules import RuleSet
from engines.production.models import ChecklistEntry, ProgressCounter, normalize_order_id
from engines.production.ports import SnapshotCallback

logger = logging.getLogger("printshop.stores")


# ══════════════════════════════════════════════════════════════
# CHANGE FEED (shared by every checklist adapter)
# ══════════════════════════════════════════════════════════════

class _FeedSubscription:
    def __init__(self, feed: "ChecklistChangeFeed", topic: str, handler: SnapshotCallback):
        self._feed = feed
        self._topic = topic
        self._handler = handler
        self._active = True

    def unsubscribe(self) -> None:
        if self._active:
            self._feed.registry.unregister_subscriber(self._topic, self._handler)
            self._active = False


class ChecklistChangeFeed:
    """
    Per-order snapshot notifications on top of the subscriber
    registry. Each write publishes the order's full entry list.
    """

    def __init__(self, registry: Optional[SubscriberRegistry] = None):
        self.registry = registry or SubscriberRegistry()

    @staticmethod
    def topic_for(order_id: str) -> str:
        return f"checklist.order.{normalize_order_id(order_id)}"

    def subscribe(self, order_id: str, callback: SnapshotCallback) -> _FeedSubscription:
        topic = self.topic_for(order_id)

        def handler(snapshot: List[ChecklistEntry]) -> None:
            callback(snapshot)

        handler.__qualname__ = getattr(callback, "__qualname__", "snapshot_callback")
        self.registry.register_subscriber(topic, handler)
        return _FeedSubscription(self, topic, handler)

    def publish(self, order_id: str, snapshot: List[ChecklistEntry]) -> None:
        topic = self.topic_for(order_id)
        if self.registry.has_subscribers(topic):
            dispatch(topic, snapshot, self.registry)


# ══════════════════════════════════════════════════════════════
# PRODUCTION STORES
# ══════════════════════════════════════════════════════════════

class InMemoryChecklistStore:
    def __init__(self, feed: Optional[ChecklistChangeFeed] = None):
        self._entries: Dict[str, ChecklistEntry] = {}
        self._lock = threading.Lock()
        self._feed = feed or ChecklistChangeFeed()

    def get(self, unit_key: str) -> Optional[ChecklistEntry]:
        with self._lock:
            return self._entries.get(unit_key)

    def set(self, entry: ChecklistEntry) -> ChecklistEntry:
        with self._lock:
            current = self._entries.get(entry.unit_key)
            if current is not None and current.updated_at > entry.updated_at:
                logger.debug(f"Stale write on {entry.unit_key} ignored")
                stored = current
            else:
                self._entries[entry.unit_key] = entry
                stored = entry
            snapshot = self._snapshot(stored.order_id)
        self._feed.publish(stored.order_id, snapshot)
        return stored

    def query(self, order_id: str) -> List[ChecklistEntry]:
        with self._lock:
            return self._snapshot(normalize_order_id(order_id))

    def delete(self, unit_key: str) -> bool:
        with self._lock:
            removed = self._entries.pop(unit_key, None)
            if removed is None:
                return False
            snapshot = self._snapshot(removed.order_id)
        self._feed.publish(removed.order_id, snapshot)
        return True

    def subscribe(self, order_id: str, callback: SnapshotCallback):
        return self._feed.subscribe(order_id, callback)

    def put_raw(self, entry: ChecklistEntry) -> None:
        """Seed an entry without notifications or ordering checks."""
        with self._lock:
            self._entries[entry.unit_key] = entry

    def _snapshot(self, order_id: str) -> List[ChecklistEntry]:
        return sorted(
            (e for e in self._entries.values() if e.order_id == order_id),
            key=lambda e: e.unit_key,
        )


class InMemoryProgressStore:
    def __init__(self):
        self._counters: Dict[str, ProgressCounter] = {}
        self._lock = threading.Lock()

    def get(self, order_id: str) -> Optional[ProgressCounter]:
        with self._lock:
            return self._counters.get(normalize_order_id(order_id))

    def merge(
        self,
        order_id: str,
        *,
        checked_count: Optional[int] = None,
        total_count: Optional[int] = None,
    ) -> ProgressCounter:
        oid = normalize_order_id(order_id)
        with self._lock:
            current = self._counters.get(oid) or ProgressCounter(order_id=oid)
            merged = ProgressCounter(
                order_id=oid,
                checked_count=current.checked_count if checked_count is None else checked_count,
                total_count=current.total_count if total_count is None else total_count,
            )
            self._counters[oid] = merged
            return merged


# ══════════════════════════════════════════════════════════════
# BILLING STORES
# ══════════════════════════════════════════════════════════════

class InMemoryBillingStore:
    def __init__(self):
        self._records: Dict[Tuple[RecordKind, str], BillingRecord] = {}
        self._lock = threading.Lock()

    def get(self, kind: RecordKind, record_id: str) -> Optional[BillingRecord]:
        with self._lock:
            return self._records.get((kind, record_id))

    def save(self, record: BillingRecord) -> None:
        with self._lock:
            self._records[(record.kind, record.record_id)] = record

    def count(self) -> int:
        with self._lock:
            return len(self._records)


class InMemoryAdjustmentStore:
    def __init__(self):
        self._adjustments: Dict[Tuple[AdjustmentScope, str], BalanceAdjustment] = {}
        self._lock = threading.Lock()

    def get(self, scope: AdjustmentScope, scope_ref: str) -> Optional[BalanceAdjustment]:
        with self._lock:
            return self._adjustments.get((scope, scope_ref))

    def save(self, adjustment: BalanceAdjustment) -> None:
        with self._lock:
            self._adjustments[adjustment.key] = adjustment

    def delete(self, scope: AdjustmentScope, scope_ref: str) -> bool:
        with self._lock:
            return self._adjustments.pop((scope, scope_ref), None) is not None


class InMemoryBillingWorkflowStore:
    def __init__(self):
        self._statuses: Dict[Tuple[AdjustmentScope, str], InvoiceStatus] = {}
        self._notes: Dict[Tuple[AdjustmentScope, str], BillingNote] = {}
        self._fees: Dict[str, HandlingFeeOverride] = {}
        self._lock = threading.Lock()

    def get_invoice_status(
        self, scope: AdjustmentScope, scope_ref: str
    ) -> Optional[InvoiceStatus]:
        with self._lock:
            return self._statuses.get((scope, scope_ref))

    def save_invoice_status(self, status: InvoiceStatus) -> None:
        with self._lock:
            self._statuses[status.key] = status

    def get_note(self, scope: AdjustmentScope, scope_ref: str) -> Optional[BillingNote]:
        with self._lock:
            return self._notes.get((scope, scope_ref))

    def save_note(self, note: BillingNote) -> None:
        with self._lock:
            if note.is_blank:
                self._notes.pop(note.key, None)
            else:
                self._notes[note.key] = note

    def get_fee_override(self, order_id: str) -> Optional[HandlingFeeOverride]:
        with self._lock:
            return self._fees.get(normalize_order_id(order_id))

    def save_fee_override(self, override: HandlingFeeOverride) -> None:
        with self._lock:
            self._fees[override.order_id] = override

    def delete_fee_override(self, order_id: str) -> bool:
        with self._lock:
            return self._fees.pop(normalize_order_id(order_id), None) is not None


class InMemoryPricingConfigStore:
    def __init__(self, records: Optional[List[Mapping[str, Any]]] = None):
        self._records: List[Mapping[str, Any]] = list(records or [])
        self._lock = threading.Lock()

    def load_rule_records(self) -> List[Mapping[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._records)

    def replace(self, records: List[Mapping[str, Any]]) -> None:
        records = list(records)
        RuleSet.from_records(records)
        with self._lock:
            self._records = copy.deepcopy(records)


__all__ = [
    "ChecklistChangeFeed",
    "InMemoryAdjustmentStore",
    "InMemoryBillingStore",
    "InMemoryBillingWorkflowStore",
    "InMemoryChecklistStore",
    "InMemoryPricingConfigStore",
    "InMemoryProgressStore",
]
