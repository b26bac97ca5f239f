"""
Production Engine — Progress Aggregator
=========================================
Write path:  toggle → checklist entry → full rescan → counter

checked_count is never incremented or decremented. Every write
re-reads all entries of the order and counts the checked ones
whose key has the current shape. Duplicate or legacy-format keys
therefore cannot inflate the counter, and a retried toggle gives
the same result as a single one.

total_count is only written by set_total / sync_order.

Counter bound (checked_count <= total_count):
- sync_order, set_units, toggle_unit and set_total(..., live_keys)
  remember the order's live unit keys; later rescans count only
  those keys and the plain toggle rejects any other key
- with no live keys known, a toggle that would push checked_count
  past a non-zero total_count is rejected, and set_total refuses a
  total below the checked units already on record
- total_count == 0 means "not synced yet"; nothing is bounded then
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, Optional

from core.config import ProductionSettings, load_production_settings
from core.events import SubscriberRegistry, emit
from core.time import Clock, get_default_clock
from engines.production.errors import InvalidUnitKeyError
from engines.production.events import (
    PRODUCTION_PROGRESS_RECOMPUTED_V1,
    PRODUCTION_TOTAL_SET_V1,
    PRODUCTION_UNIT_TOGGLED_V1,
    build_progress_recomputed_payload,
    build_total_set_payload,
    build_unit_toggled_payload,
)
from engines.production.identity import is_current_shape, live_unit_keys, units_for_order
from engines.production.models import (
    ChecklistAudit,
    ChecklistEntry,
    Order,
    ProgressCounter,
    ToggleResult,
    normalize_order_id,
)
from engines.production.ports import ChecklistStore, ProgressStore

logger = logging.getLogger("printshop.production")


def audit_entries(
    order_id: str,
    entries: Iterable[ChecklistEntry],
    live_keys: Optional[frozenset] = None,
) -> ChecklistAudit:
    """Sort an order's stored entries into checked/unchecked/legacy/orphaned."""
    oid = normalize_order_id(order_id)
    checked, unchecked, legacy, orphaned = set(), set(), set(), set()
    for entry in entries:
        key = entry.unit_key
        if not is_current_shape(key, oid):
            legacy.add(key)
        elif live_keys is not None and key not in live_keys:
            orphaned.add(key)
        elif entry.checked:
            checked.add(key)
        else:
            unchecked.add(key)
    return ChecklistAudit(
        order_id=oid,
        checked_keys=frozenset(checked),
        unchecked_keys=frozenset(unchecked),
        legacy_keys=frozenset(legacy),
        orphaned_keys=frozenset(orphaned),
    )


def _clean_actor(actor: str) -> str:
    if not isinstance(actor, str) or not actor.strip():
        raise ValueError("actor must be a non-empty string.")
    return actor.strip()


class ProgressAggregator:
    """Keeps each order's {checked_count, total_count} in step with its units."""

    def __init__(
        self,
        *,
        checklist_store: ChecklistStore,
        progress_store: ProgressStore,
        clock: Optional[Clock] = None,
        settings: Optional[ProductionSettings] = None,
        event_registry: Optional[SubscriberRegistry] = None,
    ):
        self._checklist = checklist_store
        self._progress = progress_store
        self._clock = clock or get_default_clock()
        self._settings = settings or load_production_settings()
        self._event_registry = event_registry
        # { order_id: live unit keys as of the last sync }
        self._live_keys: Dict[str, frozenset] = {}
        self._live_lock = threading.Lock()

    # ──────────────────────────────────────────────────────────────
    # WRITES
    # ──────────────────────────────────────────────────────────────

    def toggle(
        self,
        order_id: str,
        unit_key: str,
        checked: bool,
        actor: str,
    ) -> ToggleResult:
        """Record one unit as checked/unchecked and recompute the counter."""
        oid = normalize_order_id(order_id)
        if not is_current_shape(unit_key, oid):
            raise InvalidUnitKeyError(
                unit_key, oid, "not a current-format key of this order"
            )
        live_keys = self.known_live_keys(oid)
        if live_keys is not None:
            if unit_key not in live_keys:
                raise InvalidUnitKeyError(unit_key, oid, "not a live unit of this order")
        elif checked is True:
            self._guard_total(oid, unit_key)
        return self._write_and_recount(oid, unit_key, checked, actor, live_keys=live_keys)

    def toggle_unit(
        self,
        order: Order,
        unit_key: str,
        checked: bool,
        actor: str,
    ) -> ToggleResult:
        """toggle() for callers holding the order: rejects non-live units."""
        live_keys = self._remember(order.order_id, live_unit_keys(order, self._settings))
        if unit_key not in live_keys:
            raise InvalidUnitKeyError(
                unit_key, order.order_id, "not a live unit of this order"
            )
        return self._write_and_recount(
            order.order_id, unit_key, checked, actor, live_keys=live_keys
        )

    def set_units(self, order: Order, checked: bool, actor: str) -> ProgressCounter:
        """Check (or uncheck) every live unit of the order, then recount once."""
        if not isinstance(checked, bool):
            raise ValueError("checked must be a bool.")
        actor = _clean_actor(actor)
        now = self._clock.now_utc()

        existing = {e.unit_key: e for e in self._checklist.query(order.order_id)}
        written = 0
        for unit in units_for_order(order, self._settings):
            current = existing.get(unit.unit_key)
            if current is not None and current.checked == checked:
                continue
            self._checklist.set(ChecklistEntry(
                unit_key=unit.unit_key,
                order_id=order.order_id,
                checked=checked,
                actor=actor,
                updated_at=now,
            ))
            written += 1

        logger.info(
            f"Bulk {'check' if checked else 'uncheck'} on order {order.order_id}: "
            f"{written} entries written by {actor}"
        )
        live_keys = self._remember(order.order_id, live_unit_keys(order, self._settings))
        return self._recount(order.order_id, live_keys)

    def set_total(
        self,
        order_id: str,
        total_count: int,
        live_keys: Optional[Iterable[str]] = None,
    ) -> ProgressCounter:
        """
        Refresh total_count after the order's line items changed.

        With live_keys (one per live unit) the checked units are
        recounted over those keys and both fields go out in one
        merge-write. Without them only total_count is written, and a
        total below the checked units on record is refused.
        """
        if not isinstance(total_count, int) or isinstance(total_count, bool) or total_count < 0:
            raise ValueError(f"total_count must be integer >= 0, got {total_count!r}.")
        oid = normalize_order_id(order_id)

        if live_keys is not None:
            keys = frozenset(live_keys)
            if len(keys) != total_count:
                raise ValueError(
                    f"total_count {total_count} does not match "
                    f"{len(keys)} live unit keys for order {oid}."
                )
            self._remember(oid, keys)
            audit = self.inspect(oid, keys)
            self._warn_on_anomalies(audit)
            counter = self._progress.merge(
                oid, checked_count=audit.checked_count, total_count=total_count
            )
        else:
            known = self.known_live_keys(oid)
            if known is not None and len(known) != total_count:
                self._forget(oid)
                known = None
            checked_now = self.inspect(oid, known).checked_count
            if total_count < checked_now:
                raise ValueError(
                    f"total_count {total_count} is below the {checked_now} checked "
                    f"units of order {oid}; pass the order's live unit keys."
                )
            counter = self._progress.merge(oid, total_count=total_count)
        emit(
            self._event_registry,
            PRODUCTION_TOTAL_SET_V1,
            build_total_set_payload(counter),
            occurred_at=self._clock.now_utc(),
        )
        return counter

    def sync_order(self, order: Order) -> ProgressCounter:
        """
        Bring the counter in line with a freshly synced order: total
        from live quantities, checked from a rescan limited to live
        units. One merge-write carries both fields.
        """
        live_keys = self._remember(order.order_id, live_unit_keys(order, self._settings))
        audit = self.inspect(order.order_id, live_keys)
        self._warn_on_anomalies(audit)
        counter = self._progress.merge(
            order.order_id,
            checked_count=audit.checked_count,
            total_count=order.total_units,
        )
        logger.info(
            f"Order {order.order_id} synced: "
            f"{counter.checked_count}/{counter.total_count} units checked"
        )
        return counter

    def rescan(
        self,
        order_id: str,
        live_keys: Optional[frozenset] = None,
    ) -> ProgressCounter:
        """Recompute checked_count from scratch. Safe to retry."""
        oid = normalize_order_id(order_id)
        if live_keys is None:
            live_keys = self.known_live_keys(oid)
        return self._recount(oid, live_keys)

    # ──────────────────────────────────────────────────────────────
    # READS
    # ──────────────────────────────────────────────────────────────

    def inspect(
        self,
        order_id: str,
        live_keys: Optional[frozenset] = None,
    ) -> ChecklistAudit:
        oid = normalize_order_id(order_id)
        return audit_entries(oid, self._checklist.query(oid), live_keys)

    def progress(self, order_id: str) -> ProgressCounter:
        oid = normalize_order_id(order_id)
        return self._progress.get(oid) or ProgressCounter(order_id=oid)

    def known_live_keys(self, order_id: str) -> Optional[frozenset]:
        with self._live_lock:
            return self._live_keys.get(normalize_order_id(order_id))

    # ──────────────────────────────────────────────────────────────
    # INTERNALS
    # ──────────────────────────────────────────────────────────────

    def _write_and_recount(
        self,
        order_id: str,
        unit_key: str,
        checked: bool,
        actor: str,
        live_keys: Optional[frozenset],
    ) -> ToggleResult:
        if not isinstance(checked, bool):
            raise ValueError("checked must be a bool.")
        entry = ChecklistEntry(
            unit_key=unit_key,
            order_id=order_id,
            checked=checked,
            actor=_clean_actor(actor),
            updated_at=self._clock.now_utc(),
        )
        stored = self._checklist.set(entry)
        if stored.updated_at != entry.updated_at:
            logger.info(
                f"Toggle on {unit_key} superseded by a newer write "
                f"from {stored.actor}"
            )
        counter = self._recount(order_id, live_keys)
        emit(
            self._event_registry,
            PRODUCTION_UNIT_TOGGLED_V1,
            build_unit_toggled_payload(stored, counter),
            occurred_at=stored.updated_at,
        )
        return ToggleResult(entry=stored, counter=counter)

    def _remember(self, order_id: str, live_keys: frozenset) -> frozenset:
        with self._live_lock:
            self._live_keys[normalize_order_id(order_id)] = live_keys
        return live_keys

    def _forget(self, order_id: str) -> None:
        with self._live_lock:
            self._live_keys.pop(normalize_order_id(order_id), None)

    def _guard_total(self, order_id: str, unit_key: str) -> None:
        total = self.progress(order_id).total_count
        if not total:
            return
        checked_keys = self.inspect(order_id).checked_keys
        if unit_key not in checked_keys and len(checked_keys) >= total:
            raise InvalidUnitKeyError(
                unit_key,
                order_id,
                f"all {total} units of the order are already checked",
            )

    def _recount(self, order_id: str, live_keys: Optional[frozenset]) -> ProgressCounter:
        audit = self.inspect(order_id, live_keys)
        self._warn_on_anomalies(audit)
        counter = self._progress.merge(order_id, checked_count=audit.checked_count)
        if counter.total_count and counter.checked_count > counter.total_count:
            logger.warning(
                f"Order {order_id}: checked_count {counter.checked_count} exceeds "
                f"total_count {counter.total_count}; re-sync the order"
            )
        elif counter.is_complete:
            logger.info(f"Order {order_id}: all {counter.total_count} units checked")
        emit(
            self._event_registry,
            PRODUCTION_PROGRESS_RECOMPUTED_V1,
            build_progress_recomputed_payload(counter, len(audit.legacy_keys)),
            occurred_at=self._clock.now_utc(),
        )
        return counter

    @staticmethod
    def _warn_on_anomalies(audit: ChecklistAudit) -> None:
        if audit.legacy_keys:
            logger.warning(
                f"Order {audit.order_id} holds {len(audit.legacy_keys)} legacy-format "
                f"entries; run the key migration"
            )
        if audit.orphaned_keys:
            logger.warning(
                f"Order {audit.order_id} holds {len(audit.orphaned_keys)} entries "
                f"for units no longer in the order"
            )


__all__ = [
    "ProgressAggregator",
    "audit_entries",
]
