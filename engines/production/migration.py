"""
Production Engine — Legacy Key Migration
==========================================
Identity schemes have changed over time (keys without the line
item index, keys built from the raw 'gid://' order id, ...). Entries
written under an old scheme double-count units that now have a
current-format entry too.

migrate_order():
    1. Scan all entries of the order
    2. Delete those whose key fails the current structural signature
    3. Reset checked_count to 0
    4. Rescan through the Progress Aggregator

Running it again finds nothing to delete. A current-shape entry
of the order is never deleted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from core.events import SubscriberRegistry, emit
from core.time import Clock, get_default_clock
from engines.production.errors import StoreError
from engines.production.events import (
    PRODUCTION_KEYS_MIGRATED_V1,
    build_keys_migrated_payload,
)
from engines.production.models import normalize_order_id
from engines.production.ports import ChecklistStore, ProgressStore
from engines.production.services import ProgressAggregator

logger = logging.getLogger("printshop.production")


@dataclass(frozen=True)
class MigrationReport:
    order_id: str
    deleted_keys: Tuple[str, ...]
    checked_count: int

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_keys)


@dataclass
class BatchMigrationResult:
    reports: List[MigrationReport] = field(default_factory=list)
    failures: List[dict] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


class LegacyKeyMigration:
    def __init__(
        self,
        *,
        checklist_store: ChecklistStore,
        progress_store: ProgressStore,
        aggregator: ProgressAggregator,
        clock: Optional[Clock] = None,
        event_registry: Optional[SubscriberRegistry] = None,
    ):
        self._checklist = checklist_store
        self._progress = progress_store
        self._aggregator = aggregator
        self._clock = clock or get_default_clock()
        self._event_registry = event_registry

    def needs_migration(self, order_id: str) -> bool:
        return not self._aggregator.inspect(order_id).trustworthy

    def migrate_order(self, order_id: str) -> MigrationReport:
        oid = normalize_order_id(order_id)
        audit = self._aggregator.inspect(oid)

        deleted: List[str] = []
        for unit_key in sorted(audit.legacy_keys):
            if self._checklist.delete(unit_key):
                deleted.append(unit_key)

        if audit.legacy_keys:
            self._progress.merge(oid, checked_count=0)
        counter = self._aggregator.rescan(oid)

        report = MigrationReport(
            order_id=oid,
            deleted_keys=tuple(deleted),
            checked_count=counter.checked_count,
        )
        if deleted:
            logger.info(
                f"Order {oid}: removed {report.deleted_count} legacy entries, "
                f"checked_count now {report.checked_count}"
            )
        emit(
            self._event_registry,
            PRODUCTION_KEYS_MIGRATED_V1,
            build_keys_migrated_payload(oid, deleted, counter.checked_count),
            occurred_at=self._clock.now_utc(),
        )
        return report

    def migrate_orders(self, order_ids: Iterable[str]) -> BatchMigrationResult:
        """Migrate several orders; one failing order does not stop the rest."""
        result = BatchMigrationResult()
        for order_id in order_ids:
            try:
                result.reports.append(self.migrate_order(order_id))
            except StoreError as exc:
                logger.error(
                    f"Key migration failed for order {order_id}: {exc}",
                    exc_info=True,
                )
                result.failures.append({
                    "order_id": str(order_id),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                })
        logger.info(
            f"Key migration finished: {len(result.reports)} succeeded, "
            f"{len(result.failures)} failed"
        )
        return result
