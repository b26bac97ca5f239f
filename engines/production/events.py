"""Production engine — audit event types and payload builders."""

from __future__ import annotations

from typing import Iterable

from engines.production.models import ChecklistEntry, ProgressCounter

PRODUCTION_UNIT_TOGGLED_V1 = "production.unit.toggled.v1"
PRODUCTION_PROGRESS_RECOMPUTED_V1 = "production.progress.recomputed.v1"
PRODUCTION_TOTAL_SET_V1 = "production.total.set.v1"
PRODUCTION_KEYS_MIGRATED_V1 = "production.keys.migrated.v1"

PRODUCTION_EVENT_TYPES = (
    PRODUCTION_UNIT_TOGGLED_V1,
    PRODUCTION_PROGRESS_RECOMPUTED_V1,
    PRODUCTION_TOTAL_SET_V1,
    PRODUCTION_KEYS_MIGRATED_V1,
)


def build_unit_toggled_payload(entry: ChecklistEntry, counter: ProgressCounter) -> dict:
    return {
        "order_id": entry.order_id,
        "unit_key": entry.unit_key,
        "checked": entry.checked,
        "actor": entry.actor,
        "updated_at": entry.updated_at.isoformat(),
        "checked_count": counter.checked_count,
        "total_count": counter.total_count,
    }


def build_progress_recomputed_payload(counter: ProgressCounter, legacy_count: int) -> dict:
    return {
        "order_id": counter.order_id,
        "checked_count": counter.checked_count,
        "total_count": counter.total_count,
        "legacy_entries": legacy_count,
    }


def build_total_set_payload(counter: ProgressCounter) -> dict:
    return {
        "order_id": counter.order_id,
        "total_count": counter.total_count,
    }


def build_keys_migrated_payload(order_id: str, deleted_keys: Iterable[str], checked_count: int) -> dict:
    deleted = sorted(deleted_keys)
    return {
        "order_id": order_id,
        "deleted_count": len(deleted),
        "deleted_keys": deleted,
        "checked_count": checked_count,
    }
