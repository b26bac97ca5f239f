"""
Printshop Stores — ORM Store Adapters
=======================================
Django implementations of the engine ports.

Rules:
- Every DatabaseError surfaces as StoreUnavailableError; the
  calling operation is abandoned, nothing is retried here
- Checklist set() is last-write-wins by updated_at, decided inside
  one atomic block with the row locked
- Snapshot notifications go out AFTER commit (transaction.on_commit)
- Progress merge() writes only the given fields
- Pricing replace() validates every record before touching a row
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from django.db import DatabaseError, transaction

from adapters.django_store.models import (
    BalanceAdjustmentRecord,
    BillingNoteRecord,
    BillingRecordRow,
    ChecklistEntryRecord,
    HandlingFeeOverrideRecord,
    InvoiceStatusRecord,
    MetafieldModifierRecord,
    OptionModifierRecord,
    PriceRuleRecord,
    ProgressCounterRecord,
)
from adapters.memory import ChecklistChangeFeed
from core.time import ensure_utc
from engines.billing.adjustments import AdjustmentScope, BalanceAdjustment
from engines.billing.records import BillingRecord, RecordKind
from engines.billing.workflow import BillingNote, HandlingFeeOverride, InvoiceStatus
from engines.pricing.rules import rule_from_record
from engines.production.errors import StoreUnavailableError
from engines.production.models import ChecklistEntry, ProgressCounter, normalize_order_id
from engines.production.ports import SnapshotCallback

logger = logging.getLogger("printshop.stores")


@contextmanager
def _store_operation(operation: str):
    try:
        yield
    except DatabaseError as exc:
        logger.error(f"Store operation '{operation}' failed: {exc}", exc_info=True)
        raise StoreUnavailableError(operation, str(exc)) from exc


def _plain(amount: Decimal) -> Decimal:
    """Drop the column's trailing zeros: 12.500000 → 12.5, 10.000000 → 10."""
    if amount == amount.to_integral_value():
        return amount.quantize(Decimal(1))
    return amount.normalize()


# ══════════════════════════════════════════════════════════════
# PRODUCTION STORES
# ══════════════════════════════════════════════════════════════

def _entry_from_row(row: ChecklistEntryRecord) -> ChecklistEntry:
    return ChecklistEntry(
        unit_key=row.unit_key,
        order_id=row.order_id,
        checked=row.checked,
        actor=row.actor,
        updated_at=ensure_utc(row.updated_at),
    )


class DjangoChecklistStore:
    def __init__(self, feed: Optional[ChecklistChangeFeed] = None):
        self._feed = feed or ChecklistChangeFeed()

    def get(self, unit_key: str) -> Optional[ChecklistEntry]:
        with _store_operation("checklist.get"):
            row = ChecklistEntryRecord.objects.filter(unit_key=unit_key).first()
        return _entry_from_row(row) if row else None

    def set(self, entry: ChecklistEntry) -> ChecklistEntry:
        with _store_operation("checklist.set"):
            with transaction.atomic():
                row = (
                    ChecklistEntryRecord.objects.select_for_update()
                    .filter(unit_key=entry.unit_key)
                    .first()
                )
                if row is not None and ensure_utc(row.updated_at) > entry.updated_at:
                    logger.debug(f"Stale write on {entry.unit_key} ignored")
                    stored = _entry_from_row(row)
                else:
                    ChecklistEntryRecord.objects.update_or_create(
                        unit_key=entry.unit_key,
                        defaults={
                            "order_id": entry.order_id,
                            "checked": entry.checked,
                            "actor": entry.actor,
                            "updated_at": entry.updated_at,
                        },
                    )
                    stored = entry
                self._publish_on_commit(stored.order_id)
        return stored

    def query(self, order_id: str) -> List[ChecklistEntry]:
        oid = normalize_order_id(order_id)
        with _store_operation("checklist.query"):
            rows = list(ChecklistEntryRecord.objects.filter(order_id=oid).order_by("unit_key"))
        return [_entry_from_row(row) for row in rows]

    def delete(self, unit_key: str) -> bool:
        with _store_operation("checklist.delete"):
            with transaction.atomic():
                row = ChecklistEntryRecord.objects.filter(unit_key=unit_key).first()
                if row is None:
                    return False
                row.delete()
                self._publish_on_commit(row.order_id)
        return True

    def subscribe(self, order_id: str, callback: SnapshotCallback):
        return self._feed.subscribe(order_id, callback)

    def _publish_on_commit(self, order_id: str) -> None:
        transaction.on_commit(lambda: self._publish_after_commit(order_id))

    def _publish_after_commit(self, order_id: str) -> None:
        try:
            snapshot = self.query(order_id)
        except StoreUnavailableError:
            logger.error(
                f"Snapshot for order {order_id} not delivered: store unavailable",
                exc_info=True,
            )
            return
        self._feed.publish(order_id, snapshot)


class DjangoProgressStore:
    def get(self, order_id: str) -> Optional[ProgressCounter]:
        oid = normalize_order_id(order_id)
        with _store_operation("progress.get"):
            row = ProgressCounterRecord.objects.filter(order_id=oid).first()
        if row is None:
            return None
        return ProgressCounter(
            order_id=row.order_id,
            checked_count=row.checked_count,
            total_count=row.total_count,
        )

    def merge(
        self,
        order_id: str,
        *,
        checked_count: Optional[int] = None,
        total_count: Optional[int] = None,
    ) -> ProgressCounter:
        oid = normalize_order_id(order_id)
        fields: Dict[str, int] = {}
        if checked_count is not None:
            fields["checked_count"] = checked_count
        if total_count is not None:
            fields["total_count"] = total_count

        with _store_operation("progress.merge"):
            with transaction.atomic():
                row, _ = ProgressCounterRecord.objects.select_for_update().get_or_create(
                    order_id=oid
                )
                if fields:
                    for name, value in fields.items():
                        setattr(row, name, value)
                    row.save(update_fields=list(fields))
        return ProgressCounter(
            order_id=oid,
            checked_count=row.checked_count,
            total_count=row.total_count,
        )


# ══════════════════════════════════════════════════════════════
# BILLING STORES
# ══════════════════════════════════════════════════════════════

class DjangoBillingStore:
    def get(self, kind: RecordKind, record_id: str) -> Optional[BillingRecord]:
        with _store_operation("billing.get"):
            row = BillingRecordRow.objects.filter(kind=kind.value, record_id=record_id).first()
        if row is None:
            return None
        return BillingRecord.from_dict(row.record_id, row.breakdown)

    def save(self, record: BillingRecord) -> None:
        with _store_operation("billing.save"):
            BillingRecordRow.objects.update_or_create(
                kind=record.kind.value,
                record_id=record.record_id,
                defaults={
                    "total": record.total,
                    "computed_at": record.computed_at,
                    "breakdown": record.to_dict(),
                },
            )


class DjangoAdjustmentStore:
    def get(self, scope: AdjustmentScope, scope_ref: str) -> Optional[BalanceAdjustment]:
        with _store_operation("adjustment.get"):
            row = BalanceAdjustmentRecord.objects.filter(
                scope=scope.value, scope_ref=scope_ref
            ).first()
        if row is None:
            return None
        return BalanceAdjustment(
            scope=AdjustmentScope(row.scope),
            scope_ref=row.scope_ref,
            amount=_plain(row.amount),
            actor=row.actor,
            note=row.note,
            updated_at=ensure_utc(row.updated_at) if row.updated_at else None,
        )

    def save(self, adjustment: BalanceAdjustment) -> None:
        with _store_operation("adjustment.save"):
            BalanceAdjustmentRecord.objects.update_or_create(
                scope=adjustment.scope.value,
                scope_ref=adjustment.scope_ref,
                defaults={
                    "amount": adjustment.amount,
                    "actor": adjustment.actor,
                    "note": adjustment.note,
                    "updated_at": adjustment.updated_at,
                },
            )

    def delete(self, scope: AdjustmentScope, scope_ref: str) -> bool:
        with _store_operation("adjustment.delete"):
            deleted, _ = BalanceAdjustmentRecord.objects.filter(
                scope=scope.value, scope_ref=scope_ref
            ).delete()
        return deleted > 0


class DjangoBillingWorkflowStore:
    def get_invoice_status(
        self, scope: AdjustmentScope, scope_ref: str
    ) -> Optional[InvoiceStatus]:
        with _store_operation("invoice_status.get"):
            row = InvoiceStatusRecord.objects.filter(
                scope=scope.value, scope_ref=scope_ref
            ).first()
        if row is None:
            return None
        return InvoiceStatus(
            scope=AdjustmentScope(row.scope),
            scope_ref=row.scope_ref,
            invoiced=row.invoiced,
            actor=row.actor,
            updated_at=ensure_utc(row.updated_at),
        )

    def save_invoice_status(self, status: InvoiceStatus) -> None:
        with _store_operation("invoice_status.save"):
            InvoiceStatusRecord.objects.update_or_create(
                scope=status.scope.value,
                scope_ref=status.scope_ref,
                defaults={
                    "invoiced": status.invoiced,
                    "actor": status.actor,
                    "updated_at": status.updated_at,
                },
            )

    def get_note(self, scope: AdjustmentScope, scope_ref: str) -> Optional[BillingNote]:
        with _store_operation("note.get"):
            row = BillingNoteRecord.objects.filter(
                scope=scope.value, scope_ref=scope_ref
            ).first()
        if row is None:
            return None
        return BillingNote(
            scope=AdjustmentScope(row.scope),
            scope_ref=row.scope_ref,
            note=row.note,
            actor=row.actor,
            updated_at=ensure_utc(row.updated_at),
        )

    def save_note(self, note: BillingNote) -> None:
        with _store_operation("note.save"):
            if note.is_blank:
                BillingNoteRecord.objects.filter(
                    scope=note.scope.value, scope_ref=note.scope_ref
                ).delete()
                return
            BillingNoteRecord.objects.update_or_create(
                scope=note.scope.value,
                scope_ref=note.scope_ref,
                defaults={
                    "note": note.note,
                    "actor": note.actor,
                    "updated_at": note.updated_at,
                },
            )

    def get_fee_override(self, order_id: str) -> Optional[HandlingFeeOverride]:
        oid = normalize_order_id(order_id)
        with _store_operation("fee_override.get"):
            row = HandlingFeeOverrideRecord.objects.filter(order_id=oid).first()
        if row is None:
            return None
        return HandlingFeeOverride(
            order_id=row.order_id,
            fee=_plain(row.fee),
            actor=row.actor,
            updated_at=ensure_utc(row.updated_at),
        )

    def save_fee_override(self, override: HandlingFeeOverride) -> None:
        with _store_operation("fee_override.save"):
            HandlingFeeOverrideRecord.objects.update_or_create(
                order_id=override.order_id,
                defaults={
                    "fee": override.fee,
                    "actor": override.actor,
                    "updated_at": override.updated_at,
                },
            )

    def delete_fee_override(self, order_id: str) -> bool:
        with _store_operation("fee_override.delete"):
            deleted, _ = HandlingFeeOverrideRecord.objects.filter(
                order_id=normalize_order_id(order_id)
            ).delete()
        return deleted > 0


class DjangoPricingConfigStore:
    def load_rule_records(self) -> List[Mapping[str, Any]]:
        with _store_operation("pricing.load"):
            rules = list(
                PriceRuleRecord.objects.order_by("position", "id").prefetch_related(
                    "metafield_modifiers", "option_modifiers"
                )
            )
            return [
                {
                    "id": str(rule.pk),
                    "sku": rule.sku,
                    "color": rule.color,
                    "base_price": str(_plain(rule.base_price)),
                    "priority": rule.priority,
                    "is_active": rule.is_active,
                    "description": rule.description,
                    "metafield_modifiers": [
                        {
                            "namespace": m.namespace,
                            "key": m.key,
                            "value": m.value,
                            "amount": str(_plain(m.amount)),
                        }
                        for m in rule.metafield_modifiers.all()
                    ],
                    "option_modifiers": [
                        {
                            "name": o.option_name or None,
                            "value": o.option_value,
                            "amount": str(_plain(o.amount)),
                        }
                        for o in rule.option_modifiers.all()
                    ],
                }
                for rule in rules
            ]

    def replace(self, records: List[Mapping[str, Any]]) -> None:
        """Swap the whole rule table in one transaction."""
        rules = [rule_from_record(record, index) for index, record in enumerate(records)]
        with _store_operation("pricing.replace"):
            with transaction.atomic():
                PriceRuleRecord.objects.all().delete()
                for position, rule in enumerate(rules):
                    row = PriceRuleRecord.objects.create(
                        sku=rule.sku,
                        color=rule.color,
                        base_price=rule.base_price,
                        priority=rule.priority,
                        is_active=rule.is_active,
                        description=rule.description,
                        position=position,
                    )
                    MetafieldModifierRecord.objects.bulk_create([
                        MetafieldModifierRecord(
                            rule=row,
                            namespace=m.namespace,
                            key=m.key,
                            value=m.value,
                            amount=m.amount,
                        )
                        for m in rule.metafield_modifiers
                    ])
                    OptionModifierRecord.objects.bulk_create([
                        OptionModifierRecord(
                            rule=row,
                            option_name=o.name or "",
                            option_value=o.value,
                            amount=o.amount,
                        )
                        for o in rule.option_modifiers
                    ])
        logger.info(f"Pricing configuration replaced: {len(rules)} rules")
