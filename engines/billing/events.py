"""Billing engine — audit event types and payload builders."""

from __future__ import annotations

from core.time import to_iso8601
from engines.billing.records import BillingRecord

BILLING_ORDER_COST_COMPUTED_V1 = "billing.order_cost.computed.v1"
BILLING_PERIOD_COST_COMPUTED_V1 = "billing.period_cost.computed.v1"
BILLING_ADJUSTMENT_SAVED_V1 = "billing.adjustment.saved.v1"
BILLING_INVOICE_STATUS_SET_V1 = "billing.invoice_status.set.v1"
BILLING_NOTE_SAVED_V1 = "billing.note.saved.v1"
BILLING_HANDLING_FEE_OVERRIDDEN_V1 = "billing.handling_fee.overridden.v1"

BILLING_EVENT_TYPES = (
    BILLING_ORDER_COST_COMPUTED_V1,
    BILLING_PERIOD_COST_COMPUTED_V1,
    BILLING_ADJUSTMENT_SAVED_V1,
    BILLING_INVOICE_STATUS_SET_V1,
    BILLING_NOTE_SAVED_V1,
    BILLING_HANDLING_FEE_OVERRIDDEN_V1,
)


def build_cost_computed_payload(record: BillingRecord) -> dict:
    return {
        "record_id": record.record_id,
        "kind": record.kind.value,
        "total": str(record.total),
        "computed_at": to_iso8601(record.computed_at),
        "unpriced_count": sum(u.checked_units for u in record.unpriced),
        "stale_keys_detected": record.stale_keys_detected,
    }


def build_adjustment_saved_payload(adjustment) -> dict:
    return {
        "scope": adjustment.scope.value,
        "scope_ref": adjustment.scope_ref,
        "amount": str(adjustment.amount),
        "actor": adjustment.actor,
        "updated_at": to_iso8601(adjustment.updated_at) if adjustment.updated_at else None,
    }


def build_invoice_status_payload(status) -> dict:
    return {
        "scope": status.scope.value,
        "scope_ref": status.scope_ref,
        "invoiced": status.invoiced,
        "actor": status.actor,
        "updated_at": to_iso8601(status.updated_at),
    }


def build_note_saved_payload(note) -> dict:
    return {
        "scope": note.scope.value,
        "scope_ref": note.scope_ref,
        "blank": note.is_blank,
        "actor": note.actor,
        "updated_at": to_iso8601(note.updated_at),
    }


def build_fee_overridden_payload(order_id: str, fee, actor: str, occurred_at) -> dict:
    """fee is None when the override was cleared."""
    return {
        "order_id": order_id,
        "fee": str(fee) if fee is not None else None,
        "actor": actor,
        "updated_at": to_iso8601(occurred_at),
    }
