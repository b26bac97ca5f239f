"""
Billing Engine — Store Ports
==============================
Persistence contracts for billing records, balance adjustments,
invoicing workflow records and the pricing configuration. Adapters
live under adapters/.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Protocol

from engines.billing.adjustments import AdjustmentScope, BalanceAdjustment
from engines.billing.records import BillingRecord, RecordKind
from engines.billing.workflow import BillingNote, HandlingFeeOverride, InvoiceStatus


class BillingStore(Protocol):
    def get(self, kind: RecordKind, record_id: str) -> Optional[BillingRecord]:
        ...  # pragma: no cover

    def save(self, record: BillingRecord) -> None:
        """Replace the whole record stored under (kind, record_id)."""
        ...  # pragma: no cover


class AdjustmentStore(Protocol):
    def get(self, scope: AdjustmentScope, scope_ref: str) -> Optional[BalanceAdjustment]:
        ...  # pragma: no cover

    def save(self, adjustment: BalanceAdjustment) -> None:
        ...  # pragma: no cover

    def delete(self, scope: AdjustmentScope, scope_ref: str) -> bool:
        ...  # pragma: no cover


class BillingWorkflowStore(Protocol):
    """Invoice statuses, billing notes and handling-fee overrides; one per target."""

    def get_invoice_status(
        self, scope: AdjustmentScope, scope_ref: str
    ) -> Optional[InvoiceStatus]:
        ...  # pragma: no cover

    def save_invoice_status(self, status: InvoiceStatus) -> None:
        ...  # pragma: no cover

    def get_note(self, scope: AdjustmentScope, scope_ref: str) -> Optional[BillingNote]:
        ...  # pragma: no cover

    def save_note(self, note: BillingNote) -> None:
        ...  # pragma: no cover

    def get_fee_override(self, order_id: str) -> Optional[HandlingFeeOverride]:
        ...  # pragma: no cover

    def save_fee_override(self, override: HandlingFeeOverride) -> None:
        ...  # pragma: no cover

    def delete_fee_override(self, order_id: str) -> bool:
        ...  # pragma: no cover


class PricingConfigStore(Protocol):
    def load_rule_records(self) -> List[Mapping[str, Any]]:
        """Raw rule records, in configuration order."""
        ...  # pragma: no cover

    def replace(self, records: List[Mapping[str, Any]]) -> None:
        """Swap the whole configuration; records are validated first."""
        ...  # pragma: no cover
