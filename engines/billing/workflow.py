"""
Billing Engine — Invoicing Workflow Records
=============================================
Bookkeeping the shop owner attaches to an order or a billing period
while invoicing. None of it is derived; each record is the last
value written, with who wrote it and when.

    InvoiceStatus          invoiced yes/no     ORDER, WEEK, MONTH
    BillingNote            free-text note      ORDER, WEEK, MONTH
    HandlingFeeOverride    per-order fee       ORDER only

Targets reuse the adjustment scopes: an ORDER ref is an order id,
WEEK and MONTH refs are period ids ("2025-W07", "2025-02").
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from core.config import check_amount_precision
from core.time import to_iso8601
from engines.billing.adjustments import AdjustmentScope
from engines.billing.errors import InvalidBillingEntryError, InvalidPeriodError
from engines.billing.periods import BillingPeriod
from engines.production.models import normalize_order_id

WORKFLOW_SCOPES = (AdjustmentScope.ORDER, AdjustmentScope.WEEK, AdjustmentScope.MONTH)


def normalize_target(scope: AdjustmentScope, scope_ref: str) -> str:
    """Canonical ref for an invoicing target; raises on a mismatched period."""
    if scope not in WORKFLOW_SCOPES:
        raise InvalidBillingEntryError(
            f"scope must be one of ORDER, WEEK, MONTH, got {scope!r}.",
            getattr(scope, "value", str(scope)),
            str(scope_ref),
        )
    if not isinstance(scope_ref, str) or not scope_ref.strip():
        raise InvalidBillingEntryError("scope_ref must be non-empty.", scope.value)
    if scope == AdjustmentScope.ORDER:
        return normalize_order_id(scope_ref)
    try:
        period = BillingPeriod.from_id(scope_ref)
    except InvalidPeriodError as exc:
        raise InvalidBillingEntryError(exc.reason, scope.value, scope_ref) from exc
    if period.scope != scope:
        raise InvalidBillingEntryError(
            f"'{period.period_id}' is not a {scope.value.lower()} period id.",
            scope.value,
            scope_ref,
        )
    return period.period_id


def _check_actor(actor: str, scope: AdjustmentScope, scope_ref: str) -> None:
    if not isinstance(actor, str) or not actor.strip():
        raise InvalidBillingEntryError("actor must be non-empty.", scope.value, scope_ref)


@dataclass(frozen=True)
class InvoiceStatus:
    scope: AdjustmentScope
    scope_ref: str
    invoiced: bool
    actor: str
    updated_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "scope_ref", normalize_target(self.scope, self.scope_ref))
        if not isinstance(self.invoiced, bool):
            raise InvalidBillingEntryError(
                "invoiced must be a bool.", self.scope.value, self.scope_ref
            )
        _check_actor(self.actor, self.scope, self.scope_ref)

    @property
    def key(self) -> tuple:
        return (self.scope, self.scope_ref)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope.value,
            "scopeRef": self.scope_ref,
            "invoiced": self.invoiced,
            "actor": self.actor,
            "updatedAt": to_iso8601(self.updated_at),
        }


@dataclass(frozen=True)
class BillingNote:
    scope: AdjustmentScope
    scope_ref: str
    note: str
    actor: str
    updated_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "scope_ref", normalize_target(self.scope, self.scope_ref))
        if not isinstance(self.note, str):
            raise InvalidBillingEntryError(
                "note must be a string.", self.scope.value, self.scope_ref
            )
        _check_actor(self.actor, self.scope, self.scope_ref)

    @property
    def key(self) -> tuple:
        return (self.scope, self.scope_ref)

    @property
    def is_blank(self) -> bool:
        return not self.note.strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope.value,
            "scopeRef": self.scope_ref,
            "note": self.note,
            "actor": self.actor,
            "updatedAt": to_iso8601(self.updated_at),
        }


@dataclass(frozen=True)
class HandlingFeeOverride:
    """Replaces the shop-wide handling fee for one order."""

    order_id: str
    fee: Decimal
    actor: str
    updated_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "order_id", normalize_order_id(self.order_id))
        if not isinstance(self.fee, Decimal) or not self.fee.is_finite():
            raise InvalidBillingEntryError(
                f"fee must be a finite Decimal, got {self.fee!r}.",
                AdjustmentScope.ORDER.value,
                self.order_id,
            )
        if self.fee < 0:
            raise InvalidBillingEntryError(
                f"fee must be >= 0, got {self.fee}.",
                AdjustmentScope.ORDER.value,
                self.order_id,
            )
        try:
            check_amount_precision(self.fee, field_name="fee")
        except ValueError as exc:
            raise InvalidBillingEntryError(
                str(exc), AdjustmentScope.ORDER.value, self.order_id
            ) from exc
        _check_actor(self.actor, AdjustmentScope.ORDER, self.order_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "fee": str(self.fee),
            "actor": self.actor,
            "updatedAt": to_iso8601(self.updated_at),
        }


def effective_handling_fee(
    default_fee: Decimal,
    override: Optional[HandlingFeeOverride],
) -> Decimal:
    return override.fee if override is not None else default_fee
