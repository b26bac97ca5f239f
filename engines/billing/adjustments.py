"""
Billing Engine — Balance Adjustments
======================================
Manual, signed corrections entered by the shop owner. Each one is
attached to exactly one scope:

    ORDER       scope_ref = order id
    LINE_ITEM   scope_ref = "<order id>#<line item index>"
    WEEK        scope_ref = period id, e.g. "2025-W07"
    MONTH       scope_ref = period id, e.g. "2025-02"

There is at most one adjustment per (scope, scope_ref); saving
again replaces the previous value. Adjustments are additive at
their own scope only: a month total never pulls in week
adjustments, an order total never pulls in line item ones twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from core.config import check_amount_precision, to_decimal
from core.time import parse_iso8601, to_iso8601
from engines.billing.errors import InvalidAdjustmentError
from engines.production.models import normalize_order_id


class AdjustmentScope(Enum):
    ORDER = "ORDER"
    LINE_ITEM = "LINE_ITEM"
    WEEK = "WEEK"
    MONTH = "MONTH"


def line_item_ref(order_id: str, line_item_index: int) -> str:
    if not isinstance(line_item_index, int) or line_item_index < 0:
        raise InvalidAdjustmentError(
            f"line_item_index must be integer >= 0, got {line_item_index!r}.",
            AdjustmentScope.LINE_ITEM.value,
        )
    return f"{normalize_order_id(order_id)}#{line_item_index}"


def _normalize_line_item_ref(scope_ref: str) -> str:
    """'gid://shopify/Order/1001#2' → '1001#2'."""
    order_part, sep, index_part = str(scope_ref).strip().rpartition("#")
    if not sep or not order_part or not index_part.isdigit():
        raise InvalidAdjustmentError(
            "line item scope_ref must look like '<order id>#<line item index>', "
            f"got {scope_ref!r}.",
            AdjustmentScope.LINE_ITEM.value,
            str(scope_ref),
        )
    return line_item_ref(order_part, int(index_part))


@dataclass(frozen=True)
class BalanceAdjustment:
    scope: AdjustmentScope
    scope_ref: str
    amount: Decimal
    actor: str = ""
    note: str = ""
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not isinstance(self.scope, AdjustmentScope):
            raise InvalidAdjustmentError(f"unknown scope {self.scope!r}.")
        if not self.scope_ref or not str(self.scope_ref).strip():
            raise InvalidAdjustmentError(
                "scope_ref must be non-empty.", self.scope.value
            )
        if not isinstance(self.amount, Decimal) or not self.amount.is_finite():
            raise InvalidAdjustmentError(
                f"amount must be a finite Decimal, got {self.amount!r}.",
                self.scope.value,
                self.scope_ref,
            )
        try:
            check_amount_precision(self.amount, field_name="amount")
        except ValueError as exc:
            raise InvalidAdjustmentError(
                str(exc), self.scope.value, self.scope_ref
            ) from exc
        if self.scope == AdjustmentScope.ORDER:
            object.__setattr__(self, "scope_ref", normalize_order_id(self.scope_ref))
        elif self.scope == AdjustmentScope.LINE_ITEM:
            object.__setattr__(self, "scope_ref", _normalize_line_item_ref(self.scope_ref))

    @property
    def key(self) -> tuple:
        return (self.scope, self.scope_ref)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope.value,
            "scopeRef": self.scope_ref,
            "amount": str(self.amount),
            "actor": self.actor,
            "note": self.note,
            "updatedAt": to_iso8601(self.updated_at) if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BalanceAdjustment":
        try:
            scope = AdjustmentScope(data["scope"])
        except (KeyError, ValueError) as exc:
            raise InvalidAdjustmentError(
                f"unknown scope {data.get('scope')!r}."
            ) from exc
        try:
            amount = to_decimal(data.get("amount"), field_name="amount")
        except ValueError as exc:
            raise InvalidAdjustmentError(
                str(exc), scope.value, str(data.get("scopeRef") or "")
            ) from exc
        updated_raw = data.get("updatedAt")
        return cls(
            scope=scope,
            scope_ref=str(data.get("scopeRef") or ""),
            amount=amount,
            actor=str(data.get("actor") or ""),
            note=str(data.get("note") or ""),
            updated_at=parse_iso8601(updated_raw) if updated_raw else None,
        )
