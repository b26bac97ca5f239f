"""
Billing Engine — Billing Records
==================================
The persisted, derived result of a cost computation. A record is
always produced by the reconciliation service and replaced as a
whole on the next computation; it is never edited by hand.

Amounts are exact Decimals. Cents rounding happens only when an
amount is formatted for display (format_amount).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from core.time import parse_iso8601, to_iso8601

CENTS = Decimal("0.01")


def format_amount(amount: Decimal) -> str:
    """Presentation only: '12.5' → '12.50', half-up at the cent."""
    return str(amount.quantize(CENTS, rounding=ROUND_HALF_UP))


class RecordKind(Enum):
    ORDER = "ORDER"
    PERIOD = "PERIOD"


@dataclass(frozen=True)
class CostLine:
    """Checked units of one line item times their unit price."""

    line_item_index: int
    sku: str
    color: Optional[str]
    checked_units: int
    unit_price: Decimal
    amount: Decimal
    rule: str = ""
    modifiers: Tuple[str, ...] = ()
    priced: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lineItemIndex": self.line_item_index,
            "sku": self.sku,
            "color": self.color,
            "checkedUnits": self.checked_units,
            "unitPrice": str(self.unit_price),
            "amount": str(self.amount),
            "rule": self.rule,
            "modifiers": list(self.modifiers),
            "priced": self.priced,
        }


@dataclass(frozen=True)
class UnpricedUnits:
    """Checked units no price rule covers (billed at 0, reported here)."""

    order_id: str
    line_item_index: int
    sku: str
    color: Optional[str]
    checked_units: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "lineItemIndex": self.line_item_index,
            "sku": self.sku,
            "color": self.color,
            "checkedUnits": self.checked_units,
        }


@dataclass(frozen=True)
class BillingRecord:
    record_id: str
    kind: RecordKind
    total: Decimal
    computed_at: datetime
    lines: Tuple[CostLine, ...] = ()
    handling_fee: Decimal = Decimal("0")
    adjustment_total: Decimal = Decimal("0")
    unpriced: Tuple[UnpricedUnits, ...] = ()
    stale_keys_detected: bool = False
    order_ids: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.total, Decimal):
            raise ValueError("total must be a Decimal.")
        if self.computed_at.tzinfo is None:
            raise ValueError("computed_at must be timezone-aware.")

    @property
    def subtotal(self) -> Decimal:
        return sum((line.amount for line in self.lines), Decimal("0"))

    @property
    def checked_units(self) -> int:
        return sum(line.checked_units for line in self.lines)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "total": str(self.total),
            "computedAt": to_iso8601(self.computed_at),
            "kind": self.kind.value,
            "handlingFee": str(self.handling_fee),
            "adjustmentTotal": str(self.adjustment_total),
            "staleKeysDetected": self.stale_keys_detected,
            "lines": [line.to_dict() for line in self.lines],
            "unpriced": [u.to_dict() for u in self.unpriced],
        }
        if self.kind == RecordKind.PERIOD:
            data["orderIds"] = list(self.order_ids)
        return data

    @classmethod
    def from_dict(cls, record_id: str, data: Mapping[str, Any]) -> "BillingRecord":
        """Inverse of to_dict(), used by persistent adapters."""
        return cls(
            record_id=record_id,
            kind=RecordKind(data["kind"]),
            total=Decimal(data["total"]),
            computed_at=parse_iso8601(data["computedAt"]),
            lines=tuple(
                CostLine(
                    line_item_index=int(line["lineItemIndex"]),
                    sku=line["sku"],
                    color=line.get("color"),
                    checked_units=int(line["checkedUnits"]),
                    unit_price=Decimal(line["unitPrice"]),
                    amount=Decimal(line["amount"]),
                    rule=line.get("rule") or "",
                    modifiers=tuple(line.get("modifiers") or ()),
                    priced=bool(line.get("priced", True)),
                )
                for line in data.get("lines") or ()
            ),
            handling_fee=Decimal(data.get("handlingFee") or "0"),
            adjustment_total=Decimal(data.get("adjustmentTotal") or "0"),
            unpriced=tuple(
                UnpricedUnits(
                    order_id=u["orderId"],
                    line_item_index=int(u["lineItemIndex"]),
                    sku=u["sku"],
                    color=u.get("color"),
                    checked_units=int(u["checkedUnits"]),
                )
                for u in data.get("unpriced") or ()
            ),
            stale_keys_detected=bool(data.get("staleKeysDetected", False)),
            order_ids=tuple(data.get("orderIds") or (
                (record_id,) if data["kind"] == RecordKind.ORDER.value else ()
            )),
        )
