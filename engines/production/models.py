"""
Production Engine — Order & Checklist Models
==============================================
Read-only view of storefront orders plus the two records this
engine writes: one ChecklistEntry per physical unit and one
ProgressCounter per order.

Orders are owned by the upstream order source. Nothing here
mutates them; Order.from_payload only parses and validates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from core.time import ensure_utc, parse_iso8601, to_iso8601
from engines.production.errors import OrderPayloadError

SHOPIFY_ORDER_GID_PREFIX = "gid://shopify/Order/"


def normalize_order_id(order_id: Any) -> str:
    """
    Canonical order id used in keys and store documents.

    The storefront hands out both '6178076459275' and
    'gid://shopify/Order/6178076459275' for the same order.
    """
    if order_id is None:
        raise ValueError("order_id must be non-empty.")
    text = str(order_id).strip()
    if text.startswith(SHOPIFY_ORDER_GID_PREFIX):
        text = text[len(SHOPIFY_ORDER_GID_PREFIX):]
    if not text:
        raise ValueError("order_id must be non-empty.")
    return text


@dataclass(frozen=True)
class SelectedOption:
    name: str
    value: str


@dataclass(frozen=True)
class Metafield:
    namespace: str
    key: str
    value: str


@dataclass(frozen=True)
class LineItem:
    """
    One line of an order. `position` is the index in the order's
    full line item list, cancelled lines included.
    """

    sku: str
    quantity: int
    position: int
    title: str = ""
    selected_options: Tuple[SelectedOption, ...] = ()
    metafields: Tuple[Metafield, ...] = ()
    cancelled: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.quantity, int) or isinstance(self.quantity, bool):
            raise ValueError("quantity must be an integer.")
        if self.quantity < 0:
            raise ValueError(f"quantity must be >= 0, got {self.quantity}.")
        if not isinstance(self.position, int) or self.position < 0:
            raise ValueError(f"position must be integer >= 0, got {self.position}.")

    def option_value(self, name_fragments: Iterable[str]) -> Optional[str]:
        """Value of the first option whose name contains a fragment."""
        fragments = tuple(f.casefold() for f in name_fragments)
        for option in self.selected_options:
            lowered = option.name.casefold()
            if any(fragment in lowered for fragment in fragments):
                value = option.value.strip()
                return value or None
        return None

    def metafield_value(self, namespace: str, key: str) -> Optional[str]:
        for metafield in self.metafields:
            if metafield.namespace == namespace and metafield.key == key:
                return metafield.value
        return None


@dataclass(frozen=True)
class Order:
    order_id: str
    line_items: Tuple[LineItem, ...] = ()
    tags: Tuple[str, ...] = ()
    financial_status: str = ""
    fulfillment_status: str = ""
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "order_id", normalize_order_id(self.order_id))

    @property
    def live_line_items(self) -> Tuple[LineItem, ...]:
        return tuple(item for item in self.line_items if not item.cancelled)

    @property
    def total_units(self) -> int:
        """Sum of non-cancelled quantities: the order's totalCount."""
        return sum(item.quantity for item in self.live_line_items)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Order":
        """
        Parse an upstream order document.

        Accepts snake_case or camelCase keys for the few fields
        whose spelling differs between the storefront APIs.
        """
        if not isinstance(payload, Mapping):
            raise OrderPayloadError("order payload must be a mapping.")
        try:
            order_id = normalize_order_id(payload.get("id"))
        except ValueError as exc:
            raise OrderPayloadError("order payload is missing 'id'.") from exc

        raw_items = _pick(payload, "line_items", "lineItems", default=[])
        if not isinstance(raw_items, (list, tuple)):
            raise OrderPayloadError("line_items must be a list.", order_id)

        line_items = tuple(
            _line_item_from_payload(raw, position, order_id)
            for position, raw in enumerate(raw_items)
        )

        tags = payload.get("tags") or ()
        if isinstance(tags, str):
            tags = [t for t in (part.strip() for part in tags.split(",")) if t]

        created_raw = _pick(payload, "created_at", "createdAt")
        try:
            if created_raw is None:
                created_at = None
            elif isinstance(created_raw, datetime):
                created_at = ensure_utc(created_raw)
            else:
                created_at = parse_iso8601(str(created_raw))
        except ValueError as exc:
            raise OrderPayloadError(
                f"created_at is not a valid timestamp: {created_raw!r}", order_id
            ) from exc

        return cls(
            order_id=order_id,
            line_items=line_items,
            tags=tuple(str(t) for t in tags),
            financial_status=str(
                _pick(payload, "financial_status", "displayFinancialStatus", default="") or ""
            ),
            fulfillment_status=str(
                _pick(payload, "fulfillment_status", "displayFulfillmentStatus", default="") or ""
            ),
            created_at=created_at,
        )


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _line_item_from_payload(raw: Any, position: int, order_id: str) -> LineItem:
    if not isinstance(raw, Mapping):
        raise OrderPayloadError(
            f"line item {position} must be a mapping.", order_id
        )
    quantity = raw.get("quantity")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
        raise OrderPayloadError(
            f"line item {position} has invalid quantity {quantity!r}.", order_id
        )

    variant = raw.get("variant") or {}
    raw_options = _pick(raw, "selected_options", "selectedOptions")
    if raw_options is None:
        raw_options = _pick(variant, "selected_options", "selectedOptions", default=[])
    raw_metafields = raw.get("metafields")
    if raw_metafields is None:
        raw_metafields = variant.get("metafields") or []

    try:
        options = tuple(
            SelectedOption(name=str(o["name"]), value=str(o["value"]))
            for o in raw_options
        )
        metafields = tuple(
            Metafield(
                namespace=str(m["namespace"]),
                key=str(m["key"]),
                value=str(m["value"]),
            )
            for m in raw_metafields
        )
    except (KeyError, TypeError) as exc:
        raise OrderPayloadError(
            f"line item {position} has a malformed option or metafield: {exc}",
            order_id,
        ) from exc

    return LineItem(
        sku=str(raw.get("sku") or "").strip(),
        quantity=quantity,
        position=position,
        title=str(raw.get("title") or "").strip(),
        selected_options=options,
        metafields=metafields,
        cancelled=bool(raw.get("cancelled", False)),
    )


# ══════════════════════════════════════════════════════════════
# CHECKLIST & PROGRESS RECORDS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ChecklistEntry:
    """Checked state of one production unit, attributed to an actor."""

    unit_key: str
    order_id: str
    checked: bool
    actor: str
    updated_at: datetime

    def __post_init__(self) -> None:
        if not self.unit_key:
            raise ValueError("unit_key must be non-empty.")
        object.__setattr__(self, "order_id", normalize_order_id(self.order_id))
        if self.updated_at.tzinfo is None:
            raise ValueError("updated_at must be timezone-aware.")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checked": self.checked,
            "actor": self.actor,
            "updatedAt": to_iso8601(self.updated_at),
            "orderId": self.order_id,
        }

    @classmethod
    def from_dict(cls, unit_key: str, data: Mapping[str, Any]) -> "ChecklistEntry":
        return cls(
            unit_key=unit_key,
            order_id=normalize_order_id(data["orderId"]),
            checked=bool(data.get("checked", False)),
            actor=str(data.get("actor") or ""),
            updated_at=parse_iso8601(data["updatedAt"]),
        )


@dataclass(frozen=True)
class ProgressCounter:
    order_id: str
    checked_count: int = 0
    total_count: int = 0

    @property
    def is_complete(self) -> bool:
        return self.total_count > 0 and self.checked_count >= self.total_count

    def to_dict(self) -> Dict[str, int]:
        return {
            "checkedCount": self.checked_count,
            "totalCount": self.total_count,
        }


@dataclass(frozen=True)
class ToggleResult:
    entry: ChecklistEntry
    counter: ProgressCounter


@dataclass(frozen=True)
class ChecklistAudit:
    """
    Classification of every stored entry of one order.

    legacy_keys:   keys from a superseded identity scheme
    orphaned_keys: current-shape keys no longer matching a live unit
                   (only known when live keys were supplied)
    """

    order_id: str
    checked_keys: frozenset = field(default_factory=frozenset)
    unchecked_keys: frozenset = field(default_factory=frozenset)
    legacy_keys: frozenset = field(default_factory=frozenset)
    orphaned_keys: frozenset = field(default_factory=frozenset)

    @property
    def checked_count(self) -> int:
        return len(self.checked_keys)

    @property
    def trustworthy(self) -> bool:
        """Counters of an order holding legacy keys cannot be trusted."""
        return not self.legacy_keys
