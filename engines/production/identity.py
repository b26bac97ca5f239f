"""
Production Engine — Unit Identity Resolver
============================================
Every physical copy inside a line item gets a Unit Key built from:

    order id -- sku -- color -- size -- line item index -- unit index

RULES:
- Pure: same inputs → same key, no I/O, no randomness
- Each field is percent-escaped to [A-Za-z0-9_%] before joining,
  so the '--' separator can never occur inside a field and the
  key is safe as a document id (no '/', '.', ':', '@', spaces)
- Blank SKU → title-derived default; blank color/size → sentinels
- The line item index disambiguates the same SKU/color/size
  appearing on several lines of one order

Keys are only as stable as the upstream line item order: if the
order source reorders lines between syncs, unit identities shift.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import quote, unquote

from core.config import ProductionSettings
from engines.production.models import LineItem, Order, normalize_order_id

logger = logging.getLogger("printshop.production")

KEY_SEPARATOR = "--"
KEY_FIELD_COUNT = 6
NO_COLOR = "no-color"
NO_SIZE = "no-size"
NO_SKU_PREFIX = "nosku-"

_FIELD_PATTERN = re.compile(r"^[A-Za-z0-9_%]+$")
_INDEX_PATTERN = re.compile(r"^(0|[1-9][0-9]*)$")
# quote() leaves these unescaped; they must not survive into a field
_EXTRA_ESCAPES = (("-", "%2D"), (".", "%2E"), ("~", "%7E"))

_DEFAULT_SETTINGS = ProductionSettings()


@dataclass(frozen=True)
class UnitKeyParts:
    order_id: str
    sku: str
    color: str
    size: str
    line_item_index: int
    unit_index: int


@dataclass(frozen=True)
class ProductionUnit:
    """The unit_index-th physical copy of a line item."""

    order_id: str
    sku: str
    color: str
    size: str
    line_item_index: int
    unit_index: int
    unit_key: str


# ══════════════════════════════════════════════════════════════
# NORMALIZATION
# ══════════════════════════════════════════════════════════════

def _collapse(value: Optional[str]) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def default_sku(title: str) -> str:
    """Deterministic stand-in for a missing SKU."""
    slug = re.sub(r"[^a-z0-9]+", "-", _collapse(title).casefold()).strip("-")
    return f"{NO_SKU_PREFIX}{slug or 'untitled'}"


def normalize_sku(sku: Optional[str], title: str = "") -> str:
    cleaned = _collapse(sku)
    if cleaned:
        return cleaned
    fallback = default_sku(title)
    logger.warning(f"Missing SKU for line item '{title}', using '{fallback}'")
    return fallback


def normalize_color(color: Optional[str]) -> str:
    return _collapse(color) or NO_COLOR


def normalize_size(size: Optional[str]) -> str:
    return _collapse(size) or NO_SIZE


def color_of(line_item: LineItem, settings: ProductionSettings = _DEFAULT_SETTINGS) -> str:
    return normalize_color(line_item.option_value(settings.color_option_names))


def size_of(line_item: LineItem, settings: ProductionSettings = _DEFAULT_SETTINGS) -> str:
    return normalize_size(line_item.option_value(settings.size_option_names))


def _check_index(value: int, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValueError(f"{name} must be integer >= 0, got {value!r}.")
    return value


# ══════════════════════════════════════════════════════════════
# ENCODING
# ══════════════════════════════════════════════════════════════

def escape_field(value: str) -> str:
    escaped = quote(value, safe="")
    for char, replacement in _EXTRA_ESCAPES:
        escaped = escaped.replace(char, replacement)
    return escaped


def resolve_unit_key(
    order_id: str,
    sku: Optional[str],
    color: Optional[str],
    size: Optional[str],
    line_item_index: int,
    unit_index: int,
    *,
    title: str = "",
) -> str:
    """Build the Unit Key of one physical unit."""
    fields = (
        normalize_order_id(order_id),
        normalize_sku(sku, title),
        normalize_color(color),
        normalize_size(size),
        str(_check_index(line_item_index, "line_item_index")),
        str(_check_index(unit_index, "unit_index")),
    )
    return KEY_SEPARATOR.join(escape_field(f) for f in fields)


def parse_unit_key(unit_key: str) -> Optional[UnitKeyParts]:
    """Decode a current-shape key; None for anything else."""
    if not isinstance(unit_key, str) or not unit_key:
        return None
    fields = unit_key.split(KEY_SEPARATOR)
    if len(fields) != KEY_FIELD_COUNT:
        return None
    if not all(_FIELD_PATTERN.match(f) for f in fields):
        return None
    if not (_INDEX_PATTERN.match(fields[4]) and _INDEX_PATTERN.match(fields[5])):
        return None
    return UnitKeyParts(
        order_id=unquote(fields[0]),
        sku=unquote(fields[1]),
        color=unquote(fields[2]),
        size=unquote(fields[3]),
        line_item_index=int(fields[4]),
        unit_index=int(fields[5]),
    )


def is_current_shape(unit_key: str, order_id: Optional[str] = None) -> bool:
    """
    Structural signature check used to tell current keys from keys
    written by superseded identity schemes.
    """
    parts = parse_unit_key(unit_key)
    if parts is None:
        return False
    if order_id is not None and parts.order_id != normalize_order_id(order_id):
        return False
    return True


# ══════════════════════════════════════════════════════════════
# UNIT EXPANSION
# ══════════════════════════════════════════════════════════════

def units_for_line_item(
    order_id: str,
    line_item: LineItem,
    settings: ProductionSettings = _DEFAULT_SETTINGS,
) -> List[ProductionUnit]:
    oid = normalize_order_id(order_id)
    sku = normalize_sku(line_item.sku, line_item.title)
    color = color_of(line_item, settings)
    size = size_of(line_item, settings)
    return [
        ProductionUnit(
            order_id=oid,
            sku=sku,
            color=color,
            size=size,
            line_item_index=line_item.position,
            unit_index=unit_index,
            unit_key=resolve_unit_key(
                oid, sku, color, size, line_item.position, unit_index,
            ),
        )
        for unit_index in range(line_item.quantity)
    ]


def units_for_order(
    order: Order,
    settings: ProductionSettings = _DEFAULT_SETTINGS,
    include_cancelled: bool = False,
) -> List[ProductionUnit]:
    units: List[ProductionUnit] = []
    for line_item in order.line_items:
        if line_item.cancelled and not include_cancelled:
            continue
        units.extend(units_for_line_item(order.order_id, line_item, settings))
    return units


def live_unit_keys(
    order: Order,
    settings: ProductionSettings = _DEFAULT_SETTINGS,
) -> frozenset:
    return frozenset(u.unit_key for u in units_for_order(order, settings))
