"""
Projections — Production Read Model
=====================================
"What is left to print": per (sku, color, size) tallies of live
units, how many are checked and how many remain.

Built from an order plus its checklist entries, then kept current
from events:
- production.unit.toggled.v1
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from core.config import ProductionSettings
from engines.production.events import PRODUCTION_UNIT_TOGGLED_V1
from engines.production.identity import ProductionUnit, units_for_order
from engines.production.models import ChecklistEntry, Order, normalize_order_id

VariantKey = Tuple[str, str, str]


@dataclass
class VariantTally:
    sku: str
    color: str
    size: str
    total: int = 0
    checked: int = 0

    @property
    def remaining(self) -> int:
        return self.total - self.checked

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku": self.sku,
            "color": self.color,
            "size": self.size,
            "total": self.total,
            "checked": self.checked,
            "remaining": self.remaining,
        }


class ProductionReadModel:
    projection_name = "production_read_model"

    def __init__(self, settings: Optional[ProductionSettings] = None) -> None:
        self._settings = settings or ProductionSettings()
        # { order_id: { unit_key: ProductionUnit } }
        self._units: Dict[str, Dict[str, ProductionUnit]] = {}
        self._checked: Dict[str, Set[str]] = defaultdict(set)

    def build(self, order: Order, entries: Iterable[ChecklistEntry]) -> None:
        """(Re)build one order's view; entries outside its live units are ignored."""
        units = {u.unit_key: u for u in units_for_order(order, self._settings)}
        self._units[order.order_id] = units
        self._checked[order.order_id] = {
            e.unit_key for e in entries if e.checked and e.unit_key in units
        }

    def apply(self, event_type: str, payload: Dict[str, Any]) -> None:
        if event_type != PRODUCTION_UNIT_TOGGLED_V1:
            return
        order_id = normalize_order_id(payload.get("order_id"))
        unit_key = payload.get("unit_key")
        if unit_key not in self._units.get(order_id, {}):
            return
        if payload.get("checked"):
            self._checked[order_id].add(unit_key)
        else:
            self._checked[order_id].discard(unit_key)

    def tallies(self, order_id: Optional[str] = None) -> List[VariantTally]:
        """Tallies for one order, or summed over every built order."""
        order_ids = [normalize_order_id(order_id)] if order_id is not None else list(self._units)
        grouped: Dict[VariantKey, VariantTally] = {}
        for oid in order_ids:
            checked = self._checked.get(oid, set())
            for unit_key, unit in self._units.get(oid, {}).items():
                key = (unit.sku, unit.color, unit.size)
                tally = grouped.setdefault(key, VariantTally(*key))
                tally.total += 1
                if unit_key in checked:
                    tally.checked += 1
        return [grouped[key] for key in sorted(grouped)]

    def remaining(self, order_id: Optional[str] = None) -> List[VariantTally]:
        return [t for t in self.tallies(order_id) if t.remaining > 0]

    def truncate(self, order_id: Optional[str] = None) -> None:
        if order_id:
            oid = normalize_order_id(order_id)
            self._units.pop(oid, None)
            self._checked.pop(oid, None)
        else:
            self._units.clear()
            self._checked.clear()

    def snapshot(self, order_id: Optional[str] = None) -> Dict[str, Any]:
        tallies = self.tallies(order_id)
        return {
            "variant_count": len(tallies),
            "total_units": sum(t.total for t in tallies),
            "checked_units": sum(t.checked for t in tallies),
            "remaining_units": sum(t.remaining for t in tallies),
            "variants": [t.to_dict() for t in tallies],
        }
