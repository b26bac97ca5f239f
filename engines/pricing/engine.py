"""
Pricing Engine — Unit Pricing
===============================
price_unit(unit, rules) → PriceQuote

    base price of the first matching rule
  + every metafield modifier the unit carries
  + every option modifier the unit carries

No rounding happens here; amounts are summed exactly in Decimal.
A unit no rule covers is priced at 0 with matched=False so the
caller can flag it instead of billing a silent zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from core.config import ProductionSettings
from engines.pricing.rules import PriceRule, RuleSet
from engines.production.identity import normalize_sku
from engines.production.models import LineItem, Metafield, SelectedOption

logger = logging.getLogger("printshop.pricing")

ZERO = Decimal("0")


@dataclass(frozen=True)
class UnitAttributes:
    """What pricing needs to know about one unit (all copies of a line price alike)."""

    sku: str
    color: Optional[str] = None
    metafields: Tuple[Metafield, ...] = ()
    selected_options: Tuple[SelectedOption, ...] = ()

    @classmethod
    def from_line_item(
        cls,
        line_item: LineItem,
        settings: Optional[ProductionSettings] = None,
    ) -> "UnitAttributes":
        settings = settings or ProductionSettings()
        return cls(
            sku=normalize_sku(line_item.sku, line_item.title),
            color=line_item.option_value(settings.color_option_names),
            metafields=line_item.metafields,
            selected_options=line_item.selected_options,
        )


@dataclass(frozen=True)
class PriceQuote:
    amount: Decimal
    rule: Optional[PriceRule] = None
    applied: Tuple[str, ...] = ()

    @property
    def matched(self) -> bool:
        return self.rule is not None

    def times(self, quantity: int) -> Decimal:
        return self.amount * quantity


def price_unit(unit: UnitAttributes, rules: RuleSet) -> PriceQuote:
    """Price one production unit against the configured rules."""
    rule = rules.match(unit.sku, unit.color)
    if rule is None:
        logger.debug(f"No price rule for sku={unit.sku!r} color={unit.color!r}")
        return PriceQuote(amount=ZERO)

    amount = rule.base_price
    applied = []
    for modifier in rule.metafield_modifiers:
        if modifier.applies_to(unit.metafields):
            amount += modifier.amount
            applied.append(modifier.describe())
    for modifier in rule.option_modifiers:
        if modifier.applies_to(unit.selected_options):
            amount += modifier.amount
            applied.append(modifier.describe())

    return PriceQuote(amount=amount, rule=rule, applied=tuple(applied))
