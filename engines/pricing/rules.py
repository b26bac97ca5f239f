"""
Pricing Engine — Price Rule Configuration
===========================================
A price rule is a base price for a SKU (optionally restricted to
one color) plus additive modifiers:

    MetafieldModifier  namespace + key + value (exact) → +amount
    OptionModifier     option value (case-insensitive) → +amount

Records coming from the pricing config store are validated here,
once, when the RuleSet is built. A malformed record raises
RuleConfigurationError instead of silently pricing at zero later.

Rule ordering: when several active rules match the same unit the
engine takes the first of:

    1. lowest `priority` (default 100)
    2. color-specific rules before any-color rules
    3. configuration order

Rule authors should still keep (sku, color) pairs unique;
RuleSet.duplicates() lists the pairs that are not.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from core.config import check_amount_precision, to_decimal
from engines.pricing.errors import RuleConfigurationError

DEFAULT_RULE_PRIORITY = 100

_PARENTHESISED = re.compile(r"\s*\([^)]*\)\s*")


def pricing_color(color: Optional[str], aliases: Optional[Mapping[str, str]] = None) -> str:
    """
    Comparable form of a color for rule matching.

    'Bleu Azur (Stargazer)' and 'bleu azur' compare equal; aliases
    map storefront names onto the names used in the rules.
    """
    if not color:
        return ""
    cleaned = " ".join(_PARENTHESISED.sub(" ", str(color)).split()).casefold()
    if aliases:
        cleaned = aliases.get(cleaned, cleaned)
    return cleaned


@dataclass(frozen=True)
class MetafieldModifier:
    namespace: str
    key: str
    value: str
    amount: Decimal

    def applies_to(self, metafields: Iterable[Any]) -> bool:
        return any(
            m.namespace == self.namespace and m.key == self.key and m.value == self.value
            for m in metafields
        )

    def describe(self) -> str:
        return f"{self.namespace}.{self.key}={self.value}"


@dataclass(frozen=True)
class OptionModifier:
    value: str
    amount: Decimal
    name: Optional[str] = None

    def applies_to(self, selected_options: Iterable[Any]) -> bool:
        wanted = self.value.casefold()
        for option in selected_options:
            if self.name and option.name.casefold() != self.name.casefold():
                continue
            if option.value.casefold() == wanted:
                return True
        return False

    def describe(self) -> str:
        return f"{self.name}={self.value}" if self.name else f"option={self.value}"


@dataclass(frozen=True)
class PriceRule:
    sku: str
    base_price: Decimal
    color: Optional[str] = None
    priority: int = DEFAULT_RULE_PRIORITY
    is_active: bool = True
    description: str = ""
    metafield_modifiers: Tuple[MetafieldModifier, ...] = ()
    option_modifiers: Tuple[OptionModifier, ...] = ()
    rule_id: str = ""

    def __post_init__(self) -> None:
        if not self.sku or not self.sku.strip():
            raise RuleConfigurationError("sku must be non-empty.")
        if not isinstance(self.base_price, Decimal):
            raise RuleConfigurationError("base_price must be a Decimal.")

    @property
    def is_color_specific(self) -> bool:
        return bool(self.color)

    def label(self) -> str:
        if self.description:
            return self.description
        return f"{self.sku} / {self.color}" if self.color else self.sku


# ══════════════════════════════════════════════════════════════
# RECORD PARSING (config-load time validation)
# ══════════════════════════════════════════════════════════════

def _require(record: Mapping[str, Any], *names: str, index: int) -> Any:
    for name in names:
        value = record.get(name)
        if value is not None and (not isinstance(value, str) or value.strip()):
            return value
    raise RuleConfigurationError(f"missing required field '{names[0]}'.", index)


def _amount(value: Any, field_name: str, index: int) -> Decimal:
    try:
        return check_amount_precision(
            to_decimal(value, field_name=field_name), field_name=field_name
        )
    except ValueError as exc:
        raise RuleConfigurationError(str(exc), index) from exc


def _metafield_modifier(raw: Any, index: int) -> MetafieldModifier:
    if not isinstance(raw, Mapping):
        raise RuleConfigurationError("metafield modifier must be a mapping.", index)
    return MetafieldModifier(
        namespace=str(_require(raw, "namespace", "metafield_namespace", index=index)),
        key=str(_require(raw, "key", "metafield_key", index=index)),
        value=str(_require(raw, "value", "metafield_value", index=index)),
        amount=_amount(
            _require(raw, "amount", "modifier_amount", index=index),
            "metafield modifier amount",
            index,
        ),
    )


def _option_modifier(raw: Any, index: int) -> OptionModifier:
    if not isinstance(raw, Mapping):
        raise RuleConfigurationError("option modifier must be a mapping.", index)
    name = raw.get("name") or raw.get("option_name") or raw.get("optionName")
    return OptionModifier(
        value=str(_require(raw, "value", "option_value", "optionValue", index=index)).strip(),
        amount=_amount(
            _require(raw, "amount", "modifier_amount", index=index),
            "option modifier amount",
            index,
        ),
        name=str(name).strip() if name else None,
    )


def rule_from_record(record: Mapping[str, Any], index: int = 0) -> PriceRule:
    """Validate one loosely-typed config record into a PriceRule."""
    if not isinstance(record, Mapping):
        raise RuleConfigurationError("rule record must be a mapping.", index)

    priority = record.get("priority", DEFAULT_RULE_PRIORITY)
    if not isinstance(priority, int) or isinstance(priority, bool):
        raise RuleConfigurationError(f"priority must be an integer, got {priority!r}.", index)

    color = record.get("color")
    color = str(color).strip() if color is not None and str(color).strip() else None

    return PriceRule(
        sku=str(_require(record, "sku", index=index)).strip(),
        base_price=_amount(
            _require(record, "base_price", "basePrice", index=index), "base_price", index
        ),
        color=color,
        priority=priority,
        is_active=bool(record.get("is_active", record.get("isActive", True))),
        description=str(record.get("description") or ""),
        metafield_modifiers=tuple(
            _metafield_modifier(raw, index)
            for raw in (record.get("metafield_modifiers") or record.get("modifiers") or ())
        ),
        option_modifiers=tuple(
            _option_modifier(raw, index)
            for raw in (record.get("option_modifiers") or record.get("optionModifiers") or ())
        ),
        rule_id=str(record.get("id") or record.get("rule_id") or ""),
    )


# ══════════════════════════════════════════════════════════════
# RULE SET
# ══════════════════════════════════════════════════════════════

class RuleSet:
    """Validated, ordered collection of price rules."""

    def __init__(
        self,
        rules: Sequence[PriceRule] = (),
        color_aliases: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._aliases = dict(color_aliases or {})
        indexed = list(enumerate(rules))
        indexed.sort(key=lambda pair: (
            pair[1].priority,
            0 if pair[1].is_color_specific else 1,
            pair[0],
        ))
        self._rules: Tuple[PriceRule, ...] = tuple(rule for _, rule in indexed)

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        color_aliases: Optional[Mapping[str, str]] = None,
    ) -> "RuleSet":
        return cls(
            [rule_from_record(record, index) for index, record in enumerate(records)],
            color_aliases=color_aliases,
        )

    def __iter__(self) -> Iterator[PriceRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def match(self, sku: str, color: Optional[str]) -> Optional[PriceRule]:
        """First active rule for (sku, color) in rule order, or None."""
        wanted_sku = (sku or "").strip()
        wanted_color = pricing_color(color, self._aliases)
        for rule in self._rules:
            if not rule.is_active or rule.sku != wanted_sku:
                continue
            if rule.color and pricing_color(rule.color, self._aliases) != wanted_color:
                continue
            return rule
        return None

    def duplicates(self) -> List[Tuple[str, Optional[str]]]:
        """(sku, color) pairs configured on more than one active rule."""
        seen: dict = {}
        for rule in self._rules:
            if not rule.is_active:
                continue
            pair = (rule.sku, pricing_color(rule.color, self._aliases) or None)
            seen[pair] = seen.get(pair, 0) + 1
        return sorted(
            (pair for pair, count in seen.items() if count > 1),
            key=lambda p: (p[0], p[1] or ""),
        )
