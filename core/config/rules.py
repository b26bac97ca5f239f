"""
Core Config — Production & Billing Settings
=============================================
Amounts and matching vocabulary that the shop owner can change
without touching engine code: the handling fee, the tags marking
orders billed through another channel, and which variant option
names carry the color and the size.

Settings are validated once, when loaded, never at use time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Tuple

DEFAULT_HANDLING_FEE = Decimal("4.50")
DEFAULT_EXCLUDED_ORDER_TAGS = ("batch",)
DEFAULT_COLOR_OPTION_NAMES = ("color", "colour", "couleur")
DEFAULT_SIZE_OPTION_NAMES = ("size", "taille")

# Stored amounts: at most 6 decimal places, 12 integer digits.
AMOUNT_DECIMAL_PLACES = 6
AMOUNT_MAX_DIGITS = 18


def check_amount_precision(amount: Decimal, *, field_name: str) -> Decimal:
    """Reject amounts a stored amount column would have to round."""
    if amount.normalize().as_tuple().exponent < -AMOUNT_DECIMAL_PLACES:
        raise ValueError(
            f"{field_name} has more than {AMOUNT_DECIMAL_PLACES} decimal places, "
            f"got {amount}."
        )
    if abs(amount) >= Decimal(10) ** (AMOUNT_MAX_DIGITS - AMOUNT_DECIMAL_PLACES):
        raise ValueError(f"{field_name} is too large, got {amount}.")
    return amount


def to_decimal(value: Any, *, field_name: str) -> Decimal:
    """Convert a configured amount to Decimal, never via float."""
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be a number, got {value!r}.")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{field_name} must be a number, got {value!r}.") from exc
    if not amount.is_finite():
        raise ValueError(f"{field_name} must be finite, got {value!r}.")
    return amount


def _clean_names(values: Any, *, field_name: str) -> Tuple[str, ...]:
    if isinstance(values, str):
        values = (values,)
    cleaned = tuple(
        str(v).strip().casefold() for v in (values or ()) if str(v).strip()
    )
    if not cleaned:
        raise ValueError(f"{field_name} must contain at least one name.")
    return cleaned


@dataclass(frozen=True)
class ProductionSettings:
    """
    Shop-wide settings used by identity, pricing and billing.

    handling_fee:         one-time per-order charge, applied when at
                          least one unit of the order is checked.
    excluded_order_tags:  tag fragments (case-insensitive) of orders
                          billed separately, e.g. batch orders.
    color_option_names:   fragments identifying the color option.
    size_option_names:    fragments identifying the size option.
    color_aliases:        pricing-only color synonyms, e.g.
                          {"navy": "bleu marine"}.
    """

    handling_fee: Decimal = DEFAULT_HANDLING_FEE
    excluded_order_tags: Tuple[str, ...] = DEFAULT_EXCLUDED_ORDER_TAGS
    color_option_names: Tuple[str, ...] = DEFAULT_COLOR_OPTION_NAMES
    size_option_names: Tuple[str, ...] = DEFAULT_SIZE_OPTION_NAMES
    color_aliases: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.handling_fee, Decimal):
            raise ValueError("handling_fee must be a Decimal.")
        if self.handling_fee < 0:
            raise ValueError(
                f"handling_fee must be >= 0, got {self.handling_fee}."
            )
        check_amount_precision(self.handling_fee, field_name="handling_fee")

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ProductionSettings":
        """Build settings from a loosely-typed dict (Django settings, JSON)."""
        data = dict(data or {})
        kwargs: dict = {}
        if "HANDLING_FEE" in data:
            kwargs["handling_fee"] = to_decimal(
                data["HANDLING_FEE"], field_name="HANDLING_FEE"
            )
        if "EXCLUDED_ORDER_TAGS" in data:
            kwargs["excluded_order_tags"] = tuple(
                str(t).strip().casefold()
                for t in data["EXCLUDED_ORDER_TAGS"] or ()
                if str(t).strip()
            )
        if "COLOR_OPTION_NAMES" in data:
            kwargs["color_option_names"] = _clean_names(
                data["COLOR_OPTION_NAMES"], field_name="COLOR_OPTION_NAMES"
            )
        if "SIZE_OPTION_NAMES" in data:
            kwargs["size_option_names"] = _clean_names(
                data["SIZE_OPTION_NAMES"], field_name="SIZE_OPTION_NAMES"
            )
        if "COLOR_ALIASES" in data:
            aliases = data["COLOR_ALIASES"] or {}
            if not isinstance(aliases, Mapping):
                raise ValueError("COLOR_ALIASES must be a mapping.")
            kwargs["color_aliases"] = {
                str(k).strip().casefold(): str(v).strip().casefold()
                for k, v in aliases.items()
            }
        return cls(**kwargs)

    def is_excluded_order(self, tags) -> bool:
        """True if any tag contains one of the excluded fragments."""
        if isinstance(tags, str):
            tags = tags.split(",")
        for tag in tags or ():
            lowered = str(tag).casefold()
            if any(fragment in lowered for fragment in self.excluded_order_tags):
                return True
        return False


def load_production_settings() -> ProductionSettings:
    """
    Read the PRINTSHOP dict from Django settings.

    Falls back to defaults when Django is not configured, so the
    engines stay usable as a plain library.
    """
    from django.conf import settings as django_settings

    if not (django_settings.configured or os.environ.get("DJANGO_SETTINGS_MODULE")):
        return ProductionSettings()
    return ProductionSettings.from_mapping(
        getattr(django_settings, "PRINTSHOP", None)
    )
