"""
Core Config — Public API
==========================
Admin-configurable production and billing settings.
"""

from core.config.rules import (
    AMOUNT_DECIMAL_PLACES,
    AMOUNT_MAX_DIGITS,
    DEFAULT_HANDLING_FEE,
    ProductionSettings,
    check_amount_precision,
    load_production_settings,
    to_decimal,
)

__all__ = [
    "AMOUNT_DECIMAL_PLACES",
    "AMOUNT_MAX_DIGITS",
    "DEFAULT_HANDLING_FEE",
    "ProductionSettings",
    "check_amount_precision",
    "load_production_settings",
    "to_decimal",
]
