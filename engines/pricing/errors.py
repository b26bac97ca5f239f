"""Pricing engine — error types."""


class PricingError(Exception):
    """Base error for price rules and unit pricing."""
    pass


class RuleConfigurationError(PricingError):
    """A price rule record is incomplete or malformed."""

    def __init__(self, message: str, rule_index: int | None = None):
        self.rule_index = rule_index
        where = f"rule #{rule_index}: " if rule_index is not None else ""
        super().__init__(f"{where}{message}")
