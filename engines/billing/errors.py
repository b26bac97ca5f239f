"""Billing engine — error types."""


class BillingError(Exception):
    """Base error for cost reconciliation."""
    pass


class InvalidAdjustmentError(BillingError):
    """A balance adjustment is malformed (bad scope, ref or amount)."""

    def __init__(self, message: str, scope: str = "", scope_ref: str = ""):
        self.scope = scope
        self.scope_ref = scope_ref
        super().__init__(message)


class InvalidPeriodError(BillingError):
    """A billing period id or window cannot be interpreted."""

    def __init__(self, period_id: str, reason: str):
        self.period_id = period_id
        self.reason = reason
        super().__init__(f"Invalid billing period '{period_id}': {reason}")


class InvalidBillingEntryError(BillingError):
    """An invoice status, billing note or fee override is malformed."""

    def __init__(self, message: str, scope: str = "", scope_ref: str = ""):
        self.scope = scope
        self.scope_ref = scope_ref
        super().__init__(message)
