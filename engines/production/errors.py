"""Production engine — error types."""


class ProductionError(Exception):
    """Base error for unit identity and progress tracking."""
    pass


class InvalidUnitKeyError(ProductionError):
    """A unit key is not in the current shape, or belongs to another order."""

    def __init__(self, unit_key: str, order_id: str, reason: str):
        self.unit_key = unit_key
        self.order_id = order_id
        self.reason = reason
        super().__init__(
            f"Unit key '{unit_key}' rejected for order '{order_id}': {reason}"
        )


class OrderPayloadError(ProductionError):
    """Upstream order data is missing a required field or is malformed."""

    def __init__(self, message: str, order_id: str = ""):
        self.order_id = order_id
        super().__init__(message)


class StoreError(ProductionError):
    """Base error raised by store adapters."""
    pass


class StoreUnavailableError(StoreError):
    """The backing store rejected or failed a read/write."""

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Store {operation} failed: {detail}")
