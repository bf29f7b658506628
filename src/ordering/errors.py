"""Error taxonomy of the ordering engine.

Every error carries a stable ``kind`` and a human readable ``reason``.
Malformed input is reported through Protean's own ``ValidationError`` so that
field validation on commands and our explicit checks look the same to callers.
"""

from protean.exceptions import ValidationError


class InvalidRequest(ValidationError):
    kind = "validation_error"

    def __init__(self, reason, field="request"):
        self.reason = reason
        self.field = field
        super().__init__({field: [reason]})


class InvalidQuantity(InvalidRequest):
    def __init__(self, reason, field="quantity"):
        super().__init__(reason, field=field)


class OrderingError(Exception):
    """Base class for every non-validation failure raised by the engine."""

    kind = "ordering_error"
    field = "_entity"

    def __init__(self, reason):
        super().__init__(reason)
        self.reason = reason

    @property
    def messages(self):
        return {self.field: [self.reason]}

    def __str__(self):
        return self.reason


class NotFound(OrderingError):
    kind = "not_found"


class OrderNotFound(NotFound):
    field = "order_id"


class ProductNotFound(NotFound):
    field = "product_id"


class Forbidden(OrderingError):
    kind = "forbidden"


class StateConflict(OrderingError):
    kind = "state_conflict"
    field = "status"


class InsufficientStock(OrderingError):
    kind = "insufficient_stock"
    field = "stock"


class ProductInactive(InsufficientStock):
    field = "product_id"


class DuplicateAction(OrderingError):
    kind = "duplicate_action"
