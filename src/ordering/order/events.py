"""Domain events for the Order aggregate.

Raised by the aggregate and dispatched after the unit of work commits, so a
handler never sees a change that was rolled back.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A new order was created and its stock reserved."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    lines = Text(required=True)  # JSON: list of {product_id, quantity, unit_price}
    total = Float(required=True)
    payment_method = String(required=True)
    status = String(required=True)
    is_replacement = Boolean(default=False)
    parent_order_id = Identifier()
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderStatusChanged:
    """An operator moved the order between fulfillment statuses."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    status = String(required=True)
    note = String(max_length=500)
    changed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    """The whole order was cancelled and its remaining quantities restocked."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    reason = String(max_length=500)
    released = Text()  # JSON: list of {product_id, quantity}
    payment_status = String(required=True)
    cancelled_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderItemsCancelled:
    """Some units were cancelled from a PLACED/CONFIRMED order."""

    __version__ = 1

    order_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity}
    total = Float(required=True)
    reason = String(max_length=500)
    fully_cancelled = Boolean(default=False)


@ordering.event(part_of="Order")
class ReturnRequested:
    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    request_type = String(required=True)
    reason = String(max_length=500)
    items = Text(required=True)  # JSON: list of {product_id, quantity}
    requested_at = DateTime(required=True)


@ordering.event(part_of="Order")
class ReturnDecided:
    __version__ = 1

    order_id = Identifier(required=True)
    request_type = String(required=True)
    decision = String(required=True)
    decided_by = Identifier()
    note = String(max_length=500)
    decided_at = DateTime(required=True)


@ordering.event(part_of="Order")
class ReturnRequestWithdrawn:
    __version__ = 1

    order_id = Identifier(required=True)
    request_type = String(required=True)
    withdrawn_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderItemsReturned:
    """Returned units were restocked. Reviews for them get purged after commit."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity}
    fully_returned = Boolean(default=False)
    completed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class ReplacementIssued:
    __version__ = 1

    order_id = Identifier(required=True)
    replacement_order_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity}
    fully_replaced = Boolean(default=False)
    issued_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentConfirmed:
    __version__ = 1

    order_id = Identifier(required=True)
    reference = String(max_length=255)
    paid_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentFailed:
    """The provider reported a failed or abandoned payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(max_length=500)
    abandoned = Boolean(default=False)
    failed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderRefunded:
    __version__ = 1

    order_id = Identifier(required=True)
    amount = Float()
    note = String(max_length=500)
    refunded_at = DateTime(required=True)


@ordering.event(part_of="Order")
class SalesCounted:
    """The order's delivered quantities were added to product sold-counts."""

    __version__ = 1

    order_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity}


@ordering.event(part_of="Order")
class SalesRolledBack:
    __version__ = 1

    order_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity}
