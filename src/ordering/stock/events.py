"""Domain events raised by the Product aggregate when the engine moves its counters."""

from protean.fields import Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Product")
class StockReserved:
    """Units were withdrawn from a product's stock for an order line."""

    __version__ = 1

    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    remaining = Integer(required=True)


@ordering.event(part_of="Product")
class StockReleased:
    """Units were put back into a product's stock (cancel, return, compensation)."""

    __version__ = 1

    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    remaining = Integer(required=True)


@ordering.event(part_of="Product")
class SoldCountAdjusted:
    """The running sold-count moved, up on a paid delivery or down on a return."""

    __version__ = 1

    product_id = Identifier(required=True)
    delta = Integer(required=True)
    sold_count = Integer(required=True)
    reason = String(max_length=50)
