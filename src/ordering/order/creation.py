"""Order creation: command and handler.

Every requested product is reserved (directly, or child by child for a
bundle) and priced from its current catalog state before the order exists.
Any failure aborts the unit of work, so no reservation outlives a failed
checkout.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import InvalidRequest
from ordering.order.order import Order, normalize_payment_method, parse_items
from ordering.stock.catalogue import CatalogueSession
from ordering.stock.ledger import StockLedger
from ordering.stock.pricing import line_snapshot

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity}
    shipping_address = Text(required=True)  # JSON: address dict
    payment_method = String(required=True, max_length=20)


def _decode_address(value):
    if isinstance(value, dict):
        return value
    try:
        address = json.loads(value)
    except ValueError as exc:
        raise InvalidRequest("Shipping address must be a JSON object", field="shipping_address") from exc
    if not isinstance(address, dict):
        raise InvalidRequest("Shipping address must be a JSON object", field="shipping_address")
    return address


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        quantities = parse_items(command.items)
        shipping_address = _decode_address(command.shipping_address)
        payment_method = normalize_payment_method(command.payment_method)

        catalogue = CatalogueSession()
        ledger = StockLedger(catalogue)

        lines = []
        for product_id, quantity in quantities.items():
            product = catalogue.get(product_id)
            ledger.reserve_product(product_id, quantity)
            lines.append({**line_snapshot(product, catalogue.find), "quantity": quantity})

        order = Order.place(
            customer_id=command.customer_id,
            lines=lines,
            shipping_address=shipping_address,
            payment_method=payment_method,
        )

        catalogue.flush()
        current_domain.repository_for(Order).add(order)

        logger.info(
            "order_placed",
            order_id=str(order.id),
            customer_id=str(command.customer_id),
            total=order.total,
            line_count=len(lines),
        )
        return str(order.id)
