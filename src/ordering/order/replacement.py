"""Issuing a replacement order for an approved replacement request."""

import structlog
from protean.utils.globals import current_domain

from ordering.errors import InsufficientStock, ProductInactive
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


def issue_replacement(order, note, catalogue, ledger) -> Order:
    """Reserve stock for the approved quantities and open the linked replacement order.

    Runs inside the caller's unit of work: the parent, the new order and the
    reserved products are persisted together or not at all.
    """
    quantities = order.replacement_quantities()

    for product_id, quantity in quantities.items():
        product = catalogue.get(product_id)
        if not product.is_active:
            raise ProductInactive(f"{product.title} is no longer available for replacement")
        available = ledger.available(product_id)
        if available < quantity:
            raise InsufficientStock(
                f"Not enough stock to replace {product.title}: {available} available, {quantity} requested"
            )
        ledger.reserve_product(product_id, quantity)

    replacement = Order.replacement_for(order, quantities, note)
    order.record_replacement(replacement, quantities, note)
    current_domain.repository_for(Order).add(replacement)

    logger.info(
        "replacement_issued",
        order_id=str(order.id),
        replacement_order_id=str(replacement.id),
        items=quantities,
        parent_status=order.status,
    )
    return replacement
