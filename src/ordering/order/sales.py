"""Sales Counter Ledger.

Adds an order's active quantities to product sold-counts on its first paid
delivery, and reverses returned units later. The order carries the
bookkeeping (``sales_counted`` and one ``SalesEntry`` per product), which
makes both directions safe to replay.
"""

import structlog

logger = structlog.get_logger(__name__)


def count_sales(order, catalogue) -> dict:
    """Count the order's active quantities once. Returns what was counted."""
    if not order.awaiting_sales_count:
        return {}

    contributions = order.sales_contributions()
    for product_id, quantity in contributions.items():
        product = catalogue.find(product_id)
        if product is None:
            logger.warning("sales_count_skipped", order_id=str(order.id), product_id=product_id)
            continue
        product.record_sales(quantity)
        catalogue.mark_changed(product)

    order.mark_sales_counted(contributions)
    logger.info("sales_counted", order_id=str(order.id), items=contributions)
    return contributions


def roll_back_sales(order, catalogue) -> dict:
    """Reverse counted units that have since been returned. Returns what was reversed."""
    rollbacks = order.pending_sales_rollbacks()
    for product_id, quantity in rollbacks.items():
        product = catalogue.find(product_id)
        if product is None:
            logger.warning("sales_rollback_skipped", order_id=str(order.id), product_id=product_id)
            continue
        product.rollback_sales(quantity)
        catalogue.mark_changed(product)

    order.record_sales_rollback(rollbacks)
    if rollbacks:
        logger.info("sales_rolled_back", order_id=str(order.id), items=rollbacks)
    return rollbacks
