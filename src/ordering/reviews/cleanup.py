"""Purge a customer's reviews once their return has been committed.

Runs after the return's unit of work, so the purge is never part of it: a
failing review service is logged and the return stays completed.
"""

import json

import structlog
from protean.utils.mixins import handle

from ordering.domain import ordering
from ordering.order.events import OrderItemsReturned
from ordering.order.order import Order
from ordering.reviews import get_review_purger
from ordering.stock.bundles import component_ids
from ordering.stock.catalogue import CatalogueSession

logger = structlog.get_logger(__name__)


def reviewed_products(product_ids, catalogue) -> list[str]:
    """Products whose reviews a return affects: the product itself, or a bundle's children."""
    resolved = []
    for product_id in product_ids:
        product = catalogue.find(product_id)
        if product is not None and product.is_bundle:
            resolved.extend(component_ids(product))
        else:
            resolved.append(str(product_id))
    return list(dict.fromkeys(resolved))


@ordering.event_handler(part_of=Order)
class ReviewCleanupHandler:
    @handle(OrderItemsReturned)
    def purge_returned_reviews(self, event: OrderItemsReturned) -> None:
        items = json.loads(event.items) if isinstance(event.items, str) else event.items or []
        product_ids = [item["product_id"] for item in items]

        try:
            targets = reviewed_products(product_ids, CatalogueSession())
            result = get_review_purger().purge_customer_reviews(str(event.customer_id), targets)
        except Exception as exc:
            logger.warning(
                "review_purge_failed",
                order_id=str(event.order_id),
                customer_id=str(event.customer_id),
                error=str(exc),
            )
            return

        logger.info(
            "reviews_purged",
            order_id=str(event.order_id),
            customer_id=str(event.customer_id),
            product_ids=targets,
            removed=result.removed,
        )
