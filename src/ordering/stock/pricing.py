"""Purchase-time price snapshots for order lines."""

from datetime import UTC, datetime
from enum import Enum

from ordering.stock.bundles import MIN_COMPONENTS
from ordering.stock.product import as_utc


class OfferKind(Enum):
    NONE = "NONE"
    DISCOUNT = "DISCOUNT"
    TIMED = "TIMED"


def paid_unit_price(product, now=None) -> tuple[float, OfferKind]:
    """The price a customer pays for one unit right now, and which offer produced it."""
    now = as_utc(now or datetime.now(UTC))
    price = float(product.price or 0.0)
    paid, offer = price, OfferKind.NONE

    if product.discount_price is not None and 0 <= product.discount_price < price:
        paid, offer = float(product.discount_price), OfferKind.DISCOUNT

    timed = product.timed_offer
    if timed is not None and 0 < (timed.price or 0) < price and timed.applies_at(now):
        paid, offer = float(timed.price), OfferKind.TIMED

    return paid, offer


def strike_unit_price(product, find_product, now=None) -> float:
    """Reference price shown struck through next to the paid price.

    A bundle's reference is what its children would cost bought separately.
    """
    if not product.is_bundle or len(product.components) < MIN_COMPONENTS:
        return float(product.price or 0.0)

    total = 0.0
    for item in product.components:
        child = find_product(item.child_id)
        if child is None:
            return float(product.price or 0.0)
        child_price, _ = paid_unit_price(child, now)
        total += child_price * (item.quantity or 0)
    return round(total, 2)


def line_snapshot(product, find_product, now=None) -> dict:
    """Immutable descriptive and price fields copied onto an order line."""
    unit_price, offer = paid_unit_price(product, now)
    return {
        "product_id": str(product.id),
        "product_kind": product.kind,
        "title": product.title,
        "slug": product.slug,
        "image_url": product.image_url,
        "unit_price": unit_price,
        "strike_price": strike_unit_price(product, find_product, now),
        "offer_kind": offer.value,
    }
