"""Bundle Resolver: derive a bundle's sellable quantity from its children.

A bundle owns no stock. ``available_quantity`` is a pure computation over the
children; ``reserve_bundle`` reserves every child through the Stock Ledger and
undoes the children already reserved if a later child fails.
"""

import structlog
from protean.exceptions import ValidationError

from ordering.errors import InsufficientStock, OrderingError

logger = structlog.get_logger(__name__)

MIN_COMPONENTS = 2


def available_quantity(bundle, find_product) -> int:
    """How many complete bundles the children's stock can currently cover.

    ``find_product`` maps a child id to a Product, or None if the catalog does
    not know it. Any unusable child makes the whole bundle unavailable.
    """
    components = bundle.components
    if len(components) < MIN_COMPONENTS:
        return 0

    available = None
    for item in components:
        per_bundle = item.quantity or 0
        if per_bundle <= 0:
            return 0

        child = find_product(item.child_id)
        if child is None or child.is_bundle or not child.is_active:
            return 0

        covered = max(child.stock or 0, 0) // per_bundle
        available = covered if available is None else min(available, covered)

    return available or 0


def reserve_bundle(ledger, bundle, quantity) -> None:
    """Reserve ``quantity`` bundles worth of every child, all or nothing."""
    components = bundle.components
    if len(components) < MIN_COMPONENTS:
        raise InsufficientStock(f"Bundle {bundle.title} is not sellable: it needs at least {MIN_COMPONENTS} components")

    applied = []
    try:
        for item in components:
            if (item.quantity or 0) <= 0:
                raise InsufficientStock(f"Bundle {bundle.title} has an invalid component quantity")

            need = item.quantity * quantity
            ledger.reserve(item.child_id, need)
            applied.append((item.child_id, need))
    except (OrderingError, ValidationError):
        for child_id, need in reversed(applied):
            ledger.release(child_id, need)
        if applied:
            logger.warning(
                "bundle_reservation_compensated",
                bundle_id=str(bundle.id),
                quantity=quantity,
                released=[{"product_id": str(child_id), "quantity": need} for child_id, need in applied],
            )
        raise


def release_bundle(ledger, bundle, quantity) -> None:
    """Put ``quantity`` bundles worth of every child back into stock."""
    for item in bundle.components:
        if (item.quantity or 0) <= 0:
            continue
        ledger.release(item.child_id, item.quantity * quantity)


def component_ids(bundle) -> list[str]:
    return [str(item.child_id) for item in bundle.components]
