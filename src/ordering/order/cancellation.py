"""Order cancellation (whole or partial) and operator refunds."""

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.access import ActorRole, ensure_operator, ensure_owner_or_operator
from ordering.order.order import Order, parse_items
from ordering.order.queries import load_order
from ordering.stock.catalogue import CatalogueSession
from ordering.stock.ledger import StockLedger

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500)
    actor_id = Identifier(required=True)
    actor_role = String(choices=ActorRole, default=ActorRole.CUSTOMER.value)


@ordering.command(part_of="Order")
class CancelItems:
    order_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity}
    reason = String(max_length=500)
    actor_id = Identifier(required=True)
    actor_role = String(choices=ActorRole, default=ActorRole.CUSTOMER.value)


@ordering.command(part_of="Order")
class RefundOrder:
    order_id = Identifier(required=True)
    note = String(max_length=500)
    actor_id = Identifier(required=True)
    actor_role = String(choices=ActorRole, default=ActorRole.OPERATOR.value)


def refund_parent(order, note) -> bool:
    """Refund a replacement order's parent if it is still marked paid."""
    if not order.parent_order_id:
        return False

    parent = load_order(order.parent_order_id)
    refunded = parent.refund_for_replacement(note)
    if refunded:
        current_domain.repository_for(Order).add(parent)
        logger.info("parent_order_refunded", order_id=str(parent.id), replacement_order_id=str(order.id))
    return refunded


def apply_status_change(order, change, catalogue) -> None:
    """Carry out the stock and sibling side effects of a status move."""
    StockLedger(catalogue).release_all(change.releases)
    if change.transition.refunds_parent:
        refund_parent(order, f"Replacement order {order.id} was cancelled")


@ordering.command_handler(part_of=Order)
class CancellationCommandHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        order = load_order(command.order_id)
        ensure_owner_or_operator(order, command.actor_id, command.actor_role)

        catalogue = CatalogueSession()
        change = order.cancel(command.reason)
        apply_status_change(order, change, catalogue)

        catalogue.flush()
        current_domain.repository_for(Order).add(order)

        logger.info("order_cancelled", order_id=str(order.id), released=change.releases)

    @handle(CancelItems)
    def cancel_items(self, command):
        order = load_order(command.order_id)
        ensure_owner_or_operator(order, command.actor_id, command.actor_role)

        catalogue = CatalogueSession()
        change = order.cancel_items(parse_items(command.items), command.reason)
        apply_status_change(order, change, catalogue)

        catalogue.flush()
        current_domain.repository_for(Order).add(order)

        logger.info(
            "order_items_cancelled",
            order_id=str(order.id),
            released=change.releases,
            status=order.status,
            total=order.total,
        )

    @handle(RefundOrder)
    def refund_order(self, command):
        ensure_operator(command.actor_role)
        order = load_order(command.order_id)
        order.refund(command.note)
        current_domain.repository_for(Order).add(order)

        logger.info("order_refunded", order_id=str(order.id), amount=order.total)
