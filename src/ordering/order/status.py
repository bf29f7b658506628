"""Operator status updates: command and handler."""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.access import ActorRole, ensure_operator
from ordering.order.cancellation import apply_status_change
from ordering.order.order import Order
from ordering.order.queries import load_order
from ordering.order.sales import count_sales
from ordering.order.transitions import OrderStatus
from ordering.stock.catalogue import CatalogueSession

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class SetOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, choices=OrderStatus)
    note = String(max_length=500)
    actor_id = Identifier(required=True)
    actor_role = String(choices=ActorRole, default=ActorRole.OPERATOR.value)


@ordering.command_handler(part_of=Order)
class OrderStatusCommandHandler:
    @handle(SetOrderStatus)
    def set_status(self, command):
        ensure_operator(command.actor_role)
        order = load_order(command.order_id)
        previous = order.status

        catalogue = CatalogueSession()
        change = order.change_status(command.status, command.note)
        apply_status_change(order, change, catalogue)
        if change.transition.counts_sales:
            count_sales(order, catalogue)

        catalogue.flush()
        current_domain.repository_for(Order).add(order)

        logger.info(
            "order_status_changed",
            order_id=str(order.id),
            previous_status=previous,
            status=order.status,
            actor_id=str(command.actor_id),
        )
        return order.status
