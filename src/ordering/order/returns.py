"""Return and replacement requests: commands and handlers.

A customer opens a request, an operator approves or rejects it, and an
operator completes an approved request. Completing a RETURN restocks the
returned units and reverses their sales; completing a REPLACEMENT issues a
linked zero-priced order (see ``ordering.order.replacement``).
"""

from enum import Enum

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.access import ActorRole, ensure_operator, ensure_owner_or_operator
from ordering.order.cancellation import refund_parent
from ordering.order.order import Order, RequestType, parse_items
from ordering.order.queries import load_order
from ordering.order.replacement import issue_replacement
from ordering.order.sales import roll_back_sales
from ordering.order.transitions import OrderStatus
from ordering.stock.catalogue import CatalogueSession
from ordering.stock.ledger import StockLedger

logger = structlog.get_logger(__name__)


class Decision(Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


@ordering.command(part_of="Order")
class RequestReturn:
    order_id = Identifier(required=True)
    request_type = String(required=True, choices=RequestType)
    reason = String(required=True, max_length=500)
    note = String(max_length=1000)
    items = Text(required=True)  # JSON: list of {product_id, quantity}
    actor_id = Identifier(required=True)
    actor_role = String(choices=ActorRole, default=ActorRole.CUSTOMER.value)


@ordering.command(part_of="Order")
class DecideReturn:
    order_id = Identifier(required=True)
    decision = String(required=True, choices=Decision)
    note = String(max_length=1000)
    actor_id = Identifier(required=True)
    actor_role = String(choices=ActorRole, default=ActorRole.OPERATOR.value)


@ordering.command(part_of="Order")
class WithdrawReturnRequest:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    actor_role = String(choices=ActorRole, default=ActorRole.CUSTOMER.value)


@ordering.command(part_of="Order")
class CompleteReturn:
    order_id = Identifier(required=True)
    note = String(max_length=1000)
    actor_id = Identifier(required=True)
    actor_role = String(choices=ActorRole, default=ActorRole.OPERATOR.value)


@ordering.command_handler(part_of=Order)
class ReturnCommandHandler:
    @handle(RequestReturn)
    def request_return(self, command):
        order = load_order(command.order_id)
        ensure_owner_or_operator(order, command.actor_id, command.actor_role)

        order.request_return(
            command.request_type,
            command.reason,
            parse_items(command.items),
            note=command.note,
        )
        current_domain.repository_for(Order).add(order)

        logger.info("return_requested", order_id=str(order.id), request_type=command.request_type)

    @handle(DecideReturn)
    def decide_return(self, command):
        ensure_operator(command.actor_role)
        order = load_order(command.order_id)

        order.decide_return(command.decision == Decision.APPROVE.value, decided_by=command.actor_id, note=command.note)
        current_domain.repository_for(Order).add(order)

        logger.info("return_decided", order_id=str(order.id), decision=order.return_request.status)

    @handle(WithdrawReturnRequest)
    def withdraw_request(self, command):
        order = load_order(command.order_id)
        ensure_owner_or_operator(order, command.actor_id, command.actor_role)

        order.withdraw_return_request()
        current_domain.repository_for(Order).add(order)

        logger.info("return_request_withdrawn", order_id=str(order.id))

    @handle(CompleteReturn)
    def complete_return(self, command):
        ensure_operator(command.actor_role)
        order = load_order(command.order_id)

        catalogue = CatalogueSession()
        ledger = StockLedger(catalogue)

        request = order.return_request
        if request is not None and request.request_type == RequestType.REPLACEMENT.value:
            replacement = issue_replacement(order, command.note, catalogue, ledger)
            catalogue.flush()
            current_domain.repository_for(Order).add(order)
            return str(replacement.id)

        returned = order.complete_return(command.note)
        ledger.release_all(returned)
        roll_back_sales(order, catalogue)
        if order.is_replacement and order.status == OrderStatus.RETURNED.value:
            refund_parent(order, f"Replacement order {order.id} was returned")

        catalogue.flush()
        current_domain.repository_for(Order).add(order)

        logger.info("return_completed", order_id=str(order.id), items=returned, status=order.status)
        return str(order.id)
