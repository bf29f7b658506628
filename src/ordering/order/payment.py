"""Payment provider callbacks and payment retry: commands and handlers.

The provider integration (order creation, signature checks) lives outside
this engine. It reports one of two outcomes per order: the payment was
confirmed, or it failed / was abandoned. A failure cancels the order and puts
its stock back in the same unit of work.
"""

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.access import ActorRole, ensure_owner_or_operator
from ordering.order.cancellation import apply_status_change
from ordering.order.order import Order
from ordering.order.queries import load_order
from ordering.stock.catalogue import CatalogueSession
from ordering.stock.ledger import StockLedger

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class ConfirmPayment:
    order_id = Identifier(required=True)
    reference = String(max_length=255)


@ordering.command(part_of="Order")
class FailPayment:
    order_id = Identifier(required=True)
    reason = String(max_length=500)
    abandoned = Boolean(default=False)


@ordering.command(part_of="Order")
class RetryPayment:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    actor_role = String(choices=ActorRole, default=ActorRole.CUSTOMER.value)


@ordering.command_handler(part_of=Order)
class PaymentCommandHandler:
    @handle(ConfirmPayment)
    def confirm_payment(self, command):
        order = load_order(command.order_id)
        if not order.confirm_payment(command.reference):
            logger.info("payment_already_confirmed", order_id=str(order.id))
            return order.status

        current_domain.repository_for(Order).add(order)
        logger.info("payment_confirmed", order_id=str(order.id), reference=command.reference)
        return order.status

    @handle(FailPayment)
    def fail_payment(self, command):
        order = load_order(command.order_id)

        catalogue = CatalogueSession()
        change = order.fail_payment(command.reason, abandoned=bool(command.abandoned))
        apply_status_change(order, change, catalogue)

        catalogue.flush()
        current_domain.repository_for(Order).add(order)

        logger.warning(
            "payment_failed",
            order_id=str(order.id),
            abandoned=bool(command.abandoned),
            status=order.status,
            released=change.releases,
        )
        return order.status

    @handle(RetryPayment)
    def retry_payment(self, command):
        failed = load_order(command.order_id)
        ensure_owner_or_operator(failed, command.actor_id, command.actor_role)
        failed.ensure_retryable()

        catalogue = CatalogueSession()
        ledger = StockLedger(catalogue)
        for line in failed.ordered_lines:
            ledger.reserve_product(line.product_id, line.quantity)

        order = Order.retry_of(failed)
        catalogue.flush()
        current_domain.repository_for(Order).add(order)

        logger.info("payment_retry_order_placed", order_id=str(order.id), failed_order_id=str(failed.id))
        return str(order.id)
