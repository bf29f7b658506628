"""Loading orders for commands and for readers."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.errors import OrderNotFound
from ordering.order.access import ensure_operator, ensure_owner_or_operator
from ordering.order.order import Order


def load_order(order_id) -> Order:
    try:
        return current_domain.repository_for(Order).get(str(order_id))
    except ObjectNotFoundError as exc:
        raise OrderNotFound(f"Order {order_id} not found") from exc


def get_order_for(order_id, actor_id, actor_role) -> Order:
    """Return the order if the actor owns it or is an operator."""
    order = load_order(order_id)
    ensure_owner_or_operator(order, actor_id, actor_role)
    return order


def list_orders_for(customer_id) -> list[Order]:
    """The customer's own orders, newest first."""
    repo = current_domain.repository_for(Order)
    return repo._dao.query.filter(customer_id=str(customer_id)).order_by("-placed_at").all().items


def list_all_orders(actor_role) -> list[Order]:
    """Every order, newest first. Operators only."""
    ensure_operator(actor_role)
    repo = current_domain.repository_for(Order)
    return repo._dao.query.order_by("-placed_at").all().items
