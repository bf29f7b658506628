"""Who may act on an order."""

from enum import Enum

from ordering.errors import Forbidden


class ActorRole(Enum):
    CUSTOMER = "CUSTOMER"
    OPERATOR = "OPERATOR"
    SYSTEM = "SYSTEM"


def is_operator(actor_role) -> bool:
    return actor_role in (ActorRole.OPERATOR.value, ActorRole.SYSTEM.value)


def ensure_operator(actor_role) -> None:
    if not is_operator(actor_role):
        raise Forbidden("Only operators may perform this action")


def ensure_owner_or_operator(order, actor_id, actor_role) -> None:
    if is_operator(actor_role):
        return
    if actor_id is None or str(actor_id) != str(order.customer_id):
        raise Forbidden("You do not have access to this order")
