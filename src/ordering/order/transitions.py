"""Order status machine.

All allowed moves live in one table keyed by
``(current status, requested status, is_replacement)``. Anything absent from
the table is rejected, with the reason chosen by guard priority:

1. DELIVERED only stays DELIVERED (RETURNED/REPLACED come from the return
   workflow, never from a direct request).
2. Terminal orders (CANCELLED, RETURNED, REPLACED) do not move again.
3. CANCELLED is entered only from PLACED or CONFIRMED.
"""

from dataclasses import dataclass
from enum import Enum

from ordering.errors import StateConflict


class OrderStatus(Enum):
    PLACED = "PLACED"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"
    REPLACED = "REPLACED"


TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.RETURNED, OrderStatus.REPLACED})
CANCELLABLE_STATUSES = frozenset({OrderStatus.PLACED, OrderStatus.CONFIRMED})


@dataclass(frozen=True)
class Transition:
    """Side effects that accompany a move into the target status."""

    releases_stock: bool = False
    counts_sales: bool = False
    refunds_parent: bool = False


def _effects(target, is_replacement):
    if target == OrderStatus.CANCELLED:
        return Transition(releases_stock=True, refunds_parent=is_replacement)
    if target == OrderStatus.DELIVERED:
        return Transition(counts_sales=True)
    return Transition()


_P, _C, _S, _D, _X = (
    OrderStatus.PLACED,
    OrderStatus.CONFIRMED,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
)

# Statuses an operator may request, per current status.
_REQUESTABLE = {
    _P: (_P, _C, _S, _D, _X),
    _C: (_P, _C, _S, _D, _X),
    _S: (_P, _C, _S, _D),
    _D: (_D,),
}

TRANSITIONS = {
    (current, target, is_replacement): _effects(target, is_replacement)
    for current, targets in _REQUESTABLE.items()
    for target in targets
    for is_replacement in (False, True)
}

# Moves made only by the return/replacement workflow.
WORKFLOW_TRANSITIONS = {
    (OrderStatus.DELIVERED, OrderStatus.RETURNED),
    (OrderStatus.DELIVERED, OrderStatus.REPLACED),
}


def check_transition(current, target, is_replacement=False) -> Transition:
    """Return the effects of moving ``current`` → ``target`` or raise ``StateConflict``."""
    current, target = OrderStatus(current), OrderStatus(target)

    transition = TRANSITIONS.get((current, target, bool(is_replacement)))
    if transition is not None:
        return transition

    if current == OrderStatus.DELIVERED:
        raise StateConflict("A delivered order can only be returned or replaced through a return request")
    if current in TERMINAL_STATUSES:
        raise StateConflict(f"Order is already {current.value.lower()} and cannot change status")
    if target == OrderStatus.CANCELLED:
        raise StateConflict("Shipped or delivered orders cannot be cancelled")
    if target in (OrderStatus.RETURNED, OrderStatus.REPLACED):
        raise StateConflict(f"{target.value} is set by the return workflow and cannot be requested directly")
    raise StateConflict(f"Cannot move an order from {current.value} to {target.value}")


def check_workflow_transition(current, target) -> None:
    current, target = OrderStatus(current), OrderStatus(target)
    if (current, target) not in WORKFLOW_TRANSITIONS:
        raise StateConflict(f"Cannot move an order from {current.value} to {target.value}")
