"""FastAPI routes for the ordering engine.

Authentication happens upstream: the caller's identity and role arrive as
``X-Actor-Id`` / ``X-Actor-Role`` headers and are passed into every command,
where ownership and operator checks are made.
"""

import json

from fastapi import APIRouter, Depends, Header
from protean.utils.globals import current_domain

from ordering.api.schemas import (
    CancelItemsRequest,
    CancelOrderRequest,
    DecisionRequest,
    NoteRequest,
    OrderIdResponse,
    OrderListResponse,
    OrderResponse,
    PaymentConfirmedRequest,
    PaymentFailedRequest,
    PlaceOrderRequest,
    ReturnRequestBody,
    SetStatusRequest,
    StatusResponse,
)
from ordering.order.access import ActorRole
from ordering.order.cancellation import CancelItems, CancelOrder, RefundOrder
from ordering.order.creation import PlaceOrder
from ordering.order.payment import ConfirmPayment, FailPayment, RetryPayment
from ordering.order.queries import get_order_for, list_all_orders, list_orders_for
from ordering.order.returns import CompleteReturn, DecideReturn, RequestReturn, WithdrawReturnRequest
from ordering.order.status import SetOrderStatus


class Actor:
    def __init__(self, actor_id: str, role: str):
        self.id = actor_id
        self.role = role


def current_actor(
    x_actor_id: str = Header(),
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> Actor:
    return Actor(actor_id=x_actor_id, role=x_actor_role.upper())


def _items_json(items) -> str:
    return json.dumps([item.model_dump() for item in items])


order_router = APIRouter(prefix="/orders", tags=["orders"])


# ---------------------------------------------------------------------------
# Checkout and reads
# ---------------------------------------------------------------------------
@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def place_order(body: PlaceOrderRequest, actor: Actor = Depends(current_actor)) -> OrderIdResponse:
    command = PlaceOrder(
        customer_id=actor.id,
        items=_items_json(body.items),
        shipping_address=json.dumps(body.shipping_address.model_dump()),
        payment_method=body.payment_method,
    )
    order_id = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=order_id)


@order_router.get("/my", response_model=OrderListResponse)
async def my_orders(actor: Actor = Depends(current_actor)) -> OrderListResponse:
    return OrderListResponse(orders=[OrderResponse.from_order(order) for order in list_orders_for(actor.id)])


@order_router.get("/admin/all", response_model=OrderListResponse)
async def all_orders(actor: Actor = Depends(current_actor)) -> OrderListResponse:
    orders = list_all_orders(actor.role)
    return OrderListResponse(orders=[OrderResponse.from_order(order) for order in orders])


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, actor: Actor = Depends(current_actor)) -> OrderResponse:
    order = get_order_for(order_id, actor.id, actor.role)
    return OrderResponse.from_order(order)


# ---------------------------------------------------------------------------
# Status and cancellation
# ---------------------------------------------------------------------------
@order_router.put("/{order_id}/status", response_model=StatusResponse)
async def set_order_status(
    order_id: str, body: SetStatusRequest, actor: Actor = Depends(current_actor)
) -> StatusResponse:
    command = SetOrderStatus(
        order_id=order_id,
        status=body.status.upper(),
        note=body.note,
        actor_id=actor.id,
        actor_role=actor.role,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.put("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_order(
    order_id: str, body: CancelOrderRequest, actor: Actor = Depends(current_actor)
) -> StatusResponse:
    command = CancelOrder(order_id=order_id, reason=body.reason, actor_id=actor.id, actor_role=actor.role)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.put("/{order_id}/cancel-items", response_model=StatusResponse)
async def cancel_items(
    order_id: str, body: CancelItemsRequest, actor: Actor = Depends(current_actor)
) -> StatusResponse:
    command = CancelItems(
        order_id=order_id,
        items=_items_json(body.items),
        reason=body.reason,
        actor_id=actor.id,
        actor_role=actor.role,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.put("/{order_id}/refund", response_model=StatusResponse)
async def refund_order(order_id: str, body: NoteRequest, actor: Actor = Depends(current_actor)) -> StatusResponse:
    command = RefundOrder(order_id=order_id, note=body.note, actor_id=actor.id, actor_role=actor.role)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Return / replacement requests
# ---------------------------------------------------------------------------
@order_router.post("/{order_id}/return-request", status_code=201, response_model=StatusResponse)
async def request_return(
    order_id: str, body: ReturnRequestBody, actor: Actor = Depends(current_actor)
) -> StatusResponse:
    command = RequestReturn(
        order_id=order_id,
        request_type=body.request_type.upper(),
        reason=body.reason,
        note=body.note,
        items=_items_json(body.items),
        actor_id=actor.id,
        actor_role=actor.role,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.put("/{order_id}/return-request/decision", response_model=StatusResponse)
async def decide_return(
    order_id: str, body: DecisionRequest, actor: Actor = Depends(current_actor)
) -> StatusResponse:
    command = DecideReturn(
        order_id=order_id,
        decision=body.decision.upper(),
        note=body.note,
        actor_id=actor.id,
        actor_role=actor.role,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.delete("/{order_id}/return-request", response_model=StatusResponse)
async def withdraw_return_request(order_id: str, actor: Actor = Depends(current_actor)) -> StatusResponse:
    command = WithdrawReturnRequest(order_id=order_id, actor_id=actor.id, actor_role=actor.role)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.put("/{order_id}/return-request/complete", response_model=OrderIdResponse)
async def complete_return(
    order_id: str, body: NoteRequest, actor: Actor = Depends(current_actor)
) -> OrderIdResponse:
    """Complete an approved request. For a replacement the new order's id is returned."""
    command = CompleteReturn(order_id=order_id, note=body.note, actor_id=actor.id, actor_role=actor.role)
    result = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=result)


# ---------------------------------------------------------------------------
# Payment callbacks
# ---------------------------------------------------------------------------
@order_router.post("/{order_id}/payment/confirmed", response_model=StatusResponse)
async def payment_confirmed(order_id: str, body: PaymentConfirmedRequest) -> StatusResponse:
    command = ConfirmPayment(order_id=order_id, reference=body.reference)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.post("/{order_id}/payment/failed", response_model=StatusResponse)
async def payment_failed(order_id: str, body: PaymentFailedRequest) -> StatusResponse:
    command = FailPayment(order_id=order_id, reason=body.reason, abandoned=body.abandoned)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.post("/{order_id}/payment/retry", status_code=201, response_model=OrderIdResponse)
async def retry_payment(order_id: str, actor: Actor = Depends(current_actor)) -> OrderIdResponse:
    command = RetryPayment(order_id=order_id, actor_id=actor.id, actor_role=actor.role)
    result = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=result)
