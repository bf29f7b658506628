"""Pydantic request/response schemas for the Ordering API.

These are external contracts, kept separate from the internal Protean
commands.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    name: str
    phone: str | None = None
    line1: str
    line2: str | None = None
    city: str
    state: str | None = None
    postal_code: str
    country: str = "IN"


class ItemQuantitySchema(BaseModel):
    product_id: str
    quantity: int


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    items: list[ItemQuantitySchema]
    shipping_address: AddressSchema
    payment_method: str = "COD"

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"product_id": "prod-001", "quantity": 2}],
                    "shipping_address": {
                        "name": "Asha Rao",
                        "line1": "12 MG Road",
                        "city": "Bengaluru",
                        "state": "KA",
                        "postal_code": "560001",
                    },
                    "payment_method": "ONLINE",
                }
            ]
        }
    }


class SetStatusRequest(BaseModel):
    status: str
    note: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class CancelItemsRequest(BaseModel):
    items: list[ItemQuantitySchema]
    reason: str | None = None


class ReturnRequestBody(BaseModel):
    request_type: str = Field(description="RETURN or REPLACEMENT")
    reason: str
    note: str | None = None
    items: list[ItemQuantitySchema]


class DecisionRequest(BaseModel):
    decision: str = Field(description="APPROVE or REJECT")
    note: str | None = None


class NoteRequest(BaseModel):
    note: str | None = None


class PaymentConfirmedRequest(BaseModel):
    reference: str | None = None


class PaymentFailedRequest(BaseModel):
    reason: str | None = None
    abandoned: bool = False


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------
class OrderIdResponse(BaseModel):
    order_id: str


class StatusResponse(BaseModel):
    status: str = "ok"


class OrderLineResponse(BaseModel):
    product_id: str
    product_kind: str
    title: str
    slug: str | None = None
    image_url: str | None = None
    unit_price: float
    strike_price: float | None = None
    offer_kind: str
    quantity: int
    cancelled_quantity: int
    returned_quantity: int
    replaced_quantity: int
    eligible_quantity: int


class HistoryEntryResponse(BaseModel):
    status: str
    note: str | None = None
    recorded_at: str


class PaymentResponse(BaseModel):
    method: str
    status: str
    reference: str | None = None
    note: str | None = None


class ReturnRequestResponse(BaseModel):
    request_type: str | None = None
    status: str
    reason: str | None = None
    items: list[ItemQuantitySchema] = []
    decided_by: str | None = None
    decision_note: str | None = None


class OrderResponse(BaseModel):
    order_id: str
    customer_id: str
    status: str
    total: float
    payment: PaymentResponse
    lines: list[OrderLineResponse]
    history: list[HistoryEntryResponse]
    return_request: ReturnRequestResponse
    is_replacement: bool
    parent_order_id: str | None = None
    replacement_order_id: str | None = None
    sales_counted: bool
    placed_at: str | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        request = order.return_request
        requested = request.requested_quantities() if request is not None else {}
        return cls(
            order_id=str(order.id),
            customer_id=str(order.customer_id),
            status=order.status,
            total=order.total,
            payment=PaymentResponse(
                method=order.payment.method,
                status=order.payment.status,
                reference=order.payment.reference,
                note=order.payment.note,
            ),
            lines=[
                OrderLineResponse(
                    product_id=str(line.product_id),
                    product_kind=line.product_kind,
                    title=line.title,
                    slug=line.slug,
                    image_url=line.image_url,
                    unit_price=line.unit_price,
                    strike_price=line.strike_price,
                    offer_kind=line.offer_kind,
                    quantity=line.quantity,
                    cancelled_quantity=line.cancelled_quantity or 0,
                    returned_quantity=line.returned_quantity or 0,
                    replaced_quantity=line.replaced_quantity or 0,
                    eligible_quantity=line.eligible_quantity,
                )
                for line in order.ordered_lines
            ],
            history=[
                HistoryEntryResponse(status=entry.status, note=entry.note, recorded_at=str(entry.recorded_at))
                for entry in order.timeline
            ],
            return_request=ReturnRequestResponse(
                request_type=request.request_type if request is not None else None,
                status=order.request_status,
                reason=request.reason if request is not None else None,
                items=[ItemQuantitySchema(product_id=pid, quantity=qty) for pid, qty in requested.items()],
                decided_by=request.decided_by if request is not None else None,
                decision_note=request.decision_note if request is not None else None,
            ),
            is_replacement=bool(order.is_replacement),
            parent_order_id=str(order.parent_order_id) if order.parent_order_id else None,
            replacement_order_id=str(order.replacement_order_id) if order.replacement_order_id else None,
            sales_counted=bool(order.sales_counted),
            placed_at=str(order.placed_at) if order.placed_at else None,
        )


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
