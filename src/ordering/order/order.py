"""Order aggregate: the order document and its guarded lifecycle.

The aggregate owns every rule that can be decided from the order alone:
status guards, line-level partial-fulfillment counters, payment settlement,
the return/replacement request and the sales bookkeeping. Stock and sold-count
movements on products are carried out by the command handlers, which take the
quantities returned by these methods and hand them to the Stock and Sales
ledgers inside the same unit of work.

Line counters:
    cancelled_quantity + returned_quantity + replaced_quantity <= quantity
    eligible = quantity - cancelled - returned - replaced
    total    = Σ (quantity - cancelled) × unit_price
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from ordering.domain import ordering
from ordering.errors import DuplicateAction, InvalidQuantity, InvalidRequest, StateConflict
from ordering.order.events import (
    OrderCancelled,
    OrderItemsCancelled,
    OrderItemsReturned,
    OrderPlaced,
    OrderRefunded,
    OrderStatusChanged,
    PaymentConfirmed,
    PaymentFailed,
    ReplacementIssued,
    ReturnDecided,
    ReturnRequested,
    ReturnRequestWithdrawn,
    SalesCounted,
    SalesRolledBack,
)
from ordering.order.transitions import (
    CANCELLABLE_STATUSES,
    TERMINAL_STATUSES,
    OrderStatus,
    Transition,
    check_transition,
    check_workflow_transition,
)
from ordering.stock.pricing import OfferKind
from ordering.stock.product import ProductKind


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentMethod(Enum):
    COD = "COD"
    ONLINE = "ONLINE"
    REPLACEMENT = "REPLACEMENT"


# Method names used by payment front-ends that all settle online.
PAYMENT_METHOD_ALIASES = {
    "UPI": PaymentMethod.ONLINE.value,
    "CARD": PaymentMethod.ONLINE.value,
    "RAZORPAY": PaymentMethod.ONLINE.value,
}


class PaymentStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class RequestType(Enum):
    RETURN = "RETURN"
    REPLACEMENT = "REPLACEMENT"


class RequestStatus(Enum):
    NONE = "NONE"
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class StatusChange:
    """Outcome of a status move: its effects and the stock to put back."""

    transition: Transition
    releases: list = field(default_factory=list)  # [(product_id, quantity)]


def aggregate_quantities(items) -> dict:
    """Collapse ``[{product_id, quantity}, ...]`` into ``{product_id: total}``.

    Raises ``InvalidRequest`` for an empty list or a missing product and
    ``InvalidQuantity`` for anything but a positive whole quantity.
    """
    if not items:
        raise InvalidRequest("At least one item is required", field="items")

    totals = {}
    for item in items:
        product_id = item.get("product_id") if isinstance(item, dict) else None
        if not product_id:
            raise InvalidRequest("Each item needs a product_id", field="items")

        quantity = item.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantity(f"Quantity for product {product_id} must be a positive whole number")

        key = str(product_id)
        totals[key] = totals.get(key, 0) + quantity
    return totals


def parse_items(raw) -> dict:
    """Decode a JSON item list (or an already decoded one) into ``{product_id: quantity}``."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise InvalidRequest("Items must be a JSON list", field="items") from exc
    if raw is not None and not isinstance(raw, list):
        raise InvalidRequest("Items must be a list", field="items")
    return aggregate_quantities(raw)


def normalize_payment_method(payment_method) -> str:
    method = str(payment_method or "").upper()
    method = PAYMENT_METHOD_ALIASES.get(method, method)
    if method not in (PaymentMethod.COD.value, PaymentMethod.ONLINE.value):
        raise InvalidRequest(f"Unsupported payment method {payment_method}", field="payment_method")
    return method


def _as_items(quantities) -> str:
    return json.dumps([{"product_id": str(pid), "quantity": qty} for pid, qty in quantities])


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class ShippingAddress:
    """Delivery address captured when the order was placed."""

    name = String(required=True, max_length=150)
    phone = String(max_length=20)
    line1 = String(required=True, max_length=255)
    line2 = String(max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(max_length=100, default="IN")


@ordering.value_object(part_of="Order")
class Payment:
    method = String(required=True, choices=PaymentMethod)
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    reference = String(max_length=255)
    note = String(max_length=500)


@ordering.value_object(part_of="Order")
class ReturnRequest:
    """The order's single return/replacement request slot."""

    request_type = String(choices=RequestType)
    status = String(choices=RequestStatus, default=RequestStatus.NONE.value)
    reason = String(max_length=500)
    note = String(max_length=1000)
    items = Text()  # JSON: list of {product_id, quantity}
    requested_at = DateTime()
    decided_at = DateTime()
    decided_by = String(max_length=255)
    decision_note = String(max_length=1000)
    completed_at = DateTime()

    def requested_quantities(self) -> dict:
        items = json.loads(self.items) if self.items else []
        return {str(item["product_id"]): item["quantity"] for item in items}


_PAYMENT_FIELDS = ("method", "status", "reference", "note")
_REQUEST_FIELDS = (
    "request_type",
    "status",
    "reason",
    "note",
    "items",
    "requested_at",
    "decided_at",
    "decided_by",
    "decision_note",
    "completed_at",
)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderLine:
    product_id = Identifier(required=True)
    product_kind = String(choices=ProductKind, default=ProductKind.SINGLE.value)
    title = String(required=True, max_length=255)
    slug = String(max_length=255)
    image_url = String(max_length=500)
    unit_price = Float(required=True, min_value=0.0)
    strike_price = Float(min_value=0.0)
    offer_kind = String(choices=OfferKind, default=OfferKind.NONE.value)
    quantity = Integer(required=True, min_value=1)
    cancelled_quantity = Integer(default=0)
    returned_quantity = Integer(default=0)
    replaced_quantity = Integer(default=0)
    position = Integer(default=0)

    @property
    def billable_quantity(self) -> int:
        return self.quantity - (self.cancelled_quantity or 0)

    @property
    def eligible_quantity(self) -> int:
        return (
            self.quantity
            - (self.cancelled_quantity or 0)
            - (self.returned_quantity or 0)
            - (self.replaced_quantity or 0)
        )

    def snapshot(self) -> dict:
        return {
            "product_id": str(self.product_id),
            "product_kind": self.product_kind,
            "title": self.title,
            "slug": self.slug,
            "image_url": self.image_url,
            "unit_price": self.unit_price,
            "strike_price": self.strike_price,
            "offer_kind": self.offer_kind,
        }


@ordering.entity(part_of="Order")
class StatusEntry:
    """One append-only line of the order's history."""

    status = String(required=True, max_length=50)
    note = String(max_length=1000)
    recorded_at = DateTime(required=True)
    sequence = Integer(required=True)


@ordering.entity(part_of="Order")
class SalesEntry:
    """What this order added to one product's sold-count, and how much was reversed."""

    product_id = Identifier(required=True)
    counted_quantity = Integer(default=0)
    returned_before_count = Integer(default=0)
    rolled_back_quantity = Integer(default=0)


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    customer_id = Identifier(required=True)
    lines = HasMany(OrderLine)
    shipping_address = ValueObject(ShippingAddress)
    total = Float(default=0.0)
    payment = ValueObject(Payment)
    status = String(choices=OrderStatus, default=OrderStatus.PLACED.value)
    history = HasMany(StatusEntry)
    return_request = ValueObject(ReturnRequest)
    parent_order_id = Identifier()
    replacement_order_id = Identifier()
    is_replacement = Boolean(default=False)
    sales_counted = Boolean(default=False)
    sales_entries = HasMany(SalesEntry)
    placed_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def line_quantities_never_exceed_ordered(self):
        for line in self.lines or []:
            used = (line.cancelled_quantity or 0) + (line.returned_quantity or 0) + (line.replaced_quantity or 0)
            if used > line.quantity:
                raise ValidationError({"lines": [f"Line for {line.title} accounts for more units than were ordered"]})

    # -------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, customer_id, lines, shipping_address, payment_method):
        """Create a PLACED order from priced line snapshots.

        ``lines`` carries one dict per product: the snapshot produced by
        ``ordering.stock.pricing.line_snapshot`` plus ``quantity``.
        """
        method = normalize_payment_method(payment_method)

        return cls._open(
            customer_id=customer_id,
            lines=lines,
            shipping_address=shipping_address,
            payment=Payment(method=method, status=PaymentStatus.PENDING.value),
            status=OrderStatus.PLACED,
            note="Order placed",
        )

    @classmethod
    def replacement_for(cls, parent, quantities, note=None):
        """A zero-priced CONFIRMED order shipping ``quantities`` of the parent's lines again."""
        lines = []
        for line in parent.ordered_lines:
            quantity = quantities.get(str(line.product_id))
            if quantity:
                lines.append({**line.snapshot(), "unit_price": 0.0, "quantity": quantity})

        return cls._open(
            customer_id=parent.customer_id,
            lines=lines,
            shipping_address=parent.shipping_address,
            payment=Payment(
                method=PaymentMethod.REPLACEMENT.value,
                status=PaymentStatus.PAID.value,
                note=f"Replacement for order {parent.id}",
            ),
            status=OrderStatus.CONFIRMED,
            note=note or f"Replacement for order {parent.id}",
            parent_order_id=parent.id,
            is_replacement=True,
        )

    @classmethod
    def retry_of(cls, failed):
        """A fresh PLACED order repeating a cancelled order whose online payment failed."""
        failed.ensure_retryable()
        lines = [{**line.snapshot(), "quantity": line.quantity} for line in failed.ordered_lines]

        return cls._open(
            customer_id=failed.customer_id,
            lines=lines,
            shipping_address=failed.shipping_address,
            payment=Payment(
                method=PaymentMethod.ONLINE.value,
                status=PaymentStatus.PENDING.value,
                note=f"Payment retry of order {failed.id}",
            ),
            status=OrderStatus.PLACED,
            note=f"Payment retry of order {failed.id}",
        )

    @classmethod
    def _open(cls, customer_id, lines, shipping_address, payment, status, note, **linkage):
        now = datetime.now(UTC)
        if isinstance(shipping_address, dict):
            shipping_address = ShippingAddress(**shipping_address)

        order_lines = [OrderLine(position=position, **data) for position, data in enumerate(lines)]
        order = cls(
            customer_id=customer_id,
            lines=order_lines,
            shipping_address=shipping_address,
            payment=payment,
            status=status.value,
            return_request=ReturnRequest(status=RequestStatus.NONE.value),
            history=[StatusEntry(status=status.value, note=note, recorded_at=now, sequence=1)],
            total=cls._total_of(order_lines),
            placed_at=now,
            updated_at=now,
            **linkage,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=str(customer_id),
                lines=json.dumps(
                    [
                        {"product_id": str(line.product_id), "quantity": line.quantity, "unit_price": line.unit_price}
                        for line in order_lines
                    ]
                ),
                total=order.total,
                payment_method=payment.method,
                status=status.value,
                is_replacement=bool(linkage.get("is_replacement")),
                parent_order_id=str(linkage["parent_order_id"]) if linkage.get("parent_order_id") else None,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def ordered_lines(self) -> list:
        return sorted(self.lines or [], key=lambda line: line.position or 0)

    @property
    def timeline(self) -> list:
        return sorted(self.history or [], key=lambda entry: entry.sequence)

    @property
    def request_status(self) -> str:
        if self.return_request is None or not self.return_request.status:
            return RequestStatus.NONE.value
        return self.return_request.status

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATUSES

    def line_for(self, product_id):
        return next((line for line in self.lines or [] if str(line.product_id) == str(product_id)), None)

    @staticmethod
    def _total_of(lines) -> float:
        return round(sum(line.billable_quantity * line.unit_price for line in lines), 2)

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------
    def _record(self, status, note=None):
        now = datetime.now(UTC)
        self.add_history(
            StatusEntry(
                status=status,
                note=note,
                recorded_at=now,
                sequence=len(self.history or []) + 1,
            )
        )
        self.updated_at = now

    def _recalculate_total(self):
        self.total = self._total_of(self.lines or [])

    def _update_payment(self, **changes):
        values = {name: getattr(self.payment, name) for name in _PAYMENT_FIELDS}
        values.update(changes)
        self.payment = Payment(**values)

    def _update_request(self, **changes):
        values = {name: getattr(self.return_request, name, None) for name in _REQUEST_FIELDS}
        values.update(changes)
        self.return_request = ReturnRequest(**values)

    def _settle_payment_on_cancel(self):
        """COD, replacement and unpaid online payments fail with the order."""
        method, status = self.payment.method, self.payment.status
        if method in (PaymentMethod.COD.value, PaymentMethod.REPLACEMENT.value):
            self._update_payment(status=PaymentStatus.FAILED.value)
        elif status == PaymentStatus.PENDING.value:
            self._update_payment(status=PaymentStatus.FAILED.value)

    def _enter_cancelled(self, note):
        releases = []
        for line in self.ordered_lines:
            remaining = line.quantity - (line.cancelled_quantity or 0)
            if remaining > 0:
                releases.append((str(line.product_id), remaining))
                line.cancelled_quantity = line.quantity

        self.status = OrderStatus.CANCELLED.value
        self._recalculate_total()
        self._settle_payment_on_cancel()
        self._record(OrderStatus.CANCELLED.value, note)

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                reason=note,
                released=_as_items(releases),
                payment_status=self.payment.status,
                cancelled_at=self.updated_at,
            )
        )
        return releases

    def _checked_quantities(self, quantities, available, action):
        """Resolve requested quantities against lines, all-or-nothing."""
        resolved = []
        for product_id, quantity in quantities.items():
            line = self.line_for(product_id)
            if line is None:
                raise InvalidRequest("Some items not found in order", field="items")
            limit = available(line)
            if quantity > limit:
                raise StateConflict(f"Only {limit} unit(s) of {line.title} can be {action}")
            resolved.append((line, quantity))
        return resolved

    # -------------------------------------------------------------------
    # Status moves
    # -------------------------------------------------------------------
    def change_status(self, target, note=None) -> StatusChange:
        """Operator-requested move, guarded by the transition table."""
        transition = check_transition(self.status, target, self.is_replacement)
        target = OrderStatus(target)

        if transition.releases_stock:
            return StatusChange(transition, self._enter_cancelled(note or "Cancelled by operator"))

        previous = self.status
        self.status = target.value
        if (
            target == OrderStatus.DELIVERED
            and self.payment.method == PaymentMethod.COD.value
            and self.payment.status != PaymentStatus.PAID.value
        ):
            self._update_payment(status=PaymentStatus.PAID.value, note="Collected on delivery")
        self._record(target.value, note)

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                status=target.value,
                note=note,
                changed_at=self.updated_at,
            )
        )
        return StatusChange(transition)

    def cancel(self, reason=None) -> StatusChange:
        transition = check_transition(self.status, OrderStatus.CANCELLED, self.is_replacement)
        return StatusChange(transition, self._enter_cancelled(reason or "Cancelled by customer"))

    def cancel_items(self, quantities, reason=None) -> StatusChange:
        """Cancel some units of a PLACED/CONFIRMED order.

        Returns the units to restock. When nothing is left the order itself
        becomes CANCELLED.
        """
        if OrderStatus(self.status) not in CANCELLABLE_STATUSES:
            raise StateConflict("Items can only be cancelled before the order ships")

        resolved = self._checked_quantities(
            quantities,
            lambda line: line.quantity - (line.cancelled_quantity or 0),
            "cancelled",
        )

        releases = []
        for line, quantity in resolved:
            line.cancelled_quantity = (line.cancelled_quantity or 0) + quantity
            releases.append((str(line.product_id), quantity))

        self._recalculate_total()
        self._record("PARTIAL_CANCEL", reason)

        fully_cancelled = all(line.cancelled_quantity >= line.quantity for line in self.lines)
        transition = Transition()
        if fully_cancelled:
            transition = check_transition(self.status, OrderStatus.CANCELLED, self.is_replacement)
            self.status = OrderStatus.CANCELLED.value
            self._settle_payment_on_cancel()
            self._record(OrderStatus.CANCELLED.value, "All items cancelled")

        self.raise_(
            OrderItemsCancelled(
                order_id=str(self.id),
                items=_as_items(releases),
                total=self.total,
                reason=reason,
                fully_cancelled=fully_cancelled,
            )
        )
        return StatusChange(transition, releases)

    # -------------------------------------------------------------------
    # Return / replacement requests
    # -------------------------------------------------------------------
    def request_return(self, request_type, reason, quantities, note=None):
        request_type = RequestType(request_type)

        if request_type == RequestType.REPLACEMENT and self.replacement_order_id:
            raise DuplicateAction("A replacement order already exists for this order")
        if self.status == OrderStatus.CANCELLED.value:
            raise StateConflict("Cancelled orders cannot be returned or replaced")
        if self.is_terminal:
            raise StateConflict(f"Order is already {self.status.lower()}")
        if self.status != OrderStatus.DELIVERED.value:
            raise StateConflict("Only delivered orders can be returned or replaced")
        if request_type == RequestType.REPLACEMENT and self.is_replacement:
            raise StateConflict("A replacement order cannot be replaced again")
        if self.request_status != RequestStatus.NONE.value:
            raise DuplicateAction(f"A {self.return_request.request_type.lower()} request already exists for this order")
        if not any(line.eligible_quantity > 0 for line in self.lines):
            raise StateConflict("No items are eligible for return or replacement")

        resolved = self._checked_quantities(quantities, lambda line: line.eligible_quantity, "requested")

        now = datetime.now(UTC)
        items = _as_items((line.product_id, quantity) for line, quantity in resolved)
        self.return_request = ReturnRequest(
            request_type=request_type.value,
            status=RequestStatus.REQUESTED.value,
            reason=reason,
            note=note,
            items=items,
            requested_at=now,
        )
        self._record(f"RR_REQUESTED_{request_type.value}", reason)

        self.raise_(
            ReturnRequested(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                request_type=request_type.value,
                reason=reason,
                items=items,
                requested_at=now,
            )
        )

    def decide_return(self, approve, decided_by=None, note=None):
        if self.request_status != RequestStatus.REQUESTED.value:
            raise StateConflict("Only a pending request can be approved or rejected")

        decision = RequestStatus.APPROVED if approve else RequestStatus.REJECTED
        now = datetime.now(UTC)
        self._update_request(
            status=decision.value,
            decided_at=now,
            decided_by=decided_by,
            decision_note=note,
        )
        self._record(f"RR_{decision.value}", note)

        self.raise_(
            ReturnDecided(
                order_id=str(self.id),
                request_type=self.return_request.request_type,
                decision=decision.value,
                decided_by=str(decided_by) if decided_by else None,
                note=note,
                decided_at=now,
            )
        )

    def withdraw_return_request(self):
        if self.request_status == RequestStatus.NONE.value:
            raise StateConflict("There is no return request to withdraw")
        if self.request_status != RequestStatus.REQUESTED.value:
            raise StateConflict("Only requests awaiting a decision can be withdrawn")

        request_type = self.return_request.request_type
        self.return_request = ReturnRequest(status=RequestStatus.NONE.value)
        self._record(f"RR_CANCELLED_{request_type}", "Request withdrawn by customer")

        self.raise_(
            ReturnRequestWithdrawn(
                order_id=str(self.id),
                request_type=request_type,
                withdrawn_at=self.updated_at,
            )
        )

    def _ensure_completable(self, request_type):
        if request_type == RequestType.REPLACEMENT and self.replacement_order_id:
            raise DuplicateAction("A replacement order already exists for this order")
        if self.is_terminal:
            raise StateConflict(f"Order is already {self.status.lower()}")
        if self.status != OrderStatus.DELIVERED.value:
            raise StateConflict("Only delivered orders can be returned or replaced")
        if self.request_status != RequestStatus.APPROVED.value:
            raise StateConflict("Only an approved request can be completed")
        if self.return_request.request_type != request_type.value:
            raise StateConflict(f"The open request is not a {request_type.value.lower()}")

    def complete_return(self, note=None) -> list:
        """Mark the approved quantities returned. Returns ``[(product_id, quantity)]`` to restock."""
        self._ensure_completable(RequestType.RETURN)

        resolved = self._checked_quantities(
            self.return_request.requested_quantities(),
            lambda line: line.eligible_quantity,
            "returned",
        )

        returned = []
        for line, quantity in resolved:
            line.returned_quantity = (line.returned_quantity or 0) + quantity
            returned.append((str(line.product_id), quantity))

        now = datetime.now(UTC)
        self._update_request(status=RequestStatus.COMPLETED.value, completed_at=now, decision_note=note)

        fully_returned = all((line.returned_quantity or 0) == line.quantity for line in self.lines)
        if fully_returned:
            check_workflow_transition(self.status, OrderStatus.RETURNED)
            self.status = OrderStatus.RETURNED.value
            self._record(OrderStatus.RETURNED.value, note)
            if not self.is_replacement and self.payment.status == PaymentStatus.PAID.value:
                self._mark_refunded("Refund issued for returned order")
        else:
            self._record("PARTIAL_RETURNED", note)

        self.raise_(
            OrderItemsReturned(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                items=_as_items(returned),
                fully_returned=fully_returned,
                completed_at=now,
            )
        )
        return returned

    def replacement_quantities(self) -> dict:
        """Validate the approved replacement and return ``{product_id: quantity}`` to ship again."""
        self._ensure_completable(RequestType.REPLACEMENT)

        resolved = self._checked_quantities(
            self.return_request.requested_quantities(),
            lambda line: line.eligible_quantity,
            "replaced",
        )
        return {str(line.product_id): quantity for line, quantity in resolved}

    def record_replacement(self, replacement, quantities, note=None):
        """Link the issued replacement order and count the replaced units on this order."""
        if self.replacement_order_id:
            raise DuplicateAction("A replacement order already exists for this order")

        resolved = self._checked_quantities(quantities, lambda line: line.eligible_quantity, "replaced")
        for line, quantity in resolved:
            line.replaced_quantity = (line.replaced_quantity or 0) + quantity

        now = datetime.now(UTC)
        self.replacement_order_id = replacement.id
        self._update_request(status=RequestStatus.COMPLETED.value, completed_at=now, decision_note=note)
        self._update_payment(note="Replacement issued instead of refund")

        fully_replaced = all((line.replaced_quantity or 0) == line.quantity for line in self.lines)
        if fully_replaced:
            check_workflow_transition(self.status, OrderStatus.REPLACED)
            self.status = OrderStatus.REPLACED.value
            self._record(OrderStatus.REPLACED.value, note)
        else:
            self._record("PARTIAL_REPLACED", note)

        self.raise_(
            ReplacementIssued(
                order_id=str(self.id),
                replacement_order_id=str(replacement.id),
                items=_as_items(quantities.items()),
                fully_replaced=fully_replaced,
                issued_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def confirm_payment(self, reference=None) -> bool:
        """Mark PAID and advance PLACED → CONFIRMED. Returns False if already paid."""
        if self.payment.status == PaymentStatus.PAID.value:
            return False
        if self.status == OrderStatus.CANCELLED.value:
            raise StateConflict("Payment cannot be confirmed for a cancelled order")
        if self.is_terminal or self.payment.status == PaymentStatus.REFUNDED.value:
            raise StateConflict(f"Payment cannot be confirmed for a {self.status.lower()} order")

        self._update_payment(status=PaymentStatus.PAID.value, reference=reference)
        self._record("PAID", f"Payment reference {reference}" if reference else None)

        if self.status == OrderStatus.PLACED.value:
            self.status = OrderStatus.CONFIRMED.value
            self._record(OrderStatus.CONFIRMED.value, "Confirmed after payment")

        self.raise_(PaymentConfirmed(order_id=str(self.id), reference=reference, paid_at=self.updated_at))
        return True

    def fail_payment(self, reason=None, abandoned=False) -> StatusChange:
        """Record a failed or abandoned payment and cancel the order if it has not shipped."""
        if self.payment.status == PaymentStatus.PAID.value:
            raise StateConflict("Paid orders cannot be cancelled by a payment failure")

        self._update_payment(status=PaymentStatus.FAILED.value)
        self._record("PAYMENT_CANCELLED" if abandoned else "PAYMENT_FAILED", reason)
        self.raise_(
            PaymentFailed(
                order_id=str(self.id),
                reason=reason,
                abandoned=abandoned,
                failed_at=self.updated_at,
            )
        )

        if OrderStatus(self.status) not in CANCELLABLE_STATUSES:
            return StatusChange(Transition())

        transition = check_transition(self.status, OrderStatus.CANCELLED, self.is_replacement)
        return StatusChange(transition, self._enter_cancelled(reason or "Payment failed"))

    def ensure_retryable(self):
        if (
            self.status != OrderStatus.CANCELLED.value
            or self.payment.status != PaymentStatus.FAILED.value
            or self.payment.method != PaymentMethod.ONLINE.value
        ):
            raise StateConflict("Only cancelled orders with a failed online payment can be retried")

    def _mark_refunded(self, note):
        self._update_payment(status=PaymentStatus.REFUNDED.value)
        self._record(PaymentStatus.REFUNDED.value, note)
        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                amount=self.total,
                note=note,
                refunded_at=self.updated_at,
            )
        )

    def refund(self, note=None):
        """Operator refund of a cancelled or returned order that was paid."""
        if self.payment.status == PaymentStatus.REFUNDED.value:
            raise DuplicateAction("Order has already been refunded")
        if self.status not in (OrderStatus.CANCELLED.value, OrderStatus.RETURNED.value):
            raise StateConflict("Only cancelled or returned orders can be refunded")
        if self.payment.status != PaymentStatus.PAID.value:
            raise StateConflict("Only paid orders can be refunded")

        self._mark_refunded(note or "Refunded by operator")

    def refund_for_replacement(self, note) -> bool:
        """Refund this parent because its replacement was cancelled or returned. Idempotent."""
        if self.payment.status != PaymentStatus.PAID.value:
            return False
        self._mark_refunded(note)
        return True

    # -------------------------------------------------------------------
    # Sales bookkeeping
    # -------------------------------------------------------------------
    @property
    def awaiting_sales_count(self) -> bool:
        return (
            not self.sales_counted
            and self.status == OrderStatus.DELIVERED.value
            and self.payment.status == PaymentStatus.PAID.value
        )

    def sales_contributions(self) -> dict:
        """Active quantity per product at this instant."""
        contributions = {}
        for line in self.ordered_lines:
            if line.eligible_quantity > 0:
                contributions[str(line.product_id)] = line.eligible_quantity
        return contributions

    def mark_sales_counted(self, contributions):
        self.sales_counted = True
        for product_id, quantity in contributions.items():
            line = self.line_for(product_id)
            self.add_sales_entries(
                SalesEntry(
                    product_id=product_id,
                    counted_quantity=quantity,
                    returned_before_count=(line.returned_quantity or 0) if line else 0,
                    rolled_back_quantity=0,
                )
            )
        self.raise_(SalesCounted(order_id=str(self.id), items=_as_items(contributions.items())))

    def pending_sales_rollbacks(self) -> dict:
        """Per product, counted units that have since been returned but not yet reversed."""
        if not self.sales_counted:
            return {}

        due = {}
        for entry in self.sales_entries or []:
            line = self.line_for(entry.product_id)
            if line is None:
                continue
            returned_since = (line.returned_quantity or 0) - (entry.returned_before_count or 0)
            outstanding = min(returned_since, entry.counted_quantity or 0) - (entry.rolled_back_quantity or 0)
            if outstanding > 0:
                due[str(entry.product_id)] = outstanding
        return due

    def record_sales_rollback(self, rollbacks):
        for product_id, quantity in rollbacks.items():
            entry = next(e for e in self.sales_entries if str(e.product_id) == str(product_id))
            entry.rolled_back_quantity = (entry.rolled_back_quantity or 0) + quantity
        if rollbacks:
            self.raise_(SalesRolledBack(order_id=str(self.id), items=_as_items(rollbacks.items())))
