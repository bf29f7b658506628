"""Domain tests for the return/replacement request slot."""

import pytest
from ordering.errors import DuplicateAction, InvalidRequest, StateConflict
from ordering.order.events import OrderItemsReturned, ReturnDecided, ReturnRequested, ReturnRequestWithdrawn
from ordering.order.order import Order

ADDRESS = {"name": "Asha Rao", "line1": "12 MG Road", "city": "Bengaluru", "postal_code": "560001"}


def _line(product_id, quantity, unit_price=100.0):
    return {
        "product_id": product_id,
        "product_kind": "SINGLE",
        "title": f"Product {product_id}",
        "unit_price": unit_price,
        "strike_price": unit_price,
        "offer_kind": "NONE",
        "quantity": quantity,
    }


@pytest.fixture
def delivered():
    order = Order.place(
        customer_id="cust-001",
        lines=[_line("p-1", 3), _line("p-2", 1, 50.0)],
        shipping_address=ADDRESS,
        payment_method="COD",
    )
    order.change_status("SHIPPED")
    order.change_status("DELIVERED")
    return order


def _approve(order, quantities, request_type="RETURN"):
    order.request_return(request_type, "Damaged", quantities)
    order.decide_return(True, decided_by="ops-001", note="OK")


class TestRequestGuards:
    def test_request_opens_the_slot(self, delivered):
        delivered.request_return("RETURN", "Damaged", {"p-1": 1})

        assert delivered.request_status == "REQUESTED"
        assert delivered.return_request.requested_quantities() == {"p-1": 1}
        assert delivered.timeline[-1].status == "RR_REQUESTED_RETURN"
        assert isinstance(delivered._events[-1], ReturnRequested)

    def test_undelivered_order_cannot_be_returned(self):
        order = Order.place(
            customer_id="cust-001", lines=[_line("p-1", 1)], shipping_address=ADDRESS, payment_method="COD"
        )
        with pytest.raises(StateConflict) as exc:
            order.request_return("RETURN", "Damaged", {"p-1": 1})
        assert "delivered" in exc.value.reason

    def test_cancelled_order_cannot_be_returned(self):
        order = Order.place(
            customer_id="cust-001", lines=[_line("p-1", 1)], shipping_address=ADDRESS, payment_method="COD"
        )
        order.cancel()
        with pytest.raises(StateConflict) as exc:
            order.request_return("RETURN", "Damaged", {"p-1": 1})
        assert "Cancelled" in exc.value.reason

    def test_second_request_is_a_duplicate(self, delivered):
        delivered.request_return("RETURN", "Damaged", {"p-1": 1})
        with pytest.raises(DuplicateAction):
            delivered.request_return("REPLACEMENT", "Wrong size", {"p-2": 1})

    def test_rejected_request_still_occupies_the_slot(self, delivered):
        delivered.request_return("RETURN", "Damaged", {"p-1": 1})
        delivered.decide_return(False, decided_by="ops-001", note="Used item")
        with pytest.raises(DuplicateAction):
            delivered.request_return("RETURN", "Damaged", {"p-1": 1})

    def test_more_than_eligible_is_rejected(self, delivered):
        with pytest.raises(StateConflict):
            delivered.request_return("RETURN", "Damaged", {"p-1": 4})
        assert delivered.request_status == "NONE"

    def test_unknown_product_is_rejected(self, delivered):
        with pytest.raises(InvalidRequest):
            delivered.request_return("RETURN", "Damaged", {"p-9": 1})

    def test_replacement_of_a_replacement_is_rejected(self, delivered):
        replacement = Order.replacement_for(delivered, {"p-1": 1})
        replacement.change_status("SHIPPED")
        replacement.change_status("DELIVERED")
        with pytest.raises(StateConflict):
            replacement.request_return("REPLACEMENT", "Still broken", {"p-1": 1})

    def test_replacement_order_can_be_returned(self, delivered):
        replacement = Order.replacement_for(delivered, {"p-1": 1})
        replacement.change_status("SHIPPED")
        replacement.change_status("DELIVERED")
        replacement.request_return("RETURN", "Still broken", {"p-1": 1})
        assert replacement.request_status == "REQUESTED"

    def test_existing_replacement_blocks_another(self, delivered):
        _approve(delivered, {"p-1": 1}, "REPLACEMENT")
        replacement = Order.replacement_for(delivered, {"p-1": 1})
        delivered.record_replacement(replacement, {"p-1": 1})

        with pytest.raises(DuplicateAction):
            delivered.request_return("REPLACEMENT", "Again", {"p-1": 1})


class TestDecisionAndWithdrawal:
    def test_approval_records_decider(self, delivered):
        _approve(delivered, {"p-1": 1})

        assert delivered.request_status == "APPROVED"
        assert delivered.return_request.decided_by == "ops-001"
        assert delivered.timeline[-1].status == "RR_APPROVED"
        assert isinstance(delivered._events[-1], ReturnDecided)

    def test_only_pending_requests_can_be_decided(self, delivered):
        _approve(delivered, {"p-1": 1})
        with pytest.raises(StateConflict):
            delivered.decide_return(False)

    def test_withdrawal_resets_the_slot(self, delivered):
        delivered.request_return("REPLACEMENT", "Wrong size", {"p-2": 1})
        delivered.withdraw_return_request()

        assert delivered.request_status == "NONE"
        assert delivered.timeline[-1].status == "RR_CANCELLED_REPLACEMENT"
        assert isinstance(delivered._events[-1], ReturnRequestWithdrawn)

        delivered.request_return("RETURN", "Changed my mind", {"p-2": 1})
        assert delivered.request_status == "REQUESTED"

    def test_approved_request_cannot_be_withdrawn(self, delivered):
        _approve(delivered, {"p-1": 1})
        with pytest.raises(StateConflict):
            delivered.withdraw_return_request()

    def test_nothing_to_withdraw(self, delivered):
        with pytest.raises(StateConflict):
            delivered.withdraw_return_request()


class TestCompleteReturn:
    def test_partial_return_keeps_order_delivered(self, delivered):
        _approve(delivered, {"p-1": 1})
        returned = delivered.complete_return("Received")

        assert returned == [("p-1", 1)]
        assert delivered.status == "DELIVERED"
        assert delivered.request_status == "COMPLETED"
        assert delivered.line_for("p-1").returned_quantity == 1
        assert delivered.timeline[-1].status == "PARTIAL_RETURNED"

        event = delivered._events[-1]
        assert isinstance(event, OrderItemsReturned)
        assert event.fully_returned is False

    def test_full_return_refunds_paid_order(self, delivered):
        _approve(delivered, {"p-1": 3, "p-2": 1})
        delivered.complete_return()

        assert delivered.status == "RETURNED"
        assert delivered.payment.status == "REFUNDED"

    def test_only_approved_requests_complete(self, delivered):
        delivered.request_return("RETURN", "Damaged", {"p-1": 1})
        with pytest.raises(StateConflict):
            delivered.complete_return()

    def test_return_cannot_complete_a_replacement_request(self, delivered):
        _approve(delivered, {"p-1": 1}, "REPLACEMENT")
        with pytest.raises(StateConflict):
            delivered.complete_return()


class TestReplacementBookkeeping:
    def test_replacement_is_a_zero_priced_confirmed_order(self, delivered):
        replacement = Order.replacement_for(delivered, {"p-1": 2})

        assert replacement.status == "CONFIRMED"
        assert replacement.is_replacement is True
        assert str(replacement.parent_order_id) == str(delivered.id)
        assert replacement.total == 0.0
        assert replacement.payment.method == "REPLACEMENT"
        assert replacement.payment.status == "PAID"
        assert [(str(l.product_id), l.quantity) for l in replacement.ordered_lines] == [("p-1", 2)]

    def test_partial_replacement_leaves_parent_delivered(self, delivered):
        _approve(delivered, {"p-1": 1}, "REPLACEMENT")
        quantities = delivered.replacement_quantities()
        replacement = Order.replacement_for(delivered, quantities)
        delivered.record_replacement(replacement, quantities)

        assert delivered.status == "DELIVERED"
        assert str(delivered.replacement_order_id) == str(replacement.id)
        assert delivered.line_for("p-1").replaced_quantity == 1
        assert delivered.timeline[-1].status == "PARTIAL_REPLACED"

    def test_full_replacement_moves_parent_to_replaced(self, delivered):
        _approve(delivered, {"p-1": 3, "p-2": 1}, "REPLACEMENT")
        quantities = delivered.replacement_quantities()
        replacement = Order.replacement_for(delivered, quantities)
        delivered.record_replacement(replacement, quantities)

        assert delivered.status == "REPLACED"
        assert delivered.payment.status == "PAID"
