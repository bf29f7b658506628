"""Application tests for the return workflow."""

import json

import pytest
from ordering.errors import DuplicateAction, Forbidden, StateConflict
from ordering.order.cancellation import CancelItems
from ordering.order.returns import CompleteReturn, DecideReturn, RequestReturn, WithdrawReturnRequest
from protean import current_domain

from_operator = {"actor_id": "ops-001", "actor_role": "OPERATOR"}


def _request(order_id, items, request_type="RETURN", actor_id="cust-001"):
    current_domain.process(
        RequestReturn(
            order_id=order_id,
            request_type=request_type,
            reason="Damaged on arrival",
            items=json.dumps([{"product_id": str(product.id), "quantity": qty} for product, qty in items]),
            actor_id=actor_id,
            actor_role="CUSTOMER",
        ),
        asynchronous=False,
    )


def _complete(order_id, note="Received at warehouse"):
    return current_domain.process(CompleteReturn(order_id=order_id, note=note, **from_operator), asynchronous=False)


class TestReturnRequests:
    def test_customer_requests_a_return(self, make_product, place_order, deliver, load_order):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 2)])
        deliver(order_id)

        _request(order_id, [(gpu, 1)])

        order = load_order(order_id)
        assert order.request_status == "REQUESTED"
        assert order.return_request.request_type == "RETURN"

    def test_other_customer_cannot_request(self, make_product, place_order, deliver):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 2)])
        deliver(order_id)

        with pytest.raises(Forbidden):
            _request(order_id, [(gpu, 1)], actor_id="cust-002")

    def test_undelivered_order_cannot_be_returned(self, make_product, place_order, set_status):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 2)])
        set_status(order_id, "SHIPPED")

        with pytest.raises(StateConflict):
            _request(order_id, [(gpu, 1)])

    def test_second_request_while_pending_is_a_duplicate(self, make_product, place_order, deliver):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 2)])
        deliver(order_id)
        _request(order_id, [(gpu, 1)])

        with pytest.raises(DuplicateAction):
            _request(order_id, [(gpu, 1)])

    def test_customer_cannot_decide(self, make_product, place_order, deliver):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 2)])
        deliver(order_id)
        _request(order_id, [(gpu, 1)])

        with pytest.raises(Forbidden):
            current_domain.process(
                DecideReturn(order_id=order_id, decision="APPROVE", actor_id="cust-001", actor_role="CUSTOMER"),
                asynchronous=False,
            )

    def test_rejection_closes_the_request(self, make_product, place_order, deliver, load_order):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 2)])
        deliver(order_id)
        _request(order_id, [(gpu, 1)])

        current_domain.process(
            DecideReturn(order_id=order_id, decision="REJECT", note="Outside window", **from_operator),
            asynchronous=False,
        )

        order = load_order(order_id)
        assert order.request_status == "REJECTED"
        assert order.return_request.decision_note == "Outside window"
        with pytest.raises(StateConflict):
            _complete(order_id)

    def test_withdrawal_by_customer(self, make_product, place_order, deliver, load_order):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 2)])
        deliver(order_id)
        _request(order_id, [(gpu, 1)])

        current_domain.process(
            WithdrawReturnRequest(order_id=order_id, actor_id="cust-001", actor_role="CUSTOMER"),
            asynchronous=False,
        )

        order = load_order(order_id)
        assert order.request_status == "NONE"
        assert order.timeline[-1].status == "RR_CANCELLED_RETURN"


class TestCompleteReturn:
    def test_partial_return_rolls_back_counted_sales(
        self, make_product, place_order, deliver, approved_request, load_product, load_order
    ):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 3)])
        deliver(order_id)
        assert load_product(gpu).sold_count == 3

        approved_request(order_id, [(gpu, 2)])
        assert _complete(order_id) == order_id

        order = load_order(order_id)
        product = load_product(gpu)
        assert product.sold_count == 1
        assert product.stock == 4
        assert order.status == "DELIVERED"
        assert order.ordered_lines[0].returned_quantity == 2
        assert order.timeline[-1].status == "PARTIAL_RETURNED"

        entry = order.sales_entries[0]
        assert str(entry.product_id) == str(gpu.id)
        assert entry.rolled_back_quantity == 2

    def test_full_return_refunds_and_terminates(
        self, make_product, place_order, deliver, approved_request, load_product, load_order
    ):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 2)])
        deliver(order_id)
        approved_request(order_id, [(gpu, 2)])

        _complete(order_id)

        order = load_order(order_id)
        assert order.status == "RETURNED"
        assert order.payment.status == "REFUNDED"
        assert load_product(gpu).stock == 5
        assert load_product(gpu).sold_count == 0

    def test_returning_what_survived_a_partial_cancel_stays_partial(
        self, make_product, place_order, deliver, approved_request, load_product, load_order
    ):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 3)])
        current_domain.process(
            CancelItems(
                order_id=order_id,
                items=json.dumps([{"product_id": str(gpu.id), "quantity": 1}]),
                actor_id="cust-001",
                actor_role="CUSTOMER",
            ),
            asynchronous=False,
        )
        deliver(order_id)
        approved_request(order_id, [(gpu, 2)])

        _complete(order_id)

        order = load_order(order_id)
        assert order.status == "DELIVERED"
        assert order.payment.status == "PAID"
        assert order.timeline[-1].status == "PARTIAL_RETURNED"
        assert order.ordered_lines[0].returned_quantity == 2
        assert load_product(gpu).stock == 5

    def test_bundle_return_restocks_children(
        self, make_product, make_bundle, place_order, deliver, approved_request, load_product
    ):
        a = make_product(title="A", stock=4)
        b = make_product(title="B", stock=10)
        kit = make_bundle([(a, 1), (b, 2)])
        order_id = place_order([(kit, 2)])
        deliver(order_id)

        approved_request(order_id, [(kit, 1)])
        _complete(order_id)

        assert load_product(a).stock == 3
        assert load_product(b).stock == 8
        assert load_product(kit).sold_count == 1

    def test_completed_return_cannot_be_completed_twice(
        self, make_product, place_order, deliver, approved_request, load_product
    ):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 3)])
        deliver(order_id)
        approved_request(order_id, [(gpu, 1)])
        _complete(order_id)

        with pytest.raises(StateConflict):
            _complete(order_id)
        assert load_product(gpu).stock == 3

    def test_returned_order_is_terminal(self, make_product, place_order, deliver, approved_request, set_status):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 1)])
        deliver(order_id)
        approved_request(order_id, [(gpu, 1)])
        _complete(order_id)

        for target in ("PLACED", "DELIVERED", "CANCELLED"):
            with pytest.raises(StateConflict):
                set_status(order_id, target)

    def test_customer_cannot_complete(self, make_product, place_order, deliver, approved_request):
        gpu = make_product(stock=5)
        order_id = place_order([(gpu, 1)])
        deliver(order_id)
        approved_request(order_id, [(gpu, 1)])

        with pytest.raises(Forbidden):
            current_domain.process(
                CompleteReturn(order_id=order_id, actor_id="cust-001", actor_role="CUSTOMER"),
                asynchronous=False,
            )
