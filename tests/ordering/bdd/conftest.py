"""Shared BDD fixtures and step definitions for the Ordering domain."""

import pytest
from ordering.errors import DuplicateAction
from ordering.stock.catalogue import CatalogueSession
from ordering.stock.ledger import StockLedger
from pytest_bdd import given, parsers, then


@pytest.fixture()
def catalog():
    """Products seeded by the scenario, by title."""
    return {}


@pytest.fixture()
def placed():
    """The scenario's current order id (set by an ordering step)."""
    return {"order_id": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a single product "{title}" priced {price:f} with {stock:d} in stock'))
def _(catalog, make_product, title, price, stock):
    catalog[title] = make_product(title=title, price=price, stock=stock)


@given(parsers.cfparse('a bundle "{title}" of {first_qty:d} "{first}" and {second_qty:d} "{second}"'))
def _(catalog, make_bundle, title, first_qty, first, second_qty, second):
    catalog[title] = make_bundle([(catalog[first], first_qty), (catalog[second], second_qty)], title=title)


@given(parsers.cfparse('the customer has ordered {quantity:d} of "{title}"'))
def _(catalog, placed, place_order, quantity, title):
    placed["order_id"] = place_order([(catalog[title], quantity)])


@given("the operator has delivered the order")
def _(placed, deliver):
    deliver(placed["order_id"])


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('"{title}" has {stock:d} in stock'))
def _(catalog, load_product, title, stock):
    assert load_product(catalog[title]).stock == stock


@then(parsers.cfparse('"{title}" has {available:d} available'))
def _(catalog, title, available):
    assert StockLedger(CatalogueSession()).available(catalog[title].id) == available


@then(parsers.cfparse('"{title}" has sold {count:d}'))
def _(catalog, load_product, title, count):
    assert load_product(catalog[title]).sold_count == count


@then(parsers.cfparse('the order line for "{title}" has {quantity:d} {counter}'))
def _(catalog, placed, load_order, title, quantity, counter):
    line = load_order(placed["order_id"]).line_for(catalog[title].id)
    assert getattr(line, f"{counter}_quantity") == quantity


@then(parsers.cfparse("the order total is {total:f}"))
def _(placed, load_order, total):
    assert load_order(placed["order_id"]).total == total


@then(parsers.cfparse('the order status is "{status}"'))
def _(placed, load_order, status):
    assert load_order(placed["order_id"]).status == status


@then("the order has its sales counted")
def _(placed, load_order):
    assert load_order(placed["order_id"]).sales_counted is True


@then(parsers.cfparse('the order has rolled back {quantity:d} sales of "{title}"'))
def _(catalog, placed, load_order, quantity, title):
    order = load_order(placed["order_id"])
    entry = next(e for e in order.sales_entries if str(e.product_id) == str(catalog[title].id))
    assert entry.rolled_back_quantity == quantity


@then("a replacement order is linked to the order")
def _(placed, load_order):
    parent = load_order(placed["order_id"])
    replacement = load_order(placed["replacement_id"])
    assert str(parent.replacement_order_id) == str(replacement.id)
    assert str(replacement.parent_order_id) == str(parent.id)
    assert replacement.is_replacement is True


@then(parsers.cfparse('asking for another replacement of "{title}" fails as a duplicate'))
def _(catalog, placed, approved_request, title):
    with pytest.raises(DuplicateAction):
        approved_request(placed["order_id"], [(catalog[title], 1)], request_type="REPLACEMENT")
