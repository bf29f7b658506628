import json

import pytest
from protean.integrations.pytest import DomainFixture

SHIPPING_ADDRESS = {
    "name": "Asha Rao",
    "phone": "9800000000",
    "line1": "12 MG Road",
    "city": "Bengaluru",
    "state": "KA",
    "postal_code": "560001",
}

OPERATOR = {"actor_id": "ops-001", "actor_role": "OPERATOR"}


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    from ordering.reviews import reset_review_purger

    with ordering_bed.domain_context():
        yield
        reset_review_purger()


# ---------------------------------------------------------------------------
# Catalog seeding
# ---------------------------------------------------------------------------
@pytest.fixture()
def make_product():
    """Persist a SINGLE product and return it."""
    from ordering.stock.product import Product
    from protean import current_domain

    def _make(title="Graphics Card", price=100.0, stock=10, **details):
        product = Product.create_single(title=title, price=price, stock=stock, **details)
        current_domain.repository_for(Product).add(product)
        return product

    return _make


@pytest.fixture()
def make_bundle():
    """Persist a BUNDLE over ``[(child, quantity_per_bundle), ...]`` and return it."""
    from ordering.stock.product import Product
    from protean import current_domain

    def _make(components, title="Starter Kit", price=250.0, **details):
        bundle = Product.create_bundle(
            title=title,
            price=price,
            components=[(str(child.id), quantity) for child, quantity in components],
            **details,
        )
        current_domain.repository_for(Product).add(bundle)
        return bundle

    return _make


@pytest.fixture()
def load_product():
    from ordering.stock.product import Product
    from protean import current_domain

    def _load(product):
        return current_domain.repository_for(Product).get(str(getattr(product, "id", product)))

    return _load


@pytest.fixture()
def load_order():
    from ordering.order.order import Order
    from protean import current_domain

    def _load(order_id):
        return current_domain.repository_for(Order).get(str(order_id))

    return _load


# ---------------------------------------------------------------------------
# Order lifecycle shortcuts (through commands)
# ---------------------------------------------------------------------------
@pytest.fixture()
def place_order():
    """Place an order for ``[(product, quantity), ...]`` and return its id."""
    from ordering.order.creation import PlaceOrder
    from protean import current_domain

    def _place(items, customer_id="cust-001", payment_method="COD"):
        return current_domain.process(
            PlaceOrder(
                customer_id=customer_id,
                items=json.dumps([{"product_id": str(product.id), "quantity": qty} for product, qty in items]),
                shipping_address=json.dumps(SHIPPING_ADDRESS),
                payment_method=payment_method,
            ),
            asynchronous=False,
        )

    return _place


@pytest.fixture()
def set_status():
    from ordering.order.status import SetOrderStatus
    from protean import current_domain

    def _set(order_id, status, note=None):
        return current_domain.process(
            SetOrderStatus(order_id=str(order_id), status=status, note=note, **OPERATOR),
            asynchronous=False,
        )

    return _set


@pytest.fixture()
def deliver(set_status):
    """Walk an order through CONFIRMED and SHIPPED to DELIVERED."""

    def _deliver(order_id):
        set_status(order_id, "CONFIRMED")
        set_status(order_id, "SHIPPED")
        set_status(order_id, "DELIVERED")

    return _deliver


@pytest.fixture()
def approved_request():
    """Open a return/replacement request for ``[(product, quantity)]`` and approve it."""
    from ordering.order.returns import DecideReturn, RequestReturn
    from protean import current_domain

    def _approve(order_id, items, request_type="RETURN", customer_id="cust-001"):
        current_domain.process(
            RequestReturn(
                order_id=str(order_id),
                request_type=request_type,
                reason="Damaged on arrival",
                items=json.dumps([{"product_id": str(product.id), "quantity": qty} for product, qty in items]),
                actor_id=customer_id,
                actor_role="CUSTOMER",
            ),
            asynchronous=False,
        )
        current_domain.process(
            DecideReturn(order_id=str(order_id), decision="APPROVE", note="Approved", **OPERATOR),
            asynchronous=False,
        )

    return _approve
