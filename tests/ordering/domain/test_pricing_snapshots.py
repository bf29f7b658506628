from datetime import UTC, datetime, timedelta

from ordering.stock.pricing import OfferKind, line_snapshot, paid_unit_price, strike_unit_price
from ordering.stock.product import Product, TimedOffer

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _offer(price, active=True, starts=-1, ends=1):
    return TimedOffer(
        price=price,
        starts_at=NOW + timedelta(days=starts),
        ends_at=NOW + timedelta(days=ends),
        is_active=active,
    )


def _lookup(*products):
    by_id = {str(p.id): p for p in products}
    return lambda product_id: by_id.get(str(product_id))


class TestPaidUnitPrice:
    def test_list_price_without_offers(self):
        product = Product.create_single(title="Mouse", price=20.0)
        assert paid_unit_price(product, NOW) == (20.0, OfferKind.NONE)

    def test_discount_price_wins_over_list_price(self):
        product = Product.create_single(title="Mouse", price=20.0, discount_price=15.0)
        assert paid_unit_price(product, NOW) == (15.0, OfferKind.DISCOUNT)

    def test_discount_above_list_price_is_ignored(self):
        product = Product.create_single(title="Mouse", price=20.0, discount_price=25.0)
        assert paid_unit_price(product, NOW) == (20.0, OfferKind.NONE)

    def test_running_timed_offer_wins(self):
        product = Product.create_single(title="Mouse", price=20.0, discount_price=15.0, timed_offer=_offer(12.0))
        assert paid_unit_price(product, NOW) == (12.0, OfferKind.TIMED)

    def test_expired_timed_offer_is_ignored(self):
        product = Product.create_single(title="Mouse", price=20.0, timed_offer=_offer(12.0, starts=-3, ends=-1))
        assert paid_unit_price(product, NOW) == (20.0, OfferKind.NONE)

    def test_inactive_timed_offer_is_ignored(self):
        product = Product.create_single(title="Mouse", price=20.0, timed_offer=_offer(12.0, active=False))
        assert paid_unit_price(product, NOW) == (20.0, OfferKind.NONE)


class TestStrikePrice:
    def test_single_product_strikes_its_list_price(self):
        product = Product.create_single(title="Mouse", price=20.0, discount_price=15.0)
        assert strike_unit_price(product, _lookup(product), NOW) == 20.0

    def test_bundle_strikes_the_sum_of_its_children(self):
        a = Product.create_single(title="A", price=100.0, discount_price=90.0)
        b = Product.create_single(title="B", price=50.0)
        bundle = Product.create_bundle(title="Kit", price=150.0, components=[(str(a.id), 1), (str(b.id), 2)])

        assert strike_unit_price(bundle, _lookup(a, b), NOW) == 190.0

    def test_bundle_with_unknown_child_strikes_its_own_price(self):
        a = Product.create_single(title="A", price=100.0)
        bundle = Product.create_bundle(title="Kit", price=150.0, components=[(str(a.id), 1), ("missing", 1)])

        assert strike_unit_price(bundle, _lookup(a), NOW) == 150.0


class TestLineSnapshot:
    def test_snapshot_copies_descriptive_fields(self):
        product = Product.create_single(
            title="Mouse",
            price=20.0,
            discount_price=18.0,
            slug="mouse",
            image_url="https://cdn.example.com/mouse.png",
        )
        snapshot = line_snapshot(product, _lookup(product), NOW)

        assert snapshot == {
            "product_id": str(product.id),
            "product_kind": "SINGLE",
            "title": "Mouse",
            "slug": "mouse",
            "image_url": "https://cdn.example.com/mouse.png",
            "unit_price": 18.0,
            "strike_price": 20.0,
            "offer_kind": "DISCOUNT",
        }
