"""Product aggregate: the engine's view of a catalog product.

Catalog management owns titles, prices and composition. The engine only ever
moves two counters here: ``stock`` (through the Stock Ledger) and
``sold_count`` (through the Sales Counter Ledger). Both moves re-check their
condition against the loaded state at the moment of mutation; the repository
rejects the write if the product changed underneath us.

A BUNDLE never holds stock of its own: its sellable quantity is derived from
its children (see ``ordering.stock.bundles``).
"""

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
    ValueObject,
)

from ordering.domain import ordering
from ordering.errors import InsufficientStock, InvalidQuantity, ProductInactive
from ordering.stock.events import SoldCountAdjusted, StockReleased, StockReserved


def as_utc(moment):
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


class ProductKind(Enum):
    SINGLE = "SINGLE"
    BUNDLE = "BUNDLE"


@ordering.value_object(part_of="Product")
class TimedOffer:
    """A time-boxed promotional price."""

    price = Float(required=True, min_value=0.0)
    starts_at = DateTime(required=True)
    ends_at = DateTime(required=True)
    is_active = Boolean(default=False)

    def applies_at(self, moment) -> bool:
        if not self.is_active:
            return False
        return as_utc(self.starts_at) <= as_utc(moment) <= as_utc(self.ends_at)


@ordering.entity(part_of="Product")
class BundleItem:
    child_id = Identifier(required=True)
    quantity = Integer(required=True)  # Units of the child per bundle
    position = Integer(default=0)


@ordering.aggregate
class Product:
    title = String(required=True, max_length=255)
    slug = String(max_length=255)
    kind = String(choices=ProductKind, default=ProductKind.SINGLE.value)
    price = Float(required=True, min_value=0.0)
    discount_price = Float()
    timed_offer = ValueObject(TimedOffer)
    image_url = String(max_length=500)
    stock = Integer(default=0)
    sold_count = Integer(default=0)
    is_active = Boolean(default=True)
    bundle_items = HasMany(BundleItem)
    updated_at = DateTime()

    @invariant.post
    def stock_can_never_go_negative(self):
        if self.stock is not None and self.stock < 0:
            raise ValidationError({"stock": ["Stock cannot be negative"]})

    @invariant.post
    def bundles_do_not_hold_stock(self):
        if self.kind == ProductKind.BUNDLE.value and self.stock:
            raise ValidationError({"stock": ["A bundle derives its stock from its children"]})

    # -------------------------------------------------------------------
    # Factories (catalog-side writes, used to seed the store)
    # -------------------------------------------------------------------
    @classmethod
    def create_single(cls, title, price, stock=0, **details):
        return cls(
            title=title,
            price=price,
            stock=stock,
            kind=ProductKind.SINGLE.value,
            updated_at=datetime.now(UTC),
            **details,
        )

    @classmethod
    def create_bundle(cls, title, price, components, **details):
        """Create a bundle from ``[(child_id, quantity_per_bundle), ...]``."""
        bundle = cls(
            title=title,
            price=price,
            stock=0,
            kind=ProductKind.BUNDLE.value,
            updated_at=datetime.now(UTC),
            **details,
        )
        for position, (child_id, quantity) in enumerate(components):
            bundle.add_bundle_items(BundleItem(child_id=child_id, quantity=quantity, position=position))
        return bundle

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_bundle(self) -> bool:
        return self.kind == ProductKind.BUNDLE.value

    @property
    def components(self) -> list:
        """Bundle children in catalog order."""
        return sorted(self.bundle_items or [], key=lambda item: item.position or 0)

    # -------------------------------------------------------------------
    # Stock counter (Stock Ledger only)
    # -------------------------------------------------------------------
    def withdraw_stock(self, quantity):
        """Decrement stock by ``quantity`` only if this product can cover it right now."""
        if quantity is None or quantity <= 0:
            raise InvalidQuantity(f"Reservation quantity must be positive, got {quantity}")
        if self.is_bundle:
            raise InsufficientStock(f"{self.title} is a bundle and holds no stock of its own")
        if not self.is_active:
            raise ProductInactive(f"{self.title} is not available")
        if (self.stock or 0) < quantity:
            raise InsufficientStock(
                f"Insufficient stock for {self.title}: {self.stock or 0} available, {quantity} requested"
            )

        self.stock -= quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(StockReserved(product_id=str(self.id), quantity=quantity, remaining=self.stock))

    def restock(self, quantity):
        """Unconditionally put ``quantity`` units back. Returns the units applied."""
        if not quantity or quantity <= 0 or self.is_bundle:
            return 0

        self.stock = (self.stock or 0) + quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(StockReleased(product_id=str(self.id), quantity=quantity, remaining=self.stock))
        return quantity

    # -------------------------------------------------------------------
    # Sold-count (Sales Counter Ledger only)
    # -------------------------------------------------------------------
    def record_sales(self, quantity):
        if not quantity or quantity <= 0:
            return 0

        self.sold_count = (self.sold_count or 0) + quantity
        self.raise_(
            SoldCountAdjusted(
                product_id=str(self.id),
                delta=quantity,
                sold_count=self.sold_count,
                reason="delivered",
            )
        )
        return quantity

    def rollback_sales(self, quantity):
        """Reverse up to ``quantity`` sales, never dropping below zero. Returns the units reversed."""
        applied = min(max(quantity or 0, 0), self.sold_count or 0)
        if applied == 0:
            return 0

        self.sold_count -= applied
        self.raise_(
            SoldCountAdjusted(
                product_id=str(self.id),
                delta=-applied,
                sold_count=self.sold_count,
                reason="returned",
            )
        )
        return applied
