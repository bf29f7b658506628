"""Stock Ledger: the only code path that moves a product's stock counter."""

import structlog

from ordering.errors import ProductInactive
from ordering.stock.bundles import available_quantity, release_bundle, reserve_bundle

logger = structlog.get_logger(__name__)


class StockLedger:
    """Conditional reservations and unconditional releases over a ``CatalogueSession``."""

    def __init__(self, catalogue):
        self.catalogue = catalogue

    def reserve(self, product_id, quantity) -> None:
        """Withdraw ``quantity`` from a single product or fail with ``InsufficientStock``."""
        product = self.catalogue.get(product_id)
        product.withdraw_stock(quantity)
        self.catalogue.mark_changed(product)

        logger.debug("stock_reserved", product_id=str(product_id), quantity=quantity, remaining=product.stock)

    def release(self, product_id, quantity) -> int:
        """Put ``quantity`` back. Never fails; an unknown product is skipped."""
        product = self.catalogue.find(product_id)
        if product is None:
            logger.warning("stock_release_skipped", product_id=str(product_id), quantity=quantity)
            return 0

        applied = product.restock(quantity)
        if applied:
            self.catalogue.mark_changed(product)
            logger.debug("stock_released", product_id=str(product_id), quantity=applied, remaining=product.stock)
        return applied

    # -------------------------------------------------------------------
    # Line-level movements: dispatch single vs bundle
    # -------------------------------------------------------------------
    def reserve_product(self, product_id, quantity) -> None:
        product = self.catalogue.get(product_id)
        if not product.is_bundle:
            self.reserve(product_id, quantity)
            return

        if not product.is_active:
            raise ProductInactive(f"{product.title} is not available")
        reserve_bundle(self, product, quantity)

    def release_product(self, product_id, quantity) -> None:
        product = self.catalogue.find(product_id)
        if product is None:
            logger.warning("stock_release_skipped", product_id=str(product_id), quantity=quantity)
            return

        if product.is_bundle:
            release_bundle(self, product, quantity)
        else:
            self.release(product_id, quantity)

    def release_all(self, movements) -> None:
        """Release every ``(product_id, quantity)`` pair."""
        for product_id, quantity in movements:
            if quantity > 0:
                self.release_product(product_id, quantity)

    def available(self, product_id) -> int:
        """Units currently sellable: own stock for a single, derived for a bundle."""
        product = self.catalogue.find(product_id)
        if product is None or not product.is_active:
            return 0
        if product.is_bundle:
            return available_quantity(product, self.catalogue.find)
        return max(product.stock or 0, 0)
