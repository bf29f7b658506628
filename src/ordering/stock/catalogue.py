"""Products touched by one unit of work.

Every product is loaded at most once per command and written back at most
once, so a bundle and a single sharing a child, or a compensation following a
reservation, all act on the same in-memory instance.
"""

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.errors import ProductNotFound
from ordering.stock.product import Product

logger = structlog.get_logger(__name__)


class CatalogueSession:
    def __init__(self):
        self._repository = current_domain.repository_for(Product)
        self._loaded: dict[str, Product] = {}
        self._missing: set[str] = set()
        self._changed: dict[str, Product] = {}

    def find(self, product_id) -> Product | None:
        """Return the product, or None when the catalog does not know it."""
        key = str(product_id)
        if key in self._loaded:
            return self._loaded[key]
        if key in self._missing:
            return None

        try:
            product = self._repository.get(key)
        except ObjectNotFoundError:
            self._missing.add(key)
            return None

        self._loaded[key] = product
        return product

    def get(self, product_id) -> Product:
        product = self.find(product_id)
        if product is None:
            raise ProductNotFound(f"Product {product_id} not found")
        return product

    def mark_changed(self, product: Product) -> None:
        self._changed[str(product.id)] = product

    def flush(self) -> None:
        """Write every changed product back through the repository."""
        for product in self._changed.values():
            self._repository.add(product)
        if self._changed:
            logger.debug("catalogue_flushed", product_ids=list(self._changed))
        self._changed.clear()
