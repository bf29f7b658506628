"""Ordering bounded context: order lifecycle and inventory consistency.

Hosts both aggregates the engine mutates (Product stock/sales counters and
Order) so that a single unit of work can span an order, the products it
touches and at most one sibling order.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
