"""Review collaborator port (abstract interface).

The ordering engine only ever asks the review system to forget a customer's
reviews for products they returned. Rating aggregation stays on the review
side.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class PurgeResult:
    """Outcome of a purge: reviews removed and the refreshed rating per product."""

    removed: int = 0
    ratings: dict = field(default_factory=dict)  # product_id -> RatingSummary


@dataclass(frozen=True)
class RatingSummary:
    average: float = 0.0
    count: int = 0


class ReviewPurger(ABC):
    @abstractmethod
    def purge_customer_reviews(self, customer_id: str, product_ids: list[str]) -> PurgeResult:
        """Delete ``customer_id``'s reviews on ``product_ids`` and refresh those products' ratings."""
