"""In-memory review collaborator for development and testing.

Holds reviews per product, removes a customer's reviews on request and
recomputes the affected products' rating summaries. It can be told to fail so
that tests can check a purge failure never unwinds a completed return.
"""

from ordering.reviews.port import PurgeResult, RatingSummary, ReviewPurger


class InMemoryReviews(ReviewPurger):
    def __init__(self) -> None:
        self.reviews: dict[str, list[dict]] = {}
        self.ratings: dict[str, RatingSummary] = {}
        self.calls: list[dict] = []
        self.should_fail: bool = False
        self.failure_reason: str = "Review service unavailable"

    def configure(self, should_fail: bool, failure_reason: str = "Review service unavailable") -> None:
        self.should_fail = should_fail
        self.failure_reason = failure_reason

    def add_review(self, product_id: str, customer_id: str, rating: int) -> None:
        self.reviews.setdefault(str(product_id), []).append({"customer_id": str(customer_id), "rating": rating})
        self.ratings[str(product_id)] = self._summarize(str(product_id))

    def purge_customer_reviews(self, customer_id: str, product_ids: list[str]) -> PurgeResult:
        self.calls.append({"customer_id": str(customer_id), "product_ids": list(product_ids)})
        if self.should_fail:
            raise RuntimeError(self.failure_reason)

        removed = 0
        ratings = {}
        for product_id in dict.fromkeys(str(pid) for pid in product_ids):
            kept = [r for r in self.reviews.get(product_id, []) if r["customer_id"] != str(customer_id)]
            removed += len(self.reviews.get(product_id, [])) - len(kept)
            self.reviews[product_id] = kept
            ratings[product_id] = self.ratings[product_id] = self._summarize(product_id)

        return PurgeResult(removed=removed, ratings=ratings)

    def _summarize(self, product_id: str) -> RatingSummary:
        reviews = self.reviews.get(product_id, [])
        if not reviews:
            return RatingSummary(average=0.0, count=0)
        average = sum(r["rating"] for r in reviews) / len(reviews)
        return RatingSummary(average=round(average, 2), count=len(reviews))
