"""Review collaborator factory.

``get_review_purger()`` returns the configured adapter (``REVIEWS_ADAPTER``,
default ``fake``); tests swap it with ``set_review_purger()``.
"""

import os

from ordering.reviews.port import ReviewPurger

_current_purger: ReviewPurger | None = None


def get_review_purger() -> ReviewPurger:
    global _current_purger
    if _current_purger is None:
        adapter = os.environ.get("REVIEWS_ADAPTER", "fake")
        if adapter == "fake":
            from ordering.reviews.fake_adapter import InMemoryReviews

            _current_purger = InMemoryReviews()
        else:
            raise ValueError(f"Unknown reviews adapter: {adapter}")
    return _current_purger


def set_review_purger(purger: ReviewPurger) -> None:
    global _current_purger
    _current_purger = purger


def reset_review_purger() -> None:
    global _current_purger
    _current_purger = None
