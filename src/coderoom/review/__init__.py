"""Code-review collaborators."""

from coderoom.review.base import ReviewError, ReviewProvider
from coderoom.review.mock import MockReviewProvider

__all__ = ["MockReviewProvider", "ReviewError", "ReviewProvider"]
