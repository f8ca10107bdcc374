"""Google Gemini review provider."""

from coderoom.review.gemini.config import GeminiReviewConfig
from coderoom.review.gemini.review import GeminiReviewProvider

__all__ = ["GeminiReviewConfig", "GeminiReviewProvider"]
