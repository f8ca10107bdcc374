"""Mock review provider for testing."""

from __future__ import annotations

from coderoom.review.base import ReviewError, ReviewProvider


class MockReviewProvider(ReviewProvider):
    """Round-robin response provider for tests.

    ``errors`` are raised, in order, before any response is returned.
    """

    def __init__(
        self,
        responses: list[str] | None = None,
        *,
        errors: list[ReviewError] | None = None,
    ) -> None:
        self.responses = responses or ["Looks good."]
        self.errors = list(errors or [])
        self.calls: list[str] = []
        self._index = 0

    @property
    def name(self) -> str:
        return "mock"

    async def review(self, source_text: str) -> str:
        self.calls.append(source_text)
        if self.errors:
            raise self.errors.pop(0)
        response = self.responses[self._index % len(self.responses)]
        self._index += 1
        return response
