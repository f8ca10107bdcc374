"""Abstract base class for code-review providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from coderoom.errors import ReviewError

__all__ = ["ReviewError", "ReviewProvider"]


class ReviewProvider(ABC):
    """Sends a room's source text to a text-completion service for review."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logs and telemetry."""
        ...

    @abstractmethod
    async def review(self, source_text: str) -> str:
        """Return review text for *source_text*.

        Raises:
            ReviewError: If the service call fails.
        """
        ...

    async def close(self) -> None:
        """Release provider resources. Default is a no-op."""
        return None
