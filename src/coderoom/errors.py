"""Exception hierarchy for coderoom."""

from __future__ import annotations


class CodeRoomError(Exception):
    """Base exception for all coderoom errors."""


class RoomNotFoundError(CodeRoomError):
    """Room does not exist."""


class ConnectionClosedError(CodeRoomError):
    """The client channel is closed; no further messages can flow."""


class ReviewNotConfiguredError(CodeRoomError):
    """Raised when a review is requested but no review provider is configured."""


class ReviewError(CodeRoomError):
    """Error from the code-review collaborator.

    Attributes:
        retryable: Whether the caller should retry the request.
        provider: Name of the provider that raised the error.
        status_code: HTTP status code from the provider, if available.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        provider: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.provider = provider
        self.status_code = status_code
