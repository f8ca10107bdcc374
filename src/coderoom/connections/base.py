"""Abstract client connection."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from uuid import uuid4

from coderoom.errors import ConnectionClosedError


class Connection(ABC):
    """One client's bidirectional text message channel.

    Implement this to plug a room into any transport. The library ships
    ``WebSocketConnection`` for FastAPI/Starlette and ``MockConnection``
    for tests.

    ``receive`` must raise :class:`ConnectionClosedError` once the peer has
    gone away; iterating a connection stops at that point.
    """

    def __init__(self, connection_id: str | None = None) -> None:
        self.id = connection_id or uuid4().hex

    @abstractmethod
    async def send(self, message: str) -> None:
        """Deliver one text frame to the client."""
        ...

    @abstractmethod
    async def receive(self) -> str:
        """Wait for the next text frame from the client."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the channel. Must be safe to call more than once."""
        ...

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[str]:
        while True:
            try:
                message = await self.receive()
            except ConnectionClosedError:
                return
            yield message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"
