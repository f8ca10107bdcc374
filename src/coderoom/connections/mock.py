"""In-memory connection for tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from coderoom.connections.base import Connection
from coderoom.errors import ConnectionClosedError

_CLOSE = object()


class MockConnection(Connection):
    """Queue-backed connection that records everything sent to it.

    Example::

        conn = MockConnection()
        conn.feed({"event": "text_update", "type": "insert", "pos": 0, "value": "x"})
        conn.feed_close()
        await room.attach(conn)
        assert conn.sent_events() == ["connection_update"]
    """

    def __init__(self, connection_id: str | None = None, *, fail_on_send: bool = False) -> None:
        super().__init__(connection_id)
        self.sent: list[str] = []
        self.fail_on_send = fail_on_send
        self.closed = False
        self._inbox: asyncio.Queue[object] = asyncio.Queue()

    def feed(self, message: str | dict[str, Any]) -> None:
        """Queue an inbound message as if the client had sent it."""
        if not isinstance(message, str):
            message = json.dumps(message)
        self._inbox.put_nowait(message)

    def feed_close(self) -> None:
        """Queue a client-side close after any already fed messages."""
        self._inbox.put_nowait(_CLOSE)

    def sent_messages(self) -> list[dict[str, Any]]:
        return [json.loads(m) for m in self.sent]

    def sent_events(self) -> list[str]:
        return [m["event"] for m in self.sent_messages()]

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionClosedError(self.id)
        if self.fail_on_send:
            raise OSError(f"send failed on {self.id}")
        self.sent.append(message)

    async def receive(self) -> str:
        if self.closed:
            raise ConnectionClosedError(self.id)
        item = await self._inbox.get()
        if item is _CLOSE:
            self.closed = True
            raise ConnectionClosedError(self.id)
        assert isinstance(item, str)
        return item

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(_CLOSE)
