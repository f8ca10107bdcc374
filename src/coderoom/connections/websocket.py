"""FastAPI/Starlette WebSocket adapter."""

from __future__ import annotations

import logging

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from coderoom.connections.base import Connection
from coderoom.errors import ConnectionClosedError

logger = logging.getLogger("coderoom.connections.websocket")


class WebSocketConnection(Connection):
    """Wraps an accepted Starlette ``WebSocket`` as a room connection."""

    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        super().__init__(connection_id)
        self._ws = websocket

    @property
    def peer(self) -> str:
        client = self._ws.client
        return f"{client.host}:{client.port}" if client else "unknown"

    async def send(self, message: str) -> None:
        if self._ws.application_state != WebSocketState.CONNECTED:
            raise ConnectionClosedError(self.id)
        await self._ws.send_text(message)

    async def receive(self) -> str:
        try:
            message = await self._ws.receive()
        except RuntimeError as exc:
            # Starlette raises RuntimeError once a disconnect was already received.
            raise ConnectionClosedError(self.id) from exc
        if message["type"] == "websocket.disconnect":
            raise ConnectionClosedError(self.id)
        text = message.get("text")
        if text is not None:
            return text
        data = message.get("bytes")
        if data is not None:
            return data.decode("utf-8", errors="replace")
        return ""

    async def close(self) -> None:
        if self._ws.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self._ws.close()
        except (RuntimeError, WebSocketDisconnect):
            logger.debug("WebSocket %s already closed", self.id)
