"""FastAPI application exposing rooms over WebSocket and HTTP."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, HTTPException, WebSocket, status
from fastapi.responses import JSONResponse

from coderoom.connections.websocket import WebSocketConnection
from coderoom.core.manager import RoomManager
from coderoom.errors import RoomNotFoundError
from coderoom.models.messages import ApiRequest, CreateRoomRequest
from coderoom.models.room import RoomInfo

logger = logging.getLogger("coderoom.server")


def build_router(manager: RoomManager) -> APIRouter:
    """Return the routes serving *manager*'s rooms.

    ``WS /ws/{room_id}`` joins a room, creating it on first use.
    ``POST /api`` accepts the same control requests as the socket and
    answers synchronously.
    """
    router = APIRouter()

    @router.websocket("/ws/{room_id}")
    async def room_socket(websocket: WebSocket, room_id: str) -> None:
        await websocket.accept()
        room = await manager.get_or_create_room(room_id)
        conn = WebSocketConnection(websocket)
        logger.info("WebSocket %s from %s joined room %s", conn.id, conn.peer, room_id)
        await room.attach(conn)

    @router.post("/api")
    async def control(request: ApiRequest) -> JSONResponse:
        if request.room is None:
            raise HTTPException(status_code=422, detail="room is required")
        try:
            room = await manager.require_room(request.room)
        except RoomNotFoundError as exc:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail=f"room not found: {exc}"
            ) from exc
        response = await room.handle_control(request)
        return JSONResponse(response.body(), status_code=response.status_code)

    @router.post("/rooms", status_code=status.HTTP_201_CREATED)
    async def create_room(body: CreateRoomRequest | None = None) -> RoomInfo:
        room = await manager.create_room(body.id if body else None)
        return room.info()

    @router.get("/rooms/{room_id}")
    async def get_room(room_id: str) -> RoomInfo:
        room = await manager.get_room(room_id)
        if room is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail=f"room not found: {room_id}"
            )
        return room.info()

    return router


def create_app(manager: RoomManager | None = None) -> FastAPI:
    """Build a FastAPI app serving *manager* (a default one if omitted).

    The manager is closed when the app shuts down.
    """
    manager = manager or RoomManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        logger.info("Shutting down: closing %d room(s)", manager.room_count)
        await manager.close()

    app = FastAPI(title="coderoom", lifespan=lifespan)
    app.state.manager = manager
    app.include_router(build_router(manager))
    return app
