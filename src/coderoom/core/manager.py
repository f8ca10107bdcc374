"""RoomManager - process-wide registry of rooms."""

from __future__ import annotations

import logging
from uuid import uuid4

from coderoom.core.locks import ReadWriteLock
from coderoom.core.room import Room
from coderoom.errors import RoomNotFoundError
from coderoom.execution.base import ExecutionBackend
from coderoom.execution.dispatcher import ExecutionDispatcher
from coderoom.models.room import RoomConfig
from coderoom.review.base import ReviewProvider
from coderoom.telemetry.base import TelemetryProvider
from coderoom.telemetry.noop import NoopTelemetryProvider

logger = logging.getLogger("coderoom.manager")


class RoomManager:
    """Creates and looks up rooms, and owns the services they share.

    One manager is created at startup and handed to whatever accepts
    connections; there is no module-level registry. Rooms are never
    removed while the process runs.
    """

    def __init__(
        self,
        *,
        executor: ExecutionBackend | None = None,
        reviewer: ReviewProvider | None = None,
        room_config: RoomConfig | None = None,
        telemetry: TelemetryProvider | None = None,
    ) -> None:
        """Initialise the manager.

        Args:
            executor: Backend running ``run_code`` requests. Defaults to an
                ``ExecutionDispatcher`` with default configuration.
            reviewer: Optional code-review collaborator. Without one,
                ``code_review`` requests answer with an internal error.
            room_config: Behaviour applied to every room created here.
            telemetry: Span and metric sink. Defaults to
                ``NoopTelemetryProvider``.
        """
        self._telemetry = telemetry or NoopTelemetryProvider()
        self._executor = executor or ExecutionDispatcher(telemetry=self._telemetry)
        self._reviewer = reviewer
        self._room_config = room_config or RoomConfig()
        self._rooms: dict[str, Room] = {}
        self._lock = ReadWriteLock()

    @property
    def executor(self) -> ExecutionBackend:
        return self._executor

    @property
    def reviewer(self) -> ReviewProvider | None:
        return self._reviewer

    @property
    def telemetry(self) -> TelemetryProvider:
        return self._telemetry

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    async def create_room(self, room_id: str | None = None) -> Room:
        """Create and register a room, replacing any room with the same id."""
        room = self._new_room(room_id or uuid4().hex)
        async with self._lock.write():
            if room.id in self._rooms:
                logger.warning("Replacing existing room %s", room.id)
            self._rooms[room.id] = room
        logger.info("Created room %s", room.id, extra={"room_id": room.id})
        return room

    async def get_room(self, room_id: str) -> Room | None:
        """Return the room registered under *room_id*, or ``None``."""
        async with self._lock.read():
            return self._rooms.get(room_id)

    async def require_room(self, room_id: str) -> Room:
        room = await self.get_room(room_id)
        if room is None:
            raise RoomNotFoundError(room_id)
        return room

    async def get_or_create_room(self, room_id: str) -> Room:
        """Return the room for *room_id*, creating it on first use."""
        room = await self.get_room(room_id)
        if room is not None:
            return room
        async with self._lock.write():
            room = self._rooms.get(room_id)
            if room is None:
                room = self._new_room(room_id)
                self._rooms[room_id] = room
                logger.info("Created room %s on first use", room_id, extra={"room_id": room_id})
            return room

    async def list_rooms(self) -> list[Room]:
        async with self._lock.read():
            return list(self._rooms.values())

    async def close(self) -> None:
        """Close every room and release shared backends."""
        for room in await self.list_rooms():
            await room.close()
        await self._executor.close()
        if self._reviewer is not None:
            await self._reviewer.close()
        self._telemetry.close()

    def _new_room(self, room_id: str) -> Room:
        return Room(
            room_id,
            config=self._room_config,
            executor=self._executor,
            reviewer=self._reviewer,
            telemetry=self._telemetry,
        )
