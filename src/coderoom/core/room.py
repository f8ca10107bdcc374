"""Room: shared buffer, connection set, edit fan-out and code execution."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from coderoom.connections.base import Connection
from coderoom.core.buffer import TextBuffer
from coderoom.core.retry import retry_with_backoff
from coderoom.errors import ReviewError, ReviewNotConfiguredError
from coderoom.execution.base import ExecutionBackend
from coderoom.execution.dispatcher import ExecutionDispatcher
from coderoom.models.enums import (
    ControlEvent,
    ExecutionStage,
    RoomState,
    RunPolicy,
    UpdateEvent,
)
from coderoom.models.execution import ExecutionResult
from coderoom.models.messages import (
    TEXT_UPDATE,
    ApiRequest,
    ControlResponse,
    OutboundUpdate,
    parse_edit,
)
from coderoom.models.room import RoomConfig, RoomInfo
from coderoom.review.base import ReviewProvider
from coderoom.telemetry.base import Attr, SpanKind, TelemetryProvider
from coderoom.telemetry.noop import NoopTelemetryProvider

logger = logging.getLogger("coderoom.room")

_CONTROL_EVENTS = frozenset(e.value for e in ControlEvent)

RUN_ACK = "Data processed successfully"
RUN_BUSY = "execution already in progress"
SAVE_ACK = "Nothing to save"
REVIEW_FAILED = "internal server error"


def _is_retryable(exc: Exception) -> bool:
    return isinstance(exc, ReviewError) and exc.retryable


class Room:
    """A collaborative session: one shared text buffer, many connections.

    Consistency model: edits from one connection are applied in the order
    they arrive on that connection. There is no ordering across connections
    and no transformation of concurrent edits; overlapping edits resolve as
    last-applied-wins.

    Executions are serialised per room (``RunPolicy.QUEUE``) or refused while
    one is in flight (``RunPolicy.REJECT``). The room is ``RUNNING`` while an
    execution holds the run lock and ``IDLE`` otherwise.
    """

    def __init__(
        self,
        room_id: str,
        *,
        config: RoomConfig | None = None,
        executor: ExecutionBackend | None = None,
        reviewer: ReviewProvider | None = None,
        telemetry: TelemetryProvider | None = None,
    ) -> None:
        self.id = room_id
        self.buffer = TextBuffer()
        self.created_at = datetime.now(UTC)
        self._config = config or RoomConfig()
        self._telemetry = telemetry or NoopTelemetryProvider()
        self._executor = executor or ExecutionDispatcher(telemetry=self._telemetry)
        self._reviewer = reviewer
        self._connections: dict[str, Connection] = {}
        self._connections_lock = asyncio.Lock()
        # Orders outbound frames. Never acquired under _connections_lock.
        self._send_lock = asyncio.Lock()
        self._run_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[None]] = set()

    # -- State queries --

    @property
    def config(self) -> RoomConfig:
        return self._config

    @property
    def state(self) -> RoomState:
        return RoomState.RUNNING if self._run_lock.locked() else RoomState.IDLE

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def has_connection(self, conn: Connection) -> bool:
        return self._connections.get(conn.id) is conn

    def info(self) -> RoomInfo:
        return RoomInfo(
            id=self.id,
            state=self.state,
            connection_count=self.connection_count,
            buffer_length=len(self.buffer),
            created_at=self.created_at,
        )

    # -- Connection lifecycle --

    async def attach(self, conn: Connection) -> None:
        """Serve *conn* until it closes.

        Adds the connection, sends it a ``connection_update`` snapshot after
        ``snapshot_delay`` seconds, then dispatches every inbound message.
        The connection is removed and closed when the channel ends.
        """
        async with self._connections_lock:
            self._connections[conn.id] = conn
        logger.info(
            "Connection %s joined room %s",
            conn.id,
            self.id,
            extra={"room_id": self.id, "connection_id": conn.id},
        )
        try:
            if self._config.snapshot_delay > 0:
                await asyncio.sleep(self._config.snapshot_delay)
            snapshot = await self.buffer.snapshot()
            if not await self.send_to(conn, UpdateEvent.CONNECTION_UPDATE, snapshot):
                return
            async for raw in conn:
                await self.handle_message(conn, raw)
        except Exception as exc:
            logger.warning("Error reading from connection %s: %s", conn.id, exc)
        finally:
            await self.detach(conn)

    async def detach(self, conn: Connection) -> bool:
        """Remove and close *conn*. Returns whether it was still attached."""
        async with self._connections_lock:
            removed = self._connections.pop(conn.id, None) is not None
        await self._close_quietly(conn)
        if removed:
            logger.info("Connection %s left room %s", conn.id, self.id)
        return removed

    async def close(self) -> None:
        """Cancel in-flight control tasks and close every connection."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        async with self._connections_lock:
            conns = list(self._connections.values())
            self._connections.clear()
        for conn in conns:
            await self._close_quietly(conn)

    async def drain(self) -> None:
        """Wait for every background control task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- Inbound --

    async def handle_message(self, conn: Connection, raw: str) -> None:
        """Dispatch one inbound frame. Never raises."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Dropping non-JSON message from connection %s", conn.id)
            return
        if not isinstance(data, dict):
            logger.warning("Dropping non-object message from connection %s", conn.id)
            return

        event = data.get("event")
        try:
            if event == TEXT_UPDATE:
                await self.handle_edit(conn, data)
            elif event in _CONTROL_EVENTS:
                self._handle_socket_control(conn, data)
            else:
                logger.warning("Invalid json event %r from connection %s", event, conn.id)
        except Exception:
            logger.exception("Unexpected error handling %r from connection %s", event, conn.id)

    async def handle_edit(self, conn: Connection | None, raw: str | dict[str, Any]) -> bool:
        """Apply an edit and echo it to every other connection.

        Malformed and out-of-range edits are logged and dropped without
        being echoed.

        Returns:
            ``True`` if the buffer accepted the edit.
        """
        try:
            data = json.loads(raw) if isinstance(raw, str) else raw
            op = parse_edit(data)
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning(
                "Dropping malformed edit from connection %s: %s",
                conn.id if conn else None,
                exc,
            )
            return False

        with self._telemetry.span(
            SpanKind.ROOM_EDIT,
            "room.edit",
            room_id=self.id,
            attributes={Attr.EDIT_TYPE: op.type},
        ) as span_id:
            applied = await self.buffer.apply(op)
            self._telemetry.set_attribute(span_id, Attr.EDIT_APPLIED, applied)
        if not applied:
            return False
        await self.broadcast(UpdateEvent.INPUT_UPDATE, data, exclude=conn)
        return True

    def _handle_socket_control(self, conn: Connection, data: dict[str, Any]) -> None:
        try:
            request = ApiRequest.model_validate(data)
        except ValidationError as exc:
            logger.warning("Dropping malformed control message from %s: %s", conn.id, exc)
            return
        if request.room is not None and request.room != self.id:
            logger.warning(
                "Control message names room %r but connection %s is in room %s",
                request.room,
                conn.id,
                self.id,
            )
        # Off the receive loop so edits keep flowing while code runs.
        self._spawn(self._socket_control(conn, request), name=f"control:{self.id}:{request.event}")

    async def _socket_control(self, conn: Connection, request: ApiRequest) -> None:
        response = await self.handle_control(request)
        if request.event is ControlEvent.CODE_REVIEW:
            await self.send_to(conn, UpdateEvent.REVIEW_UPDATE, response.review or "")
        elif response.status_code != 200 and response.message:
            await self.send_to(conn, UpdateEvent.OUTPUT_UPDATE, response.message)

    # -- Control --

    async def handle_control(self, request: ApiRequest) -> ControlResponse:
        """Handle a control request and return the requester's answer.

        ``run_code`` broadcasts its output to every connection and always
        acknowledges, whatever the program did. ``code_review`` answers the
        requester only; a collaborator failure becomes a 500 response.
        """
        with self._telemetry.span(
            SpanKind.ROOM_CONTROL,
            "room.control",
            room_id=self.id,
            attributes={Attr.CONTROL_EVENT: str(request.event)},
        ):
            if request.event is ControlEvent.RUN_CODE:
                result = await self.run_code(request.language or "")
                if result is None:
                    return ControlResponse(status_code=409, message=RUN_BUSY)
                return ControlResponse(message=RUN_ACK)

            if request.event is ControlEvent.CODE_REVIEW:
                try:
                    review = await self.review_code()
                except (ReviewError, ReviewNotConfiguredError) as exc:
                    logger.error("Code review failed for room %s: %s", self.id, exc)
                    return ControlResponse(status_code=500, review=REVIEW_FAILED)
                return ControlResponse(review=review)

            return ControlResponse(message=SAVE_ACK)

    async def run_code(self, language: str) -> ExecutionResult | None:
        """Execute the current buffer and broadcast the output to everyone.

        Returns:
            The execution result, or ``None`` when the room refuses the run
            because another one is in flight (``RunPolicy.REJECT``).
        """
        if self._config.run_policy is RunPolicy.REJECT and self._run_lock.locked():
            logger.info("Refusing run_code for room %s: execution in progress", self.id)
            return None

        async with self._run_lock:
            source = await self.buffer.snapshot()
            try:
                result = await self._executor.run(
                    self.id, language, self._config.source_base_name, source
                )
            except Exception as exc:
                logger.exception("Execution backend failed for room %s", self.id)
                result = ExecutionResult.failure(ExecutionStage.EXECUTE, str(exc))

        logger.info(
            "Execution finished for room %s (%s)",
            self.id,
            result.stage or f"exit {result.exit_code}",
            extra={"room_id": self.id, "language": language},
        )
        await self.broadcast(UpdateEvent.OUTPUT_UPDATE, result.display_text())
        return result

    async def review_code(self) -> str:
        """Ask the review collaborator about the current buffer.

        Raises:
            ReviewNotConfiguredError: No review provider was supplied.
            ReviewError: The provider failed after retries.
        """
        if self._reviewer is None:
            raise ReviewNotConfiguredError("no review provider configured")
        source = await self.buffer.snapshot()
        with self._telemetry.span(
            SpanKind.REVIEW_REQUEST,
            "review.request",
            room_id=self.id,
            attributes={Attr.PROVIDER: self._reviewer.name},
        ):
            return await retry_with_backoff(
                self._reviewer.review,
                self._config.review_retry,
                source,
                should_retry=_is_retryable,
            )

    # -- Outbound --

    async def broadcast(
        self,
        event: UpdateEvent,
        payload: str | dict[str, Any],
        *,
        exclude: Connection | None = None,
        parsed: bool = False,
    ) -> int:
        """Send an update to every connection except *exclude*.

        Best-effort fan-out: a connection whose send fails (or times out) is
        removed and closed, and the others still receive the message. With
        ``parsed=True`` a string payload is decoded as JSON and echoed as a
        structured object.

        Returns:
            The number of connections the message was delivered to.
        """
        if parsed and isinstance(payload, str):
            payload = json.loads(payload)
        message = OutboundUpdate(event=event, update=payload).model_dump_json()

        with self._telemetry.span(
            SpanKind.ROOM_BROADCAST,
            "room.broadcast",
            room_id=self.id,
            attributes={Attr.BROADCAST_EVENT: str(event)},
        ) as span_id:
            async with self._send_lock:
                async with self._connections_lock:
                    targets = [c for c in self._connections.values() if c is not exclude]
                results = await asyncio.gather(
                    *(self._send(c, message) for c in targets), return_exceptions=True
                )
                failed: list[Connection] = []
                for conn, outcome in zip(targets, results, strict=True):
                    if isinstance(outcome, BaseException):
                        logger.warning(
                            "Failed to send %s to connection %s: %r", event, conn.id, outcome
                        )
                        failed.append(conn)
                await self._forget(failed)
            self._telemetry.set_attribute(span_id, Attr.BROADCAST_RECIPIENTS, len(targets))
            self._telemetry.set_attribute(span_id, Attr.BROADCAST_FAILED, len(failed))

        for conn in failed:
            await self._close_quietly(conn)
        if failed:
            self._telemetry.record_metric(
                "coderoom.broadcast.failed",
                len(failed),
                attributes={Attr.ROOM_ID: self.id},
            )
        return len(targets) - len(failed)

    async def send_to(
        self, conn: Connection, event: UpdateEvent, payload: str | dict[str, Any]
    ) -> bool:
        """Send an update to a single connection.

        On failure the connection is removed and closed.
        """
        message = OutboundUpdate(event=event, update=payload).model_dump_json()
        async with self._send_lock:
            try:
                await self._send(conn, message)
            except Exception as exc:
                logger.warning("Failed to send %s to connection %s: %r", event, conn.id, exc)
                await self._forget([conn])
                sent = False
            else:
                sent = True
        if not sent:
            await self._close_quietly(conn)
        return sent

    async def _send(self, conn: Connection, message: str) -> None:
        await asyncio.wait_for(conn.send(message), timeout=self._config.send_timeout)

    async def _forget(self, conns: list[Connection]) -> None:
        if not conns:
            return
        async with self._connections_lock:
            for conn in conns:
                # A reconnect may have reused the id.
                if self._connections.get(conn.id) is conn:
                    del self._connections[conn.id]

    # -- Helpers --

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Control task %s failed: %s", task.get_name(), exc)

    @staticmethod
    async def _close_quietly(conn: Connection) -> None:
        try:
            await conn.close()
        except Exception:
            logger.debug("Error closing connection %s", conn.id, exc_info=True)

    def __repr__(self) -> str:
        return f"Room(id={self.id!r}, connections={self.connection_count}, state={self.state})"
