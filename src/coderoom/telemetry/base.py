"""Telemetry primitives: span kinds, attribute keys and the provider ABC."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class SpanKind(StrEnum):
    ROOM_EDIT = "room.edit"
    ROOM_BROADCAST = "room.broadcast"
    ROOM_CONTROL = "room.control"
    EXECUTION_RUN = "execution.run"
    REVIEW_REQUEST = "review.request"
    CUSTOM = "custom"


class Attr:
    """Attribute keys shared by spans and metrics."""

    ROOM_ID = "room_id"
    CONNECTION_ID = "connection_id"
    PROVIDER = "provider"

    EDIT_TYPE = "edit.type"
    EDIT_APPLIED = "edit.applied"

    BROADCAST_EVENT = "broadcast.event"
    BROADCAST_RECIPIENTS = "broadcast.recipients"
    BROADCAST_FAILED = "broadcast.failed"

    CONTROL_EVENT = "control.event"

    EXEC_LANGUAGE = "execution.language"
    EXEC_STAGE = "execution.stage"
    EXEC_EXIT_CODE = "execution.exit_code"
    EXEC_TIMED_OUT = "execution.timed_out"


@dataclass
class Span:
    kind: SpanKind
    name: str
    room_id: str | None = None
    parent_id: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    status: str = "ok"
    error_message: str | None = None

    @property
    def duration_ms(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds() * 1000


@dataclass
class Metric:
    name: str
    value: float
    unit: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)


class TelemetryProvider(ABC):
    """Sink for spans and metrics emitted by rooms and the execution layer.

    Rooms and dispatchers default to ``NoopTelemetryProvider``. Use
    ``ConsoleTelemetryProvider`` while developing and
    ``MockTelemetryProvider`` in tests.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def start_span(
        self,
        kind: SpanKind,
        name: str,
        *,
        room_id: str | None = None,
        parent_id: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> str:
        """Open a span and return its id."""
        ...

    @abstractmethod
    def end_span(self, span_id: str, *, error: BaseException | None = None) -> None:
        """Close a span, marking it failed when *error* is given."""
        ...

    @abstractmethod
    def set_attribute(self, span_id: str, key: str, value: Any) -> None: ...

    @abstractmethod
    def record_metric(
        self,
        name: str,
        value: float,
        *,
        unit: str = "",
        attributes: dict[str, Any] | None = None,
    ) -> None: ...

    def close(self) -> None:  # noqa: B027
        """Flush pending data. Default is a no-op."""

    @contextmanager
    def span(self, kind: SpanKind, name: str, **kwargs: Any) -> Iterator[str]:
        """Run a block inside a span and yield its id."""
        span_id = self.start_span(kind, name, **kwargs)
        try:
            yield span_id
        except Exception as exc:
            self.end_span(span_id, error=exc)
            raise
        self.end_span(span_id)


class SpanRecorder(TelemetryProvider):
    """Keeps open spans in memory and hands finished ones to :meth:`finished`."""

    def __init__(self) -> None:
        self._open: dict[str, Span] = {}

    @property
    def open_spans(self) -> int:
        return len(self._open)

    def start_span(
        self,
        kind: SpanKind,
        name: str,
        *,
        room_id: str | None = None,
        parent_id: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> str:
        span = Span(
            kind=kind,
            name=name,
            room_id=room_id,
            parent_id=parent_id,
            attributes=dict(attributes or {}),
        )
        self._open[span.id] = span
        return span.id

    def end_span(self, span_id: str, *, error: BaseException | None = None) -> None:
        span = self._open.pop(span_id, None)
        if span is None:
            return
        span.end_time = datetime.now(UTC)
        if error is not None:
            span.status = "error"
            span.error_message = str(error)
        self.finished(span)

    def set_attribute(self, span_id: str, key: str, value: Any) -> None:
        if span_id in self._open:
            self._open[span_id].attributes[key] = value

    def record_metric(
        self,
        name: str,
        value: float,
        *,
        unit: str = "",
        attributes: dict[str, Any] | None = None,
    ) -> None:
        self.measured(Metric(name, value, unit, dict(attributes or {})))

    @abstractmethod
    def finished(self, span: Span) -> None: ...

    @abstractmethod
    def measured(self, metric: Metric) -> None: ...
