"""coderoom - real-time collaborative code rooms with multi-language execution."""

from coderoom._version import __version__
from coderoom.connections import Connection, MockConnection
from coderoom.core import ReadWriteLock, Room, RoomManager, TextBuffer
from coderoom.errors import (
    CodeRoomError,
    ConnectionClosedError,
    ReviewError,
    ReviewNotConfiguredError,
    RoomNotFoundError,
)
from coderoom.execution import (
    ExecutionBackend,
    ExecutionConfig,
    ExecutionDispatcher,
    MockExecutionBackend,
    SandboxLimits,
)
from coderoom.models import (
    ApiRequest,
    ControlEvent,
    ControlResponse,
    DeleteEdit,
    ExecutionResult,
    ExecutionStage,
    InsertEdit,
    Language,
    OutboundUpdate,
    RetryPolicy,
    RoomConfig,
    RoomInfo,
    RoomState,
    RunPolicy,
    UpdateEvent,
    parse_edit,
)
from coderoom.review import MockReviewProvider, ReviewProvider
from coderoom.telemetry import (
    ConsoleTelemetryProvider,
    MockTelemetryProvider,
    NoopTelemetryProvider,
    TelemetryProvider,
)

__all__ = [
    "ApiRequest",
    "CodeRoomError",
    "Connection",
    "ConnectionClosedError",
    "ConsoleTelemetryProvider",
    "ControlEvent",
    "ControlResponse",
    "DeleteEdit",
    "ExecutionBackend",
    "ExecutionConfig",
    "ExecutionDispatcher",
    "ExecutionResult",
    "ExecutionStage",
    "InsertEdit",
    "Language",
    "MockConnection",
    "MockExecutionBackend",
    "MockReviewProvider",
    "MockTelemetryProvider",
    "NoopTelemetryProvider",
    "OutboundUpdate",
    "ReadWriteLock",
    "RetryPolicy",
    "ReviewError",
    "ReviewNotConfiguredError",
    "ReviewProvider",
    "Room",
    "RoomConfig",
    "RoomInfo",
    "RoomManager",
    "RoomNotFoundError",
    "RoomState",
    "RunPolicy",
    "TelemetryProvider",
    "TextBuffer",
    "UpdateEvent",
    "__version__",
    "parse_edit",
]
