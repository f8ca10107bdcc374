"""Data models for coderoom."""

from coderoom.models.enums import (
    ControlEvent,
    EditType,
    ExecutionStage,
    Language,
    RoomState,
    RunPolicy,
    UpdateEvent,
)
from coderoom.models.execution import ExecutionResult
from coderoom.models.messages import (
    ApiRequest,
    ControlResponse,
    CreateRoomRequest,
    DeleteEdit,
    EditOperation,
    InsertEdit,
    OutboundUpdate,
    parse_edit,
)
from coderoom.models.room import RetryPolicy, RoomConfig, RoomInfo

__all__ = [
    "ApiRequest",
    "ControlEvent",
    "ControlResponse",
    "CreateRoomRequest",
    "DeleteEdit",
    "EditOperation",
    "EditType",
    "ExecutionResult",
    "ExecutionStage",
    "InsertEdit",
    "Language",
    "OutboundUpdate",
    "RetryPolicy",
    "RoomConfig",
    "RoomInfo",
    "RoomState",
    "RunPolicy",
    "UpdateEvent",
    "parse_edit",
]
