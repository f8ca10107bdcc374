"""All string enums for coderoom."""

from __future__ import annotations

from enum import StrEnum, unique


@unique
class Language(StrEnum):
    C = "C"
    PYTHON = "Python"
    JAVA = "Java"
    CPP = "C++"
    JAVASCRIPT = "JavaScript"
    TYPESCRIPT = "TypeScript"
    GO = "Go"
    RUST = "Rust"
    PHP = "PHP"
    CSHARP = "C#"


@unique
class EditType(StrEnum):
    INSERT = "insert"
    DELETE = "delete"


@unique
class ControlEvent(StrEnum):
    RUN_CODE = "run_code"
    CODE_SAVE = "code_save"
    CODE_REVIEW = "code_review"


@unique
class UpdateEvent(StrEnum):
    INPUT_UPDATE = "input_update"
    OUTPUT_UPDATE = "output_update"
    CONNECTION_UPDATE = "connection_update"
    REVIEW_UPDATE = "review_update"


@unique
class RoomState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"


@unique
class RunPolicy(StrEnum):
    """What a room does with a ``run_code`` request while another is in flight."""

    QUEUE = "queue"
    REJECT = "reject"


@unique
class ExecutionStage(StrEnum):
    """Stage label attached to a failed execution."""

    UNSUPPORTED = "unsupported language"
    WRITE = "write error"
    EXECUTE = "compile/execute error"
