"""Execution result model."""

from __future__ import annotations

from pydantic import BaseModel

from coderoom.models.enums import ExecutionStage


class ExecutionResult(BaseModel):
    """Outcome of one execution request.

    ``stage`` and ``error`` are set only when the pipeline itself failed
    (unknown language, scratch write, launch, compile or deadline). A user
    program that exits non-zero is a successful run with a non-zero
    ``exit_code``.
    """

    output: str = ""
    stage: ExecutionStage | None = None
    error: str | None = None
    exit_code: int | None = None
    timed_out: bool = False
    truncated: bool = False
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.stage is None

    @classmethod
    def failure(
        cls,
        stage: ExecutionStage,
        error: str,
        *,
        output: str = "",
        **kwargs: object,
    ) -> ExecutionResult:
        return cls(stage=stage, error=error, output=output, **kwargs)  # type: ignore[arg-type]

    def display_text(self) -> str:
        """Render the result the way it is broadcast to a room."""
        if self.ok:
            return self.output
        text = f"{self.stage}: {self.error}"
        if self.output:
            text = f"{text}\n{self.output}"
        return text
