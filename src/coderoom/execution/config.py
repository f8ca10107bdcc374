"""Execution dispatcher configuration."""

from __future__ import annotations

import tempfile
from pathlib import Path

from pydantic import BaseModel, Field


class SandboxLimits(BaseModel):
    """POSIX resource limits applied to every child process.

    ``memory_mb`` caps the address space and is only applied to toolchains
    that do not reserve large virtual mappings up front (JVM, V8, Go and
    Mono runtimes are exempt).
    """

    cpu_seconds: int | None = Field(default=15, gt=0)
    memory_mb: int | None = Field(default=512, gt=0)
    max_file_mb: int | None = Field(default=16, gt=0)
    max_processes: int | None = Field(default=None, gt=0)


class ExecutionConfig(BaseModel):
    """Configuration for :class:`~coderoom.execution.dispatcher.ExecutionDispatcher`.

    Attributes:
        scratch_dir: Directory holding one sub-directory per run.
        timeout_seconds: Wall-clock budget for a whole pipeline (compile and
            run). The process group is killed when it expires.
        max_output_bytes: Captured output beyond this is discarded.
        toolchain: Overrides mapping a tool name (``"python3"``, ``"gcc"``,
            ...) to the executable to launch.
        sandbox_command: Optional argv prefix wrapping every step, e.g.
            ``["bwrap", "--ro-bind", "/", "/", "--bind", "{workdir}",
            "{workdir}", "--unshare-net", "--unshare-pid", "--die-with-parent"]``.
            ``{workdir}`` is replaced by the run directory. Without a PID
            namespace, a process that leaves the run's session outlives it.
        extra_env: Variables added to the scrubbed child environment.
    """

    scratch_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()) / "coderoom")
    timeout_seconds: float = Field(default=15.0, gt=0.0)
    max_output_bytes: int = Field(default=64 * 1024, gt=0)
    toolchain: dict[str, str] = Field(default_factory=dict)
    sandbox_command: list[str] = Field(default_factory=list)
    extra_env: dict[str, str] = Field(default_factory=dict)
    limits: SandboxLimits = Field(default_factory=SandboxLimits)

    def tool(self, name: str) -> str:
        """Resolve the executable for a tool name."""
        return self.toolchain.get(name, name)
