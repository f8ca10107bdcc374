"""Subprocess-based execution dispatcher."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import resource
import shutil
import signal
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from coderoom.execution.base import ExecutionBackend
from coderoom.execution.config import ExecutionConfig, SandboxLimits
from coderoom.execution.pipelines import (
    Pipeline,
    PipelineStep,
    StepKind,
    build_pipeline,
    lookup_language,
)
from coderoom.models.enums import ExecutionStage
from coderoom.models.execution import ExecutionResult
from coderoom.telemetry.base import Attr, SpanKind, TelemetryProvider
from coderoom.telemetry.noop import NoopTelemetryProvider

logger = logging.getLogger("coderoom.execution")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")
_MAX_NAME_LENGTH = 64
_READ_CHUNK = 4096
_DRAIN_SECONDS = 1.0
TRUNCATION_MARKER = "\n[output truncated]\n"


def safe_name(value: str) -> str:
    """Reduce an identifier to characters that are safe in a file name."""
    cleaned = _UNSAFE_CHARS.sub("_", value).lstrip(".")
    return cleaned[:_MAX_NAME_LENGTH]


@dataclass
class _StepOutcome:
    output: bytes
    exit_code: int | None
    timed_out: bool
    truncated: bool


class ExecutionDispatcher(ExecutionBackend):
    """Compiles and runs source text in local child processes.

    Each run gets a private directory under ``scratch_dir`` named from the
    base name, the room tag and a random token, so concurrent runs for the
    same room never touch each other's files. The directory is removed once
    the run finishes, whatever the outcome.

    Every step is launched from an argument vector in its own session, with
    stdin closed, a scrubbed environment, POSIX resource limits and an
    optional wrapper command (see :class:`ExecutionConfig`). Stdout and
    stderr are captured together.
    """

    def __init__(
        self,
        config: ExecutionConfig | None = None,
        *,
        telemetry: TelemetryProvider | None = None,
    ) -> None:
        self._config = config or ExecutionConfig()
        self._telemetry = telemetry or NoopTelemetryProvider()

    @property
    def config(self) -> ExecutionConfig:
        return self._config

    async def run(
        self,
        room_tag: str,
        language: str,
        base_name: str,
        source_text: str,
    ) -> ExecutionResult:
        started = time.monotonic()
        with self._telemetry.span(
            SpanKind.EXECUTION_RUN,
            "execution.run",
            room_id=room_tag,
            attributes={Attr.EXEC_LANGUAGE: str(language)},
        ) as span_id:
            result = await self._run(room_tag, language, base_name, source_text)
            result.duration_ms = (time.monotonic() - started) * 1000
            self._telemetry.set_attribute(span_id, Attr.EXEC_STAGE, result.stage or "ok")
            self._telemetry.set_attribute(span_id, Attr.EXEC_EXIT_CODE, result.exit_code)
            self._telemetry.set_attribute(span_id, Attr.EXEC_TIMED_OUT, result.timed_out)
        self._telemetry.record_metric(
            "coderoom.execution.duration_ms",
            result.duration_ms,
            unit="ms",
            attributes={Attr.EXEC_LANGUAGE: str(language)},
        )
        return result

    async def _run(
        self,
        room_tag: str,
        language: str,
        base_name: str,
        source_text: str,
    ) -> ExecutionResult:
        lang = lookup_language(language)
        if lang is None:
            logger.warning("Rejecting execution for unsupported language %r", language)
            return ExecutionResult.failure(
                ExecutionStage.UNSUPPORTED, f"unsupported language: {language!r}"
            )

        stem = safe_name(f"{base_name}{room_tag}") or "main"
        workdir = self._config.scratch_dir / f"{stem}-{uuid4().hex[:12]}"
        source = workdir / lang.source_filename(stem)
        try:
            try:
                await asyncio.to_thread(_write_source, source, source_text)
            except OSError as exc:
                logger.error("Cannot write source for room %s: %s", room_tag, exc)
                return ExecutionResult.failure(ExecutionStage.WRITE, str(exc))

            pipeline = build_pipeline(lang, source, self._config)
            logger.info(
                "Running %s pipeline for room %s (%d step(s))",
                lang.language,
                room_tag,
                len(pipeline.steps),
                extra={"room_id": room_tag, "language": str(lang.language)},
            )
            return await self._execute(pipeline, workdir)
        finally:
            await asyncio.to_thread(shutil.rmtree, workdir, ignore_errors=True)

    async def _execute(self, pipeline: Pipeline, workdir: Path) -> ExecutionResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.timeout_seconds
        chunks: list[bytes] = []
        truncated = False
        exit_code: int | None = None

        for step in pipeline.steps:
            remaining = deadline - loop.time()
            try:
                outcome = await self._run_step(
                    step, workdir, max(remaining, 0.0), pipeline.limit_address_space
                )
            except (OSError, subprocess.SubprocessError) as exc:
                logger.warning("Cannot launch %s: %s", step.argv[0], exc)
                return ExecutionResult.failure(
                    ExecutionStage.EXECUTE,
                    f"cannot launch {step.argv[0]}: {exc}",
                    output=_decode(chunks),
                )

            chunks.append(outcome.output)
            truncated = truncated or outcome.truncated
            exit_code = outcome.exit_code
            output = self._join(chunks, truncated)

            if outcome.timed_out:
                logger.warning(
                    "%s step timed out after %.1fs", step.kind, self._config.timeout_seconds
                )
                return ExecutionResult.failure(
                    ExecutionStage.EXECUTE,
                    f"{step.kind} timed out after {self._config.timeout_seconds:g}s",
                    output=output,
                    timed_out=True,
                    truncated=truncated,
                )
            if step.kind is StepKind.COMPILE and exit_code != 0:
                return ExecutionResult.failure(
                    ExecutionStage.EXECUTE,
                    f"compilation failed with exit code {exit_code}",
                    output=output,
                    exit_code=exit_code,
                    truncated=truncated,
                )

        return ExecutionResult(
            output=self._join(chunks, truncated),
            exit_code=exit_code,
            truncated=truncated,
        )

    async def _run_step(
        self,
        step: PipelineStep,
        workdir: Path,
        timeout: float,
        limit_address_space: bool,
    ) -> _StepOutcome:
        argv = self._wrap(step.argv, workdir)
        # The pipe is ours, not the transport's, so proc.wait() only tracks
        # the child's exit and a detached descendant cannot hold it open.
        read_fd, write_fd = os.pipe()
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=write_fd,
                stderr=write_fd,
                cwd=workdir,
                env=self._child_env(workdir),
                start_new_session=True,
                preexec_fn=_limit_child(self._config.limits, limit_address_space),
            )
        except BaseException:
            os.close(read_fd)
            raise
        finally:
            os.close(write_fd)

        output = _CappedOutput(self._config.max_output_bytes)
        transport, reader = await output.start(read_fd)
        timed_out = False
        try:
            try:
                await asyncio.wait_for(proc.wait(), timeout=timeout)
            except TimeoutError:
                timed_out = True
            finally:
                _kill_group(proc.pid)
            await proc.wait()
            try:
                await asyncio.wait_for(reader, timeout=_DRAIN_SECONDS)
            except TimeoutError:
                logger.warning(
                    "%s output still open %.1fs after exit; a detached process holds it",
                    step.argv[0],
                    _DRAIN_SECONDS,
                )
        finally:
            reader.cancel()
            transport.close()
        return _StepOutcome(
            output=bytes(output.data),
            exit_code=None if timed_out else proc.returncode,
            timed_out=timed_out,
            truncated=output.truncated,
        )

    def _wrap(self, argv: tuple[str, ...], workdir: Path) -> list[str]:
        prefix = [part.replace("{workdir}", str(workdir)) for part in self._config.sandbox_command]
        return [*prefix, *argv]

    def _child_env(self, workdir: Path) -> dict[str, str]:
        env = {
            "PATH": os.environ.get("PATH", os.defpath),
            "HOME": str(workdir),
            "TMPDIR": str(workdir),
            "LANG": "C.UTF-8",
            "PYTHONDONTWRITEBYTECODE": "1",
        }
        env.update(self._config.extra_env)
        return env

    def _join(self, chunks: list[bytes], truncated: bool) -> str:
        text = _decode(chunks)
        if truncated:
            text += TRUNCATION_MARKER
        return text


def _decode(chunks: list[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace")


def _write_source(source: Path, text: str) -> None:
    source.parent.mkdir(parents=True, mode=0o700)
    source.write_text(text, encoding="utf-8")


class _CappedOutput:
    """Collects a child's combined output, keeping at most *limit* bytes."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.data = bytearray()
        self.truncated = False

    async def start(
        self, read_fd: int
    ) -> tuple[asyncio.ReadTransport, asyncio.Task[None]]:
        loop = asyncio.get_running_loop()
        stream = asyncio.StreamReader()
        pipe = os.fdopen(read_fd, "rb", buffering=0)
        try:
            transport, _ = await loop.connect_read_pipe(
                lambda: asyncio.StreamReaderProtocol(stream), pipe
            )
        except BaseException:
            pipe.close()
            raise
        return transport, asyncio.create_task(self._consume(stream))

    async def _consume(self, stream: asyncio.StreamReader) -> None:
        while chunk := await stream.read(_READ_CHUNK):
            space = self.limit - len(self.data)
            if space > 0:
                self.data.extend(chunk[:space])
            if len(chunk) > space:
                self.truncated = True


def _kill_group(pid: int) -> None:
    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(pid, signal.SIGKILL)


def _rlimit(which: int, requested: int) -> tuple[int, int]:
    """Clamp *requested* to the hard limit this process may grant."""
    _, hard = resource.getrlimit(which)
    if hard != resource.RLIM_INFINITY:
        requested = min(requested, hard)
    return requested, requested


def _limit_child(limits: SandboxLimits, limit_address_space: bool) -> Callable[[], None]:
    """Build the ``preexec_fn`` applying resource limits in the child."""
    wanted: list[tuple[int, int]] = []
    if limits.cpu_seconds is not None:
        wanted.append((resource.RLIMIT_CPU, limits.cpu_seconds))
    if limits.max_file_mb is not None:
        wanted.append((resource.RLIMIT_FSIZE, limits.max_file_mb * 1024 * 1024))
    if limit_address_space and limits.memory_mb is not None:
        wanted.append((resource.RLIMIT_AS, limits.memory_mb * 1024 * 1024))
    if limits.max_processes is not None:
        wanted.append((resource.RLIMIT_NPROC, limits.max_processes))
    # Resolved in the parent: the child only makes setrlimit calls.
    pairs = [(which, _rlimit(which, value)) for which, value in wanted]

    def apply() -> None:
        for which, pair in pairs:
            resource.setrlimit(which, pair)
        os.umask(0o077)

    return apply
