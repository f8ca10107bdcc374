"""Mock execution backend for testing."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from coderoom.execution.base import ExecutionBackend
from coderoom.models.execution import ExecutionResult


@dataclass
class ExecutionCall:
    room_tag: str
    language: str
    base_name: str
    source_text: str


class MockExecutionBackend(ExecutionBackend):
    """Round-robin result backend that records every call.

    Set ``gate`` to an ``asyncio.Event`` to hold runs in flight until the
    test releases it.
    """

    def __init__(
        self,
        results: list[ExecutionResult] | None = None,
        *,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.results = results or [ExecutionResult(output="ok\n", exit_code=0)]
        self.calls: list[ExecutionCall] = []
        self.gate = gate
        self.active = 0
        self.max_active = 0
        self._index = 0

    async def run(
        self,
        room_tag: str,
        language: str,
        base_name: str,
        source_text: str,
    ) -> ExecutionResult:
        self.calls.append(ExecutionCall(room_tag, language, base_name, source_text))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            result = self.results[self._index % len(self.results)]
            self._index += 1
            return result.model_copy()
        finally:
            self.active -= 1
