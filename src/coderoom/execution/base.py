"""Abstract base class for execution backends."""

from __future__ import annotations

from abc import ABC, abstractmethod

from coderoom.models.execution import ExecutionResult


class ExecutionBackend(ABC):
    """Runs a room's source text in some external environment.

    Implementations must never raise for failures of the submitted program
    or of the build pipeline: every outcome is reported through the
    returned :class:`ExecutionResult`.
    """

    @abstractmethod
    async def run(
        self,
        room_tag: str,
        language: str,
        base_name: str,
        source_text: str,
    ) -> ExecutionResult:
        """Build and run *source_text* as *language* and capture its output.

        Args:
            room_tag: Identifier of the requesting room, used to namespace
                scratch files.
            language: Language tag, e.g. ``"Python"`` or ``"C++"``.
            base_name: Base filename for the generated source file.
            source_text: Program text, written verbatim.
        """
        ...

    async def close(self) -> None:
        """Release backend resources. Default is a no-op."""
        return None
