"""Shared text buffer owned by a room."""

from __future__ import annotations

import asyncio
import logging

from coderoom.models.messages import DeleteEdit, InsertEdit

logger = logging.getLogger("coderoom.buffer")


class TextBuffer:
    """Position-addressed byte buffer guarded by a single asyncio lock.

    Every mutation and every snapshot runs inside the same exclusive
    section, so a reader never observes a half-applied splice. Offsets are
    byte offsets into the UTF-8 encoded document.

    Out-of-range edits are logged and skipped; they never raise.
    """

    def __init__(self, initial: bytes | str = b"") -> None:
        if isinstance(initial, str):
            initial = initial.encode("utf-8")
        self._data = bytearray(initial)
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._data)

    async def insert(self, position: int, payload: bytes | str) -> bool:
        """Splice *payload* in at *position*.

        Returns:
            ``True`` if the buffer changed, ``False`` if *position* was out of
            range (``position < 0`` or ``position > len``).
        """
        async with self._lock:
            return self._insert(position, _as_bytes(payload))

    async def delete(self, from_offset: int, count: int) -> bool:
        """Remove *count* bytes starting at *from_offset*.

        A range running past the end is clamped to end-of-buffer.

        Returns:
            ``True`` if the request was accepted, ``False`` on a bounds error.
        """
        async with self._lock:
            return self._delete(from_offset, count)

    async def apply(self, op: InsertEdit | DeleteEdit) -> bool:
        """Apply a wire edit, including the insert position compensation.

        An insert whose ``pos`` lies beyond the current end is shifted back by
        one before the bounds check. Clients rely on this: a request one past
        the end appends, anything further is rejected.
        """
        async with self._lock:
            if isinstance(op, InsertEdit):
                position = op.pos
                if position > len(self._data):
                    position -= 1
                return self._insert(position, op.value.encode("utf-8"))
            return self._delete(op.from_, op.count)

    async def snapshot(self) -> str:
        """Return the current document as text."""
        async with self._lock:
            return self._data.decode("utf-8", errors="replace")

    async def snapshot_bytes(self) -> bytes:
        async with self._lock:
            return bytes(self._data)

    def _insert(self, position: int, payload: bytes) -> bool:
        if position < 0 or position > len(self._data):
            logger.warning(
                "Insert position %d out of range (length %d)", position, len(self._data)
            )
            return False
        self._data[position:position] = payload
        return True

    def _delete(self, from_offset: int, count: int) -> bool:
        if from_offset < 0 or from_offset > len(self._data):
            logger.warning(
                "Delete offset %d out of range (length %d)", from_offset, len(self._data)
            )
            return False
        if count < 0:
            logger.warning("Delete count %d is negative", count)
            return False
        del self._data[from_offset : from_offset + count]
        return True


def _as_bytes(payload: bytes | str) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return bytes(payload)
