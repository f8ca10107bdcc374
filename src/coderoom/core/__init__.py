"""Room state and synchronisation engine."""

from coderoom.core.buffer import TextBuffer
from coderoom.core.locks import ReadWriteLock
from coderoom.core.manager import RoomManager
from coderoom.core.room import Room

__all__ = ["ReadWriteLock", "Room", "RoomManager", "TextBuffer"]
