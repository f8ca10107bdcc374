"""Client connections a room fans messages out to."""

from coderoom.connections.base import Connection
from coderoom.connections.mock import MockConnection

__all__ = ["Connection", "MockConnection"]
