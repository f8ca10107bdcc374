"""HTTP and WebSocket surface (requires ``fastapi``)."""

from coderoom.server.app import build_router, create_app

__all__ = ["build_router", "create_app"]
