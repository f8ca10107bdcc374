"""Collaborative code room server.

Serves ``WS /ws/{room_id}`` and ``POST /api`` with uvicorn. Code review is
enabled when ``GOOGLE_API_KEY`` is set.

Run with:
    pip install -e ".[server,gemini]"
    GOOGLE_API_KEY=... python examples/collab_server.py
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import uvicorn

from coderoom import ConsoleTelemetryProvider, ExecutionConfig, ExecutionDispatcher, RoomManager
from coderoom.review.base import ReviewProvider
from coderoom.server import create_app

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger("collab_server")


def build_reviewer() -> ReviewProvider | None:
    api_key = os.environ.get("GOOGLE_API_KEY")
    if not api_key:
        logger.info("GOOGLE_API_KEY not set, code review disabled")
        return None
    from coderoom.review.gemini import GeminiReviewConfig, GeminiReviewProvider

    return GeminiReviewProvider(GeminiReviewConfig(api_key=api_key))


def build_manager() -> RoomManager:
    telemetry = ConsoleTelemetryProvider()
    config = ExecutionConfig()
    scratch = os.environ.get("CODEROOM_SCRATCH_DIR")
    if scratch:
        config.scratch_dir = Path(scratch)
    return RoomManager(
        executor=ExecutionDispatcher(config, telemetry=telemetry),
        reviewer=build_reviewer(),
        telemetry=telemetry,
    )


app = create_app(build_manager())


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8080")))
