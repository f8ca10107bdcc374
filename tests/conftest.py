"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

import pytest

from coderoom.core.manager import RoomManager
from coderoom.core.room import Room
from coderoom.execution.mock import MockExecutionBackend
from coderoom.models.room import RoomConfig
from coderoom.review.mock import MockReviewProvider
from coderoom.telemetry.mock import MockTelemetryProvider


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay.

    Replaces ``await asyncio.sleep(0.05)`` patterns with zero-delay
    event loop yields::

        await advance()       # 5 yields (default)
        await advance(10)     # 10 yields for heavier workloads
    """

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


@pytest.fixture
def room_config() -> RoomConfig:
    return RoomConfig(snapshot_delay=0)


@pytest.fixture
def executor() -> MockExecutionBackend:
    return MockExecutionBackend()


@pytest.fixture
def reviewer() -> MockReviewProvider:
    return MockReviewProvider()


@pytest.fixture
def telemetry() -> MockTelemetryProvider:
    return MockTelemetryProvider()


@pytest.fixture
def room(
    room_config: RoomConfig,
    executor: MockExecutionBackend,
    reviewer: MockReviewProvider,
    telemetry: MockTelemetryProvider,
) -> Room:
    return Room(
        "test-room",
        config=room_config,
        executor=executor,
        reviewer=reviewer,
        telemetry=telemetry,
    )


@pytest.fixture
def manager(
    room_config: RoomConfig,
    executor: MockExecutionBackend,
    reviewer: MockReviewProvider,
) -> RoomManager:
    return RoomManager(executor=executor, reviewer=reviewer, room_config=room_config)


def make_insert(pos: int, value: str) -> dict[str, Any]:
    return {"event": "text_update", "type": "insert", "pos": pos, "value": value}


def make_delete(start: int, end: int) -> dict[str, Any]:
    return {"event": "text_update", "type": "delete", "from": start, "to": end}
