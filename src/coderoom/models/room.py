"""Room configuration and snapshot models."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from coderoom.models.enums import RoomState, RunPolicy


class RetryPolicy(BaseModel):
    """Configures retry behaviour for collaborator calls."""

    max_retries: int = Field(default=2, ge=0)
    base_delay_seconds: float = Field(default=0.5, gt=0.0)
    max_delay_seconds: float = Field(default=8.0, gt=0.0)
    exponential_base: float = Field(default=2.0, gt=0.0)


class RoomConfig(BaseModel):
    """Per-room behaviour shared by every room a manager creates."""

    snapshot_delay: float = Field(default=0.5, ge=0.0)
    send_timeout: float = Field(default=10.0, gt=0.0)
    run_policy: RunPolicy = RunPolicy.QUEUE
    source_base_name: str = "main-"
    review_retry: RetryPolicy = Field(default_factory=RetryPolicy)


class RoomInfo(BaseModel):
    """Point-in-time view of a room."""

    id: str
    state: RoomState
    connection_count: int = Field(ge=0)
    buffer_length: int = Field(ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
