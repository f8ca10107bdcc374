"""Exponential backoff for calls to external collaborators."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, TypeVar

from coderoom.models.room import RetryPolicy

logger = logging.getLogger("coderoom.retry")

T = TypeVar("T")


def backoff_delays(policy: RetryPolicy) -> Iterator[float]:
    """Yield the pause before each retry allowed by *policy*."""
    for attempt in range(policy.max_retries):
        yield min(
            policy.base_delay_seconds * policy.exponential_base**attempt,
            policy.max_delay_seconds,
        )


async def retry_with_backoff(
    fn: Callable[..., Awaitable[T]],
    policy: RetryPolicy,
    *args: Any,
    should_retry: Callable[[Exception], bool] = lambda exc: True,
    **kwargs: Any,
) -> T:
    """Await ``fn(*args, **kwargs)``, retrying failures *should_retry* accepts.

    The final failure propagates unchanged.
    """
    delays = backoff_delays(policy)
    attempt = 1
    while True:
        try:
            return await fn(*args, **kwargs)
        except Exception as exc:
            delay = next(delays, None)
            if delay is None or not should_retry(exc):
                raise
            logger.warning(
                "Attempt %d of %d failed (%s), retrying in %.2fs",
                attempt,
                policy.max_retries + 1,
                exc,
                delay,
                extra={"attempt": attempt, "delay": delay},
            )
        await asyncio.sleep(delay)
        attempt += 1
