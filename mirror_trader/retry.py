"""Exponential-backoff retry for async operations."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
RetryPredicate = Callable[[BaseException], bool]


@dataclass(frozen=True, slots=True)
class RetryConfig:
    max_retries: int = 3             # retries after the first attempt
    initial_delay_s: float = 1.0
    max_delay_s: float = 30.0
    backoff_multiplier: float = 2.0

    @property
    def max_attempts(self) -> int:
        return max(0, int(self.max_retries)) + 1


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig = RetryConfig(),
    *,
    name: str = "operation",
    retry_on: Optional[RetryPredicate] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Await ``operation()`` until it succeeds or the retry budget is spent.

    The delay starts at ``initial_delay_s`` and is multiplied by
    ``backoff_multiplier`` after each retry, capped at ``max_delay_s``. The
    last failure is re-raised unchanged. Failures rejected by ``retry_on``
    propagate immediately.
    """
    attempts = config.max_attempts
    delay = max(0.0, float(config.initial_delay_s))
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if retry_on is not None and not retry_on(exc):
                raise
            if attempt >= attempts:
                raise
            log.warning(
                "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                name, attempt, attempts, delay, exc,
            )
            await sleep(delay)
            delay = min(delay * config.backoff_multiplier, config.max_delay_s)
