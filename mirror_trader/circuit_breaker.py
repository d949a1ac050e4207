"""Circuit breaker for flaky dependencies.

States:
    CLOSED     calls pass through; consecutive failures are counted.
    OPEN       calls are rejected with CircuitOpenError until the cool-down
               deadline passes.
    HALF_OPEN  trial calls pass through; consecutive successes are counted.

Transitions:
    CLOSED    → OPEN       after ``failure_threshold`` consecutive failures
    OPEN      → HALF_OPEN  first call at or after the deadline (flipped
                           before the call runs, without a lock)
    HALF_OPEN → CLOSED     after ``success_threshold`` consecutive successes
    HALF_OPEN → OPEN       on any failure; the deadline is pushed out again
"""
from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, TypeVar

from .errors import CircuitOpenError

log = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
FailurePredicate = Callable[[BaseException], bool]


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_s: float = 60.0


class CircuitBreaker:
    """Wraps async calls to one dependency.

    Usage:
        breaker = CircuitBreaker("clob", CircuitBreakerConfig(failure_threshold=3))
        book = await breaker.call(lambda: exchange.get_order_book(token_id))
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig = CircuitBreakerConfig(),
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self.config = config
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._next_attempt = clock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    @property
    def success_count(self) -> int:
        return self._successes

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        is_failure: Optional[FailurePredicate] = None,
    ) -> T:
        """Run ``operation`` through the breaker.

        Exceptions rejected by ``is_failure`` propagate without touching the
        counters; by default every exception counts.
        """
        if self._state is CircuitState.OPEN:
            now = self._clock()
            if now < self._next_attempt:
                log.warning("circuit %s blocked call (state=OPEN)", self.name)
                raise CircuitOpenError(self.name, self._next_attempt - now)
            self._state = CircuitState.HALF_OPEN
            self._successes = 0
            log.info("circuit %s entering HALF_OPEN", self.name)

        try:
            result = await operation()
        except Exception as exc:
            if is_failure is None or is_failure(exc):
                self._on_failure()
            raise
        self._on_success()
        return result

    def _on_success(self) -> None:
        self._failures = 0
        if self._state is not CircuitState.HALF_OPEN:
            return
        self._successes += 1
        if self._successes >= self.config.success_threshold:
            self._state = CircuitState.CLOSED
            self._successes = 0
            log.info("circuit %s closed", self.name)

    def _on_failure(self) -> None:
        self._failures += 1
        if self._state is CircuitState.HALF_OPEN:
            self._open()
            self._successes = 0
            log.warning("circuit %s reopened after half-open failure", self.name)
        elif self._failures >= self.config.failure_threshold:
            self._open()
            log.error(
                "circuit %s opened after %d failures (retry in %.1fs)",
                self.name, self._failures, self.config.timeout_s,
            )

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._next_attempt = self._clock() + self.config.timeout_s

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._next_attempt = self._clock()
        log.info("circuit %s manually reset", self.name)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "failures": self._failures,
            "successes": self._successes,
        }
