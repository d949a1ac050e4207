"""Tests for retry-with-backoff."""
from __future__ import annotations

import asyncio
from typing import List

import pytest

from mirror_trader.errors import NetworkError
from mirror_trader.retry import RetryConfig, retry_with_backoff


class _Flaky:
    def __init__(self, failures: int, exc: Exception | None = None) -> None:
        self.failures = failures
        self.calls = 0
        self.exc = exc or RuntimeError("boom")

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


class _Sleeps:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestRetryWithBackoff:
    def test_succeeds_on_third_attempt(self) -> None:
        op = _Flaky(failures=2)
        sleeps = _Sleeps()
        result = asyncio.run(retry_with_backoff(op, RetryConfig(max_retries=3), sleep=sleeps))
        assert result == "ok"
        assert op.calls == 3
        assert sleeps.delays == [1.0, 2.0]

    def test_no_retry_when_first_attempt_succeeds(self) -> None:
        op = _Flaky(failures=0)
        sleeps = _Sleeps()
        assert asyncio.run(retry_with_backoff(op, sleep=sleeps)) == "ok"
        assert op.calls == 1
        assert sleeps.delays == []

    def test_reraises_last_failure(self) -> None:
        err = ValueError("still broken")
        op = _Flaky(failures=10, exc=err)
        sleeps = _Sleeps()
        with pytest.raises(ValueError) as info:
            asyncio.run(retry_with_backoff(op, RetryConfig(max_retries=2), sleep=sleeps))
        assert info.value is err
        assert op.calls == 3
        assert len(sleeps.delays) == 2

    def test_delay_capped(self) -> None:
        op = _Flaky(failures=5)
        sleeps = _Sleeps()
        cfg = RetryConfig(max_retries=5, initial_delay_s=1.0, max_delay_s=3.0, backoff_multiplier=2.0)
        asyncio.run(retry_with_backoff(op, cfg, sleep=sleeps))
        assert sleeps.delays == [1.0, 2.0, 3.0, 3.0, 3.0]

    def test_zero_retries_means_single_attempt(self) -> None:
        op = _Flaky(failures=1)
        with pytest.raises(RuntimeError):
            asyncio.run(retry_with_backoff(op, RetryConfig(max_retries=0), sleep=_Sleeps()))
        assert op.calls == 1

    def test_predicate_stops_non_retryable(self) -> None:
        op = _Flaky(failures=3, exc=NetworkError("bad request", retryable=False, status=400))
        sleeps = _Sleeps()
        with pytest.raises(NetworkError):
            asyncio.run(
                retry_with_backoff(
                    op,
                    RetryConfig(max_retries=3),
                    retry_on=lambda exc: isinstance(exc, NetworkError) and exc.retryable,
                    sleep=sleeps,
                )
            )
        assert op.calls == 1
        assert sleeps.delays == []

    def test_logs_warning_before_retry(self, caplog: pytest.LogCaptureFixture) -> None:
        op = _Flaky(failures=1)
        with caplog.at_level("WARNING", logger="mirror_trader.retry"):
            asyncio.run(retry_with_backoff(op, name="fetch", sleep=_Sleeps()))
        assert any("fetch failed (attempt 1/4)" in rec.getMessage() for rec in caplog.records)
