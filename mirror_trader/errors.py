"""Error taxonomy for the copy pipeline.

Everything raised on purpose by this package derives from
``MirrorTraderError`` so callers at the top of a flow can log-and-continue
without catching unrelated programming errors by accident.
"""
from __future__ import annotations

from typing import Optional


class MirrorTraderError(RuntimeError):
    """Base class for expected, non-fatal failures."""


class ConfigError(MirrorTraderError):
    """Invalid startup configuration. The only error that stops the process."""


class NetworkError(MirrorTraderError):
    def __init__(
        self,
        message: str,
        *,
        retryable: bool,
        status: Optional[int] = None,
        url: str = "",
    ) -> None:
        super().__init__(message)
        self.retryable = bool(retryable)
        self.status = status
        self.url = url


class ExhaustedRetries(MirrorTraderError):
    """A retryable operation kept failing until its retry budget ran out."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"gave up after {attempts} attempts: {last_error}")
        self.attempts = int(attempts)
        self.last_error = last_error


class ValidationError(MirrorTraderError):
    """Unknown market, missing outcome token or empty book side."""


class SlippageExceeded(MirrorTraderError):
    def __init__(
        self,
        slippage_pct: float,
        max_slippage_pct: float,
        expected_price: float,
        best_price: float,
    ) -> None:
        super().__init__(
            f"slippage {slippage_pct:.2f}% exceeds maximum {max_slippage_pct}% "
            f"(expected={expected_price} actual={best_price})"
        )
        self.slippage_pct = slippage_pct
        self.max_slippage_pct = max_slippage_pct
        self.expected_price = expected_price
        self.best_price = best_price


class PriceProtectionTriggered(MirrorTraderError):
    def __init__(self, best_price: float, limit_price: float) -> None:
        super().__init__(
            f"best price {best_price} breaches acceptable limit {limit_price}"
        )
        self.best_price = best_price
        self.limit_price = limit_price


class CircuitOpenError(MirrorTraderError):
    """Raised instead of invoking a dependency whose circuit is OPEN."""

    def __init__(self, name: str, retry_in_seconds: float = 0.0) -> None:
        super().__init__(
            f"circuit breaker is OPEN for {name}; retry in {max(0.0, retry_in_seconds):.1f}s"
        )
        self.name = name
        self.retry_in_seconds = max(0.0, retry_in_seconds)
