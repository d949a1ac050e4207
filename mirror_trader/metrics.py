from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Protocol

log = logging.getLogger(__name__)


class MetricsSink(Protocol):
    def record_trade_success(self, volume_usd: float) -> None: ...

    def record_trade_failure(self) -> None: ...

    def record_api_error(self) -> None: ...


class TradeMetrics:
    """In-process counters for copied trades."""

    def __init__(self) -> None:
        self.trades_executed = 0
        self.trades_failed = 0
        self.total_volume_usd = 0.0
        self.api_errors = 0
        self.last_trade_at: Optional[float] = None

    def record_trade_success(self, volume_usd: float) -> None:
        self.trades_executed += 1
        self.total_volume_usd += float(volume_usd)
        self.last_trade_at = time.time()

    def record_trade_failure(self) -> None:
        self.trades_failed += 1

    def record_api_error(self) -> None:
        self.api_errors += 1

    @property
    def success_rate(self) -> float:
        attempts = self.trades_executed + self.trades_failed
        if attempts == 0:
            return 0.0
        return self.trades_executed / attempts

    def snapshot(self) -> Dict[str, Any]:
        return {
            "trades_executed": self.trades_executed,
            "trades_failed": self.trades_failed,
            "success_rate": round(self.success_rate, 4),
            "total_volume_usd": round(self.total_volume_usd, 6),
            "api_errors": self.api_errors,
            "last_trade_at": self.last_trade_at,
        }

    def log_summary(self) -> None:
        log.info(
            "metrics executed=%d failed=%d success_rate=%.2f%% volume=$%.2f api_errors=%d",
            self.trades_executed,
            self.trades_failed,
            self.success_rate * 100.0,
            self.total_volume_usd,
            self.api_errors,
        )
