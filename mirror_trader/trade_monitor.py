"""Trade monitor: polls tracked traders and emits TradeSignals.

Every tick fetches each trader's recent activity concurrently. An activity
is forwarded when it is a TRADE, inside the aggregation window, its
transaction hash has not been seen, and it is newer than the last activity
already forwarded for that trader.

Failures are isolated per trader: a bad response or a failing consumer
is logged and the other traders are unaffected.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any, Dict, List, Optional, Protocol

from .metrics import MetricsSink
from .models import Outcome, Side, TradeSignal
from .scheduler import PeriodicTask
from .utils import as_float, to_epoch_seconds

log = logging.getLogger(__name__)

MAX_HASH_CACHE_SIZE = 10_000
CLEANUP_BATCH_SIZE = 5_000

TradeConsumer = Callable[[TradeSignal], Awaitable[None]]
Clock = Callable[[], float]


class ActivitySource(Protocol):
    async def fetch_activity(self, trader: str) -> List[Dict[str, Any]]: ...


class DedupCache:
    """Bounded set of transaction hashes, evicted oldest-first in batches.

    Eviction is by insertion order, not by last access. A hash evicted here
    can be forwarded again if it is still inside the feed window.
    """

    def __init__(self, max_size: int = MAX_HASH_CACHE_SIZE, batch_size: int = CLEANUP_BATCH_SIZE) -> None:
        self.max_size = max(1, int(max_size))
        self.batch_size = max(1, int(batch_size))
        self._hashes: Dict[str, None] = {}   # dicts keep insertion order

    def __contains__(self, tx_hash: object) -> bool:
        return tx_hash in self._hashes

    def __len__(self) -> int:
        return len(self._hashes)

    def add(self, tx_hash: str) -> None:
        self._hashes[tx_hash] = None

    def cleanup(self) -> int:
        """Evict oldest batches until the cache is back within ``max_size``."""
        removed = 0
        while len(self._hashes) > self.max_size:
            oldest = list(self._hashes)[: self.batch_size]
            for tx_hash in oldest:
                del self._hashes[tx_hash]
            removed += len(oldest)
        return removed


def build_signal(trader: str, activity: Dict[str, Any], activity_time_s: int) -> TradeSignal:
    price = as_float(activity.get("price")) or 0.0
    size = as_float(activity.get("size")) or 0.0
    usdc_size = as_float(activity.get("usdcSize")) or 0.0
    return TradeSignal(
        trader=trader,
        market_id=str(activity.get("conditionId") or ""),
        outcome=Outcome.from_index(activity.get("outcomeIndex")),
        side=Side(str(activity.get("side") or "").strip().upper()),
        size_usd=usdc_size if usdc_size > 0 else size * price,
        price=price,
        timestamp_ms=activity_time_s * 1000,
    )


class TradeMonitor:
    """Usage:
        monitor = TradeMonitor(data_api, traders, copier.copy_trade,
                               interval_seconds=1.0, aggregation_window_seconds=300)
        await monitor.start()
        ...
        monitor.stop()
    """

    def __init__(
        self,
        feed: ActivitySource,
        traders: Sequence[str],
        on_trade: TradeConsumer,
        *,
        interval_seconds: float = 1.0,
        aggregation_window_seconds: float = 300.0,
        cache: Optional[DedupCache] = None,
        metrics: Optional[MetricsSink] = None,
        clock: Clock = time.time,
    ) -> None:
        self.feed = feed
        self.traders = list(traders)
        self.on_trade = on_trade
        self.interval_seconds = float(interval_seconds)
        self.aggregation_window_seconds = float(aggregation_window_seconds)
        self.cache = cache if cache is not None else DedupCache()
        self.metrics = metrics
        self._clock = clock
        self._watermarks: Dict[str, int] = {}
        self._task: Optional[PeriodicTask] = None

    def watermark(self, trader: str) -> int:
        return self._watermarks.get(trader, 0)

    async def start(self) -> None:
        log.info(
            "monitoring %d trader(s) every %ss", len(self.traders), self.interval_seconds
        )
        self._task = PeriodicTask(self.tick, self.interval_seconds, name="trade-monitor")
        await self._task.start()

    def stop(self) -> None:
        if self._task is not None:
            self._task.stop()

    async def wait_closed(self) -> None:
        if self._task is not None:
            await self._task.wait_closed()

    async def tick(self) -> None:
        await asyncio.gather(
            *(self._process_trader(trader) for trader in self.traders),
            return_exceptions=True,
        )
        removed = self.cache.cleanup()
        if removed:
            log.debug("evicted %d old transaction hashes (cache size %d)", removed, len(self.cache))

    async def _process_trader(self, trader: str) -> None:
        try:
            activities = await self.feed.fetch_activity(trader)
        except Exception as exc:
            log.error("failed to fetch activities for %s: %s", trader, exc)
            if self.metrics is not None:
                self.metrics.record_api_error()
            return
        try:
            await self._process_activities(trader, activities)
        except Exception:
            log.exception("failed to process activities for %s", trader)

    async def _process_activities(self, trader: str, activities: Iterable[Dict[str, Any]]) -> None:
        cutoff = int(self._clock()) - int(self.aggregation_window_seconds)
        for activity in activities:
            if str(activity.get("type") or "").upper() != "TRADE":
                continue
            activity_time = to_epoch_seconds(activity.get("timestamp"))
            if activity_time is None:
                log.debug("skipping activity with bad timestamp trader=%s: %r", trader, activity.get("timestamp"))
                continue
            if activity_time < cutoff:
                continue
            tx_hash = str(activity.get("transactionHash") or "").strip()
            if not tx_hash or tx_hash in self.cache:
                continue
            if activity_time <= self.watermark(trader):
                continue

            try:
                signal = build_signal(trader, activity, activity_time)
            except ValueError as exc:
                log.warning("skipping malformed trade tx=%s trader=%s: %s", tx_hash, trader, exc)
                continue

            self.cache.add(tx_hash)
            self._watermarks[trader] = max(self.watermark(trader), activity_time)
            log.debug(
                "detected %s %s %.2f USD on %s tx=%s trader=%s",
                signal.side.value, signal.outcome.value, signal.size_usd,
                signal.market_id, tx_hash, trader,
            )
            try:
                await self.on_trade(signal)
            except Exception:
                log.exception("trade consumer failed tx=%s trader=%s", tx_hash, trader)
