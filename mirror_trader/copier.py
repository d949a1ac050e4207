"""Trade copier: the monitor's consumer.

For each detected trade: size it against both bankrolls, execute it on the
exchange, then record the outcome. Nothing raised along the way escapes
``copy_trade``; every failure ends as a logged, recorded ``failed`` trade.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol

from .ledger import TradeLedger
from .metrics import MetricsSink
from .models import FillReport, SizingInputs, TradeSignal, TradeStatus
from .order_executor import DEFAULT_MAX_SLIPPAGE_PCT, OrderExecutor, OrderRequest
from .sizing import compute_proportional_sizing

log = logging.getLogger(__name__)


class FollowerBalance(Protocol):
    async def balance(self) -> float: ...


class TraderBalances(Protocol):
    async def trader_balance(self, trader: str) -> float: ...


class TradeCopier:
    def __init__(
        self,
        executor: OrderExecutor,
        follower: FollowerBalance,
        traders: TraderBalances,
        *,
        multiplier: float = 1.0,
        max_slippage_pct: float = DEFAULT_MAX_SLIPPAGE_PCT,
        ledger: Optional[TradeLedger] = None,
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        self.executor = executor
        self.follower = follower
        self.traders = traders
        self.multiplier = float(multiplier)
        self.max_slippage_pct = float(max_slippage_pct)
        self.ledger = ledger
        self.metrics = metrics

    async def copy_trade(self, signal: TradeSignal) -> Optional[FillReport]:
        executed_size = 0.0
        try:
            follower_balance = await self.follower.balance()
            trader_balance = await self.traders.trader_balance(signal.trader)
            sizing = compute_proportional_sizing(
                SizingInputs(
                    follower_balance=follower_balance,
                    trader_balance=trader_balance,
                    trader_trade_usd=signal.size_usd,
                    multiplier=self.multiplier,
                )
            )
            executed_size = sizing.target_usd_size

            log.info(
                "%s %.2f USD on %s (%s) trader=%s price=%s ratio=%.4f",
                signal.side.value, sizing.target_usd_size, signal.market_id, signal.outcome.value,
                signal.trader, signal.price, sizing.ratio,
            )

            report = await self.executor.execute(
                OrderRequest(
                    market_id=signal.market_id,
                    outcome=signal.outcome,
                    side=signal.side,
                    size_usd=sizing.target_usd_size,
                    expected_price=signal.price,
                    max_slippage_pct=self.max_slippage_pct,
                )
            )
        except Exception as exc:
            log.error(
                "failed to copy trade trader=%s market=%s side=%s: %s",
                signal.trader, signal.market_id, signal.side.value, exc,
            )
            await self._record(signal, executed_size, TradeStatus.FAILED, error=str(exc))
            if self.metrics is not None:
                self.metrics.record_trade_failure()
            return None

        # A partial fill still counts as the full target size.
        tx_hash = report.tx_hashes[0] if report.tx_hashes else None
        await self._record(signal, executed_size, TradeStatus.SUCCESS, tx_hash=tx_hash)
        if self.metrics is not None:
            self.metrics.record_trade_success(executed_size)
        return report

    async def _record(
        self,
        signal: TradeSignal,
        size_usd: float,
        status: TradeStatus,
        *,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        if self.ledger is None:
            return
        try:
            await self.ledger.record_trade(signal, size_usd, signal.price, status, tx_hash=tx_hash, error=error)
        except Exception:
            log.exception("ledger write failed market=%s status=%s", signal.market_id, status.value)
