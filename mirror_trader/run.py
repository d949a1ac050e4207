"""Entry point: wires all components and runs the copy loop.

Architecture:
    ┌─────────────┐
    │ Data API     │──/activity (poll per trader)──→ TradeMonitor
    └─────────────┘                                      ↓ TradeSignal
    ┌─────────────┐                                 TradeCopier
    │ RPC node     │──USDC balanceOf──→ sizing ←── trader bankroll (/positions)
    └─────────────┘                                      ↓
    ┌─────────────┐                               OrderExecutor
    │ CLOB         │←──FOK orders── CircuitBreaker ←──┘
    └─────────────┘                                      ↓
                                               SqliteLedger / TradeMetrics

Usage:
    python -m mirror_trader.run
    python -m mirror_trader.run --env-file .env.prod --trade-multiplier 0.5
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import List, Optional

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from .config import Config, parse_args, validate_config
from .copier import TradeCopier
from .data_api import DataApiClient
from .errors import ConfigError
from .exchange import CircuitGuardedExchange, ClobExchange
from .health import HealthServer
from .http_json import AsyncJsonClient
from .ledger import SqliteLedger
from .metrics import TradeMetrics
from .order_executor import OrderExecutor
from .retry import RetryConfig
from .scheduler import PeriodicTask
from .trade_monitor import TradeMonitor
from .wallet import UsdcBalanceReader, signer_address

log = logging.getLogger(__name__)

METRICS_LOG_INTERVAL_S = 300.0
_NOISY_LOGGERS = ("aiohttp.access", "web3", "urllib3")


class MirrorTraderRunner:
    """Orchestrates all components."""

    def __init__(self, cfg: Config) -> None:
        self.cfg = cfg
        retry = RetryConfig(max_retries=cfg.retry_limit)

        self.metrics = TradeMetrics()
        self.data_api = DataApiClient(
            AsyncJsonClient(cfg.data_api_host, retry=retry),
            activity_lookback_seconds=cfg.aggregation_window_seconds,
        )
        self.breaker = CircuitBreaker(
            "clob",
            CircuitBreakerConfig(
                failure_threshold=cfg.circuit_failure_threshold,
                success_threshold=cfg.circuit_success_threshold,
                timeout_s=cfg.circuit_timeout_seconds,
            ),
        )
        self.balance = UsdcBalanceReader(
            cfg.rpc_url,
            cfg.proxy_wallet,
            usdc_address=cfg.usdc_contract_address,
            retry=retry,
        )
        self.ledger: Optional[SqliteLedger] = (
            SqliteLedger(cfg.ledger_path, cfg.proxy_wallet) if cfg.ledger_path else None
        )
        self.health = HealthServer(
            cfg.health_check_port,
            ledger_configured=self.ledger is not None,
            metrics=self.metrics.snapshot,
            circuit=self.breaker.snapshot,
        )

        self.monitor: Optional[TradeMonitor] = None
        self._metrics_task = PeriodicTask(
            self._log_metrics, METRICS_LOG_INTERVAL_S, name="metrics-summary"
        )
        self._stop: Optional[asyncio.Event] = None

    async def _log_metrics(self) -> None:
        self.metrics.log_summary()

    async def _build_copier(self) -> TradeCopier:
        # Deriving API credentials is a blocking network round trip.
        clob = await asyncio.to_thread(
            ClobExchange,
            private_key=self.cfg.private_key,
            funder=self.cfg.proxy_wallet,
            host=self.cfg.clob_host,
            chain_id=self.cfg.chain_id,
            signature_type=self.cfg.signature_type,
        )
        exchange = CircuitGuardedExchange(clob, self.breaker)
        return TradeCopier(
            OrderExecutor(exchange),
            self.balance,
            self.data_api,
            multiplier=self.cfg.trade_multiplier,
            max_slippage_pct=self.cfg.max_slippage_percent,
            ledger=self.ledger,
            metrics=self.metrics,
        )

    def request_stop(self) -> None:
        if self._stop is not None:
            self._stop.set()

    async def run(self) -> None:
        cfg = self.cfg
        self._stop = asyncio.Event()
        log.info("starting mirror trader")
        log.info("signer: %s  proxy wallet: %s", signer_address(cfg.private_key), cfg.proxy_wallet)
        log.info("following %d trader(s): %s", len(cfg.user_addresses), list(cfg.user_addresses))
        log.info(
            "multiplier=%.2f max_slippage=%.2f%% window=%ss aggregation=%s ledger=%s",
            cfg.trade_multiplier, cfg.max_slippage_percent, cfg.aggregation_window_seconds,
            cfg.aggregation_enabled, cfg.ledger_path or "disabled",
        )

        try:
            await self.health.start()
            copier = await self._build_copier()
            self.monitor = TradeMonitor(
                self.data_api,
                cfg.user_addresses,
                copier.copy_trade,
                interval_seconds=cfg.fetch_interval,
                aggregation_window_seconds=cfg.aggregation_window_seconds,
                metrics=self.metrics,
            )
            await self._metrics_task.start()
            await self.monitor.start()
            await self._stop.wait()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        log.info("shutting down")
        if self.monitor is not None:
            self.monitor.stop()
            await self.monitor.wait_closed()
        self._metrics_task.stop()
        await self._metrics_task.wait_closed()
        await self.health.stop()
        await self.data_api.close()
        if self.ledger is not None:
            self.ledger.close()
        self.metrics.log_summary()


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def main(argv: Optional[List[str]] = None) -> None:
    cfg = parse_args(argv)
    configure_logging(cfg.debug)

    try:
        validate_config(cfg)
    except ConfigError as exc:
        log.error("invalid configuration: %s", exc)
        sys.exit(2)

    runner = MirrorTraderRunner(cfg)

    loop = asyncio.new_event_loop()

    # Graceful shutdown on SIGINT/SIGTERM
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.request_stop)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        loop.run_until_complete(runner.run())
    except KeyboardInterrupt:
        log.info("interrupted")
    finally:
        loop.close()


if __name__ == "__main__":
    main()
