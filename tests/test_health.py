"""Tests for the health endpoint, metrics and wallet helpers."""
from __future__ import annotations

import asyncio
import json

import pytest

from mirror_trader.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from mirror_trader.errors import NetworkError
from mirror_trader.health import HealthServer
from mirror_trader.metrics import TradeMetrics
from mirror_trader.retry import RetryConfig
from mirror_trader.wallet import UsdcBalanceReader, signer_address


class _Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestHealthServer:
    def test_healthy(self) -> None:
        clock = _Clock(1_700_000_000.0)
        metrics = TradeMetrics()
        metrics.record_trade_success(12.5)
        breaker = CircuitBreaker("clob")
        server = HealthServer(
            3000, ledger_configured=True, metrics=metrics.snapshot,
            circuit=breaker.snapshot, clock=clock,
        )
        clock.now += 42
        resp = asyncio.run(server.handle_health(None))
        body = json.loads(resp.text)
        assert resp.status == 200
        assert body["status"] == "healthy"
        assert body["uptime"] == 42
        assert body["ledger"] == "connected"
        assert body["metrics"]["trades_executed"] == 1
        assert body["circuit"]["state"] == "CLOSED"
        assert body["timestamp"].startswith("2023-11-14T22:14:02")

    def test_unhealthy_when_circuit_open(self) -> None:
        breaker = CircuitBreaker("clob", CircuitBreakerConfig(failure_threshold=1), clock=lambda: 0.0)

        async def fail() -> None:
            raise RuntimeError("down")

        try:
            asyncio.run(breaker.call(fail))
        except RuntimeError:
            pass
        server = HealthServer(3000, circuit=breaker.snapshot)
        status, body = server.health_status()
        assert status == 503
        assert body["status"] == "unhealthy"
        assert body["ledger"] == "not_configured"

    def test_metrics_endpoint(self) -> None:
        metrics = TradeMetrics()
        metrics.record_api_error()
        server = HealthServer(3000, metrics=metrics.snapshot)
        resp = asyncio.run(server.handle_metrics(None))
        body = json.loads(resp.text)
        assert body["api_errors"] == 1
        assert "uptime" in body


class TestTradeMetrics:
    def test_counters_and_rate(self) -> None:
        metrics = TradeMetrics()
        assert metrics.success_rate == 0.0
        metrics.record_trade_success(10.0)
        metrics.record_trade_success(5.0)
        metrics.record_trade_failure()
        snap = metrics.snapshot()
        assert snap["trades_executed"] == 2
        assert snap["trades_failed"] == 1
        assert snap["total_volume_usd"] == 15.0
        assert abs(metrics.success_rate - 2 / 3) < 1e-9
        assert snap["last_trade_at"] is not None


class TestWallet:
    def test_signer_address(self) -> None:
        key = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
        assert signer_address(key) == "0x2c7536e3605d9c16a7a3d7b1898e529396a65c23"

    def test_balance_retries_then_reads(self) -> None:
        reader = UsdcBalanceReader(
            "https://rpc.invalid", "0x" + "2" * 40,
            retry=RetryConfig(max_retries=2, initial_delay_s=0.0),
        )
        results = [ConnectionError("rpc hiccup"), 12.5]

        def fake_read() -> float:
            value = results.pop(0)
            if isinstance(value, Exception):
                raise value
            return value

        reader._read_balance = fake_read
        assert asyncio.run(reader.balance()) == 12.5

    def test_balance_failure_is_network_error(self) -> None:
        reader = UsdcBalanceReader(
            "https://rpc.invalid", "0x" + "2" * 40,
            retry=RetryConfig(max_retries=0),
        )

        def fake_read() -> float:
            raise ConnectionError("rpc down")

        reader._read_balance = fake_read
        with pytest.raises(NetworkError, match="rpc down"):
            asyncio.run(reader.balance())
