"""Tests for the CLOB exchange adapter and the circuit-guarded wrapper."""
from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, List

import pytest
from py_clob_client.clob_types import OrderType
from py_clob_client.exceptions import PolyApiException

from mirror_trader.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from mirror_trader.errors import CircuitOpenError, NetworkError, ValidationError
from mirror_trader.exchange import (
    CircuitGuardedExchange,
    ClobExchange,
    is_dependency_failure,
    parse_market_tokens,
    parse_order_book,
    parse_submit_response,
)
from mirror_trader.models import OrderBook, Outcome, Side


class TestParsing:
    def test_order_book_sorted_best_first(self) -> None:
        raw = {
            "bids": [{"price": "0.40", "size": "10"}, {"price": "0.45", "size": "5"}],
            "asks": [{"price": "0.60", "size": "10"}, {"price": "0.55", "size": "5"}],
        }
        book = parse_order_book("tok", raw)
        assert [lvl.price for lvl in book.bids] == [0.45, 0.40]
        assert [lvl.price for lvl in book.asks] == [0.55, 0.60]
        assert book.levels_for(Side.BUY)[0].price == 0.55
        assert book.levels_for(Side.SELL)[0].price == 0.45

    def test_order_book_from_objects_drops_bad_levels(self) -> None:
        raw = SimpleNamespace(
            bids=[SimpleNamespace(price="0.3", size="0"), SimpleNamespace(price="x", size="1")],
            asks=[SimpleNamespace(price="0.7", size="2")],
        )
        book = parse_order_book("tok", raw)
        assert book.bids == ()
        assert len(book.asks) == 1

    def test_market_tokens(self) -> None:
        tokens = parse_market_tokens("cond", {"tokens": [{"token_id": "y"}, {"token_id": "n"}]})
        assert tokens.token_for(Outcome.YES) == "y"
        assert tokens.token_for(Outcome.NO) == "n"

    def test_market_without_tokens(self) -> None:
        with pytest.raises(ValidationError):
            parse_market_tokens("cond", {"tokens": [{"token_id": "y"}]})
        with pytest.raises(ValidationError):
            parse_market_tokens("cond", {"tokens": [{"token_id": "y"}, {"token_id": ""}]})

    def test_submit_response(self) -> None:
        ok = parse_submit_response({"success": True, "orderID": "o1", "transactionsHashes": ["0xa"]})
        assert ok.success and ok.order_id == "o1" and ok.tx_hashes == ("0xa",)
        bad = parse_submit_response({"success": False, "errorMsg": "order couldn't be fully filled"})
        assert not bad.success
        assert "fully filled" in bad.error
        assert not parse_submit_response(None).success


class FakeClob:
    def __init__(self) -> None:
        self.posted: List[Any] = []
        self.market: Any = {"tokens": [{"token_id": "y"}, {"token_id": "n"}]}
        self.market_error: Any = None

    def get_market(self, condition_id: str) -> Any:
        if self.market_error is not None:
            raise self.market_error
        return self.market

    def get_order_book(self, token_id: str) -> Any:
        return {"bids": [], "asks": [{"price": "0.5", "size": "10"}]}

    def create_order(self, args: Any) -> Any:
        return {"signed": args}

    def post_order(self, order: Any, order_type: Any) -> Any:
        self.posted.append((order, order_type))
        return {"success": True, "orderID": "o1"}


def _poly_error(status: int) -> PolyApiException:
    exc = PolyApiException(error_msg=f"status {status}")
    exc.status_code = status
    return exc


class TestClobExchange:
    def test_round_trip(self) -> None:
        clob = FakeClob()
        ex = ClobExchange(private_key="k", funder="f", client=clob)

        async def scenario() -> None:
            market = await ex.get_market("cond")
            book = await ex.get_order_book(market.yes_token_id)
            signed = await ex.create_order(Side.BUY, "y", 4.0, 0.5)
            result = await ex.submit_order(signed)
            assert book.asks[0].price == 0.5
            assert signed["signed"].size == 4.0
            assert signed["signed"].price == 0.5
            assert result.success

        asyncio.run(scenario())
        assert clob.posted[0][1] == OrderType.FOK

    def test_unknown_market(self) -> None:
        clob = FakeClob()
        clob.market_error = _poly_error(404)
        with pytest.raises(ValidationError):
            asyncio.run(ClobExchange(private_key="k", funder="f", client=clob).get_market("cond"))

    def test_empty_market(self) -> None:
        clob = FakeClob()
        clob.market = None
        with pytest.raises(ValidationError):
            asyncio.run(ClobExchange(private_key="k", funder="f", client=clob).get_market("cond"))

    def test_server_error_is_retryable_network_error(self) -> None:
        clob = FakeClob()
        clob.market_error = _poly_error(502)
        with pytest.raises(NetworkError) as info:
            asyncio.run(ClobExchange(private_key="k", funder="f", client=clob).get_market("cond"))
        assert info.value.retryable
        assert info.value.status == 502


class _FailingExchange:
    def __init__(self) -> None:
        self.calls = 0

    async def get_order_book(self, token_id: str) -> OrderBook:
        self.calls += 1
        raise NetworkError("down", retryable=True)


class TestCircuitGuardedExchange:
    def test_opens_and_blocks(self) -> None:
        inner = _FailingExchange()
        breaker = CircuitBreaker("clob", CircuitBreakerConfig(failure_threshold=2), clock=lambda: 0.0)
        guarded = CircuitGuardedExchange(inner, breaker)
        for _ in range(2):
            with pytest.raises(NetworkError):
                asyncio.run(guarded.get_order_book("t"))
        assert breaker.state is CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            asyncio.run(guarded.get_order_book("t"))
        assert inner.calls == 2
        assert guarded.snapshot()["state"] == "OPEN"

    def test_unknown_markets_do_not_trip(self) -> None:
        clob = FakeClob()
        clob.market_error = _poly_error(404)
        breaker = CircuitBreaker("clob", CircuitBreakerConfig(failure_threshold=2), clock=lambda: 0.0)
        guarded = CircuitGuardedExchange(ClobExchange(private_key="k", funder="f", client=clob), breaker)
        for _ in range(5):
            with pytest.raises(ValidationError):
                asyncio.run(guarded.get_market("bad"))
        assert breaker.state is CircuitState.CLOSED
        assert breaker.failure_count == 0

        clob.market_error = None
        market = asyncio.run(guarded.get_market("good"))
        assert market.token_for(Outcome.YES) == "y"

    def test_client_errors_do_not_trip(self) -> None:
        clob = FakeClob()
        breaker = CircuitBreaker("clob", CircuitBreakerConfig(failure_threshold=1), clock=lambda: 0.0)
        guarded = CircuitGuardedExchange(ClobExchange(private_key="k", funder="f", client=clob), breaker)

        clob.market_error = _poly_error(400)
        with pytest.raises(NetworkError):
            asyncio.run(guarded.get_market("cond"))

        def broken_builder(args: Any) -> Any:
            raise ValueError("bad tick size")

        clob.create_order = broken_builder
        with pytest.raises(ValueError):
            asyncio.run(guarded.create_order(Side.BUY, "y", 4.0, 0.5))
        assert breaker.state is CircuitState.CLOSED

    def test_server_errors_trip(self) -> None:
        clob = FakeClob()
        clob.market_error = _poly_error(503)
        breaker = CircuitBreaker("clob", CircuitBreakerConfig(failure_threshold=1), clock=lambda: 0.0)
        guarded = CircuitGuardedExchange(ClobExchange(private_key="k", funder="f", client=clob), breaker)
        with pytest.raises(NetworkError):
            asyncio.run(guarded.get_market("cond"))
        assert breaker.state is CircuitState.OPEN


class TestDependencyFailure:
    def test_classification(self) -> None:
        assert is_dependency_failure(NetworkError("boom", retryable=True, status=502))
        assert is_dependency_failure(ConnectionError("reset"))
        assert is_dependency_failure(asyncio.TimeoutError())
        assert not is_dependency_failure(NetworkError("nope", retryable=False, status=400))
        assert not is_dependency_failure(ValidationError("market not found: x"))
        assert not is_dependency_failure(ValueError("bad tick size"))
