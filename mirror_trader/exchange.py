"""Exchange access: the CLOB trading API behind a small async interface."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import OrderArgs, OrderType
from py_clob_client.exceptions import PolyApiException
from py_clob_client.order_builder.constants import BUY, SELL

from .circuit_breaker import CircuitBreaker
from .errors import NetworkError, ValidationError
from .http_json import is_retryable_status
from .models import BookLevel, MarketTokens, OrderBook, Side, SubmitResult, best_first
from .utils import as_float

log = logging.getLogger(__name__)

CLOB_HOST = "https://clob.polymarket.com"


class ExchangeClient(Protocol):
    async def get_market(self, market_id: str) -> MarketTokens: ...

    async def get_order_book(self, token_id: str) -> OrderBook: ...

    async def create_order(self, side: Side, token_id: str, amount: float, price: float) -> Any: ...

    async def submit_order(self, signed_order: Any, fill_or_kill: bool = True) -> SubmitResult: ...


def _parse_levels(raw_levels: Any) -> List[BookLevel]:
    levels: List[BookLevel] = []
    if not isinstance(raw_levels, list):
        return levels
    for raw in raw_levels:
        if isinstance(raw, dict):
            price = as_float(raw.get("price"))
            size = as_float(raw.get("size"))
        else:
            price = as_float(getattr(raw, "price", None))
            size = as_float(getattr(raw, "size", None))
        if price is None or size is None or price <= 0 or size <= 0:
            continue
        levels.append(BookLevel(price=price, size=size))
    return levels


def parse_order_book(token_id: str, raw_book: Any) -> OrderBook:
    """Normalize a venue book (object or dict) to best-first levels.

    The venue does not guarantee best-first ordering, so both sides are
    re-sorted here: bids high-to-low, asks low-to-high.
    """
    if isinstance(raw_book, dict):
        raw_bids, raw_asks = raw_book.get("bids"), raw_book.get("asks")
    else:
        raw_bids, raw_asks = getattr(raw_book, "bids", None), getattr(raw_book, "asks", None)
    return OrderBook(
        token_id=token_id,
        bids=best_first(_parse_levels(raw_bids), descending=True),
        asks=best_first(_parse_levels(raw_asks), descending=False),
    )


def parse_market_tokens(market_id: str, raw_market: Any) -> MarketTokens:
    tokens = raw_market.get("tokens") if isinstance(raw_market, dict) else None
    if not isinstance(tokens, list) or len(tokens) < 2:
        raise ValidationError(f"market {market_id} has no outcome tokens")
    token_ids: List[str] = []
    for token in tokens[:2]:
        token_id = str(token.get("token_id") or "").strip() if isinstance(token, dict) else str(token).strip()
        if not token_id:
            raise ValidationError(f"market {market_id} has an empty token id")
        token_ids.append(token_id)
    return MarketTokens(market_id=market_id, yes_token_id=token_ids[0], no_token_id=token_ids[1])


def parse_submit_response(response: Any) -> SubmitResult:
    if not isinstance(response, dict):
        return SubmitResult(success=False, error=f"unexpected response: {response!r}")
    hashes = response.get("transactionsHashes") or response.get("transactionHashes") or []
    if not isinstance(hashes, list):
        hashes = [hashes]
    error = str(response.get("errorMsg") or "").strip() or None
    return SubmitResult(
        success=bool(response.get("success")),
        order_id=str(response.get("orderID") or "") or None,
        error=error,
        tx_hashes=tuple(str(h) for h in hashes if h),
    )


class ClobExchange:
    """``ExchangeClient`` over py_clob_client.

    The SDK is blocking, so every call runs in a worker thread.
    """

    def __init__(
        self,
        *,
        private_key: str,
        funder: str,
        host: str = CLOB_HOST,
        chain_id: int = 137,
        signature_type: int = 0,
        client: Optional[ClobClient] = None,
    ) -> None:
        if client is None:
            client = ClobClient(
                host,
                key=private_key,
                chain_id=chain_id,
                signature_type=signature_type,
                funder=funder,
            )
            creds = client.create_or_derive_api_creds()
            if creds is None:
                raise RuntimeError("failed_to_create_or_derive_api_creds")
            client.set_api_creds(creds)
        self.client = client

    async def _call(self, what: str, fn: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except PolyApiException as exc:
            status = getattr(exc, "status_code", None)
            raise NetworkError(
                f"clob {what} failed status={status}: {exc}",
                retryable=status is None or is_retryable_status(int(status)),
                status=status,
            ) from exc

    async def get_market(self, market_id: str) -> MarketTokens:
        try:
            raw = await self._call("get_market", self.client.get_market, market_id)
        except NetworkError as exc:
            if exc.status == 404:
                raise ValidationError(f"market not found: {market_id}") from exc
            raise
        if not raw:
            raise ValidationError(f"market not found: {market_id}")
        return parse_market_tokens(market_id, raw)

    async def get_order_book(self, token_id: str) -> OrderBook:
        raw = await self._call("get_order_book", self.client.get_order_book, token_id)
        return parse_order_book(token_id, raw)

    async def create_order(self, side: Side, token_id: str, amount: float, price: float) -> Any:
        args = OrderArgs(
            token_id=token_id,
            price=price,
            size=amount,
            side=BUY if side is Side.BUY else SELL,
        )
        return await self._call("create_order", self.client.create_order, args)

    async def submit_order(self, signed_order: Any, fill_or_kill: bool = True) -> SubmitResult:
        order_type = OrderType.FOK if fill_or_kill else OrderType.GTC
        response = await self._call("post_order", self.client.post_order, signed_order, order_type)
        result = parse_submit_response(response)
        if not result.success:
            log.debug("order rejected: %s", result.error)
        return result


def is_dependency_failure(exc: BaseException) -> bool:
    """True when ``exc`` means the exchange itself is unhealthy.

    Unknown markets, rejected 4xx requests and client-side order building
    errors leave the breaker alone.
    """
    if isinstance(exc, NetworkError):
        return exc.retryable
    return isinstance(exc, (ConnectionError, TimeoutError, asyncio.TimeoutError))


class CircuitGuardedExchange:
    """Routes every exchange call through one shared circuit breaker."""

    def __init__(self, inner: ExchangeClient, breaker: CircuitBreaker) -> None:
        self.inner = inner
        self.breaker = breaker

    async def _guarded(self, operation: Any) -> Any:
        return await self.breaker.call(operation, is_dependency_failure)

    async def get_market(self, market_id: str) -> MarketTokens:
        return await self._guarded(lambda: self.inner.get_market(market_id))

    async def get_order_book(self, token_id: str) -> OrderBook:
        return await self._guarded(lambda: self.inner.get_order_book(token_id))

    async def create_order(self, side: Side, token_id: str, amount: float, price: float) -> Any:
        return await self._guarded(lambda: self.inner.create_order(side, token_id, amount, price))

    async def submit_order(self, signed_order: Any, fill_or_kill: bool = True) -> SubmitResult:
        return await self._guarded(lambda: self.inner.submit_order(signed_order, fill_or_kill))

    def snapshot(self) -> Dict[str, Any]:
        return self.breaker.snapshot()
