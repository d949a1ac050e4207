"""Order executor: turns a USD notional into fill-or-kill submissions.

Flow for one request:
    1. resolve the outcome token and fetch its book
    2. reject on slippage vs. the reference price, then on the absolute limit
    3. fill loop: re-fetch the book, take the best level, submit FOK for
       min(remaining, level value); stop when the remainder is dust, the
       book side is empty, or MAX_ATTEMPTS consecutive submissions fail
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import PriceProtectionTriggered, SlippageExceeded, ValidationError
from .exchange import ExchangeClient
from .models import BookLevel, FillReport, Outcome, Side

log = logging.getLogger(__name__)

DEFAULT_MAX_SLIPPAGE_PCT = 2.0
MAX_ATTEMPTS = 3
DUST_USD = 0.01


@dataclass(frozen=True, slots=True)
class OrderRequest:
    market_id: str
    outcome: Outcome
    side: Side
    size_usd: float
    expected_price: Optional[float] = None
    max_slippage_pct: float = DEFAULT_MAX_SLIPPAGE_PCT
    max_acceptable_price: Optional[float] = None


def directional_slippage_pct(side: Side, expected_price: float, best_price: float) -> float:
    """Adverse movement is positive: paying more on BUY, receiving less on SELL."""
    if side is Side.BUY:
        return (best_price - expected_price) / expected_price * 100.0
    return (expected_price - best_price) / expected_price * 100.0


def breaches_limit(side: Side, best_price: float, limit_price: float) -> bool:
    if side is Side.BUY:
        return best_price > limit_price
    return best_price < limit_price


class OrderExecutor:
    def __init__(
        self,
        exchange: ExchangeClient,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        dust_usd: float = DUST_USD,
    ) -> None:
        self.exchange = exchange
        self.max_attempts = max(1, int(max_attempts))
        self.dust_usd = float(dust_usd)

    async def execute(self, req: OrderRequest) -> FillReport:
        market = await self.exchange.get_market(req.market_id)
        token_id = market.token_for(req.outcome)

        book = await self.exchange.get_order_book(token_id)
        levels = book.levels_for(req.side)
        if not levels:
            side_name = "asks" if req.side is Side.BUY else "bids"
            raise ValidationError(f"no {side_name} available for token {token_id}")

        best_price = levels[0].price
        self._check_slippage(req, best_price)
        if req.max_acceptable_price is not None and req.max_acceptable_price > 0:
            if breaches_limit(req.side, best_price, req.max_acceptable_price):
                raise PriceProtectionTriggered(best_price, req.max_acceptable_price)

        return await self._fill(req, token_id)

    def _check_slippage(self, req: OrderRequest, best_price: float) -> None:
        if req.expected_price is None or req.expected_price <= 0:
            return
        slippage = directional_slippage_pct(req.side, req.expected_price, best_price)
        if slippage <= 0:
            return
        log.warning(
            "slippage detected %.2f%% market=%s side=%s expected=%s best=%s",
            slippage, req.market_id, req.side.value, req.expected_price, best_price,
        )
        if slippage > req.max_slippage_pct:
            raise SlippageExceeded(slippage, req.max_slippage_pct, req.expected_price, best_price)

    async def _fill(self, req: OrderRequest, token_id: str) -> FillReport:
        report = FillReport(token_id=token_id, side=req.side, requested_usd=req.size_usd)
        remaining = req.size_usd
        attempts = 0

        while remaining > self.dust_usd and attempts < self.max_attempts:
            # Price may have moved since the last attempt.
            book = await self.exchange.get_order_book(token_id)
            levels = book.levels_for(req.side)
            if not levels:
                log.info("book side empty for %s with %.4f USD unfilled", token_id, remaining)
                break

            level = levels[0]
            fill_value = min(remaining, level.value_usd)
            quantity = fill_value / level.price

            try:
                signed = await self.exchange.create_order(req.side, token_id, quantity, level.price)
                result = await self.exchange.submit_order(signed, fill_or_kill=True)
            except Exception as exc:
                attempts += 1
                log.warning(
                    "order submission error for %s (attempt %d/%d): %s",
                    token_id, attempts, self.max_attempts, exc,
                )
                if attempts >= self.max_attempts:
                    raise
                continue

            report.orders_submitted += 1
            if result.success:
                remaining -= fill_value
                attempts = 0
                report.filled_usd += fill_value
                report.fills.append(BookLevel(price=level.price, size=quantity))
                report.tx_hashes.extend(result.tx_hashes)
                log.debug(
                    "filled %.4f USD at %s for %s (remaining %.4f)",
                    fill_value, level.price, token_id, remaining,
                )
            else:
                attempts += 1
                report.orders_rejected += 1
                log.info(
                    "FOK order rejected for %s (attempt %d/%d): %s",
                    token_id, attempts, self.max_attempts, result.error or "no reason given",
                )

        if report.remaining_usd > self.dust_usd:
            log.warning(
                "order for %s left %.4f of %.4f USD unfilled",
                token_id, report.remaining_usd, report.requested_usd,
            )
        return report
