"""Proportional copy sizing.

The follower mirrors a trade at the fraction of the trader's bankroll it
represents, scaled to the follower's own bankroll:

    ratio  = follower_balance / (trader_balance + trader_trade_usd)
    target = trader_trade_usd * ratio * multiplier

The trader's bankroll is estimated *after* the trade (balance + trade), so a
trader going all-in does not produce an unbounded ratio.
"""
from __future__ import annotations

import math

from .models import SizingInputs, SizingResult

MIN_ORDER_USD = 1.0


def _floor_balance(value: float) -> float:
    # NaN compares false against everything, so test it explicitly.
    if math.isnan(value) or value < 0:
        return 0.0
    return value


def compute_proportional_sizing(
    inputs: SizingInputs,
    min_order_usd: float = MIN_ORDER_USD,
) -> SizingResult:
    """Return the USD size to mirror. Never raises.

    Degenerate inputs (negative, zero, NaN, infinite) resolve to
    ``min_order_usd``. The reported ratio is the one computed before the
    floor is applied.
    """
    follower = _floor_balance(float(inputs.follower_balance))
    trader = _floor_balance(float(inputs.trader_balance))
    trade_usd = float(inputs.trader_trade_usd)

    denominator = trader + trade_usd
    ratio = follower / denominator if denominator != 0 else 0.0
    if not math.isfinite(trade_usd) or trade_usd <= 0:
        return SizingResult(target_usd_size=min_order_usd, ratio=ratio)
    target = trade_usd * ratio * float(inputs.multiplier)

    if not math.isfinite(target) or target < min_order_usd:
        target = min_order_usd
    return SizingResult(target_usd_size=target, ratio=ratio)
