"""Tests for proportional copy sizing."""
from __future__ import annotations

import math

from mirror_trader.models import SizingInputs
from mirror_trader.sizing import MIN_ORDER_USD, compute_proportional_sizing


def _size(follower: float, trader: float, trade_usd: float, multiplier: float = 1.0):
    return compute_proportional_sizing(
        SizingInputs(
            follower_balance=follower,
            trader_balance=trader,
            trader_trade_usd=trade_usd,
            multiplier=multiplier,
        )
    )


class TestProportionalSizing:
    def test_equal_bankrolls(self) -> None:
        result = _size(1000, 1000, 100)
        assert abs(result.ratio - 1000 / 1100) < 1e-9
        assert abs(result.target_usd_size - 100 * 1000 / 1100) < 1e-9
        assert abs(result.target_usd_size - 90.909) < 1e-3

    def test_multiplier_scales_target(self) -> None:
        base = _size(1000, 1000, 100)
        doubled = _size(1000, 1000, 100, multiplier=2.0)
        assert abs(doubled.target_usd_size - 2 * base.target_usd_size) < 1e-9
        assert doubled.ratio == base.ratio

    def test_zero_balances_floor_to_minimum(self) -> None:
        result = _size(0, 0, 100)
        assert result.target_usd_size == MIN_ORDER_USD
        assert result.ratio == 0.0

    def test_small_target_floored(self) -> None:
        result = _size(10, 10_000, 50)
        assert result.ratio > 0
        assert result.target_usd_size == MIN_ORDER_USD

    def test_negative_balances_treated_as_zero(self) -> None:
        result = _size(-500, -500, 100)
        assert result.target_usd_size == MIN_ORDER_USD
        assert result.ratio == 0.0

    def test_negative_trade_size_floors(self) -> None:
        result = _size(1000, 0, -100)
        assert result.target_usd_size == MIN_ORDER_USD
        assert _size(1000, 50, -100).target_usd_size == MIN_ORDER_USD
        assert _size(1000, 1000, -1).target_usd_size == MIN_ORDER_USD

    def test_zero_denominator(self) -> None:
        result = _size(1000, 0, 0)
        assert result.ratio == 0.0
        assert result.target_usd_size == MIN_ORDER_USD

    def test_non_finite_inputs_never_leak(self) -> None:
        for inputs in (
            (math.nan, 1000, 100),
            (1000, math.nan, 100),
            (1000, 1000, math.nan),
            (math.inf, 1000, 100),
            (1000, 1000, math.inf),
        ):
            result = _size(*inputs)
            assert math.isfinite(result.target_usd_size)
            assert result.target_usd_size >= MIN_ORDER_USD

    def test_infinite_multiplier_floors(self) -> None:
        result = _size(1000, 1000, 100, multiplier=math.inf)
        assert result.target_usd_size == MIN_ORDER_USD

    def test_custom_minimum(self) -> None:
        result = compute_proportional_sizing(
            SizingInputs(follower_balance=0, trader_balance=0, trader_trade_usd=10, multiplier=1),
            min_order_usd=5.0,
        )
        assert result.target_usd_size == 5.0
