"""Polymarket Data API reads: trader activity and positions."""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from .errors import NetworkError
from .http_json import AsyncJsonClient
from .utils import as_float

log = logging.getLogger(__name__)

DATA_API_BASE = "https://data-api.polymarket.com"
ACTIVITY_PAGE_LIMIT = 500

MIN_TRADER_BALANCE_USD = 100.0
FALLBACK_TRADER_BALANCE_USD = 1000.0


class DataApiClient:
    """Read-only access to the public Data API.

    Activity is requested oldest-first and bounded to the lookback window so
    the monitor sees one trader's trades in the order they happened.
    """

    def __init__(self, http: AsyncJsonClient, *, activity_lookback_seconds: float = 300.0) -> None:
        self.http = http
        self.activity_lookback_seconds = max(0.0, float(activity_lookback_seconds))

    async def _get_list(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        data = await self.http.get_json(path, params)
        if not isinstance(data, list):
            raise NetworkError(
                f"unexpected response from {path}: expected JSON list",
                retryable=False,
                url=f"{self.http.base_url}{path}",
            )
        return [row for row in data if isinstance(row, dict)]

    async def fetch_activity(self, trader: str) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {
            "user": trader,
            "limit": ACTIVITY_PAGE_LIMIT,
            "sortBy": "TIMESTAMP",
            "sortDirection": "ASC",
        }
        if self.activity_lookback_seconds > 0:
            params["start"] = int(time.time() - self.activity_lookback_seconds)
        return await self._get_list("/activity", params)

    async def fetch_positions(self, trader: str) -> List[Dict[str, Any]]:
        return await self._get_list("/positions", {"user": trader})

    async def trader_balance(self, trader: str) -> float:
        """Rough bankroll estimate: the current value of open positions.

        Floored at MIN_TRADER_BALANCE_USD. Any failure falls back to
        FALLBACK_TRADER_BALANCE_USD so sizing can still proceed.
        """
        try:
            positions = await self.fetch_positions(trader)
        except Exception as exc:
            log.warning("trader balance lookup failed trader=%s: %s", trader, exc)
            return FALLBACK_TRADER_BALANCE_USD
        total = sum(_position_value(pos) for pos in positions)
        return max(MIN_TRADER_BALANCE_USD, total)

    async def close(self) -> None:
        await self.http.close()


def _position_value(pos: Dict[str, Any]) -> float:
    for key in ("currentValue", "initialValue"):
        value: Optional[float] = as_float(pos.get(key))
        if value:
            return value
    return 0.0
