"""Trade ledger: records every copy attempt and tracks follower positions.

SQLite keeps one row per attempt in ``trades`` and one row per
(follower, market, outcome) in ``positions``. Ledger failures are logged
and never reach the trading path.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import List, Optional, Protocol

from .models import Outcome, PnlSummary, Position, Side, TradeRecord, TradeSignal, TradeStatus

log = logging.getLogger(__name__)

CLOSED_POSITION_SHARES = 0.01

SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS trades (
    id           INTEGER PRIMARY KEY,
    trader       TEXT NOT NULL,
    follower     TEXT NOT NULL,
    market_id    TEXT NOT NULL,
    outcome      TEXT NOT NULL,
    side         TEXT NOT NULL,
    size_usd     REAL NOT NULL,
    price        REAL NOT NULL,
    executed_at  INTEGER NOT NULL,      -- ms since epoch
    tx_hash      TEXT,
    status       TEXT NOT NULL,
    error        TEXT
);
CREATE INDEX IF NOT EXISTS trades_trader_time ON trades (trader, executed_at DESC);
CREATE INDEX IF NOT EXISTS trades_follower_time ON trades (follower, executed_at DESC);

CREATE TABLE IF NOT EXISTS positions (
    follower        TEXT NOT NULL,
    market_id       TEXT NOT NULL,
    outcome         TEXT NOT NULL,
    total_size_usd  REAL NOT NULL DEFAULT 0,
    average_price   REAL NOT NULL DEFAULT 0,
    current_size    REAL NOT NULL DEFAULT 0,
    realized_pnl    REAL NOT NULL DEFAULT 0,
    unrealized_pnl  REAL NOT NULL DEFAULT 0,
    last_updated    INTEGER NOT NULL,
    is_open         INTEGER NOT NULL DEFAULT 1,
    PRIMARY KEY (follower, market_id, outcome)
);
"""


class TradeLedger(Protocol):
    async def record_trade(
        self,
        signal: TradeSignal,
        executed_size_usd: float,
        executed_price: float,
        status: TradeStatus,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None: ...

    async def get_open_positions(self) -> List[Position]: ...

    async def get_trade_history(self, limit: int = 100) -> List[TradeRecord]: ...

    async def get_total_pnl(self) -> PnlSummary: ...


def apply_fill(position: Position, side: Side, size_usd: float, price: float) -> None:
    """Update a position in place for one successful fill."""
    if price <= 0:
        return
    shares = size_usd / price
    if side is Side.BUY:
        position.current_size += shares
        position.total_size_usd += size_usd
        position.average_price = position.total_size_usd / position.current_size
        position.is_open = True
        return

    cost_basis = shares * position.average_price
    position.realized_pnl += size_usd - cost_basis
    position.current_size = max(0.0, position.current_size - shares)
    position.total_size_usd = max(0.0, position.total_size_usd - cost_basis)
    if position.current_size < CLOSED_POSITION_SHARES:
        position.is_open = False
        position.current_size = 0.0
        position.total_size_usd = 0.0


class SqliteLedger:
    """SQLite-backed ledger. Queries run on worker threads, one at a time."""

    def __init__(self, db_path: str, follower: str) -> None:
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self.follower = follower.lower()
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(SCHEMA)
        self.conn.commit()
        self._lock = threading.Lock()

    # ---------------------------- WRITES --------------------------------- #

    async def record_trade(
        self,
        signal: TradeSignal,
        executed_size_usd: float,
        executed_price: float,
        status: TradeStatus,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        try:
            trade_id = await asyncio.to_thread(
                self._insert_trade, signal, executed_size_usd, executed_price, status, tx_hash, error
            )
        except sqlite3.Error:
            log.exception("failed to record trade market=%s", signal.market_id)
            return
        log.debug("recorded trade id=%s status=%s", trade_id, status.value)

    def _insert_trade(
        self,
        signal: TradeSignal,
        executed_size_usd: float,
        executed_price: float,
        status: TradeStatus,
        tx_hash: Optional[str],
        error: Optional[str],
    ) -> Optional[int]:
        with self._lock, self.conn:
            cur = self.conn.execute(
                """
                INSERT INTO trades (trader, follower, market_id, outcome, side,
                                    size_usd, price, executed_at, tx_hash, status, error)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    signal.trader,
                    self.follower,
                    signal.market_id,
                    signal.outcome.value,
                    signal.side.value,
                    float(executed_size_usd),
                    float(executed_price),
                    int(signal.timestamp_ms),
                    tx_hash,
                    status.value,
                    error,
                ),
            )
            if status is TradeStatus.SUCCESS:
                self._update_position(signal, executed_size_usd, executed_price)
            return cur.lastrowid

    def _update_position(self, signal: TradeSignal, size_usd: float, price: float) -> None:
        position = self._load_position(signal.market_id, signal.outcome) or Position(
            follower=self.follower, market_id=signal.market_id, outcome=signal.outcome
        )
        apply_fill(position, signal.side, float(size_usd), float(price))
        position.last_updated_ms = int(time.time() * 1000)
        self.conn.execute(
            """
            INSERT INTO positions (follower, market_id, outcome, total_size_usd, average_price,
                                   current_size, realized_pnl, unrealized_pnl, last_updated, is_open)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (follower, market_id, outcome) DO UPDATE SET
                total_size_usd = excluded.total_size_usd,
                average_price  = excluded.average_price,
                current_size   = excluded.current_size,
                realized_pnl   = excluded.realized_pnl,
                unrealized_pnl = excluded.unrealized_pnl,
                last_updated   = excluded.last_updated,
                is_open        = excluded.is_open
            """,
            (
                position.follower,
                position.market_id,
                position.outcome.value,
                position.total_size_usd,
                position.average_price,
                position.current_size,
                position.realized_pnl,
                position.unrealized_pnl,
                position.last_updated_ms,
                int(position.is_open),
            ),
        )
        log.debug(
            "position %s %s size=%.2f avg=%.3f",
            position.market_id, position.outcome.value, position.current_size, position.average_price,
        )

    # ---------------------------- READS ---------------------------------- #

    def _load_position(self, market_id: str, outcome: Outcome) -> Optional[Position]:
        row = self.conn.execute(
            "SELECT * FROM positions WHERE follower = ? AND market_id = ? AND outcome = ?",
            (self.follower, market_id, outcome.value),
        ).fetchone()
        return _row_to_position(row) if row is not None else None

    def _fetch(self, query: str, params: tuple) -> List[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(query, params).fetchall()

    async def get_open_positions(self) -> List[Position]:
        try:
            rows = await asyncio.to_thread(
                self._fetch,
                "SELECT * FROM positions WHERE follower = ? AND is_open = 1 ORDER BY last_updated DESC",
                (self.follower,),
            )
        except sqlite3.Error:
            log.exception("failed to fetch open positions")
            return []
        return [_row_to_position(row) for row in rows]

    async def get_trade_history(self, limit: int = 100) -> List[TradeRecord]:
        try:
            rows = await asyncio.to_thread(
                self._fetch,
                """
                SELECT * FROM trades
                WHERE follower = ? AND status = ?
                ORDER BY executed_at DESC, id DESC
                LIMIT ?
                """,
                (self.follower, TradeStatus.SUCCESS.value, max(0, int(limit))),
            )
        except sqlite3.Error:
            log.exception("failed to fetch trade history")
            return []
        return [_row_to_trade(row) for row in rows]

    async def get_total_pnl(self) -> PnlSummary:
        try:
            rows = await asyncio.to_thread(
                self._fetch,
                """
                SELECT COALESCE(SUM(realized_pnl), 0) AS realized,
                       COALESCE(SUM(unrealized_pnl), 0) AS unrealized
                FROM positions WHERE follower = ?
                """,
                (self.follower,),
            )
        except sqlite3.Error:
            log.exception("failed to calculate pnl")
            return PnlSummary()
        row = rows[0]
        return PnlSummary(realized=float(row["realized"]), unrealized=float(row["unrealized"]))

    def close(self) -> None:
        with self._lock:
            self.conn.close()


def _row_to_position(row: sqlite3.Row) -> Position:
    return Position(
        follower=row["follower"],
        market_id=row["market_id"],
        outcome=Outcome(row["outcome"]),
        total_size_usd=row["total_size_usd"],
        average_price=row["average_price"],
        current_size=row["current_size"],
        realized_pnl=row["realized_pnl"],
        unrealized_pnl=row["unrealized_pnl"],
        last_updated_ms=row["last_updated"],
        is_open=bool(row["is_open"]),
    )


def _row_to_trade(row: sqlite3.Row) -> TradeRecord:
    return TradeRecord(
        id=row["id"],
        trader=row["trader"],
        follower=row["follower"],
        market_id=row["market_id"],
        outcome=Outcome(row["outcome"]),
        side=Side(row["side"]),
        size_usd=row["size_usd"],
        price=row["price"],
        executed_at_ms=row["executed_at"],
        status=TradeStatus(row["status"]),
        tx_hash=row["tx_hash"],
        error=row["error"],
    )
