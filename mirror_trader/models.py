"""Data models for the copy pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from .utils import as_float


# ──────────────────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────────────────

class Outcome(str, Enum):
    YES = "YES"
    NO = "NO"

    @classmethod
    def from_index(cls, index: Any) -> "Outcome":
        """Outcome index exactly 0 is YES; anything else is NO."""
        return cls.YES if as_float(index) == 0 else cls.NO


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


# ──────────────────────────────────────────────────────────────
# Detected trade
# ──────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class TradeSignal:
    """One external trade detected on a tracked trader's activity feed."""
    trader: str
    market_id: str               # condition id
    outcome: Outcome
    side: Side
    size_usd: float
    price: float
    timestamp_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trader": self.trader,
            "market_id": self.market_id,
            "outcome": self.outcome.value,
            "side": self.side.value,
            "size_usd": round(self.size_usd, 6),
            "price": self.price,
            "timestamp_ms": self.timestamp_ms,
        }


# ──────────────────────────────────────────────────────────────
# Sizing
# ──────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class SizingInputs:
    follower_balance: float
    trader_balance: float
    trader_trade_usd: float
    multiplier: float


@dataclass(frozen=True, slots=True)
class SizingResult:
    target_usd_size: float
    ratio: float


# ──────────────────────────────────────────────────────────────
# Exchange
# ──────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class BookLevel:
    price: float
    size: float

    @property
    def value_usd(self) -> float:
        return self.price * self.size


@dataclass(frozen=True, slots=True)
class OrderBook:
    """Snapshot of one token's book; both sides ordered best-first."""
    token_id: str
    bids: Tuple[BookLevel, ...] = ()
    asks: Tuple[BookLevel, ...] = ()

    def levels_for(self, side: Side) -> Tuple[BookLevel, ...]:
        """Levels a taker on ``side`` would trade against."""
        return self.asks if side is Side.BUY else self.bids


@dataclass(frozen=True, slots=True)
class MarketTokens:
    market_id: str
    yes_token_id: str
    no_token_id: str

    def token_for(self, outcome: Outcome) -> str:
        return self.yes_token_id if outcome is Outcome.YES else self.no_token_id


@dataclass(frozen=True, slots=True)
class SubmitResult:
    success: bool
    order_id: Optional[str] = None
    error: Optional[str] = None
    tx_hashes: Tuple[str, ...] = ()


@dataclass(slots=True)
class FillReport:
    """What the fill loop actually did for one requested notional.

    ``remaining_usd`` can stay above zero when the loop runs out of attempts
    or liquidity; nothing raises in that case.
    """
    token_id: str
    side: Side
    requested_usd: float
    filled_usd: float = 0.0
    orders_submitted: int = 0
    orders_rejected: int = 0
    fills: list[BookLevel] = field(default_factory=list)
    tx_hashes: list[str] = field(default_factory=list)

    @property
    def remaining_usd(self) -> float:
        return max(0.0, self.requested_usd - self.filled_usd)

    @property
    def average_price(self) -> Optional[float]:
        shares = sum(f.size for f in self.fills)
        if shares <= 0:
            return None
        return sum(f.value_usd for f in self.fills) / shares


# ──────────────────────────────────────────────────────────────
# Ledger
# ──────────────────────────────────────────────────────────────

@dataclass(slots=True)
class TradeRecord:
    trader: str
    follower: str
    market_id: str
    outcome: Outcome
    side: Side
    size_usd: float
    price: float
    executed_at_ms: int
    status: TradeStatus
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    id: Optional[int] = None


@dataclass(slots=True)
class Position:
    follower: str
    market_id: str
    outcome: Outcome
    total_size_usd: float = 0.0      # cost basis
    average_price: float = 0.0
    current_size: float = 0.0        # shares
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    last_updated_ms: int = 0
    is_open: bool = True


@dataclass(frozen=True, slots=True)
class PnlSummary:
    realized: float = 0.0
    unrealized: float = 0.0

    @property
    def total(self) -> float:
        return self.realized + self.unrealized


def best_first(levels: Sequence[BookLevel], *, descending: bool) -> Tuple[BookLevel, ...]:
    """Order levels so the best price comes first."""
    return tuple(sorted(levels, key=lambda lvl: lvl.price, reverse=descending))
