from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"


class FeedStatus(str, Enum):
    CONNECTING = "connecting"
    LIVE = "live"
    OFFLINE = "offline"


class PayoutModel(str, Enum):
    FIXED_RATE = "fixed-rate"
    PER_SHARE_QUOTE = "per-share-quote"


class PositionStatus(str, Enum):
    WIN = "win"
    LOSS = "loss"
    PUSH = "push"


class RoundState(str, Enum):
    PENDING_OPEN = "PENDING_OPEN"
    OPEN = "OPEN"
    LOCKED = "LOCKED"
    CLOSED = "CLOSED"
    SETTLING = "SETTLING"
    SETTLED = "SETTLED"


@dataclass(frozen=True)
class Market:
    key: str
    asset: str
    symbol: str
    duration_sec: int
    label: str

    @property
    def duration_ms(self) -> int:
        return int(self.duration_sec) * 1000


@dataclass(frozen=True)
class PricePoint:
    price: float
    updated_at: int


@dataclass(frozen=True)
class PriceSample:
    """Normalized upstream tick; the only feed shape the engine sees."""

    asset: str
    price: float
    updated_at: int


@dataclass(frozen=True)
class Round:
    id: str
    market_key: str
    start_time: int
    end_time: int
    lock_time: int | None = None
    open_price: float | None = None

    @property
    def duration_ms(self) -> int:
        return self.end_time - self.start_time

    @property
    def cutoff_time(self) -> int:
        """First instant at which the round stops accepting positions."""
        return self.lock_time if self.lock_time is not None else self.end_time

    def with_open_price(self, price: float) -> Round:
        if self.open_price is not None:
            return self
        return replace(self, open_price=float(price))


@dataclass(frozen=True)
class OpenPosition:
    id: str
    market_key: str
    round_id: str
    direction: Direction
    amount: float
    created_at: int
    round_end_time: int
    entry_price: float
    entry_quote: float | None = None
    shares: float | None = None


@dataclass(frozen=True)
class SettledPosition:
    id: str
    market_key: str
    round_id: str
    direction: Direction
    amount: float
    created_at: int
    round_end_time: int
    entry_price: float
    entry_quote: float | None
    shares: float | None
    status: PositionStatus
    settle_price: float
    profit: float
    payout: float
    resolved_at: int

    @classmethod
    def from_open(
        cls,
        pos: OpenPosition,
        *,
        status: PositionStatus,
        settle_price: float,
        profit: float,
        payout: float,
        resolved_at: int,
    ) -> SettledPosition:
        return cls(
            id=pos.id,
            market_key=pos.market_key,
            round_id=pos.round_id,
            direction=pos.direction,
            amount=pos.amount,
            created_at=pos.created_at,
            round_end_time=pos.round_end_time,
            entry_price=pos.entry_price,
            entry_quote=pos.entry_quote,
            shares=pos.shares,
            status=status,
            settle_price=float(settle_price),
            profit=profit,
            payout=payout,
            resolved_at=resolved_at,
        )


@dataclass(frozen=True)
class ActivityEntry:
    id: str
    side: Direction
    amount: float
    quote: float
    created_at: int
    trader: str
    is_user: bool = False


@dataclass(frozen=True)
class PendingSettlement:
    round_id: str
    asset: str
    market_key: str
    end_time: int
    queued_at: int


@dataclass(frozen=True)
class ResolvedRound:
    round_id: str
    settle_price: float


@dataclass(frozen=True)
class ContractQuotes:
    up_cents: int
    down_cents: int

    @property
    def up(self) -> float:
        return self.up_cents / 100.0

    @property
    def down(self) -> float:
        return self.down_cents / 100.0

    def for_side(self, side: Direction) -> float:
        return self.up if side == Direction.UP else self.down


@dataclass(frozen=True)
class PlaceResult:
    ok: bool
    reason: str
    position: OpenPosition | None = None
