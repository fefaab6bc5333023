from .errors import ConfigError, InsufficientBalanceError, ShortsError, UnknownMarketError
from .models import (
    ActivityEntry,
    ContractQuotes,
    Direction,
    FeedStatus,
    Market,
    OpenPosition,
    PayoutModel,
    PendingSettlement,
    PlaceResult,
    PositionStatus,
    PricePoint,
    PriceSample,
    ResolvedRound,
    Round,
    RoundState,
    SettledPosition,
)

__all__ = [
    "ActivityEntry",
    "ConfigError",
    "ContractQuotes",
    "Direction",
    "FeedStatus",
    "InsufficientBalanceError",
    "Market",
    "OpenPosition",
    "PayoutModel",
    "PendingSettlement",
    "PlaceResult",
    "PositionStatus",
    "PricePoint",
    "PriceSample",
    "ResolvedRound",
    "Round",
    "RoundState",
    "SettledPosition",
    "ShortsError",
    "UnknownMarketError",
]
