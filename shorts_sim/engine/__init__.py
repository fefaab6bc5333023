from .book import MarketBook
from .core import EngineConfig, RoundEngine, TickReport
from .round_clock import accepting_bets, derive_round, round_progress, round_state, time_remaining_ms

__all__ = [
    "EngineConfig",
    "MarketBook",
    "RoundEngine",
    "TickReport",
    "accepting_bets",
    "derive_round",
    "round_progress",
    "round_state",
    "time_remaining_ms",
]
