from .markets import BET_AMOUNTS, MARKET_BY_KEY, SHORTS_MARKETS
from .settings import Settings, load_settings

__all__ = ["BET_AMOUNTS", "MARKET_BY_KEY", "SHORTS_MARKETS", "Settings", "load_settings"]
