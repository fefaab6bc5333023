from __future__ import annotations


class ShortsError(Exception):
    """Base error for programming/configuration faults.

    User intents that are merely disallowed right now are not errors; they come
    back as a rejected PlaceResult.
    """


class ConfigError(ShortsError):
    pass


class UnknownMarketError(ShortsError):
    def __init__(self, market_key: str) -> None:
        super().__init__(f"unknown market: {market_key}")
        self.market_key = market_key


class InsufficientBalanceError(ShortsError):
    def __init__(self, required: float, available: float) -> None:
        super().__init__(
            f"insufficient balance: required {required:.2f}, available {available:.2f}"
        )
        self.required = required
        self.available = available
