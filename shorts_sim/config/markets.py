from __future__ import annotations

from shorts_sim.domain import Market

SHORTS_MARKETS: tuple[Market, ...] = (
    Market(key="BTC-30s", asset="BTC", symbol="BTCUSDT", duration_sec=30, label="BTC 30s"),
    Market(key="BTC-1m", asset="BTC", symbol="BTCUSDT", duration_sec=60, label="BTC 1m"),
    Market(key="ETH-30s", asset="ETH", symbol="ETHUSDT", duration_sec=30, label="ETH 30s"),
    Market(key="ETH-1m", asset="ETH", symbol="ETHUSDT", duration_sec=60, label="ETH 1m"),
)

MARKET_BY_KEY: dict[str, Market] = {m.key: m for m in SHORTS_MARKETS}

BET_AMOUNTS: tuple[int, ...] = (10, 25, 50, 100)
