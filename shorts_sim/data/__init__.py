from .feeds import (
    BinanceTradeFeed,
    RtdsChainlinkFeed,
    WebsocketPriceFeed,
    parse_binance_trade,
    parse_chainlink_message,
)
from .oracle import PriceOracle, now_ms
from .snapshot_store import SnapshotStore

__all__ = [
    "BinanceTradeFeed",
    "PriceOracle",
    "RtdsChainlinkFeed",
    "SnapshotStore",
    "WebsocketPriceFeed",
    "now_ms",
    "parse_binance_trade",
    "parse_chainlink_message",
]
