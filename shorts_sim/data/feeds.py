"""Upstream price feeds.

Each feed has a strict parse function that returns a PriceSample or None, so
nothing feed-shaped ever reaches the engine. The websocket clients push parsed
samples into the PriceOracle buffer and keep the source status current.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import time
from typing import Any

import websockets

from shorts_sim.data.oracle import PriceOracle
from shorts_sim.domain import FeedStatus, PriceSample

logger = logging.getLogger(__name__)

RTDS_URL = "wss://ws-live-data.polymarket.com"
BINANCE_STREAM_URL = "wss://stream.binance.com:9443/stream?streams=btcusdt@trade/ethusdt@trade"
RECONNECT_DELAY_SEC = 2.0

CHAINLINK_SYMBOLS = {"btc/usd": "BTC", "eth/usd": "ETH"}
BINANCE_SYMBOLS = {"BTCUSDT": "BTC", "ETHUSDT": "ETH"}

# timestamps above this are already milliseconds
_MS_THRESHOLD = 1_000_000_000_000


def _now_ms() -> int:
    return int(time.time() * 1000)


def _finite(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        out = float(value)
    elif isinstance(value, str):
        try:
            out = float(value)
        except ValueError:
            return None
    else:
        return None
    return out if math.isfinite(out) else None


def _to_ms(ts: Any, default: int) -> int:
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        return default
    return int(ts) if ts > _MS_THRESHOLD else int(ts * 1000)


def _loads(raw: str | bytes) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def parse_chainlink_message(raw: str | bytes, *, now: int | None = None) -> PriceSample | None:
    """Polymarket RTDS crypto_prices_chainlink update -> PriceSample."""
    now = _now_ms() if now is None else now
    msg = _loads(raw)
    if not isinstance(msg, dict):
        return None
    payload = msg.get("payload")
    if not isinstance(payload, dict):
        return None
    asset = CHAINLINK_SYMBOLS.get(str(payload.get("symbol") or "").lower())
    if asset is None:
        return None

    data = payload.get("data")
    if isinstance(data, list) and data:
        last = data[-1]
        if isinstance(last, dict):
            price = _finite(last.get("value"))
            if price is not None and price > 0:
                return PriceSample(asset=asset, price=price, updated_at=_to_ms(last.get("timestamp"), now))

    price = _finite(payload.get("value"))
    if price is None:
        price = _finite(payload.get("full_accuracy_value"))
    if price is None or price <= 0:
        return None
    return PriceSample(asset=asset, price=price, updated_at=_to_ms(payload.get("timestamp"), now))


def parse_binance_trade(raw: str | bytes, *, now: int | None = None) -> PriceSample | None:
    """Binance combined-stream trade event -> PriceSample."""
    now = _now_ms() if now is None else now
    msg = _loads(raw)
    if not isinstance(msg, dict):
        return None
    data = msg.get("data")
    if not isinstance(data, dict):
        return None
    asset = BINANCE_SYMBOLS.get(str(data.get("s") or ""))
    raw_price = data.get("p")
    if asset is None or not isinstance(raw_price, str):
        return None
    price = _finite(raw_price)
    if price is None or price <= 0:
        return None
    return PriceSample(asset=asset, price=price, updated_at=_to_ms(data.get("T"), now))


class WebsocketPriceFeed:
    """Reconnecting websocket client feeding one oracle source."""

    source = "feed"
    url = ""

    def __init__(self, oracle: PriceOracle, *, url: str | None = None, reconnect_delay: float = RECONNECT_DELAY_SEC):
        self.oracle = oracle
        self.url = url or self.url
        self.reconnect_delay = reconnect_delay
        self.messages = 0
        self.dropped = 0

    def subscribe_message(self) -> str | None:
        return None

    def parse(self, raw: str | bytes) -> PriceSample | None:
        raise NotImplementedError

    def handle_message(self, raw: str | bytes) -> bool:
        sample = self.parse(raw)
        if sample is None:
            self.dropped += 1
            return False
        if self.messages == 0:
            logger.info("feed %s live", self.source)
        self.messages += 1
        self.oracle.set_status(self.source, FeedStatus.LIVE)
        self.oracle.ingest(sample, self.source)
        return True

    async def run(self) -> None:
        while True:
            self.messages = 0
            self.oracle.set_status(self.source, FeedStatus.CONNECTING)
            try:
                async with websockets.connect(self.url, ping_interval=20, ping_timeout=20) as ws:
                    sub = self.subscribe_message()
                    if sub is not None:
                        await ws.send(sub)
                    async for raw in ws:
                        self.handle_message(raw)
                logger.warning("feed %s closed by upstream", self.source)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("feed %s error: %s", self.source, exc)
            self.oracle.set_status(self.source, FeedStatus.OFFLINE)
            await asyncio.sleep(self.reconnect_delay)


class RtdsChainlinkFeed(WebsocketPriceFeed):
    source = "chainlink"
    url = RTDS_URL

    def subscribe_message(self) -> str:
        return json.dumps(
            {
                "action": "subscribe",
                "subscriptions": [
                    {
                        "topic": "crypto_prices_chainlink",
                        "type": "update",
                        "filters": json.dumps({"symbol": symbol}),
                    }
                    for symbol in CHAINLINK_SYMBOLS
                ],
            }
        )

    def parse(self, raw: str | bytes) -> PriceSample | None:
        return parse_chainlink_message(raw)


class BinanceTradeFeed(WebsocketPriceFeed):
    source = "binance"
    url = BINANCE_STREAM_URL

    def parse(self, raw: str | bytes) -> PriceSample | None:
        return parse_binance_trade(raw)
