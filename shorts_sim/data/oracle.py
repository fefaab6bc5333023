from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable

from shorts_sim.domain import FeedStatus, PricePoint, PriceSample


def now_ms() -> int:
    return int(time.time() * 1000)


class PriceOracle:
    """Last-known price per asset across one or more upstream feeds.

    Feeds write into a buffer via ingest(); flush() publishes the buffer to the
    engine-visible view on its own cadence. Reads never block and return None
    for anything not yet known.
    """

    def __init__(
        self,
        *,
        stale_after_ms: int = 15_000,
        clock: Callable[[], int] = now_ms,
        source_priority: Iterable[str] = ("chainlink", "binance"),
    ):
        self.stale_after_ms = max(1, int(stale_after_ms))
        self._clock = clock
        self._priority = list(source_priority)
        self._lock = threading.Lock()
        self._buffer: dict[tuple[str, str], PricePoint] = {}
        self._published: dict[tuple[str, str], PricePoint] = {}
        self._status: dict[str, FeedStatus] = {s: FeedStatus.CONNECTING for s in self._priority}
        self._last_tick_ms: dict[str, int] = {}

    def ingest(self, sample: PriceSample, source: str) -> None:
        if not sample.price > 0:
            return
        point = PricePoint(price=float(sample.price), updated_at=int(sample.updated_at))
        with self._lock:
            key = (sample.asset, source)
            prev = self._buffer.get(key)
            if prev is not None and prev.updated_at > point.updated_at:
                return
            self._buffer[key] = point
            self._last_tick_ms[source] = self._clock()
            if source not in self._priority:
                self._priority.append(source)

    def flush(self) -> int:
        with self._lock:
            changed = sum(1 for k, v in self._buffer.items() if self._published.get(k) != v)
            self._published = dict(self._buffer)
        return changed

    def set_status(self, source: str, status: FeedStatus) -> None:
        with self._lock:
            self._status[source] = FeedStatus(status)
            if source not in self._priority:
                self._priority.append(source)

    def source_status(self, source: str) -> FeedStatus:
        return self._status.get(source, FeedStatus.CONNECTING)

    def latest(self, asset: str, now: int | None = None) -> PricePoint | None:
        """Freshest usable price: first live, non-stale source in priority order.

        With no such source, the most recent point from any source is returned
        so the last known price stays visible during an outage.
        """
        now = self._clock() if now is None else now
        fallback: PricePoint | None = None
        for source in self._priority:
            point = self._published.get((asset, source))
            if point is None:
                continue
            if self.source_status(source) == FeedStatus.LIVE and (now - point.updated_at) <= self.stale_after_ms:
                return point
            if fallback is None or point.updated_at > fallback.updated_at:
                fallback = point
        return fallback

    def latest_price(self, asset: str) -> float | None:
        point = self.latest(asset)
        return None if point is None else point.price

    def is_stale(self, asset: str, now: int | None = None) -> bool:
        point = self.latest(asset)
        if point is None:
            return True
        now = self._clock() if now is None else now
        return (now - point.updated_at) > self.stale_after_ms

    def status(self, now: int | None = None) -> FeedStatus:
        now = self._clock() if now is None else now
        statuses = [self._status.get(s, FeedStatus.CONNECTING) for s in self._priority]
        for source, st in zip(self._priority, statuses):
            if st != FeedStatus.LIVE:
                continue
            last = self._last_tick_ms.get(source)
            if last is not None and (now - last) <= self.stale_after_ms:
                return FeedStatus.LIVE
        if statuses and all(st == FeedStatus.CONNECTING for st in statuses) and not self._last_tick_ms:
            return FeedStatus.CONNECTING
        return FeedStatus.OFFLINE

    def is_live(self, now: int | None = None) -> bool:
        return self.status(now) == FeedStatus.LIVE

    def sources(self) -> dict[str, str]:
        return {s: self.source_status(s).value for s in self._priority}
