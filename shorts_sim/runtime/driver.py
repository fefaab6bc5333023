"""Single consumer for every engine mutation.

Timers and the dashboard never touch engine state directly; they enqueue
commands, and one task applies them in order. A round tick therefore always
sees a consistent snapshot, and a place intent can never interleave with a
settlement batch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from shorts_sim.data.oracle import PriceOracle, now_ms
from shorts_sim.domain import Direction, PlaceResult, SettledPosition
from shorts_sim.engine.core import RoundEngine, TickReport
from shorts_sim.strategy.bots import BotSimulator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class FlushPrices:
    pass


@dataclass(frozen=True)
class BotStep:
    pass


@dataclass
class PlacePosition:
    market_key: str
    direction: Direction | str
    stake: float
    future: asyncio.Future = field(repr=False)


Command = Tick | FlushPrices | BotStep | PlacePosition


class EngineDriver:
    def __init__(
        self,
        engine: RoundEngine,
        oracle: PriceOracle,
        bots: BotSimulator | None = None,
        *,
        clock: Callable[[], int] = now_ms,
    ):
        self.engine = engine
        self.oracle = oracle
        self.bots = bots
        self._clock = clock
        self.queue: asyncio.Queue[Command] = asyncio.Queue()
        self._timer_pending: set[type] = set()
        self._settlement_listeners: list[Callable[[list[SettledPosition]], None]] = []
        self.last_report: TickReport | None = None

    def add_settlement_listener(self, fn: Callable[[list[SettledPosition]], None]) -> None:
        self._settlement_listeners.append(fn)

    def submit(self, cmd: Command) -> None:
        if not isinstance(cmd, PlacePosition):
            # coalesce timer commands that have not been consumed yet
            if type(cmd) in self._timer_pending:
                return
            self._timer_pending.add(type(cmd))
        self.queue.put_nowait(cmd)

    async def place(self, market_key: str, direction: Direction | str, stake: float) -> PlaceResult:
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self.submit(PlacePosition(market_key=market_key, direction=direction, stake=stake, future=fut))
        return await fut

    def handle(self, cmd: Command) -> None:
        self._timer_pending.discard(type(cmd))
        now = self._clock()
        if isinstance(cmd, Tick):
            report = self.engine.tick(now)
            self.last_report = report
            if report.settled:
                self._notify(report.settled)
        elif isinstance(cmd, FlushPrices):
            self.oracle.flush()
        elif isinstance(cmd, BotStep):
            if self.bots is not None:
                self.bots.step(now)
        elif isinstance(cmd, PlacePosition):
            try:
                result = self.engine.place_position(cmd.market_key, cmd.direction, cmd.stake, now)
            except Exception as exc:
                logger.exception("place intent failed: %s", exc)
                result = PlaceResult(ok=False, reason="internal_error")
            if not cmd.future.done():
                cmd.future.set_result(result)
        else:
            logger.warning("unknown engine command %r", cmd)

    def _notify(self, settled: list[SettledPosition]) -> None:
        for fn in self._settlement_listeners:
            try:
                fn(settled)
            except Exception as exc:
                logger.warning("settlement listener failed: %s", exc)

    async def run(self) -> None:
        while True:
            cmd = await self.queue.get()
            try:
                self.handle(cmd)
            except Exception as exc:
                logger.exception("engine command %s failed: %s", type(cmd).__name__, exc)
            finally:
                self.queue.task_done()

    async def every(self, interval_ms: int, factory: Callable[[], Command]) -> None:
        interval = max(0.01, interval_ms / 1000.0)
        while True:
            self.submit(factory())
            await asyncio.sleep(interval)
