from __future__ import annotations

import asyncio

from shorts_sim.config import SHORTS_MARKETS, Settings
from shorts_sim.dashboard import run_dashboard
from shorts_sim.data import BinanceTradeFeed, PriceOracle, RtdsChainlinkFeed, SnapshotStore
from shorts_sim.domain import PositionStatus, SettledPosition
from shorts_sim.engine import RoundEngine
from shorts_sim.execution import BalanceLedger
from shorts_sim.infra import RuntimeEventLogger, get_logger
from shorts_sim.runtime.driver import BotStep, EngineDriver, FlushPrices, Tick
from shorts_sim.runtime.supervisor import LoopSupervisor
from shorts_sim.strategy.bots import BotSimulator

SNAPSHOT_INTERVAL_SEC = 1.0
HEALTH_INTERVAL_SEC = 60.0


class App:
    """Top-level orchestrator: feeds, engine driver, bots and dashboard."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.log = get_logger("shorts_sim.app", settings.log_level)
        self.events = RuntimeEventLogger(settings.data_dir)
        self.oracle = PriceOracle(stale_after_ms=settings.feed_stale_ms)
        self.ledger = BalanceLedger(settings.starting_balance)
        self.engine = RoundEngine(
            SHORTS_MARKETS,
            self.oracle,
            self.ledger,
            settings.engine_config(),
            events=self.events,
        )
        self.bots = BotSimulator(self.engine) if settings.bots_enabled else None
        self.driver = EngineDriver(self.engine, self.oracle, self.bots)
        self.driver.add_settlement_listener(self._log_settled)
        self.feeds = [RtdsChainlinkFeed(self.oracle)]
        if settings.enable_binance_feed:
            self.feeds.append(BinanceTradeFeed(self.oracle))
        self.supervisor = LoopSupervisor(self.log, events=self.events)
        self.store = SnapshotStore(settings.data_dir)

    def _log_settled(self, settled: list[SettledPosition]) -> None:
        for s in settled:
            mark = "WIN" if s.status == PositionStatus.WIN else s.status.value.upper()
            self.log.info(
                "[%s] %s %s stake=%.2f entry=%.2f settle=%.2f payout=%.2f",
                mark,
                s.market_key,
                s.direction.value,
                s.amount,
                s.entry_price,
                s.settle_price,
                s.payout,
            )

    async def _snapshot_loop(self) -> None:
        while True:
            self.store.write(self.engine.snapshot())
            await asyncio.sleep(SNAPSHOT_INTERVAL_SEC)

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(HEALTH_INTERVAL_SEC)
            self.log.info(
                "health feed=%s balance=%.2f open=%d pending=%d %s %s",
                self.oracle.status().value,
                self.ledger.balance,
                len(self.engine.open_positions()),
                len(self.engine.pending_settlements),
                self.supervisor.health.summary(),
                self.events.summary(),
            )

    async def run(self) -> None:
        s = self.settings
        self.log.info(
            "starting shorts simulator markets=%d payout_model=%s balance=%.2f dashboard=%s/%s",
            len(SHORTS_MARKETS),
            s.payout_model.value,
            self.ledger.balance,
            s.dashboard_enabled,
            s.dashboard_mode,
        )
        sup = self.supervisor
        loops = [
            sup.run_forever("driver", self.driver.run),
            sup.run_forever("round-timer", lambda: self.driver.every(s.round_tick_ms, Tick)),
            sup.run_forever("price-timer", lambda: self.driver.every(s.price_tick_ms, FlushPrices)),
            sup.run_forever("health", self._health_loop),
        ]
        if self.bots is not None:
            loops.append(sup.run_forever("bot-timer", lambda: self.driver.every(s.bot_tick_ms, BotStep)))
        for feed in self.feeds:
            loops.append(sup.run_forever(f"feed-{feed.source}", feed.run))

        if s.dashboard_enabled and s.dashboard_mode == "external":
            loops.append(sup.run_forever("snapshot", self._snapshot_loop))
            loops.append(run_dashboard(port=s.dashboard_port, log_level=s.log_level, data_dir=s.data_dir))
        elif s.dashboard_enabled:
            loops.append(run_dashboard(port=s.dashboard_port, log_level=s.log_level, driver=self.driver))

        await asyncio.gather(*loops)


def run_main(settings: Settings) -> None:
    asyncio.run(App(settings).run())
