"""Synthetic participants that keep the displayed book moving.

Each bot reads the same up-probability the quote engine uses, with its own
noise on top, so most follow price but not all of them agree. Bots only ever
write to market books; balances and positions are never touched.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from shorts_sim.domain import Direction
from shorts_sim.engine.core import RoundEngine
from shorts_sim.engine.round_clock import round_progress

logger = logging.getLogger(__name__)

BET_SIZES: tuple[int, ...] = (10, 15, 25, 35, 50, 75, 100)
BET_SIZE_WEIGHTS: tuple[float, ...] = (0.25, 0.2, 0.2, 0.15, 0.1, 0.06, 0.04)

BOT_ADDRESSES: tuple[str, ...] = (
    "0xA1c3", "0xB4e7", "0xC9f2", "0xD17b", "0xE6a0", "0xF2d4",
    "0x91af", "0x73ce", "0x4b82", "0x22eF", "0x8d1A", "0x5cB9",
)


@dataclass(frozen=True)
class BotConfig:
    noise_range: float = 0.18
    min_bots_per_tick: int = 1
    max_bots_per_tick: int = 6
    late_boost_after: float = 0.7
    late_boost_slope: float = 1.5
    size_step: int = 5


def weighted_index(weights: tuple[float, ...], roll: float) -> int:
    cumulative = 0.0
    for i, w in enumerate(weights):
        cumulative += w
        if roll < cumulative:
            return i
    return len(weights) - 1


class BotSimulator:
    def __init__(self, engine: RoundEngine, cfg: BotConfig | None = None, *, rng: random.Random | None = None):
        self.engine = engine
        self.cfg = cfg or BotConfig()
        self.rng = rng or random.Random()

    def bots_this_tick(self, progress: float) -> int:
        span = self.cfg.max_bots_per_tick - self.cfg.min_bots_per_tick
        base = self.cfg.min_bots_per_tick + progress * span
        jitter = (self.rng.random() - 0.5) * 2
        count = round(base + jitter)
        return max(0, min(self.cfg.max_bots_per_tick, count))

    def stake_size(self, progress: float) -> int:
        base = BET_SIZES[weighted_index(BET_SIZE_WEIGHTS, self.rng.random())]
        boost = 1.0
        if progress > self.cfg.late_boost_after:
            boost = 1.0 + (progress - self.cfg.late_boost_after) * self.cfg.late_boost_slope
        step = self.cfg.size_step
        return max(step, round(base * boost / step) * step)

    def step(self, now: int) -> int:
        """Run one bot round across all markets; returns entries written."""
        written = 0
        for key, market in self.engine.markets.items():
            rnd = self.engine.round_for(key)
            if rnd is None or rnd.open_price is None or now >= rnd.end_time:
                continue
            book = self.engine.book_for(key)
            if book.round_id != rnd.id:
                continue
            progress = round_progress(rnd, now)
            count = self.bots_this_tick(progress)
            for _ in range(count):
                noise = (self.rng.random() - 0.5) * 2 * self.cfg.noise_range
                p_up = self.engine.up_probability_for(key, now, noise=noise)
                side = Direction.UP if self.rng.random() < p_up else Direction.DOWN
                quote = self.engine.quotes_for(key, now).for_side(side)
                book.record(
                    side,
                    self.stake_size(progress),
                    quote,
                    trader=self.rng.choice(BOT_ADDRESSES),
                    now=now,
                )
                written += 1
        if written:
            logger.debug("bots wrote %d book entries", written)
        return written
