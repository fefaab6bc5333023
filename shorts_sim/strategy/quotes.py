from __future__ import annotations

import math
import sys
from dataclasses import dataclass, field

from shorts_sim.domain import ContractQuotes


@dataclass(frozen=True)
class QuoteConfig:
    sensitivity: float = 1000.0
    urgency_min: float = 0.6
    urgency_max: float = 3.0
    urgency_power: float = 2.6
    early_min_probability: float = 0.2
    early_max_probability: float = 0.8
    final_min_probability: float = 0.15
    final_max_probability: float = 0.85
    bounds_release_window_ms: int = 5000
    bounds_release_power: float = 1.6
    lock_window_ms: int = 3000
    min_quote_cents: int = 1
    virtual_liquidity: float = 1000.0
    virtual_liquidity_by_asset: dict[str, float] = field(default_factory=dict)

    def liquidity_for(self, asset: str | None) -> float:
        if asset is None:
            return self.virtual_liquidity
        return float(self.virtual_liquidity_by_asset.get(asset, self.virtual_liquidity))


DEFAULT_QUOTE_CONFIG = QuoteConfig()


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))


def quote_urgency(round_progress: float, cfg: QuoteConfig = DEFAULT_QUOTE_CONFIG) -> float:
    """Multiplier on the price signal; grows along a power curve toward expiry."""
    eased = math.pow(_clamp(round_progress, 0.0, 1.0), cfg.urgency_power)
    return cfg.urgency_min + (cfg.urgency_max - cfg.urgency_min) * eased


def probability_bounds(
    round_progress: float,
    round_duration_ms: int,
    cfg: QuoteConfig = DEFAULT_QUOTE_CONFIG,
) -> tuple[float, float]:
    """Quotes stay in the early band most of the round, then widen near expiry."""
    progress = _clamp(round_progress, 0.0, 1.0)
    release_ms = max(cfg.bounds_release_window_ms, cfg.lock_window_ms)
    safe_duration = max(round_duration_ms, release_ms)
    release_start = _clamp(1.0 - release_ms / safe_duration, 0.0, 1.0)

    if progress <= release_start:
        return cfg.early_min_probability, cfg.early_max_probability

    late = _clamp(
        (progress - release_start) / max(1.0 - release_start, sys.float_info.epsilon),
        0.0,
        1.0,
    )
    eased = math.pow(late, cfg.bounds_release_power)
    lo = cfg.early_min_probability + (cfg.final_min_probability - cfg.early_min_probability) * eased
    hi = cfg.early_max_probability + (cfg.final_max_probability - cfg.early_max_probability) * eased
    return lo, hi


def up_probability(
    open_price: float | None,
    latest_price: float | None,
    round_progress: float,
    round_duration_ms: int,
    noise: float = 0.0,
    cfg: QuoteConfig = DEFAULT_QUOTE_CONFIG,
) -> float:
    if open_price is None or latest_price is None or open_price <= 0:
        return 0.5
    pct_change = (latest_price - open_price) / open_price
    signal = pct_change * cfg.sensitivity * quote_urgency(round_progress, cfg)
    lo, hi = probability_bounds(round_progress, round_duration_ms, cfg)
    return _clamp(0.5 + signal + noise, lo, hi)


def down_probability(
    open_price: float | None,
    latest_price: float | None,
    round_progress: float,
    round_duration_ms: int,
    noise: float = 0.0,
    cfg: QuoteConfig = DEFAULT_QUOTE_CONFIG,
) -> float:
    return 1.0 - up_probability(open_price, latest_price, round_progress, round_duration_ms, noise, cfg)


def blend_with_book(probability: float, up_stake: float, down_stake: float, virtual_liquidity: float) -> float:
    """Mix the model probability with book stakes as if the model seeded V tokens of liquidity."""
    liquidity = max(0.0, float(virtual_liquidity))
    up_stake = max(0.0, float(up_stake))
    down_stake = max(0.0, float(down_stake))
    total = liquidity + up_stake + down_stake
    if total <= 0:
        return probability
    return (probability * liquidity + up_stake) / total


def contract_quotes(
    open_price: float | None,
    latest_price: float | None,
    up_stake: float,
    down_stake: float,
    round_progress: float,
    round_duration_ms: int,
    *,
    asset: str | None = None,
    cfg: QuoteConfig = DEFAULT_QUOTE_CONFIG,
) -> ContractQuotes:
    p = up_probability(open_price, latest_price, round_progress, round_duration_ms, cfg=cfg)
    blended = blend_with_book(p, up_stake, down_stake, cfg.liquidity_for(asset))
    floor = max(1, min(49, int(cfg.min_quote_cents)))
    up_cents = int(_clamp(round(blended * 100), floor, 100 - floor))
    return ContractQuotes(up_cents=up_cents, down_cents=100 - up_cents)
