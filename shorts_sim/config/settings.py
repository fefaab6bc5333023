from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from shorts_sim.config.markets import BET_AMOUNTS
from shorts_sim.domain import ConfigError, PayoutModel
from shorts_sim.engine.core import EngineConfig
from shorts_sim.strategy.quotes import QuoteConfig


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.environ.get(name)
    if raw is None:
        value = default
    else:
        value = int(raw)
    if min_value is not None:
        value = max(min_value, value)
    return value


def _env_float(name: str, default: float, min_value: float | None = None) -> float:
    raw = os.environ.get(name)
    if raw is None:
        value = default
    else:
        value = float(raw)
    if min_value is not None:
        value = max(min_value, value)
    return value


def _env_int_list(name: str, default: tuple[int, ...]) -> tuple[int, ...]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return tuple(default)
    values = tuple(int(part) for part in raw.split(",") if part.strip())
    if not values or any(v <= 0 for v in values):
        raise ConfigError(f"{name} must be a comma separated list of positive ints, got {raw!r}")
    return values


def _env_payout_model(name: str, default: PayoutModel) -> PayoutModel:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return PayoutModel(raw.strip().lower())
    except ValueError as exc:
        raise ConfigError(f"{name} must be one of {[m.value for m in PayoutModel]}, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    data_dir: str
    log_level: str
    dashboard_enabled: bool
    dashboard_mode: str
    dashboard_port: int
    starting_balance: float
    payout_model: PayoutModel
    payout_rate: float
    token_to_usdc_rate: float
    lock_window_ms: int
    round_tick_ms: int
    price_tick_ms: int
    bot_tick_ms: int
    bots_enabled: bool
    feed_stale_ms: int
    enable_binance_feed: bool
    settled_retention: int
    bet_amounts: tuple[int, ...] = BET_AMOUNTS
    push_epsilon: float = 0.0

    def quote_config(self) -> QuoteConfig:
        return QuoteConfig(lock_window_ms=self.lock_window_ms)

    def engine_config(self) -> EngineConfig:
        return EngineConfig(
            payout_model=self.payout_model,
            payout_rate=self.payout_rate,
            token_to_usdc_rate=self.token_to_usdc_rate,
            lock_window_ms=self.lock_window_ms,
            settled_retention=self.settled_retention,
            allowed_stakes=tuple(float(x) for x in self.bet_amounts),
            push_epsilon=self.push_epsilon,
            quote=self.quote_config(),
        )


def load_settings(env_file: str | None = None) -> Settings:
    load_dotenv(env_file or os.environ.get("SHORTS_ENV_FILE", ".env"), override=False)
    return Settings(
        data_dir=os.environ.get("DATA_DIR", "./data"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").strip().upper(),
        dashboard_enabled=_env_bool("DASHBOARD_ENABLED", True),
        dashboard_mode=os.environ.get("DASHBOARD_MODE", "embedded").strip().lower(),
        dashboard_port=_env_int("DASHBOARD_PORT", 8080, min_value=1),
        starting_balance=_env_float("STARTING_BALANCE", 10_000.0, min_value=0.0),
        payout_model=_env_payout_model("PAYOUT_MODEL", PayoutModel.PER_SHARE_QUOTE),
        payout_rate=_env_float("PAYOUT_RATE", 0.9, min_value=0.0),
        token_to_usdc_rate=_env_float("TOKEN_TO_USDC_RATE", 100.0, min_value=1.0),
        lock_window_ms=_env_int("ROUND_LOCK_WINDOW_MS", 3000, min_value=0),
        round_tick_ms=_env_int("ROUND_TICK_MS", 200, min_value=20),
        price_tick_ms=_env_int("PRICE_UI_TICK_MS", 250, min_value=20),
        bot_tick_ms=_env_int("BOT_TICK_MS", 700, min_value=50),
        bots_enabled=_env_bool("BOTS_ENABLED", True),
        feed_stale_ms=_env_int("FEED_STALE_MS", 15_000, min_value=1000),
        enable_binance_feed=_env_bool("ENABLE_BINANCE_FEED", True),
        settled_retention=_env_int("SETTLED_RETENTION", 50, min_value=1),
        bet_amounts=_env_int_list("BET_AMOUNTS", BET_AMOUNTS),
        push_epsilon=_env_float("PUSH_EPSILON", 0.0, min_value=0.0),
    )
