"""Duration-aligned round derivation.

Rounds sit on a global grid anchored at the epoch, so every client observing
the same clock derives the same round id without coordinating.
"""

from __future__ import annotations

from shorts_sim.domain import Round, RoundState


def round_id(market_key: str, start_time: int) -> str:
    return f"{market_key}-{int(start_time)}"


def derive_round(
    market_key: str,
    duration_ms: int,
    now: int,
    open_price: float | None = None,
    *,
    lock_window_ms: int = 0,
) -> Round:
    duration_ms = int(duration_ms)
    if duration_ms <= 0:
        raise ValueError(f"duration_ms must be positive, got {duration_ms}")
    start = (int(now) // duration_ms) * duration_ms
    end = start + duration_ms
    lock_time = None
    if lock_window_ms > 0:
        lock_time = max(start, end - int(lock_window_ms))
    return Round(
        id=round_id(market_key, start),
        market_key=market_key,
        start_time=start,
        end_time=end,
        lock_time=lock_time,
        open_price=None if open_price is None else float(open_price),
    )


def round_progress(rnd: Round, now: int) -> float:
    duration = rnd.end_time - rnd.start_time
    if duration <= 0:
        return 1.0
    return min(1.0, max(0.0, (now - rnd.start_time) / duration))


def time_remaining_ms(rnd: Round, now: int) -> int:
    return max(0, rnd.end_time - int(now))


def accepting_bets(rnd: Round, now: int) -> bool:
    return rnd.open_price is not None and rnd.start_time <= now < rnd.cutoff_time


def round_state(rnd: Round, now: int) -> RoundState:
    """Time-derived state only; SETTLING/SETTLED are tracked by the engine."""
    if now >= rnd.end_time:
        return RoundState.CLOSED
    if rnd.open_price is None:
        return RoundState.PENDING_OPEN
    if rnd.lock_time is not None and now >= rnd.lock_time:
        return RoundState.LOCKED
    return RoundState.OPEN
