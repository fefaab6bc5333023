from __future__ import annotations

import math

from shorts_sim.domain import Round
from shorts_sim.execution.ledger import to_hundredths


def pass_placement_gates(
    rnd: Round | None,
    *,
    now: int,
    stake: float,
    balance: float,
    feed_live: bool,
    allowed_stakes: tuple[float, ...] | None = None,
) -> tuple[bool, str]:
    if stake is None or not stake > 0 or not math.isfinite(stake):
        return False, "invalid_stake"
    # the ledger moves whole hundredths; anything finer would be created or lost on settle
    if to_hundredths(stake) / 100.0 != float(stake):
        return False, "invalid_stake"
    if allowed_stakes and float(stake) not in allowed_stakes:
        return False, "stake_not_allowed"
    if not feed_live:
        return False, "feed_offline"
    if rnd is None or rnd.open_price is None:
        return False, "round_not_open"
    if now < rnd.start_time or now >= rnd.end_time:
        return False, "round_closed"
    if rnd.lock_time is not None and now >= rnd.lock_time:
        return False, "round_locked"
    if balance < stake:
        return False, "insufficient_balance"
    return True, "ok"
