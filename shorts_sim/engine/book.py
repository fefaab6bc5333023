from __future__ import annotations

from collections import deque
from itertools import count

from shorts_sim.domain import ActivityEntry, Direction

MAX_ACTIVITY_ITEMS = 10


class MarketBook:
    """Per-round stake/activity aggregate. Display and quote signal only, never money."""

    def __init__(self, round_id: str = "", *, max_activity: int = MAX_ACTIVITY_ITEMS):
        self.max_activity = max(1, int(max_activity))
        self._seq = count(1)
        self.reset(round_id)

    def reset(self, round_id: str) -> None:
        self.round_id = round_id
        self.up_stake = 0.0
        self.down_stake = 0.0
        self.up_positions = 0
        self.down_positions = 0
        self.activity: deque[ActivityEntry] = deque(maxlen=self.max_activity)

    def record(
        self,
        side: Direction,
        amount: float,
        quote: float,
        *,
        trader: str,
        now: int,
        is_user: bool = False,
    ) -> ActivityEntry:
        amount = float(amount)
        if side == Direction.UP:
            self.up_stake += amount
            self.up_positions += 1
        else:
            self.down_stake += amount
            self.down_positions += 1
        entry = ActivityEntry(
            id=f"{'user' if is_user else 'bot'}-{self.round_id}-{now}-{next(self._seq)}",
            side=side,
            amount=amount,
            quote=float(quote),
            created_at=int(now),
            trader=trader,
            is_user=is_user,
        )
        # newest first
        self.activity.appendleft(entry)
        return entry

    @property
    def total_stake(self) -> float:
        return self.up_stake + self.down_stake

    def snapshot(self) -> dict:
        return {
            "round_id": self.round_id,
            "up_stake": round(self.up_stake, 2),
            "down_stake": round(self.down_stake, 2),
            "up_positions": self.up_positions,
            "down_positions": self.down_positions,
            "activity": [
                {
                    "id": a.id,
                    "side": a.side.value,
                    "amount": a.amount,
                    "quote": a.quote,
                    "created_at": a.created_at,
                    "trader": a.trader,
                    "is_user": a.is_user,
                }
                for a in self.activity
            ],
        }
