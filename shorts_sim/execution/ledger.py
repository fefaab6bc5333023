from __future__ import annotations

import logging

from shorts_sim.domain import InsufficientBalanceError

logger = logging.getLogger(__name__)


def to_hundredths(amount: float) -> int:
    return int(round(float(amount) * 100))


def round_tokens(amount: float) -> float:
    """Token amounts settle at 0.01 granularity."""
    return to_hundredths(amount) / 100.0


class BalanceLedger:
    """Single-user token balance.

    Stored as integer hundredths of a token so that a run of debits and
    credits sums exactly.
    """

    def __init__(self, initial: float = 0.0):
        if initial < 0:
            raise ValueError(f"initial balance must be >= 0, got {initial}")
        self._hundredths = to_hundredths(initial)

    @property
    def balance(self) -> float:
        return self._hundredths / 100.0

    def can_afford(self, amount: float) -> bool:
        return self._hundredths >= to_hundredths(amount)

    def debit(self, amount: float) -> float:
        units = to_hundredths(amount)
        if units < 0:
            raise ValueError(f"debit amount must be >= 0, got {amount}")
        if units > self._hundredths:
            raise InsufficientBalanceError(units / 100.0, self.balance)
        self._hundredths -= units
        logger.debug("ledger debit %.2f -> balance %.2f", units / 100.0, self.balance)
        return self.balance

    def credit(self, amount: float) -> float:
        units = to_hundredths(amount)
        if units < 0:
            raise ValueError(f"credit amount must be >= 0, got {amount}")
        self._hundredths += units
        logger.debug("ledger credit %.2f -> balance %.2f", units / 100.0, self.balance)
        return self.balance
