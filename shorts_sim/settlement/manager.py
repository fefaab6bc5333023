from __future__ import annotations

from dataclasses import dataclass

from shorts_sim.domain import Direction, OpenPosition, PayoutModel, PositionStatus
from shorts_sim.execution.ledger import round_tokens


@dataclass(frozen=True)
class PayoutTerms:
    model: PayoutModel = PayoutModel.FIXED_RATE
    payout_rate: float = 0.9
    token_to_usdc_rate: float = 100.0
    payout_per_share_usdc: float = 1.0
    push_epsilon: float = 0.0


@dataclass(frozen=True)
class SettlementResult:
    status: PositionStatus
    payout: float
    profit: float


def shares_for(stake: float, entry_quote: float, token_to_usdc_rate: float) -> float:
    """Contracts bought: stake converted to USDC, divided by the fill price."""
    if entry_quote <= 0 or entry_quote >= 1:
        raise ValueError(f"entry quote must be in (0, 1), got {entry_quote}")
    return (float(stake) / float(token_to_usdc_rate)) / float(entry_quote)


def outcome(direction: Direction, entry_price: float, settle_price: float, *, push_epsilon: float = 0.0) -> PositionStatus:
    move = float(settle_price) - float(entry_price)
    if abs(move) <= push_epsilon:
        return PositionStatus.PUSH
    went_up = move > 0
    if (direction == Direction.UP) == went_up:
        return PositionStatus.WIN
    return PositionStatus.LOSS


def settle_position(pos: OpenPosition, settle_price: float, terms: PayoutTerms) -> SettlementResult:
    status = outcome(pos.direction, pos.entry_price, settle_price, push_epsilon=terms.push_epsilon)
    stake = float(pos.amount)
    if status == PositionStatus.PUSH:
        payout = stake
    elif status == PositionStatus.LOSS:
        payout = 0.0
    elif terms.model == PayoutModel.PER_SHARE_QUOTE and pos.shares is not None:
        payout = pos.shares * terms.payout_per_share_usdc * terms.token_to_usdc_rate
    else:
        payout = stake * (1.0 + terms.payout_rate)
    payout = round_tokens(payout)
    return SettlementResult(status=status, payout=payout, profit=round_tokens(payout - stake))
