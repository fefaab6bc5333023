"""Round lifecycle and settlement engine.

One instance owns every round, book, open position, settled position and
pending settlement. All mutation goes through tick(), place_position() and
settle(); each of them either applies fully or leaves state untouched.
"""

from __future__ import annotations

import itertools
import logging
import secrets
from collections import OrderedDict, deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from shorts_sim.data.oracle import PriceOracle, now_ms
from shorts_sim.domain import (
    ConfigError,
    ContractQuotes,
    Direction,
    Market,
    OpenPosition,
    PayoutModel,
    PendingSettlement,
    PlaceResult,
    PositionStatus,
    ResolvedRound,
    Round,
    RoundState,
    SettledPosition,
    UnknownMarketError,
)
from shorts_sim.engine.book import MarketBook
from shorts_sim.engine.round_clock import derive_round, round_progress, round_state, time_remaining_ms
from shorts_sim.execution.ledger import BalanceLedger, to_hundredths
from shorts_sim.settlement.manager import PayoutTerms, settle_position, shares_for
from shorts_sim.strategy.gates import pass_placement_gates
from shorts_sim.strategy.quotes import QuoteConfig, contract_quotes, up_probability

logger = logging.getLogger(__name__)

USER_TRADER_LABEL = "You"


@dataclass(frozen=True)
class EngineConfig:
    payout_model: PayoutModel = PayoutModel.FIXED_RATE
    payout_rate: float = 0.9
    token_to_usdc_rate: float = 100.0
    payout_per_share_usdc: float = 1.0
    lock_window_ms: int = 0
    settled_retention: int = 50
    settled_round_memory: int = 1000
    allowed_stakes: tuple[float, ...] = ()
    push_epsilon: float = 0.0
    quote: QuoteConfig = field(default_factory=QuoteConfig)

    def payout_terms(self) -> PayoutTerms:
        return PayoutTerms(
            model=self.payout_model,
            payout_rate=self.payout_rate,
            token_to_usdc_rate=self.token_to_usdc_rate,
            payout_per_share_usdc=self.payout_per_share_usdc,
            push_epsilon=self.push_epsilon,
        )


@dataclass
class TickReport:
    now: int
    rolled_over: list[str] = field(default_factory=list)
    opened: list[str] = field(default_factory=list)
    settled: list[SettledPosition] = field(default_factory=list)
    balance_delta: float = 0.0
    failed_markets: list[str] = field(default_factory=list)


class RoundEngine:
    def __init__(
        self,
        markets: Iterable[Market],
        oracle: PriceOracle,
        ledger: BalanceLedger,
        config: EngineConfig | None = None,
        *,
        events=None,
        clock: Callable[[], int] = now_ms,
    ):
        self.markets: dict[str, Market] = {m.key: m for m in markets}
        if not self.markets:
            raise ConfigError("engine needs at least one market")
        self.oracle = oracle
        self.ledger = ledger
        self.cfg = config or EngineConfig()
        self.events = events
        self._clock = clock

        self._rounds: dict[str, Round] = {}
        self._books: dict[str, MarketBook] = {k: MarketBook() for k in self.markets}
        self._open: dict[str, OpenPosition] = {}
        self._settled: deque[SettledPosition] = deque(maxlen=max(1, self.cfg.settled_retention))
        self._pending: dict[str, PendingSettlement] = {}
        self._settled_rounds: OrderedDict[str, int] = OrderedDict()
        self._seq = itertools.count(1)

    # ── read side ────────────────────────────────────────────────────────

    def _market(self, market_key: str) -> Market:
        market = self.markets.get(market_key)
        if market is None:
            raise UnknownMarketError(market_key)
        return market

    def round_for(self, market_key: str) -> Round | None:
        self._market(market_key)
        return self._rounds.get(market_key)

    def book_for(self, market_key: str) -> MarketBook:
        self._market(market_key)
        return self._books[market_key]

    @property
    def pending_settlements(self) -> list[PendingSettlement]:
        return list(self._pending.values())

    def open_positions(self) -> list[OpenPosition]:
        return sorted(self._open.values(), key=lambda p: (p.round_end_time, p.created_at))

    def settled_positions(self) -> list[SettledPosition]:
        return list(self._settled)

    def state_of(self, round_id: str, now: int | None = None) -> RoundState | None:
        now = self._clock() if now is None else int(now)
        if round_id in self._settled_rounds:
            return RoundState.SETTLED
        if round_id in self._pending:
            return RoundState.SETTLING
        for rnd in self._rounds.values():
            if rnd.id == round_id:
                return round_state(rnd, now)
        return None

    def round_state(self, market_key: str, now: int | None = None) -> RoundState | None:
        rnd = self.round_for(market_key)
        if rnd is None:
            return None
        return self.state_of(rnd.id, now)

    def quotes_for(self, market_key: str, now: int | None = None) -> ContractQuotes:
        now = self._clock() if now is None else int(now)
        market = self._market(market_key)
        rnd = self._rounds.get(market_key)
        if rnd is None:
            return contract_quotes(None, None, 0.0, 0.0, 0.0, market.duration_ms, asset=market.asset, cfg=self.cfg.quote)
        book = self._books[market_key]
        up_stake, down_stake = (book.up_stake, book.down_stake) if book.round_id == rnd.id else (0.0, 0.0)
        return contract_quotes(
            rnd.open_price,
            self.oracle.latest_price(market.asset),
            up_stake,
            down_stake,
            round_progress(rnd, now),
            rnd.duration_ms,
            asset=market.asset,
            cfg=self.cfg.quote,
        )

    def up_probability_for(self, market_key: str, now: int | None = None, noise: float = 0.0) -> float:
        now = self._clock() if now is None else int(now)
        market = self._market(market_key)
        rnd = self._rounds.get(market_key)
        if rnd is None:
            return 0.5
        return up_probability(
            rnd.open_price,
            self.oracle.latest_price(market.asset),
            round_progress(rnd, now),
            rnd.duration_ms,
            noise,
            self.cfg.quote,
        )

    # ── tick ─────────────────────────────────────────────────────────────

    def tick(self, now: int | None = None) -> TickReport:
        now = self._clock() if now is None else int(now)
        report = TickReport(now=now)
        try:
            self._advance_rounds(now, report)
        except Exception as exc:
            logger.exception("round advance failed: %s", exc)
        try:
            resolved = self._drain_pending(now)
            if resolved:
                report.settled = self.settle(resolved, now)
                report.balance_delta = round(sum(s.payout for s in report.settled), 2)
        except Exception as exc:
            logger.exception("settlement batch failed, retrying next tick: %s", exc)
            self._emit("settlement.error", error=str(exc))
        return report

    def _advance_rounds(self, now: int, report: TickReport) -> None:
        next_rounds = dict(self._rounds)
        next_books = dict(self._books)
        queued: dict[str, PendingSettlement] = {}
        opened: dict[str, str] = {}
        started: dict[str, str] = {}
        feed_live = self.oracle.is_live(now)

        for key, market in self.markets.items():
            try:
                derived = derive_round(key, market.duration_ms, now, lock_window_ms=self.cfg.lock_window_ms)
                current = next_rounds.get(key)
                if current is None or current.id != derived.id:
                    if current is not None and self._should_queue(current.id, queued):
                        queued[current.id] = PendingSettlement(
                            round_id=current.id,
                            asset=market.asset,
                            market_key=key,
                            end_time=current.end_time,
                            queued_at=now,
                        )
                    next_rounds[key] = derived
                    next_books[key] = MarketBook(derived.id)
                    started[key] = derived.id
                elif current.open_price is None and feed_live:
                    price = self.oracle.latest_price(market.asset)
                    if price is not None:
                        next_rounds[key] = current.with_open_price(price)
                        opened[key] = current.id
            except Exception as exc:
                logger.exception("market %s tick failed: %s", key, exc)
                report.failed_markets.append(key)
                self._emit("tick.market_error", market=key, error=str(exc))
                # leave this market exactly as it was
                if key in self._rounds:
                    next_rounds[key] = self._rounds[key]
                else:
                    next_rounds.pop(key, None)
                next_books[key] = self._books[key]
                queued = {rid: p for rid, p in queued.items() if p.market_key != key}
                opened.pop(key, None)
                started.pop(key, None)

        self._rounds = next_rounds
        self._books = next_books
        self._pending.update(queued)
        report.rolled_over = list(queued)
        report.opened = list(opened.values())

        for key, rid in started.items():
            self._emit("round.rollover", market=key, round_id=rid)
        for pending in queued.values():
            logger.info("round closed %s; queued for settlement", pending.round_id)
            self._emit("settlement.queued", round_id=pending.round_id, asset=pending.asset, market=pending.market_key)
        for rid in report.opened:
            logger.info("round open %s", rid)
            self._emit("round.open", round_id=rid)

    def _should_queue(self, round_id: str, queued: dict[str, PendingSettlement]) -> bool:
        return round_id not in self._pending and round_id not in queued and round_id not in self._settled_rounds

    def _drain_pending(self, now: int) -> list[ResolvedRound]:
        """Rounds whose close price is known: a live feed and a sample taken at or after round end."""
        if not self.oracle.is_live(now):
            return []
        resolved: list[ResolvedRound] = []
        for pending in self._pending.values():
            point = self.oracle.latest(pending.asset, now)
            if point is None or point.updated_at < pending.end_time:
                continue
            resolved.append(ResolvedRound(round_id=pending.round_id, settle_price=point.price))
        return resolved

    # ── settlement ───────────────────────────────────────────────────────

    def settle(self, resolved: Iterable[ResolvedRound], now: int | None = None) -> list[SettledPosition]:
        """Settle every open position tied to the resolved rounds.

        Payouts are summed and credited once for the whole batch. Replaying an
        event is a no-op: settled positions have already left the open set.
        """
        now = self._clock() if now is None else int(now)
        prices: dict[str, float] = {}
        for r in resolved:
            if r.round_id in self._settled_rounds:
                continue
            prices.setdefault(r.round_id, float(r.settle_price))
        if not prices:
            return []

        terms = self.cfg.payout_terms()
        batch: list[SettledPosition] = []
        credit_units = 0
        for pos in self._open.values():
            settle_price = prices.get(pos.round_id)
            if settle_price is None:
                continue
            result = settle_position(pos, settle_price, terms)
            batch.append(
                SettledPosition.from_open(
                    pos,
                    status=result.status,
                    settle_price=settle_price,
                    profit=result.profit,
                    payout=result.payout,
                    resolved_at=now,
                )
            )
            credit_units += to_hundredths(result.payout)

        if credit_units:
            self.ledger.credit(credit_units / 100.0)
        for sp in batch:
            del self._open[sp.id]
        for sp in reversed(batch):
            self._settled.appendleft(sp)
        for rid in prices:
            self._pending.pop(rid, None)
            self._remember_settled(rid, now)

        if batch:
            wins = sum(1 for s in batch if s.status == PositionStatus.WIN)
            logger.info(
                "settled %d positions across %d rounds wins=%d credit=%.2f balance=%.2f",
                len(batch), len(prices), wins, credit_units / 100.0, self.ledger.balance,
            )
        self._emit(
            "settlement.batch",
            rounds=sorted(prices),
            positions=len(batch),
            credit=credit_units / 100.0,
            balance=self.ledger.balance,
        )
        return batch

    def _remember_settled(self, round_id: str, now: int) -> None:
        self._settled_rounds[round_id] = now
        self._settled_rounds.move_to_end(round_id)
        while len(self._settled_rounds) > max(1, self.cfg.settled_round_memory):
            self._settled_rounds.popitem(last=False)

    # ── intents ──────────────────────────────────────────────────────────

    def place_position(self, market_key: str, direction: Direction | str, stake: float, now: int | None = None) -> PlaceResult:
        now = self._clock() if now is None else int(now)
        market = self.markets.get(market_key)
        if market is None:
            return self._reject(market_key, "unknown_market")
        try:
            side = Direction(direction)
        except ValueError:
            return self._reject(market_key, "invalid_direction")

        rnd = self._rounds.get(market_key)
        try:
            stake = float(stake)
        except (TypeError, ValueError):
            return self._reject(market_key, "invalid_stake")
        ok, reason = pass_placement_gates(
            rnd,
            now=now,
            stake=stake,
            balance=self.ledger.balance,
            feed_live=self.oracle.is_live(now),
            allowed_stakes=self.cfg.allowed_stakes or None,
        )
        if not ok:
            return self._reject(market_key, reason)
        if rnd is None or rnd.open_price is None:
            return self._reject(market_key, "round_not_open")

        quote = self.quotes_for(market_key, now).for_side(side)
        entry_quote = None
        shares = None
        if self.cfg.payout_model == PayoutModel.PER_SHARE_QUOTE:
            entry_quote = quote
            shares = shares_for(stake, quote, self.cfg.token_to_usdc_rate)

        position = OpenPosition(
            id=f"{rnd.id}-{next(self._seq)}-{secrets.token_hex(3)}",
            market_key=market_key,
            round_id=rnd.id,
            direction=side,
            amount=stake,
            created_at=now,
            round_end_time=rnd.end_time,
            entry_price=rnd.open_price,
            entry_quote=entry_quote,
            shares=shares,
        )

        self.ledger.debit(stake)
        self._open[position.id] = position
        book = self._books[market_key]
        if book.round_id != rnd.id:
            book = MarketBook(rnd.id)
            self._books[market_key] = book
        book.record(side, stake, quote, trader=USER_TRADER_LABEL, now=now, is_user=True)

        logger.info(
            "position placed %s %s %s stake=%.2f entry=%.4f quote=%.2f",
            position.id, market_key, side.value, stake, rnd.open_price, quote,
        )
        self._emit(
            "position.placed",
            position_id=position.id,
            market=market_key,
            direction=side.value,
            stake=stake,
            quote=quote,
            balance=self.ledger.balance,
        )
        return PlaceResult(ok=True, reason="ok", position=position)

    def _reject(self, market_key: str, reason: str) -> PlaceResult:
        logger.debug("position rejected market=%s reason=%s", market_key, reason)
        self._emit("position.rejected", market=market_key, reason=reason)
        return PlaceResult(ok=False, reason=reason)

    # ── display ──────────────────────────────────────────────────────────

    def snapshot(self, now: int | None = None) -> dict[str, Any]:
        now = self._clock() if now is None else int(now)
        markets = []
        for key, market in self.markets.items():
            rnd = self._rounds.get(key)
            quotes = self.quotes_for(key, now)
            book = self._books[key]
            point = self.oracle.latest(market.asset)
            markets.append(
                {
                    "key": key,
                    "label": market.label,
                    "asset": market.asset,
                    "symbol": market.symbol,
                    "duration_sec": market.duration_sec,
                    "latest_price": None if point is None else point.price,
                    "price_updated_at": None if point is None else point.updated_at,
                    "round": None if rnd is None else {
                        "id": rnd.id,
                        "start_time": rnd.start_time,
                        "end_time": rnd.end_time,
                        "lock_time": rnd.lock_time,
                        "open_price": rnd.open_price,
                        "state": self.state_of(rnd.id, now).value,
                        "time_remaining_ms": time_remaining_ms(rnd, now),
                        "progress": round(round_progress(rnd, now), 4),
                    },
                    "quotes": {"up": quotes.up, "down": quotes.down},
                    "book": book.snapshot() if rnd is not None and book.round_id == rnd.id else MarketBook(
                        "" if rnd is None else rnd.id
                    ).snapshot(),
                }
            )
        return {
            "ok": True,
            "ts": now,
            "balance": self.ledger.balance,
            "feed": {"status": self.oracle.status(now).value, "sources": self.oracle.sources()},
            "markets": markets,
            "positions": [_position_row(p) for p in self.open_positions()],
            "settled": [_settled_row(s) for s in self._settled],
            "pending_settlements": [p.round_id for p in self._pending.values()],
            "bet_amounts": list(self.cfg.allowed_stakes),
        }

    def _emit(self, event: str, **fields: Any) -> None:
        if self.events is None:
            return
        try:
            self.events.emit(event, **fields)
        except Exception as exc:
            logger.warning("telemetry emit %s failed: %s", event, exc)


def _position_row(p: OpenPosition) -> dict[str, Any]:
    return {
        "id": p.id,
        "market_key": p.market_key,
        "round_id": p.round_id,
        "direction": p.direction.value,
        "amount": p.amount,
        "created_at": p.created_at,
        "round_end_time": p.round_end_time,
        "entry_price": p.entry_price,
        "entry_quote": p.entry_quote,
        "shares": p.shares,
    }


def _settled_row(s: SettledPosition) -> dict[str, Any]:
    row = _position_row(s)  # type: ignore[arg-type]
    row.update(
        {
            "status": s.status.value,
            "settle_price": s.settle_price,
            "profit": s.profit,
            "payout": s.payout,
            "resolved_at": s.resolved_at,
        }
    )
    return row
