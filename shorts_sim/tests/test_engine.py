import json
from pathlib import Path

import pytest

from shorts_sim.config.markets import MARKET_BY_KEY
from shorts_sim.data.oracle import PriceOracle
from shorts_sim.domain import (
    FeedStatus,
    PayoutModel,
    PositionStatus,
    PriceSample,
    ResolvedRound,
    RoundState,
    UnknownMarketError,
)
from shorts_sim.engine import core
from shorts_sim.engine.core import EngineConfig, RoundEngine
from shorts_sim.execution.ledger import BalanceLedger
from shorts_sim.infra.telemetry import RuntimeEventLogger

T0 = 1_800_000_000_000
BTC_30S = MARKET_BY_KEY["BTC-30s"]
ETH_30S = MARKET_BY_KEY["ETH-30s"]
RID = f"BTC-30s-{T0}"


class FakeClock:
    def __init__(self, t: int) -> None:
        self.t = t

    def __call__(self) -> int:
        return self.t


def _push_price(oracle: PriceOracle, clock: FakeClock, asset: str, price: float) -> None:
    oracle.set_status("chainlink", FeedStatus.LIVE)
    oracle.ingest(PriceSample(asset=asset, price=price, updated_at=clock.t), "chainlink")
    oracle.flush()


def _engine(balance: float = 1000.0, *, markets=(BTC_30S,), events=None, **cfg):
    clock = FakeClock(T0)
    oracle = PriceOracle(clock=clock)
    ledger = BalanceLedger(balance)
    engine = RoundEngine(markets, oracle, ledger, EngineConfig(**cfg), events=events, clock=clock)
    return clock, oracle, ledger, engine


def _open_btc(engine: RoundEngine, oracle: PriceOracle, clock: FakeClock, price: float = 100.0) -> None:
    _push_price(oracle, clock, "BTC", price)
    engine.tick(T0)
    engine.tick(T0 + 200)


def _close_btc(engine: RoundEngine, oracle: PriceOracle, clock: FakeClock, price: float):
    clock.t = T0 + 30_000
    _push_price(oracle, clock, "BTC", price)
    return engine.tick(T0 + 30_000)


def test_open_price_captured_on_following_tick() -> None:
    clock, oracle, _, engine = _engine()
    _push_price(oracle, clock, "BTC", 100.0)
    engine.tick(T0)
    assert engine.round_for("BTC-30s").open_price is None
    assert engine.round_state("BTC-30s", T0 + 100) == RoundState.PENDING_OPEN
    report = engine.tick(T0 + 200)
    assert report.opened == [RID]
    assert engine.round_for("BTC-30s").open_price == 100.0
    assert engine.round_state("BTC-30s", T0 + 300) == RoundState.OPEN


def test_open_price_waits_for_live_feed() -> None:
    _, oracle, _, engine = _engine()
    engine.tick(T0)
    engine.tick(T0 + 200)
    assert engine.round_for("BTC-30s").open_price is None


def test_win_scenario() -> None:
    clock, oracle, ledger, engine = _engine()
    _open_btc(engine, oracle, clock)
    res = engine.place_position("BTC-30s", "up", 50, T0 + 1_000)
    assert res.ok
    assert ledger.balance == 950.0

    report = _close_btc(engine, oracle, clock, 110.0)
    assert report.rolled_over == [RID]
    assert len(report.settled) == 1
    s = report.settled[0]
    assert s.status == PositionStatus.WIN
    assert s.payout == 95.0
    assert s.profit == 45.0
    assert report.balance_delta == 95.0
    assert ledger.balance == 1045.0
    assert engine.open_positions() == []
    assert engine.state_of(RID, T0 + 30_000) == RoundState.SETTLED


def test_loss_scenario() -> None:
    clock, oracle, ledger, engine = _engine()
    _open_btc(engine, oracle, clock)
    engine.place_position("BTC-30s", "down", 50, T0 + 1_000)
    report = _close_btc(engine, oracle, clock, 110.0)
    s = report.settled[0]
    assert s.status == PositionStatus.LOSS
    assert s.payout == 0.0
    assert s.profit == -50.0
    assert ledger.balance == 950.0


def test_push_scenario() -> None:
    clock, oracle, ledger, engine = _engine()
    _open_btc(engine, oracle, clock)
    engine.place_position("BTC-30s", "up", 50, T0 + 1_000)
    report = _close_btc(engine, oracle, clock, 100.0)
    s = report.settled[0]
    assert s.status == PositionStatus.PUSH
    assert s.payout == 50.0
    assert s.profit == 0.0
    assert ledger.balance == 1000.0


def test_rejection_leaves_state_untouched() -> None:
    clock, oracle, ledger, engine = _engine(balance=20.0)
    _open_btc(engine, oracle, clock)
    res = engine.place_position("BTC-30s", "up", 50, T0 + 1_000)
    assert not res.ok
    assert res.reason == "insufficient_balance"
    assert res.position is None
    assert ledger.balance == 20.0
    assert engine.open_positions() == []
    assert engine.book_for("BTC-30s").total_stake == 0.0


def test_rejection_reasons() -> None:
    clock, oracle, _, engine = _engine(lock_window_ms=3_000, allowed_stakes=(10.0, 25.0, 50.0, 100.0))
    _open_btc(engine, oracle, clock)
    assert engine.place_position("XRP-30s", "up", 10, T0 + 1_000).reason == "unknown_market"
    assert engine.place_position("BTC-30s", "sideways", 10, T0 + 1_000).reason == "invalid_direction"
    assert engine.place_position("BTC-30s", "up", "lots", T0 + 1_000).reason == "invalid_stake"
    assert engine.place_position("BTC-30s", "up", 30, T0 + 1_000).reason == "stake_not_allowed"
    clock.t = T0 + 27_500
    _push_price(oracle, clock, "BTC", 100.0)
    assert engine.place_position("BTC-30s", "up", 10, T0 + 28_000).reason == "round_locked"
    oracle.set_status("chainlink", FeedStatus.OFFLINE)
    assert engine.place_position("BTC-30s", "up", 10, T0 + 1_000).reason == "feed_offline"


def test_settlement_is_idempotent() -> None:
    clock, oracle, ledger, engine = _engine()
    _open_btc(engine, oracle, clock)
    engine.place_position("BTC-30s", "up", 50, T0 + 1_000)
    _close_btc(engine, oracle, clock, 110.0)
    balance = ledger.balance

    assert engine.settle([ResolvedRound(round_id=RID, settle_price=90.0)], T0 + 31_000) == []
    assert engine.tick(T0 + 30_200).settled == []
    assert ledger.balance == balance
    assert len(engine.settled_positions()) == 1


def test_pending_round_waits_for_price_without_duplicates() -> None:
    clock, oracle, _, engine = _engine(markets=(BTC_30S, ETH_30S))
    _push_price(oracle, clock, "BTC", 100.0)
    engine.tick(T0)
    report = engine.tick(T0 + 30_000)
    assert sorted(report.rolled_over) == [RID, f"ETH-30s-{T0}"]

    for dt in (30_200, 30_400, 31_000):
        engine.tick(T0 + dt)
    assert sorted(p.round_id for p in engine.pending_settlements) == [RID, f"ETH-30s-{T0}"]
    assert engine.state_of(f"ETH-30s-{T0}", T0 + 31_000) == RoundState.SETTLING

    clock.t = T0 + 31_100
    _push_price(oracle, clock, "ETH", 2000.0)
    engine.tick(T0 + 31_200)
    assert [p.round_id for p in engine.pending_settlements] == [RID]
    assert engine.state_of(f"ETH-30s-{T0}", T0 + 31_200) == RoundState.SETTLED

    clock.t = T0 + 31_300
    _push_price(oracle, clock, "BTC", 101.0)
    engine.tick(T0 + 31_400)
    assert engine.pending_settlements == []
    assert engine.state_of(RID, T0 + 31_400) == RoundState.SETTLED


def test_feed_outage_defers_settlement_until_fresh_close() -> None:
    clock, oracle, ledger, engine = _engine()
    _open_btc(engine, oracle, clock)
    engine.place_position("BTC-30s", "up", 50, T0 + 1_000)

    oracle.set_status("chainlink", FeedStatus.OFFLINE)
    for dt in (30_000, 30_200, 31_000):
        clock.t = T0 + dt
        assert engine.tick(T0 + dt).settled == []
    assert len(engine.pending_settlements) == 1
    assert len(engine.open_positions()) == 1
    assert engine.state_of(RID, T0 + 31_000) == RoundState.SETTLING
    assert ledger.balance == 950.0

    clock.t = T0 + 31_100
    _push_price(oracle, clock, "BTC", 110.0)
    report = engine.tick(T0 + 31_200)
    assert len(report.settled) == 1
    assert report.settled[0].status == PositionStatus.WIN
    assert report.settled[0].settle_price == 110.0
    clock.t = T0 + 31_400
    assert engine.tick(T0 + 31_400).settled == []
    assert ledger.balance == 1045.0


def test_close_price_must_be_observed_after_round_end() -> None:
    clock, oracle, ledger, engine = _engine()
    _open_btc(engine, oracle, clock)
    engine.place_position("BTC-30s", "up", 50, T0 + 1_000)

    clock.t = T0 + 29_000
    _push_price(oracle, clock, "BTC", 90.0)
    clock.t = T0 + 30_000
    report = engine.tick(T0 + 30_000)
    assert report.rolled_over == [RID]
    assert report.settled == []
    assert ledger.balance == 950.0

    clock.t = T0 + 30_500
    _push_price(oracle, clock, "BTC", 120.0)
    report = engine.tick(T0 + 30_600)
    assert [s.settle_price for s in report.settled] == [120.0]
    assert ledger.balance == 1045.0


def test_sub_hundredth_stake_is_rejected() -> None:
    clock, oracle, ledger, engine = _engine()
    _open_btc(engine, oracle, clock)
    for stake in (0.004, 10.005, float("inf")):
        res = engine.place_position("BTC-30s", "up", stake, T0 + 1_000)
        assert not res.ok
        assert res.reason == "invalid_stake"
    assert engine.open_positions() == []
    assert ledger.balance == 1000.0

    assert engine.place_position("BTC-30s", "up", 0.01, T0 + 1_000).ok
    _close_btc(engine, oracle, clock, 110.0)
    assert ledger.balance == 1000.01


def test_place_refuses_round_without_open_price(monkeypatch: pytest.MonkeyPatch) -> None:
    clock, oracle, ledger, engine = _engine()
    _push_price(oracle, clock, "BTC", 100.0)
    engine.tick(T0)
    assert engine.round_for("BTC-30s").open_price is None

    monkeypatch.setattr(core, "pass_placement_gates", lambda *a, **kw: (True, "ok"))
    res = engine.place_position("BTC-30s", "up", 50, T0 + 100)
    assert not res.ok
    assert res.reason == "round_not_open"
    assert ledger.balance == 1000.0
    assert engine.open_positions() == []


def test_balance_conservation() -> None:
    clock, oracle, ledger, engine = _engine()
    _open_btc(engine, oracle, clock)
    for side, stake in (("up", 50), ("down", 25), ("up", 10), ("down", 100)):
        assert engine.place_position("BTC-30s", side, stake, T0 + 2_000).ok
    report = _close_btc(engine, oracle, clock, 104.2)

    staked = sum(s.amount for s in report.settled)
    paid = sum(s.payout for s in report.settled)
    assert ledger.balance == round(1000.0 - staked + paid, 2)
    assert ledger.balance == 1000.0 - 185 + 95 + 19


def test_per_share_quote_payout() -> None:
    clock, oracle, ledger, engine = _engine(payout_model=PayoutModel.PER_SHARE_QUOTE)
    _open_btc(engine, oracle, clock)
    res = engine.place_position("BTC-30s", "up", 50, T0 + 1_000)
    assert res.position.entry_quote == 0.5
    assert res.position.shares == 1.0

    report = _close_btc(engine, oracle, clock, 110.0)
    assert report.settled[0].payout == 100.0
    assert report.settled[0].profit == 50.0
    assert ledger.balance == 1050.0


def test_fixed_rate_records_no_entry_quote() -> None:
    clock, oracle, _, engine = _engine()
    _open_btc(engine, oracle, clock)
    pos = engine.place_position("BTC-30s", "up", 50, T0 + 1_000).position
    assert pos.entry_quote is None
    assert pos.shares is None
    assert pos.entry_price == 100.0
    assert pos.round_id == RID


def test_settled_log_is_capped_newest_first() -> None:
    clock, oracle, _, engine = _engine(settled_retention=2)
    _open_btc(engine, oracle, clock)
    ids = [engine.place_position("BTC-30s", "up", 10, T0 + 1_000 + i).position.id for i in range(3)]
    _close_btc(engine, oracle, clock, 110.0)
    settled = engine.settled_positions()
    assert [s.id for s in settled] == ids[:2]


def test_market_fault_is_isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    events = RuntimeEventLogger(str(tmp_path))
    clock, oracle, _, engine = _engine(markets=(BTC_30S, ETH_30S), events=events)
    real = core.derive_round

    def flaky(market_key, *args, **kwargs):
        if market_key == "ETH-30s":
            raise RuntimeError("boom")
        return real(market_key, *args, **kwargs)

    monkeypatch.setattr(core, "derive_round", flaky)
    report = engine.tick(T0)
    assert report.failed_markets == ["ETH-30s"]
    assert engine.round_for("BTC-30s") is not None
    assert engine.round_for("ETH-30s") is None
    assert events.counts["tick.market_error"] == 1


def test_unknown_market_lookup_raises() -> None:
    _, _, _, engine = _engine()
    with pytest.raises(UnknownMarketError):
        engine.round_for("XRP-30s")


def test_snapshot_is_json_ready() -> None:
    clock, oracle, _, engine = _engine(allowed_stakes=(10.0, 25.0, 50.0, 100.0))
    _open_btc(engine, oracle, clock)
    engine.place_position("BTC-30s", "up", 25, T0 + 1_000)
    snap = engine.snapshot(T0 + 1_500)
    json.dumps(snap)

    assert snap["balance"] == 975.0
    assert snap["feed"]["status"] == "live"
    assert snap["bet_amounts"] == [10.0, 25.0, 50.0, 100.0]
    market = snap["markets"][0]
    assert market["round"]["state"] == "OPEN"
    assert market["round"]["time_remaining_ms"] == 28_500
    assert market["book"]["activity"][0]["trader"] == "You"
    assert len(snap["positions"]) == 1
