import json
from pathlib import Path

from shorts_sim.data.snapshot_store import SnapshotStore
from shorts_sim.infra.telemetry import RuntimeEventLogger


def test_snapshot_store_roundtrip(tmp_path: Path) -> None:
    store = SnapshotStore(str(tmp_path))
    payload = {"ok": True, "balance": 975.0, "positions": [{"market_key": "ETH-1m"}]}
    store.write(payload)
    out = store.read()
    assert out["ok"] is True
    assert out["positions"][0]["market_key"] == "ETH-1m"
    assert not (tmp_path / "display_snapshot.tmp").exists()


def test_snapshot_store_not_ready(tmp_path: Path) -> None:
    out = SnapshotStore(str(tmp_path)).read()
    assert out["ok"] is True
    assert out["markets"] == []
    assert out["message"] == "snapshot not ready"


def test_snapshot_store_parse_error(tmp_path: Path) -> None:
    store = SnapshotStore(str(tmp_path))
    store.path.write_text("{not json")
    out = store.read()
    assert out["ok"] is False
    assert out["message"] == "snapshot parse error"


def test_runtime_events_are_jsonl(tmp_path: Path) -> None:
    events = RuntimeEventLogger(str(tmp_path))
    events.emit("position.placed", market="BTC-30s", stake=25.0)
    events.emit("settlement.batch", rounds=["BTC-30s-0"], positions=1)
    lines = (tmp_path / "runtime_events.jsonl").read_text().splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["event"] == "position.placed"
    assert first["market"] == "BTC-30s"
    assert events.counts["settlement.batch"] == 1


def test_runtime_events_roll_over(tmp_path: Path) -> None:
    events = RuntimeEventLogger(str(tmp_path), max_bytes=64)
    for i in range(5):
        events.emit("position.rejected", market="BTC-30s", reason="feed_offline", n=i)
    assert (tmp_path / "runtime_events.jsonl.1").exists()
    assert events.counts["position.rejected"] == 5
    assert "position.rejected=5" in events.summary()
