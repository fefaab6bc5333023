from __future__ import annotations

import json
import threading
import time
from collections import Counter
from pathlib import Path
from typing import Any

# events folded into the periodic health line
SUMMARY_EVENTS = ("position.placed", "position.rejected", "settlement.batch", "tick.market_error", "loop.crash")


class RuntimeEventLogger:
    """JSONL stream of round, position and settlement events.

    The file rolls to `<name>.1` once it passes max_bytes so an always-on
    simulator does not grow it without bound.
    """

    def __init__(self, data_dir: str, filename: str = "runtime_events.jsonl", *, max_bytes: int = 20_000_000):
        self.path = Path(data_dir) / filename
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.max_bytes = max(0, int(max_bytes))
        self._lock = threading.Lock()
        self.counts: Counter[str] = Counter()

    def _roll_if_needed(self) -> None:
        if not self.max_bytes or not self.path.exists():
            return
        if self.path.stat().st_size < self.max_bytes:
            return
        self.path.replace(self.path.with_name(self.path.name + ".1"))

    def emit(self, event: str, **fields: Any) -> None:
        row = json.dumps(
            {"ts": round(time.time(), 3), "event": event, **fields},
            separators=(",", ":"),
            ensure_ascii=True,
            default=str,
        )
        with self._lock:
            self.counts[event] += 1
            self._roll_if_needed()
            with self.path.open("a", encoding="utf-8") as f:
                f.write(row + "\n")

    def summary(self) -> str:
        return " ".join(f"{name}={self.counts.get(name, 0)}" for name in SUMMARY_EVENTS)
