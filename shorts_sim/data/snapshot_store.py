from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _empty(message: str, ok: bool) -> dict[str, Any]:
    return {
        "ok": ok,
        "balance": None,
        "feed": {"status": "connecting", "sources": {}},
        "markets": [],
        "positions": [],
        "settled": [],
        "message": message,
    }


class SnapshotStore:
    """Display snapshot handed from the engine process to an external dashboard."""

    def __init__(self, data_dir: str, filename: str = "display_snapshot.json"):
        self.path = Path(data_dir) / filename
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, payload: dict[str, Any]) -> None:
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=True, separators=(",", ":")))
        tmp.replace(self.path)

    def read(self) -> dict[str, Any]:
        if not self.path.exists():
            return _empty("snapshot not ready", ok=True)
        try:
            return json.loads(self.path.read_text())
        except (OSError, ValueError) as exc:
            logger.warning("snapshot read failed: %s", exc)
            return _empty("snapshot parse error", ok=False)
