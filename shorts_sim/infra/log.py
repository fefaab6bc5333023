from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """Configure the package root logger once and return a named logger."""
    root = logging.getLogger("shorts_sim")
    if not any(getattr(h, "_shorts_sim", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._shorts_sim = True  # type: ignore[attr-defined]
        root.addHandler(handler)
        root.propagate = False
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    log = logging.getLogger(name)
    if not name.startswith("shorts_sim"):
        log.handlers = root.handlers
        log.propagate = False
    log.setLevel(root.level)
    return log
