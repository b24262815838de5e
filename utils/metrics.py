#!/usr/bin/env python3
"""Run metrics (counters and timers) appended as JSONL.

One line per event under ``Config.METRICS_ROOT``; disabled with
``METRICS_ENABLED=0``. Tag values are truncated, never logged in full.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict

from configs.config import Config

_MAX_TAG_CHARS = 200


def _path() -> Path:
    root = Path(Config.METRICS_ROOT)
    root.mkdir(parents=True, exist_ok=True)
    return root / "metrics.log"


def _record(name: str, value: Any, tags: Dict[str, Any]) -> Dict[str, Any]:
    rec: Dict[str, Any] = {"ts": int(time.time()), "metric": name, "value": value}
    for k, v in tags.items():
        if isinstance(v, str) and len(v) > _MAX_TAG_CHARS:
            v = v[:_MAX_TAG_CHARS] + "…"
        rec[k] = v
    return rec


def incr(name: str, value: Any = 1, **tags) -> None:
    if not Config.METRICS_ENABLED:
        return
    line = json.dumps(_record(name, value, tags), separators=(",", ":"), ensure_ascii=False) + "\n"
    with open(_path(), "a", encoding="utf-8") as f:
        f.write(line)


class Timer:
    """Context manager recording ``<name>.latency_s`` on exit, errors included."""

    def __init__(self, name: str, **tags):
        self.name = name
        self.tags = tags
        self._t0 = 0.0

    def __enter__(self):
        self._t0 = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        dt = time.perf_counter() - self._t0
        incr(f"{self.name}.latency_s", value=round(dt, 6), failed=exc_type is not None, **self.tags)
        return False
