"""Per-record replay accounting with an optional JSONL sink."""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pandas as pd


@dataclass(slots=True)
class ReplayStats:
    records_read: int = 0
    unparseable: int = 0
    before_anchor: int = 0
    published: int = 0
    publish_failures: int = 0
    total_delay_ms: float = 0.0
    max_observed_delay_ms: float = 0.0


@dataclass(slots=True)
class LogRecord:
    wall_time_ms: float
    event_type: str
    payload: Dict[str, Any]


def _iso(ts: Optional[pd.Timestamp]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


class ReplayMetricsLogger:
    """Counts what happened to every pulled record and optionally streams it to JSONL."""

    def __init__(
        self,
        json_path: Optional[str | Path] = None,
        *,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.json_path = Path(json_path) if json_path else None
        self._clock = clock or time.time
        self._json_handle = None
        if self.json_path:
            self.json_path.parent.mkdir(parents=True, exist_ok=True)
            self._json_handle = self.json_path.open("w", encoding="utf-8")
        self.stats = ReplayStats()

    def close(self) -> None:
        if self._json_handle:
            self._json_handle.close()
            self._json_handle = None

    def log_read(self) -> None:
        self.stats.records_read += 1

    def log_unparseable(self, raw_time: Any) -> None:
        self.stats.unparseable += 1
        self._write("skipped_unparseable", {"raw_time": None if raw_time is None else str(raw_time)})

    def log_before_anchor(self, record_time: pd.Timestamp) -> None:
        self.stats.before_anchor += 1
        self._write("skipped_before_anchor", {"record_time": _iso(record_time)})

    def log_anchor(self, record_time: pd.Timestamp, start_time: pd.Timestamp) -> None:
        self._write(
            "anchor",
            {"record_time": _iso(record_time), "start_time": _iso(start_time)},
        )

    def log_published(
        self, record_time: pd.Timestamp, delay_ms: float, key: Optional[str]
    ) -> None:
        self.stats.published += 1
        self._note_delay(delay_ms)
        self._write(
            "published",
            {"record_time": _iso(record_time), "delay_ms": delay_ms, "key": key},
        )

    def log_publish_failed(
        self,
        record_time: pd.Timestamp,
        delay_ms: float,
        key: Optional[str],
        error: Optional[BaseException],
    ) -> None:
        self.stats.publish_failures += 1
        self._note_delay(delay_ms)
        self._write(
            "publish_failed",
            {
                "record_time": _iso(record_time),
                "delay_ms": delay_ms,
                "key": key,
                "error": repr(error) if error is not None else None,
            },
        )

    def log_run_summary(self, status: str) -> Dict[str, Any]:
        payload = asdict(self.stats)
        payload["status"] = status
        self._write("run_summary", payload)
        return payload

    def snapshot(self) -> ReplayStats:
        return ReplayStats(**asdict(self.stats))

    def _note_delay(self, delay_ms: float) -> None:
        self.stats.total_delay_ms += delay_ms
        if delay_ms > self.stats.max_observed_delay_ms:
            self.stats.max_observed_delay_ms = delay_ms

    def _write(self, event_type: str, payload: Dict[str, Any]) -> None:
        if not self._json_handle:
            return
        record = LogRecord(self._clock() * 1000.0, event_type, payload)
        self._json_handle.write(json.dumps(asdict(record)) + "\n")
        self._json_handle.flush()

    def __enter__(self) -> "ReplayMetricsLogger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["ReplayMetricsLogger", "ReplayStats", "LogRecord"]
