"""Turn a replay's JSONL metrics log into pacing diagnostics."""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

EMITTED_EVENTS = ("published", "publish_failed")


@dataclass(slots=True)
class ReplayRun:
    events: pd.DataFrame
    summary: Optional[Dict[str, Any]]


@dataclass(slots=True)
class ReplaySummary:
    status: Optional[str]
    emitted: int
    published: int
    publish_failures: int
    unparseable: int
    before_anchor: int
    mean_delay_ms: Optional[float]
    p95_delay_ms: Optional[float]
    max_delay_ms: Optional[float]
    mean_drift_ms: Optional[float]
    p95_drift_ms: Optional[float]


def load_run(jsonl_path: str | Path) -> ReplayRun:
    rows: List[Dict[str, Any]] = []
    summary: Optional[Dict[str, Any]] = None
    with Path(jsonl_path).open("r", encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            blob = json.loads(line)
            payload = blob.get("payload", {})
            if blob.get("event_type") == "run_summary":
                summary = payload
                continue
            rows.append(
                {
                    "wall_time_ms": float(blob.get("wall_time_ms", 0.0)),
                    "event_type": blob.get("event_type"),
                    "record_time": payload.get("record_time"),
                    "delay_ms": payload.get("delay_ms"),
                    "key": payload.get("key"),
                }
            )
    events = pd.DataFrame(
        rows, columns=["wall_time_ms", "event_type", "record_time", "delay_ms", "key"]
    )
    events["record_time"] = pd.to_datetime(events["record_time"], utc=True, errors="coerce")
    events["delay_ms"] = pd.to_numeric(events["delay_ms"], errors="coerce")
    return ReplayRun(events=events, summary=summary)


def _stat(values: np.ndarray, fn) -> Optional[float]:
    if values.size == 0:
        return None
    return float(fn(values))


def pacing_drift_ms(events: pd.DataFrame) -> np.ndarray:
    """Observed spacing between consecutive emissions minus the scheduled delay.

    The first emission (the anchor) has no predecessor and is excluded.
    """

    emitted = events[events["event_type"].isin(EMITTED_EVENTS)]
    if len(emitted) < 2:
        return np.array([], dtype=float)
    spacing = np.diff(emitted["wall_time_ms"].to_numpy(dtype=float))
    scheduled = emitted["delay_ms"].to_numpy(dtype=float)[1:]
    return spacing - scheduled


def summarise(jsonl_path: str | Path) -> ReplaySummary:
    run = load_run(jsonl_path)
    events = run.events
    counts = events["event_type"].value_counts()
    emitted = events[events["event_type"].isin(EMITTED_EVENTS)]
    delays = emitted["delay_ms"].dropna().to_numpy(dtype=float)
    drift = pacing_drift_ms(events)
    return ReplaySummary(
        status=(run.summary or {}).get("status"),
        emitted=int(len(emitted)),
        published=int(counts.get("published", 0)),
        publish_failures=int(counts.get("publish_failed", 0)),
        unparseable=int(counts.get("skipped_unparseable", 0)),
        before_anchor=int(counts.get("skipped_before_anchor", 0)),
        mean_delay_ms=_stat(delays, np.mean),
        p95_delay_ms=_stat(delays, lambda v: np.percentile(v, 95)),
        max_delay_ms=_stat(delays, np.max),
        mean_drift_ms=_stat(drift, np.mean),
        p95_drift_ms=_stat(drift, lambda v: np.percentile(v, 95)),
    )


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Summarise a replay metrics log")
    parser.add_argument("jsonl", type=Path, help="Metrics JSONL written with --metrics-jsonl")
    args = parser.parse_args(argv)
    print(json.dumps(asdict(summarise(args.jsonl)), indent=2))


__all__ = ["ReplayRun", "ReplaySummary", "load_run", "summarise", "pacing_drift_ms"]


if __name__ == "__main__":
    main()
