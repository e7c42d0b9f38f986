"""Timestamp parsing and inter-record delay arithmetic for timed replays."""

from __future__ import annotations

import re
from typing import Optional

import pandas as pd

_MILLISECOND = pd.Timedelta(milliseconds=1)
_DATE_PREFIX = re.compile(r"^\d{4}-?\d{2}-?\d{2}")


def parse_record_time(value: object) -> Optional[pd.Timestamp]:
    """Return the UTC timestamp encoded in ``value`` or ``None``.

    Naive values such as ``"2025-11-01 00:00:04"`` are taken to be UTC; values
    carrying an offset are converted. Empty cells, pandas keywords like
    ``"now"``, time-only values and anything else that is not ISO 8601 with a
    date yield ``None``.
    """

    if value is None:
        return None
    text = str(value).strip()
    # A bare "12:30" must not pick up today's date.
    if not _DATE_PREFIX.match(text):
        return None
    ts = pd.to_datetime(text, format="ISO8601", utc=True, errors="coerce")
    if pd.isna(ts):
        return None
    return ts


def time_of_day_ms(ts: pd.Timestamp, tz: str = "UTC") -> float:
    """Wall-clock milliseconds since local midnight of ``ts`` in ``tz``."""

    local = ts.tz_convert(tz) if ts.tzinfo is not None else ts.tz_localize(tz)
    # Wall-clock fields, so DST shifts on the day do not move the result.
    return (
        local.hour * 3_600_000
        + local.minute * 60_000
        + local.second * 1000
        + local.microsecond / 1000
        + local.nanosecond / 1_000_000
    )


def compute_delay_ms(
    current: pd.Timestamp,
    previous: pd.Timestamp,
    speed: float,
    max_delay_ms: Optional[float] = None,
) -> float:
    """Scaled, capped wait before publishing ``current`` after ``previous``.

    Out-of-order and duplicate timestamps clamp to zero.
    """

    delta_ms = max(0.0, (current - previous) / _MILLISECOND)
    delay = delta_ms / speed
    if max_delay_ms is not None:
        delay = min(delay, float(max_delay_ms))
    return delay


def epoch_ms(ts: pd.Timestamp) -> int:
    return int(ts.value // 1_000_000)


__all__ = ["parse_record_time", "time_of_day_ms", "compute_delay_ms", "epoch_ms"]
