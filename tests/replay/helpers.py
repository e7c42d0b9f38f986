"""Fakes shared by the replay tests."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pandas as pd

from adsb_replay import PublishOutcome, ReplayMetricsLogger


def utc(text: str) -> pd.Timestamp:
    return pd.Timestamp(text, tz="UTC")


def fixed_clock(text: str):
    now = utc(text)
    return lambda: now


def row(time: Any, icao: str = "A1B2C3", **extra: Any) -> Dict[str, Any]:
    record = {"time": time, "icao": icao, "operation": "landing"}
    record.update(extra)
    return record


class FakeSleeper:
    """Records requested waits and advances a virtual wall clock instantly."""

    def __init__(self) -> None:
        self.waits_ms: List[float] = []
        self.now_s = 1_000.0

    async def __call__(self, seconds: float) -> None:
        self.waits_ms.append(seconds * 1000.0)
        self.now_s += seconds
        await asyncio.sleep(0)

    def wall_clock(self) -> float:
        return self.now_s


class RecordingSink:
    """Captures payloads and asserts the single-flight contract."""

    def __init__(self, source=None, fail_on: Optional[set[int]] = None, raise_on: Optional[set[int]] = None) -> None:
        self.source = source
        self.fail_on = fail_on or set()
        self.raise_on = raise_on or set()
        self.payloads: List[Dict[str, Any]] = []
        self.keys: List[Optional[str]] = []
        self.in_flight = False
        self.gate: Optional[asyncio.Event] = None

    async def publish(self, payload: Dict[str, Any], key: Optional[str]) -> PublishOutcome:
        assert not self.in_flight, "publish started before the previous one settled"
        if self.source is not None:
            assert self.source.paused, "source must stay paused while publishing"
        self.in_flight = True
        try:
            index = len(self.payloads)
            self.payloads.append(payload)
            self.keys.append(key)
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(0)
            if index in self.raise_on:
                raise ConnectionError("broker went away")
            if index in self.fail_on:
                return PublishOutcome.failed(RuntimeError("rejected"))
            return PublishOutcome.succeeded()
        finally:
            self.in_flight = False


class DelayRecordingMetrics(ReplayMetricsLogger):
    """Metrics logger that keeps the final delay of every emitted record."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.delays_ms: List[float] = []

    def log_published(self, record_time, delay_ms, key) -> None:
        self.delays_ms.append(delay_ms)
        super().log_published(record_time, delay_ms, key)

    def log_publish_failed(self, record_time, delay_ms, key, error) -> None:
        self.delays_ms.append(delay_ms)
        super().log_publish_failed(record_time, delay_ms, key, error)
