"""Timed replay scheduler: paces historical records into a publish sink.

The scheduler pulls one record at a time, decides how long to hold it back so
the replay reproduces the recorded inter-event gaps (scaled by ``speed`` and
capped by ``max_delay_ms``), and hands it to the sink. The source stays paused
while a record is waiting or publishing, so at most one record is ever in
flight and emission order equals source order.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol

import pandas as pd

from .errors import SourceError
from .metrics import ReplayMetricsLogger, ReplayStats
from .source import END_OF_STREAM, RecordSource
from .timing import compute_delay_ms, epoch_ms, parse_record_time, time_of_day_ms
from .transform import record_key, to_operation_event

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReplayConfig:
    """Run-wide replay settings; immutable once the scheduler is built."""

    speed: float = 1.0  # 1.0 = recorded pace, 2.0 = twice as fast
    max_delay_ms: Optional[float] = 10_000.0  # None disables the cap
    timestamp_field: str = "time"
    key_field: Optional[str] = "icao"
    alignment_tz: str = "UTC"
    align_to_now: bool = True

    def __post_init__(self) -> None:
        if not (self.speed > 0 and math.isfinite(self.speed)):
            raise ValueError("speed must be a positive finite number")
        if self.max_delay_ms is not None and not self.max_delay_ms >= 0:
            raise ValueError("max_delay_ms must be non-negative or None")
        if not self.timestamp_field:
            raise ValueError("timestamp_field must be set")
        try:
            pd.Timestamp(0, tz="UTC").tz_convert(self.alignment_tz)
        except (KeyError, ValueError, TypeError) as exc:
            raise ValueError(f"unknown alignment_tz {self.alignment_tz!r}") from exc


@dataclass(slots=True)
class ReplayClock:
    """Anchor state: ``previous_record_time`` is set exactly when ``started``."""

    started: bool = False
    previous_record_time: Optional[pd.Timestamp] = None

    def anchor(self, record_time: pd.Timestamp) -> None:
        if self.started:
            raise RuntimeError("replay clock is already anchored")
        self.started = True
        self.previous_record_time = record_time

    def advance(self, record_time: pd.Timestamp) -> pd.Timestamp:
        """Make ``record_time`` the new predecessor and return the old one."""

        if not self.started or self.previous_record_time is None:
            raise RuntimeError("replay clock has not been anchored")
        previous = self.previous_record_time
        self.previous_record_time = record_time
        return previous


@dataclass(frozen=True, slots=True)
class PublishOutcome:
    ok: bool
    error: Optional[BaseException] = None

    @classmethod
    def succeeded(cls) -> "PublishOutcome":
        return cls(ok=True)

    @classmethod
    def failed(cls, error: Optional[BaseException]) -> "PublishOutcome":
        return cls(ok=False, error=error)


class PumpState(str, Enum):
    IDLE = "idle"
    PULLING = "pulling"
    WAITING = "waiting"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ReplayStatus(str, Enum):
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class ReplayResult:
    status: ReplayStatus
    stats: ReplayStats = field(default_factory=ReplayStats)
    error: Optional[BaseException] = None


class PublishSink(Protocol):
    async def publish(self, payload: Dict[str, Any], key: Optional[str]) -> PublishOutcome: ...


Transform = Callable[[Mapping[str, Any], int], Dict[str, Any]]
Callback = Callable[..., Optional[Awaitable[None]]]


def _utc_now() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


class ReplayScheduler:
    """Drives a record source into a publish sink at the recorded pace."""

    def __init__(
        self,
        config: ReplayConfig,
        source: RecordSource,
        sink: PublishSink,
        *,
        transform: Transform = to_operation_event,
        time_source: Optional[Callable[[], pd.Timestamp]] = None,
        sleeper: Optional[Callable[[float], Awaitable[None]]] = None,
        metrics: Optional[ReplayMetricsLogger] = None,
        on_done: Optional[Callback] = None,
        on_fatal_error: Optional[Callback] = None,
    ) -> None:
        self.config = config
        self.clock = ReplayClock()
        self.started_at: Optional[pd.Timestamp] = None
        self.metrics = metrics or ReplayMetricsLogger()
        self._source = source
        self._sink = sink
        self._transform = transform
        self._now = time_source or _utc_now
        self._sleep = sleeper or asyncio.sleep
        self._on_done = on_done
        self._on_fatal_error = on_fatal_error
        self._cancel_event = asyncio.Event()
        self._state = PumpState.IDLE
        self._ran = False

    @property
    def state(self) -> PumpState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop pulling; a pending wait ends now, an in-flight publish may settle."""

        if not self._cancel_event.is_set():
            log.info("Replay cancellation requested in state %s", self._state.value)
            self._cancel_event.set()

    async def run(self) -> ReplayResult:
        if self._ran:
            raise RuntimeError("ReplayScheduler.run() may only be called once")
        self._ran = True

        self.started_at = self._now()
        start_tod_ms = time_of_day_ms(self.started_at, self.config.alignment_tz)
        log.info(
            "Replay started at %s (speed=%s, max_delay_ms=%s)",
            self.started_at.isoformat(),
            self.config.speed,
            self.config.max_delay_ms,
        )

        status = ReplayStatus.DONE
        error: Optional[BaseException] = None
        while not self.cancelled:
            self._state = PumpState.PULLING
            try:
                raw = self._source.pull()
            except SourceError as exc:
                status, error = ReplayStatus.FAILED, exc
                break
            if raw is END_OF_STREAM:
                break
            self.metrics.log_read()

            raw_time = raw.get(self.config.timestamp_field)
            record_time = parse_record_time(raw_time)
            if record_time is None:
                log.debug("Skipping record with unparseable timestamp %r", raw_time)
                self.metrics.log_unparseable(raw_time)
                continue

            if not self.clock.started:
                if (
                    self.config.align_to_now
                    and time_of_day_ms(record_time, self.config.alignment_tz) < start_tod_ms
                ):
                    self.metrics.log_before_anchor(record_time)
                    continue
                self.clock.anchor(record_time)
                self.metrics.log_anchor(record_time, self.started_at)
                log.info(
                    "Anchored replay at record time %s after skipping %d records",
                    record_time.isoformat(),
                    self.metrics.stats.before_anchor,
                )
                delay_ms = 0.0
            else:
                previous = self.clock.advance(record_time)
                delay_ms = compute_delay_ms(
                    record_time, previous, self.config.speed, self.config.max_delay_ms
                )

            self._source.pause()
            try:
                self._state = PumpState.WAITING
                if not await self._wait(delay_ms):
                    break
                self._state = PumpState.PUBLISHING
                await self._emit(raw, record_time, delay_ms)
            finally:
                self._source.resume()

        if status is ReplayStatus.DONE and self.cancelled:
            status = ReplayStatus.CANCELLED
        return await self._finish(status, error)

    async def _wait(self, delay_ms: float) -> bool:
        """Hold intake for ``delay_ms``; ``False`` when cancelled meanwhile."""

        if self.cancelled:
            return False
        if delay_ms <= 0:
            return True
        sleeper = asyncio.ensure_future(self._sleep(delay_ms / 1000.0))
        waiter = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [task for task in (sleeper, waiter) if not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        if sleeper.done() and not sleeper.cancelled():
            sleeper.result()
        return not self.cancelled

    async def _emit(
        self, raw: Mapping[str, Any], record_time: pd.Timestamp, delay_ms: float
    ) -> PublishOutcome:
        key = record_key(raw, self.config.key_field)
        try:
            payload = self._transform(raw, epoch_ms(self._now()))
            outcome = await self._sink.publish(payload, key)
        except Exception as exc:
            outcome = PublishOutcome.failed(exc)
        if outcome.ok:
            self.metrics.log_published(record_time, delay_ms, key)
        else:
            log.warning(
                "Publish failed for record at %s (key=%s): %r",
                record_time.isoformat(),
                key,
                outcome.error,
            )
            self.metrics.log_publish_failed(record_time, delay_ms, key, outcome.error)
        return outcome

    async def _finish(
        self, status: ReplayStatus, error: Optional[BaseException]
    ) -> ReplayResult:
        self._state = PumpState(status.value)
        self.metrics.log_run_summary(status.value)
        stats = self.metrics.snapshot()
        log.info(
            "Replay %s: read=%d published=%d failed=%d before_anchor=%d",
            status.value,
            stats.records_read,
            stats.published,
            stats.publish_failures,
            stats.before_anchor,
        )
        if stats.unparseable:
            log.warning("Dropped %d records with unparseable timestamps", stats.unparseable)
        if status is ReplayStatus.DONE:
            await self._notify(self._on_done)
        elif status is ReplayStatus.FAILED:
            log.error("Record source failed: %s", error)
            await self._notify(self._on_fatal_error, error)
        return ReplayResult(status=status, stats=stats, error=error)

    @staticmethod
    async def _notify(callback: Optional[Callback], *args: Any) -> None:
        if callback is None:
            return
        result = callback(*args)
        if inspect.isawaitable(result):
            await result


__all__ = [
    "ReplayConfig",
    "ReplayClock",
    "ReplayScheduler",
    "ReplayResult",
    "ReplayStatus",
    "PublishOutcome",
    "PublishSink",
    "PumpState",
]
