"""Process-level lifecycle around the scheduler: startup, signals, drain, exit code."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any, Callable, List, Optional

import pandas as pd
from aiokafka.errors import KafkaError

from .config import RunConfig, Settings
from .errors import RegistryError
from .metrics import ReplayMetricsLogger
from .registry import AvroEncoder, SchemaRegistryClient
from .scheduler import ReplayConfig, ReplayResult, ReplayScheduler, ReplayStatus
from .schema import OPERATION_EVENT_SCHEMA
from .sink import KafkaPublishSink
from .source import CsvRecordSource, RecordSource

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1

SinkFactory = Callable[[int], Any]


class ReplayDriver:
    """Owns schema registration, the sink connection and shutdown for one replay."""

    def __init__(
        self,
        settings: Settings,
        run_config: RunConfig,
        *,
        registry: Optional[SchemaRegistryClient] = None,
        sink_factory: Optional[SinkFactory] = None,
        source: Optional[RecordSource] = None,
        time_source: Optional[Callable[[], pd.Timestamp]] = None,
        sleeper=None,
        install_signal_handlers: bool = True,
    ) -> None:
        self.settings = settings
        self.run_config = run_config
        self._registry = registry
        self._sink_factory = sink_factory or self._default_sink
        self._source = source
        self._time_source = time_source
        self._sleeper = sleeper
        self._install_signals = install_signal_handlers
        self._scheduler: Optional[ReplayScheduler] = None
        self._sink: Any = None
        self._shutdown_requested = False
        self.result: Optional[ReplayResult] = None

    def _default_sink(self, schema_id: int) -> KafkaPublishSink:
        return KafkaPublishSink(self.settings.kafka, AvroEncoder(schema_id, OPERATION_EVENT_SCHEMA))

    def request_shutdown(self) -> None:
        """Cancellation entry point used by the signal handlers."""

        self._shutdown_requested = True
        if self._scheduler is not None:
            self._scheduler.cancel()

    async def run(self) -> int:
        replay_config = self.run_config.replay_config()
        registry = self._registry or SchemaRegistryClient(
            self.settings.registry.url,
            self.settings.registry.username,
            self.settings.registry.password,
        )
        subject = self.settings.kafka.value_subject
        try:
            try:
                schema_id = await registry.register(subject, OPERATION_EVENT_SCHEMA)
            except RegistryError as exc:
                log.error("Fatal: %s", exc)
                return EXIT_FAILURE

            self._sink = self._sink_factory(schema_id)
            try:
                await self._sink.start()
            except (KafkaError, OSError) as exc:
                log.error("Fatal: could not connect Kafka producer: %s", exc)
                await self._stop_sink()
                return EXIT_FAILURE
            log.info("Kafka producer connected. Schema id: %d subject: %s", schema_id, subject)

            try:
                return await self._replay(replay_config)
            finally:
                await self._stop_sink()
        finally:
            await registry.close()

    async def _replay(self, replay_config: ReplayConfig) -> int:
        source = self._source or CsvRecordSource(self.run_config.file)
        with ReplayMetricsLogger(json_path=self.run_config.metrics_jsonl) as metrics:
            self._scheduler = ReplayScheduler(
                replay_config,
                source,
                self._sink,
                time_source=self._time_source,
                sleeper=self._sleeper,
                metrics=metrics,
                on_done=self._handle_done,
                on_fatal_error=self._handle_fatal_error,
            )
            if self._shutdown_requested:
                self._scheduler.cancel()
            installed = self._add_signal_handlers()
            try:
                self.result = await self._scheduler.run()
            finally:
                self._remove_signal_handlers(installed)
                close = getattr(source, "close", None)
                if callable(close):
                    close()

        if self.result.status is ReplayStatus.FAILED:
            return EXIT_FAILURE
        if self.result.status is ReplayStatus.CANCELLED:
            log.info("Shutting down...")
        return EXIT_OK

    async def _handle_done(self) -> None:
        log.info("Replay finished (EOF). Flushing...")
        try:
            await self._sink.flush()
        except Exception as exc:
            log.warning("Flush failed: %r", exc)

    def _handle_fatal_error(self, cause: Optional[BaseException]) -> None:
        log.error("Stream error: %s", cause)

    async def _stop_sink(self) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.stop()
        except Exception as exc:
            log.warning("Error disconnecting producer: %r", exc)
        log.info("Done.")

    def _add_signal_handlers(self) -> List[signal.Signals]:
        if not self._install_signals:
            return []
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):  # pragma: no cover - non-main thread / Windows
                log.debug("Signal handler for %s unavailable", sig.name)
                continue
            installed.append(sig)
        return installed

    @staticmethod
    def _remove_signal_handlers(installed: List[signal.Signals]) -> None:
        if not installed:
            return
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)


def run_replay(settings: Settings, run_config: RunConfig) -> int:
    """Blocking helper used by the CLI."""

    return asyncio.run(ReplayDriver(settings, run_config).run())


__all__ = ["ReplayDriver", "run_replay", "EXIT_OK", "EXIT_FAILURE"]
