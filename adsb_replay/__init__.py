"""Timed replay of recorded ADS-B operation events into Kafka."""

from .errors import (
    ConfigError,
    EncodingError,
    PublishError,
    RegistryError,
    ReplayError,
    SourceError,
)
from .timing import compute_delay_ms, parse_record_time, time_of_day_ms
from .source import END_OF_STREAM, CsvRecordSource, IterableRecordSource, RecordSource
from .transform import record_key, to_operation_event
from .metrics import ReplayMetricsLogger, ReplayStats
from .schema import OPERATION_EVENT_SCHEMA
from .scheduler import (
    PublishOutcome,
    PumpState,
    ReplayClock,
    ReplayConfig,
    ReplayResult,
    ReplayScheduler,
    ReplayStatus,
)
from .config import RunConfig, Settings, load_config, load_settings
from .registry import AvroEncoder, SchemaRegistryClient
from .sink import KafkaPublishSink
from .driver import ReplayDriver, run_replay
from .reports import ReplaySummary, load_run, summarise

__all__ = [
    "ConfigError",
    "EncodingError",
    "PublishError",
    "RegistryError",
    "ReplayError",
    "SourceError",
    "compute_delay_ms",
    "parse_record_time",
    "time_of_day_ms",
    "END_OF_STREAM",
    "CsvRecordSource",
    "IterableRecordSource",
    "RecordSource",
    "record_key",
    "to_operation_event",
    "OPERATION_EVENT_SCHEMA",
    "ReplayMetricsLogger",
    "ReplayStats",
    "PublishOutcome",
    "PumpState",
    "ReplayClock",
    "ReplayConfig",
    "ReplayResult",
    "ReplayScheduler",
    "ReplayStatus",
    "RunConfig",
    "Settings",
    "load_config",
    "load_settings",
    "AvroEncoder",
    "SchemaRegistryClient",
    "KafkaPublishSink",
    "ReplayDriver",
    "run_replay",
    "ReplaySummary",
    "load_run",
    "summarise",
]
