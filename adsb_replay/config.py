"""Environment settings for Kafka/Schema Registry and file-based run configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError
from .scheduler import ReplayConfig

KAFKA_ENV_VARS = ("KAFKA_BROKERS", "KAFKA_USERNAME", "KAFKA_PASSWORD", "KAFKA_TOPIC")
REGISTRY_ENV_VARS = (
    "SCHEMA_REGISTRY_URL",
    "SCHEMA_REGISTRY_USERNAME",
    "SCHEMA_REGISTRY_PASSWORD",
)

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class KafkaSettings:
    brokers: List[str]
    topic: str
    username: Optional[str] = None
    password: Optional[str] = None
    ssl: bool = True
    client_id: str = "adsb-ops-replayer-avro"
    retries: int = 10
    retry_backoff_ms: int = 300

    @property
    def value_subject(self) -> str:
        return value_subject(self.topic)


@dataclass(frozen=True, slots=True)
class RegistrySettings:
    url: str
    username: str
    password: str


@dataclass(frozen=True, slots=True)
class Settings:
    kafka: KafkaSettings
    registry: RegistrySettings


def value_subject(topic: str) -> str:
    """Confluent's default TopicNameStrategy subject for message values."""

    return f"{topic}-value"


def _parse_bool(name: str, raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from ``env`` (defaults to ``.env`` merged into ``os.environ``)."""

    if env is None:
        load_dotenv()
        env = os.environ

    brokers = [b.strip() for b in env.get("KAFKA_BROKERS", "").split(",") if b.strip()]
    username = env.get("KAFKA_USERNAME")
    password = env.get("KAFKA_PASSWORD")
    topic = env.get("KAFKA_TOPIC")
    if not brokers or not username or not password or not topic:
        raise ConfigError("Missing Kafka env vars: " + ", ".join(KAFKA_ENV_VARS))

    sr_url = env.get("SCHEMA_REGISTRY_URL")
    sr_username = env.get("SCHEMA_REGISTRY_USERNAME")
    sr_password = env.get("SCHEMA_REGISTRY_PASSWORD")
    if not sr_url or not sr_username or not sr_password:
        raise ConfigError("Missing Schema Registry env vars: " + ", ".join(REGISTRY_ENV_VARS))

    kafka = KafkaSettings(
        brokers=brokers,
        topic=topic,
        username=username,
        password=password,
        ssl=_parse_bool("KAFKA_SSL", env.get("KAFKA_SSL", "true")),
        retries=_parse_int("KAFKA_RETRIES", env.get("KAFKA_RETRIES", "10")),
    )
    registry = RegistrySettings(url=sr_url.rstrip("/"), username=sr_username, password=sr_password)
    return Settings(kafka=kafka, registry=registry)


@dataclass(slots=True)
class RunConfig:
    file: str = "operations.csv"
    speed: float = 1.0
    max_delay_ms: Optional[float] = 10_000.0
    timestamp_field: str = "time"
    key_field: Optional[str] = "icao"
    alignment_tz: str = "UTC"
    align_to_now: bool = True
    metrics_jsonl: Optional[str] = None

    def replay_config(self) -> ReplayConfig:
        try:
            return ReplayConfig(
                speed=float(self.speed),
                max_delay_ms=None if self.max_delay_ms is None else float(self.max_delay_ms),
                timestamp_field=self.timestamp_field,
                key_field=self.key_field,
                alignment_tz=self.alignment_tz,
                align_to_now=bool(self.align_to_now),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid replay configuration: {exc}") from exc


def load_config(path: str | Path) -> RunConfig:
    """Parse a YAML (or ``.json``) run configuration into ``RunConfig``."""

    path = Path(path)
    try:
        text = path.read_text()
    except OSError as exc:
        raise ConfigError(f"cannot read config {path}: {exc}") from exc
    try:
        payload: Any = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot parse config {path}: {exc}") from exc
    payload = payload or {}
    if not isinstance(payload, dict):
        raise ConfigError(f"config {path} must contain a mapping")
    return config_from_mapping(payload)


def config_from_mapping(payload: Dict[str, Any]) -> RunConfig:
    known = {f.name for f in fields(RunConfig)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ConfigError(f"unknown run config keys: {', '.join(unknown)}")
    return RunConfig(**payload)


__all__ = [
    "KafkaSettings",
    "RegistrySettings",
    "Settings",
    "RunConfig",
    "load_settings",
    "load_config",
    "config_from_mapping",
    "value_subject",
]
