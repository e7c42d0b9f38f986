"""Kafka publish sink: encodes operation events and sends them with aiokafka."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError
from aiokafka.helpers import create_ssl_context

from .config import KafkaSettings
from .errors import EncodingError, PublishError
from .registry import AvroEncoder
from .scheduler import PublishOutcome

log = logging.getLogger(__name__)


def build_producer(settings: KafkaSettings) -> AIOKafkaProducer:
    options: Dict[str, Any] = {
        "bootstrap_servers": settings.brokers,
        "client_id": settings.client_id,
        "retry_backoff_ms": settings.retry_backoff_ms,
    }
    if settings.username and settings.password:
        options.update(
            security_protocol="SASL_SSL" if settings.ssl else "SASL_PLAINTEXT",
            sasl_mechanism="PLAIN",
            sasl_plain_username=settings.username,
            sasl_plain_password=settings.password,
        )
    elif settings.ssl:
        options["security_protocol"] = "SSL"
    if settings.ssl:
        options["ssl_context"] = create_ssl_context()
    return AIOKafkaProducer(**options)


class KafkaPublishSink:
    """Publish one payload at a time to the configured topic.

    Retriable broker errors are retried up to ``settings.retries`` times before
    the attempt is reported as a failed ``PublishOutcome``; ``publish`` itself
    never raises for Kafka or encoding failures.
    """

    def __init__(
        self,
        settings: KafkaSettings,
        encoder: AvroEncoder,
        *,
        producer: Optional[Any] = None,
        sleeper=asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.encoder = encoder
        self._producer = producer
        self._sleep = sleeper
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._producer is None:
            self._producer = build_producer(self.settings)
        await self._producer.start()
        self._started = True
        log.info(
            "Kafka producer connected to %s (topic=%s)",
            ",".join(self.settings.brokers),
            self.settings.topic,
        )

    async def publish(self, payload: Dict[str, Any], key: Optional[str]) -> PublishOutcome:
        if not self._started or self._producer is None:
            return PublishOutcome.failed(PublishError("sink has not been started"))
        try:
            value = self.encoder.encode(payload)
        except EncodingError as exc:
            return PublishOutcome.failed(exc)
        key_bytes = key.encode("utf-8") if key is not None else None

        attempt = 0
        while True:
            try:
                await self._producer.send_and_wait(self.settings.topic, value=value, key=key_bytes)
                return PublishOutcome.succeeded()
            except KafkaError as exc:
                if not getattr(exc, "retriable", False) or attempt >= self.settings.retries:
                    return PublishOutcome.failed(exc)
                attempt += 1
                log.debug(
                    "Retriable send error (attempt %d/%d): %r",
                    attempt,
                    self.settings.retries,
                    exc,
                )
                await self._sleep(self.settings.retry_backoff_ms / 1000.0)

    async def flush(self) -> None:
        if self._started and self._producer is not None:
            await self._producer.flush()

    async def stop(self) -> None:
        # Runs after a failed start too; the producer may hold open connections.
        if self._producer is None:
            return
        try:
            await self._producer.stop()
            log.info("Kafka producer disconnected")
        finally:
            self._started = False


__all__ = ["KafkaPublishSink", "build_producer"]
