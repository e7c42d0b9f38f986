from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from aiokafka.errors import KafkaError

from adsb_replay.config import KafkaSettings
from adsb_replay.registry import AvroEncoder, decode
from adsb_replay.sink import KafkaPublishSink
from adsb_replay.transform import to_operation_event

from helpers import FakeSleeper, row


class TransientError(KafkaError):
    retriable = True


class FatalError(KafkaError):
    retriable = False


class FakeProducer:
    def __init__(self, failures: Optional[List[BaseException]] = None) -> None:
        self.failures = list(failures or [])
        self.sent: List[tuple[str, bytes, Optional[bytes]]] = []
        self.started = False
        self.flushed = 0
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def send_and_wait(self, topic: str, value: bytes = None, key: Any = None) -> None:
        if self.failures:
            raise self.failures.pop(0)
        self.sent.append((topic, value, key))

    async def flush(self) -> None:
        self.flushed += 1

    async def stop(self) -> None:
        self.stopped = True


def _settings(retries: int = 3) -> KafkaSettings:
    return KafkaSettings(brokers=["broker:9092"], topic="adsb-ops", retries=retries, retry_backoff_ms=50)


def _payload():
    return to_operation_event(row("2025-11-01 00:00:04"), 1_700_000_000_000)


def test_publish_encodes_value_and_key() -> None:
    producer = FakeProducer()
    sink = KafkaPublishSink(_settings(), AvroEncoder(9), producer=producer)

    async def scenario():
        await sink.start()
        outcome = await sink.publish(_payload(), "A1B2C3")
        await sink.flush()
        await sink.stop()
        return outcome

    outcome = asyncio.run(scenario())

    assert outcome.ok
    topic, value, key = producer.sent[0]
    assert topic == "adsb-ops"
    assert key == b"A1B2C3"
    assert decode(value)[0] == 9
    assert producer.flushed == 1
    assert producer.stopped
    assert not sink.started


def test_publish_without_key_sends_none() -> None:
    producer = FakeProducer()
    sink = KafkaPublishSink(_settings(), AvroEncoder(9), producer=producer)

    async def scenario():
        await sink.start()
        return await sink.publish(_payload(), None)

    assert asyncio.run(scenario()).ok
    assert producer.sent[0][2] is None


def test_retriable_errors_are_retried_with_backoff() -> None:
    producer = FakeProducer([TransientError(), TransientError()])
    sleeper = FakeSleeper()
    sink = KafkaPublishSink(_settings(retries=3), AvroEncoder(9), producer=producer, sleeper=sleeper)

    async def scenario():
        await sink.start()
        return await sink.publish(_payload(), "A1B2C3")

    assert asyncio.run(scenario()).ok
    assert len(producer.sent) == 1
    assert sleeper.waits_ms == [50.0, 50.0]


def test_retries_are_bounded() -> None:
    producer = FakeProducer([TransientError() for _ in range(5)])
    sleeper = FakeSleeper()
    sink = KafkaPublishSink(_settings(retries=2), AvroEncoder(9), producer=producer, sleeper=sleeper)

    async def scenario():
        await sink.start()
        return await sink.publish(_payload(), "A1B2C3")

    outcome = asyncio.run(scenario())
    assert not outcome.ok
    assert isinstance(outcome.error, TransientError)
    assert len(sleeper.waits_ms) == 2
    assert producer.sent == []


def test_non_retriable_error_fails_immediately() -> None:
    producer = FakeProducer([FatalError()])
    sleeper = FakeSleeper()
    sink = KafkaPublishSink(_settings(), AvroEncoder(9), producer=producer, sleeper=sleeper)

    async def scenario():
        await sink.start()
        return await sink.publish(_payload(), "A1B2C3")

    outcome = asyncio.run(scenario())
    assert isinstance(outcome.error, FatalError)
    assert sleeper.waits_ms == []


def test_publish_before_start_fails_without_sending() -> None:
    producer = FakeProducer()
    sink = KafkaPublishSink(_settings(), AvroEncoder(9), producer=producer)

    outcome = asyncio.run(sink.publish(_payload(), "A1B2C3"))

    assert not outcome.ok
    assert producer.sent == []


def test_encoding_failure_is_reported_as_outcome() -> None:
    producer = FakeProducer()
    sink = KafkaPublishSink(_settings(), AvroEncoder(9), producer=producer)
    payload = _payload()
    payload["operation"] = "taxi"

    async def scenario():
        await sink.start()
        return await sink.publish(payload, "A1B2C3")

    outcome = asyncio.run(scenario())
    assert not outcome.ok
    assert producer.sent == []


def test_stop_closes_producer_after_failed_start() -> None:
    class FailingStartProducer(FakeProducer):
        async def start(self) -> None:
            raise OSError("broker unreachable")

    producer = FailingStartProducer()
    sink = KafkaPublishSink(_settings(), AvroEncoder(9), producer=producer)

    async def scenario():
        try:
            await sink.start()
        except OSError:
            pass
        await sink.stop()

    asyncio.run(scenario())

    assert not sink.started
    assert producer.stopped
