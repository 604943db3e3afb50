"""
Integration tests for the publisher and consumer against a real Redis.

These tests verify actual Redis operations including:
- Publishing to the domain stream with MAXLEN trimming
- Consumer group creation and acknowledgement
- Work sharing between members of one group
- Pending message reclaim and dead-lettering
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest
import redis.asyncio as aioredis

from eventrelay import EventPublisher, RedisStreamsConfig, RedisStreamsConsumer
from tests.fixtures import FailingHandler, FlakyHandler, RecordingHandler, eventually

pytestmark = [
    pytest.mark.integration,
    pytest.mark.redis,
]

ConfigFactory = Callable[..., RedisStreamsConfig]


class TestPublishing:
    async def test_publish_appends_to_domain_stream(
        self, make_config: ConfigFactory, redis_client: aioredis.Redis
    ):
        async with EventPublisher(make_config()) as publisher:
            message_id = await publisher.publish("order.created", {"orderId": "o1"})

        entries = await redis_client.xrange("events:orders")
        assert [entry_id for entry_id, _ in entries] == [message_id]
        assert "data" in entries[0][1]

    async def test_max_len_caps_stream(
        self, make_config: ConfigFactory, redis_client: aioredis.Redis
    ):
        async with EventPublisher(make_config(max_len=10)) as publisher:
            for n in range(500):
                await publisher.publish("order.created", {"n": n})

        # Approximate trimming keeps at least max_len entries, and far fewer than published.
        length = await redis_client.xlen("events:orders")
        assert 10 <= length < 500


class TestConsuming:
    async def test_round_trip(self, make_config: ConfigFactory, redis_client: aioredis.Redis):
        consumer = RedisStreamsConsumer(make_config())
        handler = RecordingHandler()
        await consumer.subscribe("order.created", handler)

        async with EventPublisher(make_config()) as publisher:
            for n in range(3):
                await publisher.publish("order.created", {"n": n}, correlation_id="c1")

        await eventually(lambda: len(handler.received) == 3, timeout=5)
        await consumer.stop(timeout=5)

        assert [envelope.data["n"] for envelope in handler.received] == [0, 1, 2]
        assert {envelope.correlation_id for envelope in handler.received} == {"c1"}
        pending = await redis_client.xpending("events:orders", "billing")
        assert pending["pending"] == 0

    async def test_subscribe_twice_is_safe(self, make_config: ConfigFactory):
        consumer = RedisStreamsConsumer(make_config())

        await consumer.subscribe("order.created", RecordingHandler(), start=False)
        await consumer.subscribe("order.created", RecordingHandler(), start=False)

        await consumer.stop()

    async def test_group_members_share_work(
        self, make_config: ConfigFactory, redis_client: aioredis.Redis
    ):
        handlers = [RecordingHandler(), RecordingHandler()]
        consumers = [
            RedisStreamsConsumer(make_config(consumer_name=f"worker-{n}", batch_size=2))
            for n in range(2)
        ]
        for consumer, handler in zip(consumers, handlers, strict=True):
            await consumer.subscribe("order.created", handler)

        async with EventPublisher(make_config()) as publisher:
            for n in range(10):
                await publisher.publish("order.created", {"n": n})

        await eventually(lambda: sum(len(h.received) for h in handlers) == 10, timeout=5)
        await asyncio.gather(*(consumer.stop(timeout=5) for consumer in consumers))

        ids = [envelope.event_id for handler in handlers for envelope in handler.received]
        assert len(set(ids)) == 10
        pending = await redis_client.xpending("events:orders", "billing")
        assert pending["pending"] == 0

    async def test_failed_message_stays_pending(
        self, make_config: ConfigFactory, redis_client: aioredis.Redis
    ):
        consumer = RedisStreamsConsumer(make_config())
        handler = FailingHandler()
        await consumer.subscribe("order.created", handler)

        async with EventPublisher(make_config()) as publisher:
            await publisher.publish("order.created", {})

        await eventually(lambda: handler.attempts == 1, timeout=5)
        await consumer.stop(timeout=5)

        pending = await redis_client.xpending("events:orders", "billing")
        assert pending["pending"] == 1


class TestReclaim:
    async def test_reclaim_reprocesses_pending(self, make_config: ConfigFactory):
        consumer = RedisStreamsConsumer(make_config())
        handler = FlakyHandler(failures=1)
        await consumer.subscribe("order.created", handler, start=False)

        async with EventPublisher(make_config()) as publisher:
            await publisher.publish("order.created", {})

        await consumer.poll_once()
        await asyncio.sleep(0.2)
        result: dict[str, Any] = await consumer.recover_pending()
        await consumer.stop()

        assert result["reprocessed"] == 1
        assert len(handler.received) == 1

    async def test_dead_letter_after_max_deliveries(
        self, make_config: ConfigFactory, redis_client: aioredis.Redis
    ):
        consumer = RedisStreamsConsumer(make_config())
        await consumer.subscribe("order.created", FailingHandler(), start=False)

        async with EventPublisher(make_config()) as publisher:
            message_id = await publisher.publish("order.created", {})

        await consumer.poll_once()
        for _ in range(2):
            await asyncio.sleep(0.2)
            await consumer.recover_pending()
        await consumer.stop()

        dead = await redis_client.xrange("events:orders:dlq")
        assert len(dead) == 1
        assert dead[0][1]["original_message_id"] == message_id
        pending = await redis_client.xpending("events:orders", "billing")
        assert pending["pending"] == 0
