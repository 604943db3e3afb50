"""
Event publisher: appends envelopes to Redis Streams.

Each publish resolves the stream from the event type, wraps the payload in
a fresh envelope stamped with the current trace context, and appends it
with an approximate MAXLEN trim inside a PRODUCER span.

Example:
    >>> from eventrelay import EventPublisher, RedisStreamsConfig
    >>>
    >>> config = RedisStreamsConfig(redis_url="redis://localhost:6379", service_name="orders")
    >>> async with EventPublisher(config) as publisher:
    ...     message_id = await publisher.publish("order.created", {"orderId": "o1"})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from opentelemetry.trace import Span
from redis.asyncio import Redis
from redis.exceptions import RedisError

from eventrelay.bus.connection import create_redis_client
from eventrelay.codec import EnvelopeCodec
from eventrelay.config import RedisStreamsConfig
from eventrelay.envelope import create_envelope
from eventrelay.exceptions import PublishFailedError
from eventrelay.observability import Tracer, create_tracer
from eventrelay.observability.attributes import (
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_MESSAGE_ID,
    ATTR_MESSAGING_OPERATION,
    ATTR_MESSAGING_SYSTEM,
    MESSAGING_SYSTEM,
)
from eventrelay.observability.tracer import SpanKindEnum

logger = logging.getLogger(__name__)

# Broker field holding the encoded envelope.
ENVELOPE_FIELD = "data"


@dataclass
class PublisherStats:
    """
    Statistics for publish operations.

    Attributes:
        events_published: Envelopes appended successfully
        publish_failures: Appends that raised PublishFailedError
    """

    events_published: int = 0
    publish_failures: int = 0


class EventPublisher:
    """
    Publishes events to the stream derived from their event type.

    The publisher owns its Redis connection. Publishing is synchronous from
    the caller's point of view: when ``publish`` returns, the entry is in
    the stream (not necessarily seen by any consumer). Failures are raised
    as PublishFailedError and never retried here.
    """

    def __init__(
        self,
        config: RedisStreamsConfig | None = None,
        *,
        tracer: Tracer | None = None,
        redis: Redis | None = None,
        codec: EnvelopeCodec | None = None,
    ) -> None:
        """
        Initialize the publisher.

        Args:
            config: Connection and naming configuration
            tracer: Tracer capability. If not provided, one is created based
                on config.enable_tracing.
            redis: Pre-built Redis client; created from config.redis_url when None.
                The publisher closes it on close().
            codec: Envelope codec (default: camelCase JSON)
        """
        self._config = config or RedisStreamsConfig()
        self._topology = self._config.topology
        self._codec = codec or EnvelopeCodec()
        self._redis = redis
        self._connected = False
        self._stats = PublisherStats()
        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)

    @property
    def config(self) -> RedisStreamsConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def stats(self) -> PublisherStats:
        return self._stats

    async def connect(self) -> None:
        """
        Connect to Redis.

        Raises:
            RedisError: If the server cannot be reached
        """
        if self._connected:
            logger.warning("EventPublisher already connected")
            return

        if self._redis is None:
            self._redis = create_redis_client(self._config)
        await self._redis.ping()
        self._connected = True

        logger.info(
            "Connected to Redis for event publishing",
            extra={"service": self._config.service_name, "redis_url": self._config.redis_url},
        )

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._connected = False
        logger.info("Event publisher closed", extra={"service": self._config.service_name})

    async def __aenter__(self) -> EventPublisher:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def publish(
        self,
        event_type: str,
        data: Any,
        *,
        correlation_id: str | None = None,
        causation_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """
        Publish an event.

        Args:
            event_type: Dot-namespaced event type, e.g. "order.created"
            data: Any JSON-serializable payload
            correlation_id: Optional correlation id for the causal chain
            causation_id: Optional event id of the causing event
            metadata: Optional producer metadata

        Returns:
            The broker-assigned stream entry id

        Raises:
            InvalidEventTypeError: If event_type has no domain segment (before any I/O)
            PublishFailedError: If connecting or appending fails
        """
        stream = self._topology.stream_for(event_type)

        if not self._connected:
            try:
                await self.connect()
            except RedisError as e:
                self._stats.publish_failures += 1
                raise PublishFailedError(event_type, stream, str(e)) from e

        async def append(span: Span | None) -> str:
            # The producer span is active here, so consumers become its children.
            envelope = create_envelope(
                event_type,
                self._config.service_name,
                data,
                correlation_id=correlation_id,
                causation_id=causation_id,
                trace_context=self._tracer.inject({}) or None,
                metadata=metadata,
            )
            if span:
                span.set_attribute(ATTR_EVENT_ID, envelope.event_id)

            if self._redis is None:
                raise RuntimeError("Redis client not initialized")
            message_id = await self._redis.xadd(
                name=stream,
                fields={ENVELOPE_FIELD: self._codec.encode(envelope)},
                maxlen=self._config.max_len,
                approximate=True,
            )
            if span:
                span.set_attribute(ATTR_MESSAGING_MESSAGE_ID, str(message_id))

            self._stats.events_published += 1
            logger.info(
                "Event published",
                extra={
                    "event_type": event_type,
                    "event_id": envelope.event_id,
                    "stream": stream,
                    "message_id": message_id,
                },
            )
            return str(message_id)

        try:
            result: str = await self._tracer.with_span(
                f"publish {event_type}",
                append,
                kind=SpanKindEnum.PRODUCER,
                attributes={
                    ATTR_MESSAGING_SYSTEM: MESSAGING_SYSTEM,
                    ATTR_MESSAGING_DESTINATION: stream,
                    ATTR_MESSAGING_OPERATION: "publish",
                    ATTR_EVENT_TYPE: event_type,
                },
            )
        except RedisError as e:
            self._stats.publish_failures += 1
            logger.error(
                f"Failed to publish {event_type}: {e}",
                extra={"event_type": event_type, "stream": stream},
            )
            raise PublishFailedError(event_type, stream, str(e)) from e
        return result


__all__ = [
    "ENVELOPE_FIELD",
    "EventPublisher",
    "PublisherStats",
]
