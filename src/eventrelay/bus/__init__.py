"""Publisher and consumer for events carried on Redis Streams.

Available components:
- EventPublisher: Appends envelopes to the stream of their event type
- RedisStreamsConsumer: Consumer-group based reader with at-least-once delivery

Example:
    >>> from eventrelay.bus import EventPublisher, RedisStreamsConsumer
    >>> from eventrelay.config import RedisStreamsConfig
    >>>
    >>> config = RedisStreamsConfig(
    ...     redis_url="redis://localhost:6379",
    ...     service_name="billing",
    ... )
    >>> consumer = RedisStreamsConsumer(config)
    >>> await consumer.subscribe("order.created", handle_order_created)
"""

from eventrelay.bus.connection import create_redis_client
from eventrelay.bus.consumer import ConsumerState, ConsumerStats, RedisStreamsConsumer
from eventrelay.bus.publisher import ENVELOPE_FIELD, EventPublisher, PublisherStats

__all__ = [
    # Publishing
    "EventPublisher",
    "PublisherStats",
    "ENVELOPE_FIELD",
    # Consuming
    "RedisStreamsConsumer",
    "ConsumerState",
    "ConsumerStats",
    # Connection
    "create_redis_client",
]
