"""
Stream topology: event type -> (stream, consumer group).

Publishers and consumers share this one rule, so a producer and a consumer
configured with the same prefix always agree on the physical stream:

    "order.created"  ->  "events:orders"

The domain (text before the first dot) is pluralised by appending "s".
Words already ending in "s" are not special-cased; changing the rule
would move existing traffic to new streams.
"""

from __future__ import annotations

from dataclasses import dataclass

from eventrelay.exceptions import InvalidEventTypeError


@dataclass(frozen=True)
class StreamRoute:
    """Physical stream and consumer group for an event type."""

    stream: str
    group: str


@dataclass(frozen=True)
class StreamTopology:
    """
    Pure mapping from event types to streams and consumer groups.

    Attributes:
        prefix: Stream name prefix (default: "events")
        consumer_group: Group name used by consumers of this service

    Example:
        >>> topology = StreamTopology(prefix="events", consumer_group="billing")
        >>> topology.resolve("order.created")
        StreamRoute(stream='events:orders', group='billing')
    """

    prefix: str = "events"
    consumer_group: str = "default"

    def domain_of(self, event_type: str) -> str:
        """
        Return the domain segment of an event type.

        Raises:
            InvalidEventTypeError: If the event type is not ``domain.action``
        """
        if not isinstance(event_type, str) or not event_type:
            raise InvalidEventTypeError(event_type, "must be a non-empty string")
        domain, sep, action = event_type.partition(".")
        if not sep:
            raise InvalidEventTypeError(event_type, "missing '.' between domain and action")
        if not domain:
            raise InvalidEventTypeError(event_type, "empty domain segment")
        if not action:
            raise InvalidEventTypeError(event_type, "empty action segment")
        return domain

    def stream_for(self, event_type: str) -> str:
        """Physical stream name for an event type."""
        return f"{self.prefix}:{self.domain_of(event_type)}s"

    def resolve(self, event_type: str) -> StreamRoute:
        """Stream and consumer group for an event type."""
        return StreamRoute(stream=self.stream_for(event_type), group=self.consumer_group)


__all__ = [
    "StreamRoute",
    "StreamTopology",
]
