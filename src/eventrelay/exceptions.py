"""Library exceptions for the eventrelay package."""

from __future__ import annotations


class EventRelayError(Exception):
    """Base exception for eventrelay library."""

    pass


class InvalidEventTypeError(EventRelayError, ValueError):
    """Raised when an event type cannot be mapped to a stream."""

    def __init__(self, event_type: object, reason: str) -> None:
        self.event_type = event_type
        self.reason = reason
        super().__init__(f"Invalid event type {event_type!r}: {reason}")


class MalformedEnvelopeError(EventRelayError):
    """Raised when a delivered message cannot be turned into an envelope.

    Retrying cannot fix a structurally invalid payload, so consumers
    acknowledge and drop these messages.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Malformed event envelope: {reason}")


class PublishFailedError(EventRelayError):
    """Raised when appending an envelope to a stream fails."""

    def __init__(self, event_type: str, stream: str, message: str) -> None:
        self.event_type = event_type
        self.stream = stream
        super().__init__(f"Failed to publish {event_type} to {stream}: {message}")


class GroupCreationFailedError(EventRelayError):
    """Raised when a consumer group cannot be created for a reason other than it existing."""

    def __init__(self, stream: str, group: str, message: str) -> None:
        self.stream = stream
        self.group = group
        super().__init__(f"Failed to create consumer group {group} on {stream}: {message}")


class HandlerFailedError(EventRelayError):
    """Raised (and logged) when an application handler fails on a delivered event."""

    def __init__(self, event_type: str, event_id: str, handler_name: str, message: str) -> None:
        self.event_type = event_type
        self.event_id = event_id
        self.handler_name = handler_name
        super().__init__(
            f"Handler {handler_name} failed on {event_type} event {event_id}: {message}"
        )


class ConsumerStoppedError(EventRelayError):
    """Raised when a stopped consumer is asked to subscribe or start again."""

    pass


__all__ = [
    "EventRelayError",
    "InvalidEventTypeError",
    "MalformedEnvelopeError",
    "PublishFailedError",
    "GroupCreationFailedError",
    "HandlerFailedError",
    "ConsumerStoppedError",
]
