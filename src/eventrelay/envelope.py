"""
The canonical event envelope.

Envelopes are immutable records wrapping one domain event for transport.
Field names are snake_case in Python and camelCase on the wire by default;
the codec accepts both dialects, since producers across the ecosystem are
written in different languages.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ENVELOPE_VERSION = "1.0.0"


class EventEnvelope(BaseModel):
    """
    Transport wrapper carrying event metadata and an opaque payload.

    Attributes:
        event_id: Globally unique identifier, assigned at publish time
        event_type: Dot-namespaced type (``domain.action``), drives stream routing
        timestamp: Producer clock at creation (UTC)
        source: Name of the producing service
        version: Envelope schema version
        correlation_id: Identifier shared by a causal chain of events
        causation_id: event_id of the event that caused this one
        trace_context: W3C trace carrier (``traceparent``, ``tracestate``)
        metadata: Producer-defined side information
        data: Event payload; its schema belongs to the event type's producer

    Example:
        >>> envelope = create_envelope("order.created", "order-service", {"orderId": "o1"})
        >>> envelope.event_type
        'order.created'
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    event_id: str = Field(min_length=1)
    event_type: str = Field(min_length=1)
    timestamp: datetime | None = None
    source: str | None = None
    version: str | None = None
    correlation_id: str | None = None
    causation_id: str | None = None
    trace_context: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    data: Any = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # Producers that drop the offset still mean UTC.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def domain(self) -> str:
        """Domain segment of the event type (text before the first dot)."""
        return self.event_type.split(".", 1)[0]


def create_envelope(
    event_type: str,
    source: str,
    data: Any,
    *,
    correlation_id: str | None = None,
    causation_id: str | None = None,
    trace_context: dict[str, str] | None = None,
    metadata: dict[str, Any] | None = None,
) -> EventEnvelope:
    """
    Create a new envelope with a fresh event id and UTC timestamp.

    Args:
        event_type: Dot-namespaced event type
        source: Producing service name
        data: Event payload (not validated)
        correlation_id: Optional correlation identifier
        causation_id: Optional id of the causing event
        trace_context: Optional W3C trace carrier
        metadata: Optional producer metadata

    Returns:
        The new, immutable envelope
    """
    return EventEnvelope(
        event_id=str(uuid4()),
        event_type=event_type,
        timestamp=datetime.now(UTC),
        source=source,
        version=ENVELOPE_VERSION,
        correlation_id=correlation_id,
        causation_id=causation_id,
        trace_context=trace_context,
        metadata=metadata,
        data=data,
    )


__all__ = [
    "ENVELOPE_VERSION",
    "EventEnvelope",
    "create_envelope",
]
