"""
eventrelay - Event messaging over Redis Streams for Python services.

This library provides:
- A versioned event envelope that reads camelCase and snake_case producers
- An event publisher that routes each event type to its domain stream
- A consumer-group based consumer with at-least-once delivery, reclaim
  of stuck messages and dead-lettering
- W3C trace context propagation between producer and consumer spans
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("eventrelay")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from eventrelay.bus import (
    ConsumerState,
    ConsumerStats,
    EventPublisher,
    PublisherStats,
    RedisStreamsConsumer,
)
from eventrelay.codec import EnvelopeCodec
from eventrelay.config import RedisStreamsConfig, TelemetryConfig
from eventrelay.envelope import ENVELOPE_VERSION, EventEnvelope, create_envelope
from eventrelay.exceptions import (
    ConsumerStoppedError,
    EventRelayError,
    GroupCreationFailedError,
    HandlerFailedError,
    InvalidEventTypeError,
    MalformedEnvelopeError,
    PublishFailedError,
)
from eventrelay.handlers import EventHandler, EventHandlerFunc, HandlerAdapter
from eventrelay.observability import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Telemetry,
    Tracer,
    create_tracer,
)
from eventrelay.topology import StreamRoute, StreamTopology

__all__ = [
    "__version__",
    # Envelope
    "ENVELOPE_VERSION",
    "EventEnvelope",
    "EnvelopeCodec",
    "create_envelope",
    # Topology
    "StreamRoute",
    "StreamTopology",
    # Configuration
    "RedisStreamsConfig",
    "TelemetryConfig",
    # Bus
    "EventPublisher",
    "PublisherStats",
    "RedisStreamsConsumer",
    "ConsumerState",
    "ConsumerStats",
    # Handlers
    "EventHandler",
    "EventHandlerFunc",
    "HandlerAdapter",
    # Observability
    "Tracer",
    "OpenTelemetryTracer",
    "NullTracer",
    "MockTracer",
    "SpanKindEnum",
    "Telemetry",
    "create_tracer",
    # Exceptions
    "EventRelayError",
    "InvalidEventTypeError",
    "MalformedEnvelopeError",
    "PublishFailedError",
    "GroupCreationFailedError",
    "HandlerFailedError",
    "ConsumerStoppedError",
]
