"""
Observability utilities for eventrelay.

This module provides the injectable tracer capability, W3C trace carrier
helpers, the telemetry bootstrap and standard span attribute names.

Example:
    >>> from eventrelay.observability import Telemetry, TelemetryConfig
    >>>
    >>> telemetry = Telemetry(TelemetryConfig(service_name="orders"))
    >>> telemetry.init()
    >>> tracer = telemetry.tracer(__name__)
"""

from eventrelay.config import TelemetryConfig
from eventrelay.observability.attributes import (
    ATTR_EVENT_ID,
    ATTR_EVENT_SOURCE,
    ATTR_EVENT_TYPE,
    ATTR_HANDLER_NAME,
    ATTR_HANDLER_SUCCESS,
    ATTR_MESSAGING_CONSUMER_GROUP,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_MESSAGE_ID,
    ATTR_MESSAGING_OPERATION,
    ATTR_MESSAGING_SYSTEM,
    MESSAGING_SYSTEM,
)
from eventrelay.observability.propagation import (
    TRACEPARENT,
    TRACESTATE,
    legacy_traceparent,
    normalize_carrier,
)
from eventrelay.observability.telemetry import Telemetry
from eventrelay.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    SpanKindEnum,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer (composition-based API)
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "SpanKindEnum",
    "create_tracer",
    # Bootstrap
    "Telemetry",
    "TelemetryConfig",
    # Propagation
    "TRACEPARENT",
    "TRACESTATE",
    "legacy_traceparent",
    "normalize_carrier",
    # Attributes
    "MESSAGING_SYSTEM",
    "ATTR_MESSAGING_SYSTEM",
    "ATTR_MESSAGING_DESTINATION",
    "ATTR_MESSAGING_OPERATION",
    "ATTR_MESSAGING_MESSAGE_ID",
    "ATTR_MESSAGING_CONSUMER_GROUP",
    "ATTR_EVENT_TYPE",
    "ATTR_EVENT_ID",
    "ATTR_EVENT_SOURCE",
    "ATTR_HANDLER_NAME",
    "ATTR_HANDLER_SUCCESS",
]
