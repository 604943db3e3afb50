"""
Tracer protocol and implementations for composition-based tracing.

A tracer is an explicitly constructed capability passed into publishers and
consumers. It opens spans, and moves W3C trace context in and out of the
plain string maps carried by envelopes, which is what links a consumer span
to the producer span across the asynchronous stream boundary.

Example:
    >>> from eventrelay.observability import create_tracer, SpanKindEnum
    >>>
    >>> tracer = create_tracer(__name__)
    >>> carrier = tracer.inject({})
    >>> parent = tracer.extract(carrier)
    >>> await tracer.with_span(
    ...     "consume order.created",
    ...     handle,
    ...     kind=SpanKindEnum.CONSUMER,
    ...     parent_context=parent,
    ... )
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.propagators.textmap import TextMapPropagator
from opentelemetry.trace import Span, Status, StatusCode
from opentelemetry.trace import SpanKind as OtelSpanKind
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from eventrelay.observability.propagation import normalize_carrier

logger = logging.getLogger(__name__)


class SpanKindEnum(Enum):
    """
    Span kinds for distributed tracing.

    Values:
        INTERNAL: Default span kind for internal operations
        PRODUCER: Appending a message to a stream
        CONSUMER: Processing a message read from a stream
        CLIENT: Outgoing requests
        SERVER: Incoming requests
    """

    INTERNAL = "internal"
    PRODUCER = "producer"
    CONSUMER = "consumer"
    CLIENT = "client"
    SERVER = "server"


_KIND_MAPPING = {
    SpanKindEnum.INTERNAL: OtelSpanKind.INTERNAL,
    SpanKindEnum.PRODUCER: OtelSpanKind.PRODUCER,
    SpanKindEnum.CONSUMER: OtelSpanKind.CONSUMER,
    SpanKindEnum.CLIENT: OtelSpanKind.CLIENT,
    SpanKindEnum.SERVER: OtelSpanKind.SERVER,
}


async def _call(fn: Callable[[Any], Any], span: Any) -> Any:
    result = fn(span)
    if inspect.isawaitable(result):
        result = await result
    return result


@runtime_checkable
class Tracer(Protocol):
    """
    Protocol for tracers injected into publishers and consumers.

    Implementations:
    - OpenTelemetryTracer: real spans and W3C propagation
    - NullTracer: tracing disabled
    - MockTracer: records spans for tests
    """

    @property
    def enabled(self) -> bool:
        """True if this tracer creates real spans."""
        ...

    def start_span(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
        context: Context | None = None,
    ) -> Span | None:
        """
        Start a span that the caller MUST end.

        Args:
            name: Span name
            kind: The span kind (PRODUCER, CONSUMER, etc.)
            attributes: Span attributes (optional)
            context: Parent context; the active context when None
        """
        ...

    def inject(self, carrier: dict[str, str]) -> dict[str, str]:
        """Write the active trace context into ``carrier`` and return it."""
        ...

    def extract(self, carrier: Mapping[str, Any] | None) -> Context:
        """Read a parent context from ``carrier``; never raises."""
        ...

    async def with_span(
        self,
        name: str,
        fn: Callable[[Span | None], Any],
        *,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        parent_context: Context | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> Any:
        """
        Run ``fn(span)`` with the span as the active context.

        Exceptions raised by ``fn`` are recorded on the span and re-raised.
        The span is ended exactly once on every exit path.
        """
        ...


class OpenTelemetryTracer:
    """
    OpenTelemetry tracer implementation.

    Args:
        tracer_name: Name for the tracer (typically __name__)
        tracer_provider: Provider to create spans from. When None the
            globally registered provider is used.
        propagator: Text map propagator; W3C trace context by default

    Example:
        >>> provider = TracerProvider()
        >>> tracer = OpenTelemetryTracer(__name__, tracer_provider=provider)
    """

    def __init__(
        self,
        tracer_name: str,
        tracer_provider: trace.TracerProvider | None = None,
        propagator: TextMapPropagator | None = None,
    ) -> None:
        self._tracer = trace.get_tracer(tracer_name, tracer_provider=tracer_provider)
        self._propagator = propagator or TraceContextTextMapPropagator()

    @property
    def enabled(self) -> bool:
        """Always returns True for OpenTelemetryTracer."""
        return True

    def start_span(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
        context: Context | None = None,
    ) -> Span:
        return self._tracer.start_span(
            name,
            context=context,
            kind=_KIND_MAPPING.get(kind, OtelSpanKind.INTERNAL),
            attributes=attributes or {},
        )

    def inject(self, carrier: dict[str, str]) -> dict[str, str]:
        self._propagator.inject(carrier)
        return carrier

    def extract(self, carrier: Mapping[str, Any] | None) -> Context:
        clean = normalize_carrier(carrier)
        if not clean:
            return Context()
        try:
            return self._propagator.extract(clean, context=Context())
        except Exception as e:
            # Trace context errors never reach message handling.
            logger.warning(f"Ignoring unreadable trace context: {e}", extra={"carrier": clean})
            return Context()

    async def with_span(
        self,
        name: str,
        fn: Callable[[Span | None], Any],
        *,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        parent_context: Context | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> Any:
        span = self.start_span(name, kind, attributes, parent_context)
        token = otel_context.attach(trace.set_span_in_context(span, parent_context))
        try:
            return await _call(fn, span)
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, f"{type(e).__name__}: {e}"))
            raise
        finally:
            otel_context.detach(token)
            span.end()


class NullTracer:
    """
    No-op tracer for when tracing is disabled.

    Creates no spans and propagates nothing; ``with_span`` still runs the
    wrapped function (with ``None`` as the span).
    """

    @property
    def enabled(self) -> bool:
        """Always returns False for NullTracer."""
        return False

    def start_span(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
        context: Context | None = None,
    ) -> None:
        return None

    def inject(self, carrier: dict[str, str]) -> dict[str, str]:
        return carrier

    def extract(self, carrier: Mapping[str, Any] | None) -> Context:
        return Context()

    async def with_span(
        self,
        name: str,
        fn: Callable[[Span | None], Any],
        *,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        parent_context: Context | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> Any:
        return await _call(fn, None)


@dataclass
class RecordedSpan:
    """A span captured by MockTracer."""

    name: str
    kind: SpanKindEnum
    attributes: dict[str, Any] | None
    parent_context: Context | None = None
    exception: BaseException | None = None


class MockTracer:
    """
    Mock tracer for testing that records span information.

    Example:
        >>> tracer = MockTracer()
        >>> await tracer.with_span("publish order.created", fn, kind=SpanKindEnum.PRODUCER)
        >>> assert tracer.span_names == ["publish order.created"]
    """

    def __init__(self, carrier: Mapping[str, str] | None = None) -> None:
        """
        Args:
            carrier: Fixed values written by ``inject`` (default: nothing)
        """
        self.spans: list[RecordedSpan] = []
        self.extracted: list[dict[str, str]] = []
        self._carrier = dict(carrier or {})

    @property
    def enabled(self) -> bool:
        """Returns True to enable attribute computation in tests."""
        return True

    @property
    def span_names(self) -> list[str]:
        """Get just the span names for easy assertions."""
        return [recorded.name for recorded in self.spans]

    def clear(self) -> None:
        """Clear recorded spans."""
        self.spans.clear()
        self.extracted.clear()

    def start_span(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
        context: Context | None = None,
    ) -> None:
        self.spans.append(RecordedSpan(name, kind, attributes, context))
        return None

    def inject(self, carrier: dict[str, str]) -> dict[str, str]:
        carrier.update(self._carrier)
        return carrier

    def extract(self, carrier: Mapping[str, Any] | None) -> Context:
        self.extracted.append(normalize_carrier(carrier))
        return Context()

    async def with_span(
        self,
        name: str,
        fn: Callable[[Span | None], Any],
        *,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        parent_context: Context | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> Any:
        recorded = RecordedSpan(name, kind, attributes, parent_context)
        self.spans.append(recorded)
        try:
            return await _call(fn, None)
        except Exception as e:
            recorded.exception = e
            raise


def create_tracer(
    name: str,
    enable_tracing: bool = True,
    tracer_provider: trace.TracerProvider | None = None,
) -> Tracer:
    """
    Factory function to create the appropriate tracer.

    Args:
        name: Tracer name (typically __name__)
        enable_tracing: Whether tracing should be enabled (default True)
        tracer_provider: Provider to bind to; the global one when None

    Returns:
        OpenTelemetryTracer if enabled, NullTracer otherwise
    """
    if enable_tracing:
        return OpenTelemetryTracer(name, tracer_provider=tracer_provider)
    return NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "SpanKindEnum",
    "create_tracer",
]
