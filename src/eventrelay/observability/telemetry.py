"""
Telemetry bootstrap owned by the host application.

Instead of a process-global tracer singleton, the host builds one
``Telemetry`` object, calls ``init()`` once at startup and ``shutdown()``
once at exit, and hands ``telemetry.tracer(...)`` to publishers and
consumers. No global TracerProvider is installed.

Example:
    >>> telemetry = Telemetry(TelemetryConfig.from_env(), span_exporters=[exporter])
    >>> telemetry.init()
    >>> publisher = EventPublisher(config, tracer=telemetry.tracer("orders"))
    >>> ...
    >>> telemetry.shutdown()
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor, SpanExporter

from eventrelay.config import TelemetryConfig
from eventrelay.observability.tracer import NullTracer, OpenTelemetryTracer, Tracer

logger = logging.getLogger(__name__)


class Telemetry:
    """
    Tracer provider lifecycle for one process.

    Args:
        config: Service identity and tracing switch
        span_exporters: Exporters receiving finished spans
        batch: Export through BatchSpanProcessor (default) or
            SimpleSpanProcessor (synchronous, handy in tests)
    """

    def __init__(
        self,
        config: TelemetryConfig,
        span_exporters: Sequence[SpanExporter] = (),
        *,
        batch: bool = True,
    ) -> None:
        self._config = config
        self._exporters = list(span_exporters)
        self._batch = batch
        self._provider: TracerProvider | None = None
        self._shut_down = False

    @property
    def config(self) -> TelemetryConfig:
        return self._config

    @property
    def provider(self) -> TracerProvider | None:
        """The SDK provider, or None before init() or when tracing is disabled."""
        return self._provider

    def resource(self) -> Resource:
        """Resource attributes describing this service."""
        attributes = {
            "service.name": self._config.service_name,
            "service.version": self._config.service_version,
            "deployment.environment": self._config.environment,
        }
        if self._config.namespace:
            attributes["service.namespace"] = self._config.namespace
        return Resource.create(attributes)

    def init(self) -> None:
        """Create the tracer provider. Calling it again is a no-op."""
        if self._shut_down:
            raise RuntimeError("Telemetry has been shut down")
        if self._provider is not None or not self._config.enable_tracing:
            return

        provider = TracerProvider(resource=self.resource())
        for exporter in self._exporters:
            processor = BatchSpanProcessor(exporter) if self._batch else SimpleSpanProcessor(exporter)
            provider.add_span_processor(processor)
        self._provider = provider

        logger.info(
            "Telemetry initialised",
            extra={
                "service": self._config.service_name,
                "version": self._config.service_version,
                "exporters": len(self._exporters),
            },
        )

    def tracer(self, name: str) -> Tracer:
        """
        Tracer bound to this provider.

        Returns a NullTracer when tracing is disabled.

        Raises:
            RuntimeError: If tracing is enabled but init() was not called
        """
        if not self._config.enable_tracing:
            return NullTracer()
        if self._provider is None:
            raise RuntimeError("Telemetry.init() must be called before requesting a tracer")
        return OpenTelemetryTracer(name, tracer_provider=self._provider)

    def shutdown(self) -> None:
        """Flush and shut down the provider. Only the first call has an effect."""
        if self._shut_down:
            return
        self._shut_down = True
        if self._provider is not None:
            self._provider.shutdown()
            logger.info("Telemetry shut down", extra={"service": self._config.service_name})


__all__ = ["Telemetry"]
