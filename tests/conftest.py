"""
Shared pytest fixtures for the eventrelay library tests.

This module provides:
- Configuration fixtures (config)
- Broker fixtures (streams, mock_redis)
- OpenTelemetry fixtures (span_exporter, tracer_provider, otel_tracer)
- Envelope fixtures (sample_envelope)

All fixtures are function scoped; nothing here touches global OTel state.
"""

from __future__ import annotations

from collections.abc import Generator
from unittest.mock import AsyncMock

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from eventrelay.config import RedisStreamsConfig
from eventrelay.envelope import EventEnvelope, create_envelope
from eventrelay.observability import OpenTelemetryTracer
from tests.fixtures import InMemoryStreams

# ============================================================================
# Configuration
# ============================================================================


@pytest.fixture
def config() -> RedisStreamsConfig:
    """Fast-polling configuration with tracing and automatic reclaim off."""
    return RedisStreamsConfig(
        redis_url="redis://localhost:6379",
        service_name="billing",
        consumer_name="test-consumer",
        batch_size=10,
        block_ms=20,
        retry_backoff_seconds=0.01,
        pending_idle_ms=1000,
        reclaim_interval_seconds=None,
        max_deliveries=3,
        enable_tracing=False,
    )


# ============================================================================
# Broker
# ============================================================================


@pytest.fixture
def streams() -> InMemoryStreams:
    """Shared in-memory broker."""
    return InMemoryStreams()


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Create a mock Redis client."""
    mock = AsyncMock()
    mock.ping = AsyncMock(return_value=True)
    mock.xgroup_create = AsyncMock(return_value=True)
    mock.xadd = AsyncMock(return_value="1700000000000-0")
    mock.xreadgroup = AsyncMock(return_value=[])
    mock.xack = AsyncMock(return_value=1)
    mock.xpending_range = AsyncMock(return_value=[])
    mock.xclaim = AsyncMock(return_value=[])
    mock.aclose = AsyncMock()
    return mock


# ============================================================================
# OpenTelemetry
# ============================================================================


@pytest.fixture
def span_exporter() -> Generator[InMemorySpanExporter, None, None]:
    """In-memory exporter capturing finished spans."""
    exporter = InMemorySpanExporter()
    yield exporter
    exporter.clear()


@pytest.fixture
def tracer_provider(span_exporter: InMemorySpanExporter) -> Generator[TracerProvider, None, None]:
    """Private SDK provider exporting synchronously to span_exporter."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider
    provider.shutdown()


@pytest.fixture
def otel_tracer(tracer_provider: TracerProvider) -> OpenTelemetryTracer:
    """Tracer bound to the private provider."""
    return OpenTelemetryTracer("tests", tracer_provider=tracer_provider)


# ============================================================================
# Envelopes
# ============================================================================


@pytest.fixture
def sample_envelope() -> EventEnvelope:
    """A fully populated envelope."""
    return create_envelope(
        "order.created",
        "order-service",
        {"orderId": "o-1", "total": 42},
        correlation_id="corr-1",
        causation_id="cause-1",
        trace_context={"traceparent": "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01"},
        metadata={"tenant": "acme"},
    )
