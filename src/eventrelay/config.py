"""
Configuration classes for eventrelay.

This module provides:
- RedisStreamsConfig: Broker connection, stream naming and consumer tuning
- TelemetryConfig: Service identity for the tracer provider

Both can be built directly or from environment variables with ``from_env()``.
"""

from __future__ import annotations

import os
import socket
import uuid
from collections.abc import Mapping
from dataclasses import dataclass

from eventrelay.topology import StreamTopology

_TRUE = {"1", "true", "yes", "on"}


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE


@dataclass
class RedisStreamsConfig:
    """
    Configuration for publishers and consumers.

    Attributes:
        redis_url: Redis connection URL (e.g., "redis://localhost:6379")
        service_name: Name of this service; the envelope source and the
            default consumer group
        stream_prefix: Prefix for stream names (default: "events")
        consumer_group: Consumer group name (default: service_name)
        consumer_name: Name of this consumer instance (auto-generated if None)
        batch_size: Maximum entries to read per iteration (default: 10)
        block_ms: Milliseconds to block waiting for new entries (default: 5000)
        max_len: Approximate stream length cap applied on append (default: 10000)
        retry_backoff_seconds: Pause after a transport error in the poll loop
        pending_idle_ms: Minimum idle time before a pending entry is reclaimed
        reclaim_interval_seconds: How often the poll loop runs a reclaim pass
            (None or 0 disables automatic reclaim)
        max_deliveries: Deliveries after which a pending entry is dead-lettered
        enable_dead_letter: Copy exhausted entries to the dead-letter stream
        dead_letter_suffix: Suffix appended to a stream name for its dead-letter stream
        socket_timeout: Socket timeout in seconds (None: wait indefinitely,
            required for blocking reads longer than any fixed timeout)
        socket_connect_timeout: Socket connection timeout in seconds
        enable_tracing: Enable OpenTelemetry tracing (default: True)
    """

    redis_url: str = "redis://localhost:6379"
    service_name: str = "unknown-service"
    stream_prefix: str = "events"
    consumer_group: str | None = None
    consumer_name: str | None = None
    batch_size: int = 10
    block_ms: int = 5000
    max_len: int = 10000
    retry_backoff_seconds: float = 5.0
    pending_idle_ms: int = 60000
    reclaim_interval_seconds: float | None = 60.0
    max_deliveries: int = 5
    enable_dead_letter: bool = True
    dead_letter_suffix: str = ":dlq"
    socket_timeout: float | None = None
    socket_connect_timeout: float | None = 5.0
    enable_tracing: bool = True

    def __post_init__(self) -> None:
        """Validate values and fill in derived names."""
        if not self.service_name:
            raise ValueError("service_name must not be empty")
        if not self.stream_prefix:
            raise ValueError("stream_prefix must not be empty")
        for name in ("batch_size", "block_ms", "max_len", "max_deliveries"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must not be negative")
        if self.pending_idle_ms < 0:
            raise ValueError("pending_idle_ms must not be negative")

        if self.consumer_group is None:
            self.consumer_group = self.service_name
        if self.consumer_name is None:
            hostname = socket.gethostname()
            unique_id = uuid.uuid4().hex[:8]
            self.consumer_name = f"{self.service_name}-{hostname}-{unique_id}"

    @property
    def group(self) -> str:
        """The consumer group (never None after construction)."""
        return self.consumer_group or self.service_name

    @property
    def topology(self) -> StreamTopology:
        """Stream topology shared by publisher and consumer."""
        return StreamTopology(prefix=self.stream_prefix, consumer_group=self.group)

    @property
    def reclaim_enabled(self) -> bool:
        return bool(self.reclaim_interval_seconds)

    def dead_letter_stream(self, stream: str) -> str:
        """Dead-letter stream name for a stream."""
        return f"{stream}{self.dead_letter_suffix}"

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: object,
    ) -> RedisStreamsConfig:
        """
        Build a configuration from environment variables.

        Variables:
            REDIS_STREAMS_URL (falls back to REDIS_URL), OTEL_SERVICE_NAME,
            EVENT_STREAM_PREFIX, EVENT_CONSUMER_GROUP, EVENT_BATCH_SIZE,
            EVENT_BLOCK_MS, EVENT_STREAM_MAXLEN, OTEL_TRACING_ENABLED

        Args:
            environ: Mapping to read from (default: os.environ)
            **overrides: Explicit values that win over the environment
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        url = env.get("REDIS_STREAMS_URL") or env.get("REDIS_URL")
        if url:
            values["redis_url"] = url
        if env.get("OTEL_SERVICE_NAME"):
            values["service_name"] = env["OTEL_SERVICE_NAME"]
        if env.get("EVENT_STREAM_PREFIX"):
            values["stream_prefix"] = env["EVENT_STREAM_PREFIX"]
        if env.get("EVENT_CONSUMER_GROUP"):
            values["consumer_group"] = env["EVENT_CONSUMER_GROUP"]
        for key, name in (
            ("EVENT_BATCH_SIZE", "batch_size"),
            ("EVENT_BLOCK_MS", "block_ms"),
            ("EVENT_STREAM_MAXLEN", "max_len"),
        ):
            if env.get(key):
                values[name] = int(env[key])
        values["enable_tracing"] = _env_bool(env.get("OTEL_TRACING_ENABLED"), True)

        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]


@dataclass(frozen=True)
class TelemetryConfig:
    """
    Service identity for telemetry.

    Attributes:
        service_name: Reported as service.name
        service_version: Reported as service.version
        environment: Reported as deployment.environment
        namespace: Reported as service.namespace when set
        enable_tracing: When False, Telemetry hands out NullTracers
    """

    service_name: str = "unknown-service"
    service_version: str = "1.0.0"
    environment: str = "development"
    namespace: str | None = None
    enable_tracing: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> TelemetryConfig:
        """
        Build from OTEL_SERVICE_NAME, SERVICE_VERSION, ENVIRONMENT,
        SERVICE_NAMESPACE and OTEL_TRACING_ENABLED.
        """
        env = os.environ if environ is None else environ
        return cls(
            service_name=env.get("OTEL_SERVICE_NAME") or cls.service_name,
            service_version=env.get("SERVICE_VERSION") or cls.service_version,
            environment=env.get("ENVIRONMENT") or cls.environment,
            namespace=env.get("SERVICE_NAMESPACE") or None,
            enable_tracing=_env_bool(env.get("OTEL_TRACING_ENABLED"), True),
        )


__all__ = [
    "RedisStreamsConfig",
    "TelemetryConfig",
]
