"""
Shared pytest fixtures for integration tests.

This module provides Redis test infrastructure using testcontainers for
automatic container management.

If testcontainers or Docker is not available, tests are automatically skipped.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from typing import Any

import pytest
import redis.asyncio as aioredis

from eventrelay.config import RedisStreamsConfig

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for integration tests."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (may require docker)"
    )
    config.addinivalue_line("markers", "redis: marks tests that require Redis")


# ============================================================================
# Testcontainers Detection
# ============================================================================

TESTCONTAINERS_AVAILABLE = False

try:
    from testcontainers.redis import RedisContainer

    TESTCONTAINERS_AVAILABLE = True
except ImportError:
    RedisContainer = None  # type: ignore[assignment, misc]


def is_docker_available() -> bool:
    """Check if Docker is available for running containers."""
    import subprocess

    try:
        result = subprocess.run(
            ["docker", "info"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, OSError):
        return False


DOCKER_AVAILABLE = is_docker_available()


# ============================================================================
# Skip Conditions
# ============================================================================

skip_if_no_redis_infra = pytest.mark.skipif(
    not (TESTCONTAINERS_AVAILABLE and DOCKER_AVAILABLE),
    reason="Redis test infrastructure not available",
)


# ============================================================================
# Redis Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def redis_container() -> Generator[Any, None, None]:
    """
    Provide Redis container for integration tests.

    Container is shared across all tests in the session for efficiency.
    """
    if not TESTCONTAINERS_AVAILABLE or not DOCKER_AVAILABLE:
        pytest.skip("Redis testcontainer not available")

    container = RedisContainer("redis:7")
    container.start()

    yield container

    container.stop()


@pytest.fixture(scope="session")
def redis_connection_url(redis_container: Any) -> str:
    """Get Redis connection URL from container."""
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}"


@pytest.fixture
async def redis_client(redis_connection_url: str) -> AsyncGenerator[aioredis.Redis, None]:
    """
    Provide async Redis client connected to container.

    Flushes database before and after each test for isolation.
    """
    client = aioredis.from_url(redis_connection_url, decode_responses=True)
    await client.flushall()

    yield client

    await client.flushall()
    await client.aclose()


@pytest.fixture
def make_config(redis_connection_url: str, redis_client: aioredis.Redis):
    """Factory for configurations pointing at the container (depends on a clean DB)."""

    def factory(**overrides: Any) -> RedisStreamsConfig:
        values: dict[str, Any] = {
            "redis_url": redis_connection_url,
            "service_name": "billing",
            "block_ms": 100,
            "retry_backoff_seconds": 0.1,
            "pending_idle_ms": 100,
            "reclaim_interval_seconds": None,
            "max_deliveries": 2,
            "enable_tracing": False,
        }
        values.update(overrides)
        return RedisStreamsConfig(**values)

    return factory
