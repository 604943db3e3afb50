"""Redis client construction shared by publishers and consumers."""

from __future__ import annotations

import redis.asyncio as aioredis
from redis.asyncio import Redis

from eventrelay.config import RedisStreamsConfig


def create_redis_client(config: RedisStreamsConfig) -> Redis:
    """
    Create an asyncio Redis client for a publisher or consumer.

    Each publisher and consumer owns its own client; clients are never
    shared between instances. Responses are decoded to ``str``.
    """
    return aioredis.from_url(  # type: ignore[no-untyped-call, no-any-return]
        config.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=config.socket_timeout,
        socket_connect_timeout=config.socket_connect_timeout,
    )


__all__ = ["create_redis_client"]
