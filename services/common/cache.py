"""Async Redis helpers for cached read models."""

from __future__ import annotations

from typing import Dict

from redis.asyncio import Redis

from .config import ServiceSettings

RedisType = Redis

_CLIENTS: Dict[str, RedisType] = {}


def get_redis_client(redis_url: str) -> RedisType:
    """Return a cached Redis client for the given URL."""

    if redis_url not in _CLIENTS:
        _CLIENTS[redis_url] = Redis.from_url(redis_url, decode_responses=True)
    return _CLIENTS[redis_url]


def resolve_redis(settings: ServiceSettings) -> RedisType | None:
    """Return a Redis client, or None when caching is not configured."""

    if not settings.redis_url or settings.overview_cache_ttl_seconds <= 0:
        return None
    return get_redis_client(settings.redis_url)


async def close_redis_connections() -> None:
    """Close all cached Redis connections (used for shutdown/tests)."""

    for redis in _CLIENTS.values():
        await redis.aclose()
    _CLIENTS.clear()
