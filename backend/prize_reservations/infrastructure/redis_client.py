"""
Store construction from configuration.

The backend is chosen once at process startup and handed to every component
explicitly; there is no module-level client singleton.
"""

import redis.asyncio as redis
from upstash_redis.asyncio import Redis as UpstashRedis

from prize_reservations.core.config import Settings
from prize_reservations.infrastructure.store import KeyValueStore, RedisStore, UpstashStore


def create_redis_client(settings: Settings) -> redis.Redis:
    """Redis client with connection pooling."""
    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30,
    )


def create_store(settings: Settings) -> KeyValueStore:
    """
    Build the configured store.

    STORE_BACKEND:
    - "redis": local / single-node Redis at REDIS_URL
    - "upstash": managed Upstash REST endpoint
    """
    backend = settings.STORE_BACKEND.lower()

    if backend == "upstash":
        if not settings.UPSTASH_REDIS_REST_URL or not settings.UPSTASH_REDIS_REST_TOKEN:
            raise ValueError(
                "UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN are required "
                "when STORE_BACKEND=upstash"
            )
        return UpstashStore(
            UpstashRedis(
                url=settings.UPSTASH_REDIS_REST_URL,
                token=settings.UPSTASH_REDIS_REST_TOKEN,
            )
        )

    if backend == "redis":
        return RedisStore(create_redis_client(settings))

    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")
