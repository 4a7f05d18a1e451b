"""
Uniform key-value store interface over the two supported backends.

KEY-VALUE STORE ADAPTER
=======================

Backends:
  - RedisStore:   redis.asyncio client (local / single-node Redis)
  - UpstashStore: upstash_redis REST client (managed remote Redis)

Nothing above this module knows which backend is active. Values are plain
strings; callers serialize structured data themselves.

Atomicity:
  set_if_not_exists() is the only primitive the lock manager relies on for
  mutual exclusion. Both backends implement it as a single server-side
  command (SET NX / SETNX), never as a client-side check-then-set.

Pipelines:
  pipeline() batches set/delete commands into one network round trip. The
  batch is NOT transactional across keys; a partially applied batch is
  acceptable because every key written by this service carries its own TTL.

Failures:
  Any backend error is re-raised as StoreUnavailableError. There is no
  fail-open path: a store outage must never be reported as a successful
  reservation.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from upstash_redis.asyncio import Redis as UpstashRedis

from prize_reservations.core.exceptions import StoreUnavailableError
from prize_reservations.core.logging import get_logger
from prize_reservations.core.metrics import record_store_error

logger = get_logger(__name__)


class StoreBatch(ABC):
    """Batch of set/delete commands submitted together."""

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> "StoreBatch":
        pass

    @abstractmethod
    def delete(self, key: str) -> "StoreBatch":
        pass

    @abstractmethod
    async def execute(self) -> None:
        pass


class KeyValueStore(ABC):
    """
    Interface for key-value store backends.

    Implementations:
    - RedisStore: redis-py asyncio client
    - UpstashStore: Upstash REST client
    """

    #: Exception types that indicate a backend failure
    backend_errors: tuple[type[BaseException], ...] = (Exception,)

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except self.backend_errors as e:
            record_store_error(operation)
            logger.error("store_operation_failed", operation=operation, error=str(e))
            raise StoreUnavailableError(operation, e) from e

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        pass

    @abstractmethod
    async def set_if_not_exists(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        """
        Atomically create key. True iff this call created it.
        With ttl_seconds the key is created already expiring (SET NX EX).
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def increment(self, key: str) -> int:
        """Atomic increment; an absent key starts at 0."""
        pass

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a TTL. False if the key no longer exists."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def ttl(self, key: str) -> Optional[int]:
        """Remaining TTL in seconds, or None if the key is absent or persistent."""
        pass

    @abstractmethod
    async def scan(self, cursor: int, pattern: str, page_size: int) -> tuple[int, list[str]]:
        """One SCAN page. A returned cursor of 0 means the iteration is complete."""
        pass

    @abstractmethod
    def pipeline(self) -> StoreBatch:
        pass

    # Sorted-set windows (rate limiting)

    @abstractmethod
    async def window_prune(self, key: str, max_score: float) -> None:
        """Remove window entries scored at or below max_score."""
        pass

    @abstractmethod
    async def window_count(self, key: str) -> int:
        pass

    @abstractmethod
    async def window_oldest(self, key: str) -> Optional[float]:
        """Score of the oldest surviving entry."""
        pass

    @abstractmethod
    async def window_add(self, key: str, member: str, score: float) -> None:
        pass

    async def close(self) -> None:
        pass


# ---------------------------------------------------------------- redis-py


class RedisBatch(StoreBatch):
    def __init__(self, store: "RedisStore"):
        self._store = store
        self._pipe = store.client.pipeline(transaction=False)

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> "RedisBatch":
        self._pipe.set(key, value, ex=ttl_seconds)
        return self

    def delete(self, key: str) -> "RedisBatch":
        self._pipe.delete(key)
        return self

    async def execute(self) -> None:
        async with self._store._guard("pipeline"):
            await self._pipe.execute()


class RedisStore(KeyValueStore):
    """Store backed by a redis.asyncio client created with decode_responses=True."""

    backend_errors = (RedisError, OSError)

    def __init__(self, client: redis.Redis):
        self.client = client

    async def get(self, key: str) -> Optional[str]:
        async with self._guard("get"):
            return await self.client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        async with self._guard("set"):
            await self.client.set(key, value, ex=ttl_seconds)

    async def set_if_not_exists(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        async with self._guard("set_if_not_exists"):
            return bool(await self.client.set(key, value, nx=True, ex=ttl_seconds))

    async def delete(self, key: str) -> None:
        async with self._guard("delete"):
            await self.client.delete(key)

    async def increment(self, key: str) -> int:
        async with self._guard("increment"):
            return int(await self.client.incr(key))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        async with self._guard("expire"):
            return bool(await self.client.expire(key, ttl_seconds))

    async def exists(self, key: str) -> bool:
        async with self._guard("exists"):
            return await self.client.exists(key) == 1

    async def ttl(self, key: str) -> Optional[int]:
        async with self._guard("ttl"):
            remaining = await self.client.ttl(key)
        return remaining if remaining >= 0 else None

    async def scan(self, cursor: int, pattern: str, page_size: int) -> tuple[int, list[str]]:
        async with self._guard("scan"):
            next_cursor, keys = await self.client.scan(cursor=cursor, match=pattern, count=page_size)
        return int(next_cursor), list(keys)

    def pipeline(self) -> RedisBatch:
        return RedisBatch(self)

    async def window_prune(self, key: str, max_score: float) -> None:
        async with self._guard("window_prune"):
            await self.client.zremrangebyscore(key, "-inf", max_score)

    async def window_count(self, key: str) -> int:
        async with self._guard("window_count"):
            return int(await self.client.zcard(key))

    async def window_oldest(self, key: str) -> Optional[float]:
        async with self._guard("window_oldest"):
            oldest = await self.client.zrange(key, 0, 0, withscores=True)
        return float(oldest[0][1]) if oldest else None

    async def window_add(self, key: str, member: str, score: float) -> None:
        async with self._guard("window_add"):
            await self.client.zadd(key, {member: score})

    async def close(self) -> None:
        await self.client.aclose()


# ----------------------------------------------------------------- upstash


class UpstashBatch(StoreBatch):
    def __init__(self, store: "UpstashStore"):
        self._store = store
        self._pipe = store.client.pipeline()

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> "UpstashBatch":
        if ttl_seconds:
            self._pipe.set(key, value, ex=ttl_seconds)
        else:
            self._pipe.set(key, value)
        return self

    def delete(self, key: str) -> "UpstashBatch":
        self._pipe.delete(key)
        return self

    async def execute(self) -> None:
        async with self._store._guard("pipeline"):
            await self._pipe.exec()


class UpstashStore(KeyValueStore):
    """Store backed by the Upstash REST API. Transport errors vary, so any exception counts."""

    def __init__(self, client: UpstashRedis):
        self.client = client

    async def get(self, key: str) -> Optional[str]:
        async with self._guard("get"):
            value = await self.client.get(key)
        return None if value is None else str(value)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        async with self._guard("set"):
            if ttl_seconds:
                await self.client.set(key, value, ex=ttl_seconds)
            else:
                await self.client.set(key, value)

    async def set_if_not_exists(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        async with self._guard("set_if_not_exists"):
            if ttl_seconds:
                return bool(await self.client.set(key, value, nx=True, ex=ttl_seconds))
            return bool(await self.client.setnx(key, value))

    async def delete(self, key: str) -> None:
        async with self._guard("delete"):
            await self.client.delete(key)

    async def increment(self, key: str) -> int:
        async with self._guard("increment"):
            return int(await self.client.incr(key))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        async with self._guard("expire"):
            return bool(await self.client.expire(key, ttl_seconds))

    async def exists(self, key: str) -> bool:
        async with self._guard("exists"):
            return int(await self.client.exists(key)) == 1

    async def ttl(self, key: str) -> Optional[int]:
        async with self._guard("ttl"):
            remaining = int(await self.client.ttl(key))
        return remaining if remaining >= 0 else None

    async def scan(self, cursor: int, pattern: str, page_size: int) -> tuple[int, list[str]]:
        async with self._guard("scan"):
            next_cursor, keys = await self.client.scan(cursor, match=pattern, count=page_size)
        # Upstash may return the cursor as a string
        return int(next_cursor), list(keys)

    def pipeline(self) -> UpstashBatch:
        return UpstashBatch(self)

    async def window_prune(self, key: str, max_score: float) -> None:
        async with self._guard("window_prune"):
            await self.client.zremrangebyscore(key, "-inf", max_score)

    async def window_count(self, key: str) -> int:
        async with self._guard("window_count"):
            return int(await self.client.zcard(key))

    async def window_oldest(self, key: str) -> Optional[float]:
        async with self._guard("window_oldest"):
            oldest = await self.client.zrange(key, 0, 0, withscores=True)
        if not oldest:
            return None
        first = oldest[0]
        # (member, score) pairs or a flat [member, score] list
        return float(first[1]) if isinstance(first, (list, tuple)) else float(oldest[1])

    async def window_add(self, key: str, member: str, score: float) -> None:
        async with self._guard("window_add"):
            await self.client.zadd(key, {member: score})

    async def close(self) -> None:
        await self.client.close()
