"""
Sliding-window rate limiting on top of the key-value store.

ALGORITHM
=========

Each (bucket, identifier) pair owns a sorted set at ratelimit:{bucket}:{identifier}
whose members are "{now}-{random}" scored by their epoch second.

On every call:
  1. Drop entries scored at or below now - window
  2. Count what survives
  3. count >= max_requests -> reject. resetAt = oldest score + window
     (now + window when the oldest entry cannot be read). No slot is consumed.
  4. Otherwise add a new entry, refresh the key TTL to the window, allow.

The random suffix keeps two requests in the same second distinct.

The steps are separate round trips, so a burst of truly simultaneous calls can
overshoot the limit by the number of in-flight requests. That is acceptable
for abuse throttling; ticket exclusivity never depends on this module.
"""

import random
import re
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from prize_reservations.core.exceptions import RateLimitedError
from prize_reservations.core.logging import get_logger
from prize_reservations.core.metrics import record_rate_limit
from prize_reservations.infrastructure.keys import rate_limit_key
from prize_reservations.infrastructure.store import KeyValueStore

logger = get_logger(__name__)

_WINDOW_RE = re.compile(r"^(\d+)\s*([smh])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600}


def parse_window(window: str) -> int:
    """Parse "15 m", "1 h", "30s" into seconds."""
    match = _WINDOW_RE.match(window.strip())
    if not match:
        raise ValueError(f"Invalid window format: {window}")
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


@dataclass(frozen=True)
class BucketConfig:
    max_requests: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # epoch seconds


class RateLimiter:
    """Named sliding-window buckets sharing one store."""

    def __init__(
        self,
        store: KeyValueStore,
        buckets: Mapping[str, tuple[int, str]],
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.clock = clock
        self.buckets = {
            name: BucketConfig(max_requests=int(requests), window_seconds=parse_window(window))
            for name, (requests, window) in buckets.items()
        }

    def bucket(self, name: str) -> BucketConfig:
        try:
            return self.buckets[name]
        except KeyError:
            raise KeyError(f"Unknown rate limit bucket: {name}") from None

    async def limit(self, bucket: str, identifier: str) -> RateLimitResult:
        config = self.bucket(bucket)
        key = rate_limit_key(bucket, identifier)
        now = int(self.clock())

        await self.store.window_prune(key, now - config.window_seconds)
        count = await self.store.window_count(key)

        if count >= config.max_requests:
            oldest: Optional[float] = await self.store.window_oldest(key)
            reset_at = int(oldest) + config.window_seconds if oldest is not None else now + config.window_seconds
            record_rate_limit(bucket, allowed=False)
            logger.warning("rate_limited", bucket=bucket, identifier=identifier, reset_at=reset_at)
            return RateLimitResult(allowed=False, limit=config.max_requests, remaining=0, reset_at=reset_at)

        await self.store.window_add(key, f"{now}-{random.random()}", now)
        await self.store.expire(key, config.window_seconds)

        record_rate_limit(bucket, allowed=True)
        return RateLimitResult(
            allowed=True,
            limit=config.max_requests,
            remaining=config.max_requests - count - 1,
            reset_at=now + config.window_seconds,
        )

    async def enforce(self, bucket: str, identifier: str) -> RateLimitResult:
        """Like limit(), but raise RateLimitedError when the bucket is exhausted."""
        result = await self.limit(bucket, identifier)
        if not result.allowed:
            raise RateLimitedError(bucket, result.reset_at)
        return result
