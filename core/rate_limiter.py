"""Per-principal request counting for upload operations.

Two stores share the same window semantics: a window opens on the first hit,
resets entirely once it is older than ``window_ms``, and rejects hits while
``count >= limit``. The memory store is process-local and relies on
:meth:`RateLimiter.sweep` to evict expired entries; the Redis store keeps one
key per principal and operation with a PX expiry so every instance sees the
same counters.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Protocol

from loguru import logger

from core.errors import rate_limit_exceeded
from core.settings import get_settings


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class RateLimitEntry:
    principal_id: str
    operation: str
    window_start: float
    window_ms: int
    count: int
    last_attempt: float

    def is_expired(self, now_ms: float) -> bool:
        return now_ms - self.window_start > self.window_ms


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    retry_after_ms: int


class RateLimitStore(Protocol):
    async def hit(
        self,
        *,
        principal_id: str,
        operation: str,
        limit: int,
        window_ms: int,
        now_ms: float,
    ) -> RateLimitDecision:
        ...

    async def sweep(self, *, now_ms: float) -> int:
        ...


class MemoryRateLimitStore:
    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], RateLimitEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, *, principal_id: str, operation: str) -> RateLimitEntry | None:
        return self._entries.get((operation, principal_id))

    async def hit(
        self,
        *,
        principal_id: str,
        operation: str,
        limit: int,
        window_ms: int,
        now_ms: float,
    ) -> RateLimitDecision:
        key = (operation, principal_id)
        entry = self._entries.get(key)

        if entry is None or now_ms - entry.window_start > window_ms:
            self._entries[key] = RateLimitEntry(
                principal_id=principal_id,
                operation=operation,
                window_start=now_ms,
                window_ms=window_ms,
                count=1,
                last_attempt=now_ms,
            )
            return RateLimitDecision(allowed=True, count=1, retry_after_ms=window_ms)

        remaining_ms = int(window_ms - (now_ms - entry.window_start))
        if entry.count >= limit:
            return RateLimitDecision(allowed=False, count=entry.count, retry_after_ms=remaining_ms)

        entry.count += 1
        entry.last_attempt = now_ms
        return RateLimitDecision(allowed=True, count=entry.count, retry_after_ms=remaining_ms)

    async def sweep(self, *, now_ms: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now_ms)]
        for key in expired:
            del self._entries[key]
        return len(expired)


# Returns {count, pttl}; count is -1 when the hit is rejected.
_REDIS_HIT_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if not current then
  redis.call('SET', KEYS[1], 1, 'PX', ARGV[2])
  return {1, tonumber(ARGV[2])}
end
local ttl = redis.call('PTTL', KEYS[1])
if tonumber(current) >= tonumber(ARGV[1]) then
  return {-1, ttl}
end
return {redis.call('INCR', KEYS[1]), ttl}
"""


class RedisRateLimitStore:
    def __init__(self, client, *, key_prefix: str = "ratelimit") -> None:
        self._client = client
        self._key_prefix = key_prefix
        self._script = client.register_script(_REDIS_HIT_SCRIPT)

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisRateLimitStore":
        from redis import asyncio as redis_asyncio

        client = redis_asyncio.Redis.from_url(redis_url, socket_connect_timeout=2, decode_responses=True)
        return cls(client)

    def _key(self, *, principal_id: str, operation: str) -> str:
        return f"{self._key_prefix}:{operation}:{principal_id}"

    async def hit(
        self,
        *,
        principal_id: str,
        operation: str,
        limit: int,
        window_ms: int,
        now_ms: float,
    ) -> RateLimitDecision:
        count, ttl = await self._script(
            keys=[self._key(principal_id=principal_id, operation=operation)],
            args=[limit, window_ms],
        )
        count = int(count)
        retry_after_ms = int(ttl) if int(ttl) > 0 else window_ms
        if count == -1:
            return RateLimitDecision(allowed=False, count=limit, retry_after_ms=retry_after_ms)
        return RateLimitDecision(allowed=True, count=count, retry_after_ms=retry_after_ms)

    async def sweep(self, *, now_ms: float) -> int:
        # Keys expire on their own.
        return 0


class RateLimiter:
    _instance: "RateLimiter | None" = None
    _lock = Lock()

    def __init__(self, store: RateLimitStore, *, clock: Callable[[], float] = _monotonic_ms) -> None:
        self._store = store
        self._clock = clock

    @classmethod
    def configure(cls, store: RateLimitStore, **kwargs) -> "RateLimiter":
        with cls._lock:
            cls._instance = cls(store, **kwargs)
            return cls._instance

    @classmethod
    def configure_from_settings(cls) -> "RateLimiter":
        settings = get_settings()
        if settings.rate_limit_backend == "redis":
            store: RateLimitStore = RedisRateLimitStore.from_url(settings.redis_url)
        else:
            store = MemoryRateLimitStore()
        return cls.configure(store)

    @classmethod
    def get_instance(cls) -> "RateLimiter":
        if cls._instance is None:
            return cls.configure_from_settings()
        return cls._instance

    @property
    def store(self) -> RateLimitStore:
        return self._store

    async def check_and_increment(
        self,
        principal_id: str,
        *,
        limit: int,
        window_ms: int,
        operation: str,
    ) -> None:
        decision = await self._store.hit(
            principal_id=principal_id,
            operation=operation,
            limit=limit,
            window_ms=window_ms,
            now_ms=self._clock(),
        )
        if decision.allowed:
            return

        retry_after_ms = max(decision.retry_after_ms, 0)
        minutes_remaining = max(math.ceil(retry_after_ms / 60_000), 1)
        logger.warning(
            "Rate limit exceeded for principal {} on {} ({} requests, {} ms left)",
            principal_id,
            operation,
            decision.count,
            retry_after_ms,
        )
        raise rate_limit_exceeded(
            operation=operation,
            minutes_remaining=minutes_remaining,
            retry_after_seconds=max(math.ceil(retry_after_ms / 1000), 1),
        )

    async def sweep(self) -> int:
        evicted = await self._store.sweep(now_ms=self._clock())
        if evicted:
            logger.debug("Evicted {} expired rate limit entries", evicted)
        return evicted
