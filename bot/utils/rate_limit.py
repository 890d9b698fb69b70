from __future__ import annotations

from dataclasses import dataclass

from services.cache import CacheBackend


@dataclass(slots=True)
class RateLimitResult:
    allowed: bool
    current: int
    limit: int


class DistributedRateLimiter:
    """Fixed-window counter stored in the cache backend (Redis or in-process)."""

    def __init__(self, cache: CacheBackend, namespace: str = "ratelimit") -> None:
        self.cache = cache
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        if limit <= 0 or window_seconds <= 0:
            return RateLimitResult(allowed=True, current=0, limit=limit)
        current = await self.cache.incr(self._key(key), ttl=window_seconds)
        return RateLimitResult(
            allowed=current <= limit,
            current=current,
            limit=limit,
        )

    async def reset(self, key: str) -> None:
        await self.cache.delete(self._key(key))
