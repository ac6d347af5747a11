"""Country-code cache for the region classifier, keyed by client IP.

Geolocation is stable short-term, so a resolved country is kept for a
bounded interval (an hour by default). Cache errors never fail a
classification: a broken cache behaves like an empty one.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Protocol

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

logger = structlog.get_logger()


class GeoCache(Protocol):
    async def get(self, ip: str) -> str | None: ...

    async def set(self, ip: str, country_code: str, ttl: int) -> None: ...


class MemoryGeoCache:
    """In-process TTL cache with a size cap (oldest entries evicted first)."""

    def __init__(self, max_entries: int = 10_000, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[str, float]] = OrderedDict()

    async def get(self, ip: str) -> str | None:
        entry = self._entries.get(ip)
        if entry is None:
            return None
        country_code, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[ip]
            return None
        return country_code

    async def set(self, ip: str, country_code: str, ttl: int) -> None:
        self._entries[ip] = (country_code, self._clock() + ttl)
        self._entries.move_to_end(ip)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


class RedisGeoCache:
    """Shared cache across workers. Key format: geo:country:{ip}"""

    def __init__(self, redis: aioredis.Redis, prefix: str = "geo:country:"):
        self.redis = redis
        self.prefix = prefix

    def _key(self, ip: str) -> str:
        return f"{self.prefix}{ip}"

    async def get(self, ip: str) -> str | None:
        try:
            value = await self.redis.get(self._key(ip))
        except RedisError as e:
            logger.warning("geo_cache_read_failed", error=str(e))
            return None
        if isinstance(value, bytes):
            value = value.decode()
        return value or None

    async def set(self, ip: str, country_code: str, ttl: int) -> None:
        try:
            await self.redis.set(self._key(ip), country_code, ex=ttl)
        except RedisError as e:
            logger.warning("geo_cache_write_failed", error=str(e))
