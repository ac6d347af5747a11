"""FastAPI dependency injection providers.

Usage in routers:
    async def endpoint(store: Store, classifier: Classifier):
        ...

The consent store is built per request from that request's cookies, never
held in a module-level singleton. The region classifier and its cache are
process-wide.
"""

from __future__ import annotations

from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends, Request, Response

from dietitian.config import settings
from dietitian.services.consent_store import ConsentStore
from dietitian.services.cookie_storage import RequestCookieStorage
from dietitian.services.geo import IpapiLookup, RegionClassifier
from dietitian.services.geo_cache import GeoCache, MemoryGeoCache, RedisGeoCache

# --- Redis ---

_redis_pool: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis | None:
    """Provide a Redis connection from the pool, or None when not configured."""
    global _redis_pool
    if not settings.REDIS_URL:
        return None
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_pool


async def close_redis() -> None:
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None


# --- Region classifier ---

_classifier: RegionClassifier | None = None


def _build_geo_cache() -> GeoCache:
    redis = get_redis()
    if redis is not None:
        return RedisGeoCache(redis)
    return MemoryGeoCache()


def get_region_classifier() -> RegionClassifier:
    global _classifier
    if _classifier is None:
        lookup = IpapiLookup(
            url_template=settings.GEO_LOOKUP_URL,
            timeout=settings.GEO_LOOKUP_TIMEOUT,
            user_agent=settings.GEO_USER_AGENT,
        )
        _classifier = RegionClassifier(lookup, cache=_build_geo_cache(), cache_ttl=settings.GEO_CACHE_TTL_SECONDS)
    return _classifier


# --- Consent ---

def get_consent_store(request: Request, response: Response) -> ConsentStore:
    storage = RequestCookieStorage(request.cookies, response, secure=settings.COOKIE_SECURE)
    return ConsentStore(
        storage,
        version=settings.CONSENT_POLICY_VERSION,
        max_age=settings.consent_max_age_seconds,
    )


# Type aliases for cleaner router signatures
Classifier = Annotated[RegionClassifier, Depends(get_region_classifier)]
Store = Annotated[ConsentStore, Depends(get_consent_store)]
