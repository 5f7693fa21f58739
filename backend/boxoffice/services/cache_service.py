"""
Redis caching for the public event listing, plus simple fixed-window counters.

CACHING STRATEGY
================

What we cache:
  - Event listing responses (paginated, JSON-serialized)
  - Cache key pattern: "events:list:page={page}&size={size}&upcoming={upcoming}"

Invalidation:
  - On event creation and on price area changes: delete all "events:list:*"
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

What we never cache:
  - Seat maps, seat locks or anything else availability related. Every
    availability decision is read from the database at request time; a stale
    cached "free" seat is exactly the double-sale bug the lock table prevents.

Every function fails open: Redis errors are logged and the caller proceeds as
if the cache were empty (or the counter were under its limit).
"""

import json
from typing import Optional

from redis.exceptions import RedisError

from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_cache_operation
from boxoffice.infrastructure.redis_client import get_redis

logger = get_logger(__name__)

EVENT_LIST_PREFIX = "events:list:"


def _make_event_list_key(page: int, page_size: int, upcoming_only: bool) -> str:
    return f"{EVENT_LIST_PREFIX}page={page}&size={page_size}&upcoming={upcoming_only}"


async def get_cached_events(page: int, page_size: int, upcoming_only: bool) -> Optional[dict]:
    """Retrieve cached event list response."""
    client = await get_redis()
    if not client:
        return None

    key = _make_event_list_key(page, page_size, upcoming_only)
    try:
        data = await client.get(key)
    except RedisError as e:
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=bool(data))
    if data:
        logger.debug("cache_hit", key=key)
        return json.loads(data)
    logger.debug("cache_miss", key=key)
    return None


async def set_cached_events(page: int, page_size: int, upcoming_only: bool, data: dict) -> None:
    """Cache event list response with TTL."""
    client = await get_redis()
    if not client:
        return

    settings = get_settings()
    key = _make_event_list_key(page, page_size, upcoming_only)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_event_cache() -> None:
    """
    Invalidate all cached event listings.
    Uses SCAN to find and delete all keys matching the prefix.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{EVENT_LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except RedisError as e:
        logger.error("cache_invalidation_error", error=str(e))


async def hit_counter(key: str, window_seconds: int) -> Optional[int]:
    """
    Increment a fixed-window counter and return its new value.
    Returns None when Redis is unavailable.
    """
    client = await get_redis()
    if not client:
        return None

    try:
        count = await client.incr(key)
        if count == 1:
            await client.expire(key, window_seconds)
        return count
    except RedisError as e:
        logger.error("rate_counter_error", key=key, error=str(e))
        return None


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except RedisError as e:
        return {"status": "error", "error": str(e)}
