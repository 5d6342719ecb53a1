"""
Redis caching service for open-slot listings.

CACHING STRATEGY
================

What we cache:
  - Open-slot listings (JSON list of ISO start times) per trainer/date
  - Cache key pattern: "slots:trainer={id}:date={yyyy-mm-dd}:duration={m}:step={m}"

Why:
  - The slot picker is the most frequent read and fans out to a resolve
    plus a bookings query per date
  - Serving from Redis: ~1ms vs resolving from PostgreSQL: ~10-30ms

Invalidation strategy:
  - On any booking write for a trainer: delete that trainer's slot keys
  - On any availability write for a trainer: delete that trainer's slot keys
  - TTL-based expiry as safety net (SLOT_CACHE_TTL)

  We use key-prefix-based invalidation:
  All of one trainer's keys start with "slots:trainer={id}:" so we can SCAN
  and delete them.

Why the booking path never reads this cache:
  - A stale listing only costs the client a SlotConflict and a re-query
  - A stale availability check would cost a double-booking
"""

import json
from datetime import date
from typing import Optional

import redis.asyncio as redis
from booking_engine.core.config import get_settings
from booking_engine.core.logging import get_logger
from booking_engine.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            # Test connection
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _make_slots_key(trainer_id: int, day: date, duration: int, step: int) -> str:
    return f"slots:trainer={trainer_id}:date={day.isoformat()}:duration={duration}:step={step}"


async def get_cached_slots(trainer_id: int, day: date, duration: int, step: int) -> Optional[list[str]]:
    client = await get_redis()
    if not client:
        return None

    key = _make_slots_key(trainer_id, day, duration, step)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=bool(data))
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_slots(
    trainer_id: int,
    day: date,
    duration: int,
    step: int,
    slots: list[str],
) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_slots_key(trainer_id, day, duration, step)
    try:
        await client.setex(key, settings.SLOT_CACHE_TTL, json.dumps(slots))
        logger.debug("cache_set", key=key, ttl=settings.SLOT_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_trainer_slots(trainer_id: int) -> None:
    """
    Invalidate every cached listing for one trainer.
    Uses SCAN to find and delete all keys matching the trainer prefix.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"slots:trainer={trainer_id}:*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", trainer_id=trainer_id, keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", trainer_id=trainer_id, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        keyspace = await client.info("keyspace")
        return {
            "status": "connected",
            "hits": info.get("keyspace_hits", 0),
            "misses": info.get("keyspace_misses", 0),
            "hit_rate": (
                round(
                    info.get("keyspace_hits", 0)
                    / max(info.get("keyspace_hits", 0) + info.get("keyspace_misses", 0), 1)
                    * 100,
                    2,
                )
            ),
            "keys": keyspace,
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
