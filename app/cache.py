import json
from datetime import datetime
from uuid import UUID

from loguru import logger
from redis.asyncio import Redis

from app.settings import ANALYTICS_CACHE_TTL, REDIS_URL

_redis: Redis | None = None
_SUMMARY_PREFIX = "analytics:summary:"


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis


def _summary_key(start: datetime, end: datetime, provider_id: UUID | None) -> str:
    scope = str(provider_id) if provider_id is not None else "platform"
    return f"{_SUMMARY_PREFIX}{scope}:{start.isoformat()}:{end.isoformat()}"


async def get_summary_cache(
    start: datetime, end: datetime, provider_id: UUID | None = None
) -> dict | None:
    try:
        data = await get_redis().get(_summary_key(start, end, provider_id))
        return json.loads(data) if data else None
    except Exception:
        logger.warning("Redis get failed — skipping analytics cache", exc_info=True)
        return None


async def set_summary_cache(
    start: datetime,
    end: datetime,
    summary: dict,
    provider_id: UUID | None = None,
) -> None:
    try:
        await get_redis().setex(
            _summary_key(start, end, provider_id),
            ANALYTICS_CACHE_TTL,
            json.dumps(summary),
        )
    except Exception:
        logger.warning("Redis set failed — skipping analytics cache", exc_info=True)


async def invalidate_summary_cache() -> None:
    """Drop every cached summary; revenue changed."""
    try:
        redis = get_redis()
        keys = [key async for key in redis.scan_iter(match=f"{_SUMMARY_PREFIX}*")]
        if keys:
            await redis.delete(*keys)
    except Exception:
        logger.warning("Redis invalidate failed for analytics cache", exc_info=True)
