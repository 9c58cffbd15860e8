"""
Redis connection for the shared response cache tier.

The client is optional: with REDIS_URL empty, or Redis unreachable at first use,
get_redis_client() returns None and analyses are cached in process memory only.
"""
import logging
from typing import Any

from snapsight.config import get_settings
from snapsight.services.redis_response_cache import RedisResponseCache

logger = logging.getLogger(__name__)

_redis_client: Any = None


def _display_url(url: str) -> str:
    # drop credentials before logging
    return url.split("@")[-1] if "@" in url else url


async def get_redis_client() -> Any:
    """Connect on first call and reuse the client afterwards. None when disabled or down."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client
    url = (get_settings().redis_url or "").strip()
    if not url:
        return None
    try:
        from redis.asyncio import Redis
        client = Redis.from_url(url, decode_responses=True)
        await client.ping()
    except Exception as e:
        logger.warning("Redis at %s unavailable, analyses cached in memory only: %s", _display_url(url), e)
        return None
    _redis_client = client
    logger.info("Shared analysis cache on Redis %s", _display_url(url))
    return _redis_client


def build_redis_response_cache(client: Any) -> RedisResponseCache:
    """Shared tier with the same freshness window as the in-memory cache."""
    return RedisResponseCache(client, ttl_seconds=get_settings().cache_ttl_seconds)


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        try:
            await _redis_client.aclose()
        except Exception as e:
            logger.warning("Closing Redis client failed: %s", e)
        _redis_client = None
