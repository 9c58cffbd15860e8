"""
Redis tier for analysis responses, shared between worker processes. Cache-Aside:
the in-memory ResponseCache is checked first, Redis second, then the remote service.
All Redis errors are handled internally; never raise to caller. System works if Redis is down.
Key: analysis:{fingerprint} — plain string, TTL = response cache freshness window.
"""
import logging
from typing import Any

logger = logging.getLogger(__name__)

KEY_PREFIX = "analysis:"


def _key(fingerprint: str) -> str:
    return f"{KEY_PREFIX}{fingerprint}"


class RedisResponseCache:
    """
    Async Redis cache for analysis text. GET / SET EX.
    All methods swallow Redis errors and log; caller gets None or no-op on failure.
    """

    def __init__(self, redis_client: Any, ttl_seconds: float):
        self._redis = redis_client
        self._ttl = max(1, int(ttl_seconds))

    async def get(self, fingerprint: str) -> str | None:
        if not self._redis:
            return None
        try:
            value = await self._redis.get(_key(fingerprint))
            if value is None:
                return None
            return value.decode() if isinstance(value, bytes) else value
        except Exception as e:
            logger.warning("Redis response cache get failed for %s: %s", fingerprint[:12], e, exc_info=False)
            return None

    async def set(self, fingerprint: str, text: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(_key(fingerprint), text, ex=self._ttl)
        except Exception as e:
            logger.warning("Redis response cache set failed for %s: %s", fingerprint[:12], e, exc_info=False)
