"""
Analysis client: cache first, then the admission queue, then the transport.
- A cache hit (memory, then Redis) never takes a queue slot.
- Concurrent misses for the same fingerprint share one outbound call.
- Only successful results are cached. Exactly one attempt per call; retries live in AnalysisService.
"""
import asyncio
import logging
from typing import Any

from snapsight.services.admission_queue import AdmissionQueue
from snapsight.services.analysis_request import AnalysisRequest, AnalysisResult
from snapsight.services.fingerprint import fingerprint
from snapsight.services.redis_response_cache import RedisResponseCache
from snapsight.services.response_cache import ResponseCache

logger = logging.getLogger(__name__)


class AnalysisClient:
    def __init__(
        self,
        transport: Any,
        cache: ResponseCache,
        queue: AdmissionQueue,
        shared_cache: RedisResponseCache | None = None,
    ):
        self._transport = transport
        self._cache = cache
        self._queue = queue
        self._shared_cache = shared_cache
        self._inflight: dict[str, asyncio.Future] = {}

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """Raises InputError before admission when the payload is unusable."""
        request.validate()
        key = fingerprint(request)

        text = self._cache.get(key)
        if text is not None:
            return AnalysisResult(text=text, fingerprint=key, cached=True)

        if self._shared_cache:
            text = await self._shared_cache.get(key)
            if text is not None:
                self._cache.put(key, text)
                return AnalysisResult(text=text, fingerprint=key, cached=True)

        future = self._inflight.get(key)
        if future is None:
            future = self._queue.submit(lambda: self._call(request, key))
            self._inflight[key] = future
            future.add_done_callback(lambda f: self._forget(key, f))
        else:
            logger.debug("Joining in-flight analysis %s", key[:12])

        # shield: one waiter going away must not cancel the call the others share
        text = await asyncio.shield(future)
        return AnalysisResult(text=text, fingerprint=key, cached=False)

    async def _call(self, request: AnalysisRequest, key: str) -> str:
        text = await self._transport.analyze(request)
        self._cache.put(key, text)
        if self._shared_cache:
            await self._shared_cache.set(key, text)
        return text

    def _forget(self, key: str, future: asyncio.Future) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]

    def inflight_count(self) -> int:
        return len(self._inflight)
