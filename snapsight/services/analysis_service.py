"""
Analysis service: the one object request handlers talk to.
Owns the response cache, the admission queue, the analysis client and the cache reaper.
Built once in the app lifespan and injected into routes (see snapsight.deps).
"""
import asyncio
import logging
from typing import Any

from snapsight.config import Settings
from snapsight.errors import RETRYABLE_ERRORS
from snapsight.services.admission_queue import AdmissionQueue
from snapsight.services.analysis_client import AnalysisClient
from snapsight.services.analysis_request import AnalysisRequest, AnalysisResult, RetryPolicy
from snapsight.services.redis_response_cache import RedisResponseCache
from snapsight.services.response_cache import ResponseCache, cache_reaper
from snapsight.services.status_reporter import QueueStatus, StatusReporter

logger = logging.getLogger(__name__)


def build_transport(settings: Settings) -> Any:
    """Transport for settings.analysis_backend ("gemini" or "http")."""
    backend = (settings.analysis_backend or "gemini").strip().lower()
    if backend == "gemini":
        from snapsight.services.gemini_transport import GeminiTransport
        return GeminiTransport(settings)
    if backend == "http":
        from snapsight.services.http_transport import HttpTransport
        return HttpTransport(
            settings.analysis_endpoint_url,
            result_field=settings.analysis_result_field,
            timeout_seconds=settings.analysis_http_timeout_seconds,
        )
    raise ValueError(f"Unknown analysis_backend: {settings.analysis_backend!r}")


class AnalysisService:
    def __init__(
        self,
        transport: Any,
        cache: ResponseCache | None = None,
        queue: AdmissionQueue | None = None,
        shared_cache: RedisResponseCache | None = None,
        default_retry: RetryPolicy | None = None,
        reap_interval_seconds: float = 300,
    ):
        self.cache = cache or ResponseCache()
        self.queue = queue or AdmissionQueue()
        self.transport = transport
        self.client = AnalysisClient(transport, self.cache, self.queue, shared_cache=shared_cache)
        self.reporter = StatusReporter(self.queue, self.cache)
        self._default_retry = default_retry or RetryPolicy()
        self._reap_interval = reap_interval_seconds
        self._reaper: asyncio.Task | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Any = None,
        shared_cache: RedisResponseCache | None = None,
    ) -> "AnalysisService":
        return cls(
            transport if transport is not None else build_transport(settings),
            cache=ResponseCache(
                ttl_seconds=settings.cache_ttl_seconds,
                max_entries=settings.cache_max_entries,
            ),
            queue=AdmissionQueue(
                concurrency=settings.queue_concurrency,
                interval=settings.queue_interval_ms / 1000.0,
                interval_cap=settings.queue_interval_cap,
                minute_cap=settings.queue_minute_cap,
                max_backlog=settings.queue_max_backlog,
                task_timeout=settings.queue_task_timeout_seconds or None,
            ),
            shared_cache=shared_cache,
            default_retry=RetryPolicy(
                attempts=max(1, settings.retry_attempts),
                backoff_seconds=settings.retry_backoff_seconds,
            ),
            reap_interval_seconds=settings.cache_reap_interval_seconds,
        )

    # ---- Lifecycle ----

    def start(self) -> None:
        """Start the periodic cache reaper. Call from a running event loop."""
        if self._reaper is None:
            self._reaper = asyncio.create_task(cache_reaper(self.cache, self._reap_interval))

    async def close(self) -> None:
        if self._reaper is not None:
            self._reaper.cancel()
            try:
                await self._reaper
            except asyncio.CancelledError:
                pass
            self._reaper = None
        await self.queue.shutdown()
        close = getattr(self.transport, "close", None)
        if callable(close):
            close()

    # ---- Operations ----

    async def submit(self, request: AnalysisRequest, retry: RetryPolicy | None = None) -> AnalysisResult:
        """
        Analyze with the given retry policy (default: the service default).
        RemoteError / NetworkError / TaskTimeoutError are retried after backoff;
        InputError, RateLimitedError and BacklogFullError are raised immediately.
        """
        policy = retry or self._default_retry
        attempt = 1
        while True:
            try:
                return await self.client.analyze(request)
            except RETRYABLE_ERRORS as e:
                if attempt >= policy.attempts:
                    raise
                logger.warning(
                    "Analysis attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt, policy.attempts, e, policy.backoff_seconds,
                )
                await asyncio.sleep(policy.backoff_seconds)
                attempt += 1

    async def submit_analysis(self, request: AnalysisRequest, retry: RetryPolicy | None = None) -> str:
        """Inbound contract: analysis text, or raises an AnalysisError."""
        result = await self.submit(request, retry=retry)
        return result.text

    def get_status(self) -> QueueStatus:
        return self.reporter.status()
