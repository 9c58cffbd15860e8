"""Queue/cache counters for the UI. Pure reads, safe to call at any time."""
from dataclasses import asdict, dataclass

from snapsight.services.admission_queue import AdmissionQueue
from snapsight.services.response_cache import ResponseCache


@dataclass(frozen=True)
class QueueStatus:
    pending: int
    running: int
    cache_size: int
    window_requests: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class StatusReporter:
    def __init__(self, queue: AdmissionQueue, cache: ResponseCache):
        self._queue = queue
        self._cache = cache

    def status(self) -> QueueStatus:
        return QueueStatus(
            pending=self._queue.pending_count(),
            running=self._queue.running_count(),
            cache_size=self._cache.size(),
            window_requests=self._queue.window_request_count(),
        )
