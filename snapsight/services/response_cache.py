"""
In-memory response cache keyed by payload fingerprint.
- Entries older than ttl_seconds are never returned (removed on lookup, and by the reaper).
- At most max_entries; a new key at capacity evicts the oldest-inserted entry.
Thread-safe: transports run blocking SDK calls in the default executor.
"""
import asyncio
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600
DEFAULT_MAX_ENTRIES = 1000
DEFAULT_REAP_INTERVAL_SECONDS = 300


@dataclass
class CacheEntry:
    key: str
    value: str
    created_at: float


class ResponseCache:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at < self._ttl

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not self._is_fresh(entry, self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: str, value: str) -> None:
        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self._max_entries:
                self._purge_locked(now)
                while len(self._entries) >= self._max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.debug("Response cache full, evicted %s", evicted[:12])
            self._entries[key] = CacheEntry(key=key, value=value, created_at=now)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def purge_expired(self) -> int:
        """Remove every stale entry. Returns how many were removed."""
        with self._lock:
            return self._purge_locked(self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge_locked(self, now: float) -> int:
        # Insertion order == created_at order, so stale entries form a prefix.
        removed = 0
        while self._entries:
            key, entry = next(iter(self._entries.items()))
            if self._is_fresh(entry, now):
                break
            del self._entries[key]
            removed += 1
        return removed


async def cache_reaper(cache: ResponseCache, interval_seconds: float = DEFAULT_REAP_INTERVAL_SECONDS):
    """Background task: purge stale entries every interval so memory stays bounded without lookups."""
    while True:
        await asyncio.sleep(interval_seconds)
        removed = cache.purge_expired()
        if removed:
            logger.info("Response cache reaper removed %d stale entries (size=%d)", removed, cache.size())
