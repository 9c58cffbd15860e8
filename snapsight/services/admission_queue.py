"""
Admission queue for outbound analysis calls.

- At most `concurrency` tasks run at once.
- At most `interval_cap` tasks start within any sliding `interval` (seconds).
- Optionally, at most `minute_cap` tasks start within any sliding minute
  (overall provider budget).
- Tasks that cannot start wait in a FIFO backlog; first submitted, first started.
- A failing task rejects only its own future. No retries here.

Owned by one asyncio event loop: submit() must be called from that loop.
"""
import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from snapsight.errors import BacklogFullError, TaskTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 10
DEFAULT_INTERVAL_SECONDS = 1.0
DEFAULT_INTERVAL_CAP = 15
MINUTE_SECONDS = 60.0


@dataclass
class QueuedTask:
    fn: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    submitted_at: float


class AdmissionQueue:
    def __init__(
        self,
        concurrency: int = DEFAULT_CONCURRENCY,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        interval_cap: int = DEFAULT_INTERVAL_CAP,
        minute_cap: int = 0,
        max_backlog: int = 0,
        task_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._concurrency = concurrency
        self._interval = interval
        self._interval_cap = interval_cap
        self._minute_cap = minute_cap
        self._max_backlog = max_backlog
        self._task_timeout = task_timeout or None
        self._clock = clock

        self._pending: deque[QueuedTask] = deque()
        self._running = 0
        self._starts: deque[float] = deque()  # start times inside the current window
        self._minute_starts: deque[float] = deque()
        self._tasks: set[asyncio.Task] = set()
        self._wakeup: asyncio.TimerHandle | None = None

    # ---- Introspection ----

    def pending_count(self) -> int:
        return sum(1 for t in self._pending if not t.future.done())

    def running_count(self) -> int:
        return self._running

    def window_request_count(self) -> int:
        cutoff = self._clock() - self._interval
        return sum(1 for t in self._starts if t > cutoff)

    @property
    def _rate_limited(self) -> bool:
        return self._interval > 0 and self._interval_cap > 0

    # ---- Submit ----

    def submit(self, fn: Callable[[], Awaitable[Any]]) -> asyncio.Future:
        """
        Queue a coroutine function. Returns a future resolved with its result or
        rejected with its exception. Cancelling the future while the task is still
        pending drops it; once running it always runs to completion (or timeout).
        """
        if self._max_backlog and self.pending_count() >= self._max_backlog:
            raise BacklogFullError(f"Analysis backlog is full ({self._max_backlog} pending)")
        loop = asyncio.get_running_loop()
        task = QueuedTask(fn=fn, future=loop.create_future(), submitted_at=self._clock())
        self._pending.append(task)
        self._drain()
        return task.future

    async def shutdown(self) -> None:
        """Cancel pending and running work (application shutdown)."""
        if self._wakeup is not None:
            self._wakeup.cancel()
            self._wakeup = None
        while self._pending:
            self._pending.popleft().future.cancel()
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ---- Scheduling ----

    @staticmethod
    def _window_delay(starts: deque, window: float, cap: int, now: float) -> float:
        while starts and starts[0] + window <= now:
            starts.popleft()
        if len(starts) < cap:
            return 0.0
        return starts[0] + window - now

    def _rate_delay(self, now: float) -> float:
        """Seconds until another start is allowed (0 = now)."""
        delay = 0.0
        if self._rate_limited:
            delay = self._window_delay(self._starts, self._interval, self._interval_cap, now)
        if self._minute_cap > 0:
            delay = max(delay, self._window_delay(self._minute_starts, MINUTE_SECONDS, self._minute_cap, now))
        return delay

    def _drain(self) -> None:
        if self._wakeup is not None:
            self._wakeup.cancel()
            self._wakeup = None
        while self._pending and self._running < self._concurrency:
            head = self._pending[0]
            if head.future.done():
                # cancelled by its caller while waiting
                self._pending.popleft()
                continue
            delay = self._rate_delay(self._clock())
            if delay > 0:
                self._schedule_wakeup(delay)
                return
            self._pending.popleft()
            self._start(head)

    def _schedule_wakeup(self, delay: float) -> None:
        if self._wakeup is not None:
            return
        loop = asyncio.get_running_loop()
        self._wakeup = loop.call_later(delay, self._drain)

    def _start(self, task: QueuedTask) -> None:
        self._running += 1
        now = self._clock()
        if self._rate_limited:
            self._starts.append(now)
        if self._minute_cap > 0:
            self._minute_starts.append(now)
        runner = asyncio.ensure_future(self._run(task))
        self._tasks.add(runner)
        runner.add_done_callback(self._tasks.discard)

    async def _run(self, task: QueuedTask) -> None:
        fut = task.future
        try:
            if self._task_timeout:
                try:
                    result = await asyncio.wait_for(task.fn(), self._task_timeout)
                except asyncio.TimeoutError as e:
                    logger.warning("Analysis task timed out after %.1fs", self._task_timeout)
                    raise TaskTimeoutError(f"Analysis call exceeded {self._task_timeout}s") from e
            else:
                result = await task.fn()
        except asyncio.CancelledError:
            fut.cancel()
            raise
        except Exception as e:
            if not fut.done():
                fut.set_exception(e)
        else:
            if not fut.done():
                fut.set_result(result)
        finally:
            self._running -= 1
            self._drain()
