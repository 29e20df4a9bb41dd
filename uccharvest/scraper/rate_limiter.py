"""Request throttling shared across scrapers.

:class:`RateLimitedQueue` serialises scrape requests so dispatches are never
closer together than ``60 / requests_per_minute`` seconds.
:class:`MultiWindowRateLimiter` adds optional per-second/minute/hour/day
ceilings on top of that spacing.
"""

from __future__ import annotations

import asyncio
import bisect
import itertools
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Generic, List, Optional, TypeVar

from . import config
from .logging_utils import _scraper_event
from .utils import short_error_message

T = TypeVar("T")

Clock = Callable[[], float]
SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RateLimits:
    per_second: Optional[int] = None
    per_minute: Optional[int] = None
    per_hour: Optional[int] = None
    per_day: Optional[int] = None

    def windows(self) -> List[tuple[str, float, int]]:
        spans = (
            ("second", 1.0, self.per_second),
            ("minute", 60.0, self.per_minute),
            ("hour", 3600.0, self.per_hour),
            ("day", 86400.0, self.per_day),
        )
        return [(name, span, limit) for name, span, limit in spans if limit]


RATE_LIMIT_PRESETS: Dict[str, RateLimits] = {
    "conservative": RateLimits(per_second=1, per_minute=15, per_hour=300, per_day=3000),
    "moderate": RateLimits(per_second=2, per_minute=30, per_hour=600, per_day=6000),
    "aggressive": RateLimits(per_second=5, per_minute=60, per_hour=1200, per_day=12000),
}


class MultiWindowRateLimiter:
    """Sliding-window limiter enforcing several ceilings at once."""

    def __init__(
        self,
        limits: RateLimits,
        *,
        clock: Clock = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if not limits.windows():
            raise ValueError("At least one rate limit window must be configured")
        self.limits = limits
        self._clock = clock
        self._sleep = sleep
        self._history: List[float] = []
        self._longest_window = max(span for _, span, _ in limits.windows())

    def _prune(self, now: float) -> None:
        cutoff = bisect.bisect_right(self._history, now - self._longest_window)
        if cutoff:
            del self._history[:cutoff]

    def _count_since(self, since: float) -> int:
        return len(self._history) - bisect.bisect_right(self._history, since)

    def wait_time(self) -> float:
        """Seconds until another request fits every window (0 when it fits now)."""

        now = self._clock()
        self._prune(now)
        wait = 0.0
        for _, span, limit in self.limits.windows():
            in_window = self._count_since(now - span)
            if in_window >= limit:
                # The request that frees a slot is the limit-th most recent one.
                oldest_blocking = self._history[len(self._history) - limit]
                wait = max(wait, oldest_blocking + span - now)
        return wait

    async def acquire(self) -> None:
        """Block until a request may be made, then record it."""

        while True:
            wait = self.wait_time()
            if wait <= 0:
                break
            _scraper_event("queue", step="limiter_wait", wait_seconds=round(wait, 3))
            await self._sleep(wait)
        self._history.append(self._clock())

    def stats(self) -> Dict[str, Dict[str, int]]:
        now = self._clock()
        self._prune(now)
        return {
            name: {"used": self._count_since(now - span), "limit": limit}
            for name, span, limit in self.limits.windows()
        }

    def reset(self) -> None:
        self._history.clear()


def create_rate_limiter(preset: str = "moderate", **kwargs: Any) -> MultiWindowRateLimiter:
    try:
        limits = RATE_LIMIT_PRESETS[preset]
    except KeyError:
        raise ValueError(
            f"Unknown rate limit preset {preset!r}; expected one of {sorted(RATE_LIMIT_PRESETS)}"
        ) from None
    return MultiWindowRateLimiter(limits, **kwargs)


@dataclass
class QueueTask(Generic[T]):
    id: str
    execute: Callable[[], Awaitable[T]]
    enqueued_at: float
    future: "asyncio.Future[T]"


class RateLimitedQueue:
    """FIFO that runs one task at a time with a minimum spacing between dispatches.

    Construct one per process (or per throttled resource) and pass it to every
    caller that must share the ceiling. The pending tasks and the last dispatch
    time are only touched by the single active drain loop.
    """

    def __init__(
        self,
        requests_per_minute: Optional[float] = None,
        *,
        limiter: Optional[MultiWindowRateLimiter] = None,
        name: str = "queue",
        clock: Clock = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        rate = config.QUEUE_REQUESTS_PER_MINUTE if requests_per_minute is None else requests_per_minute
        if rate <= 0:
            raise ValueError("requests_per_minute must be positive")
        self.name = name
        self.requests_per_minute = float(rate)
        self.min_delay = 60.0 / self.requests_per_minute
        self._limiter = limiter
        self._clock = clock
        self._sleep = sleep
        self._tasks: Deque[QueueTask[Any]] = deque()
        self._ids = itertools.count(1)
        self._drain_task: Optional[asyncio.Task[None]] = None
        self.last_dispatched_at: Optional[float] = None
        self.dispatched = 0
        self.failed = 0

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def is_draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "pending": len(self._tasks),
            "dispatched": self.dispatched,
            "failed": self.failed,
            "min_delay_seconds": self.min_delay,
            "draining": self.is_draining,
        }

    async def enqueue(self, execute: Callable[[], Awaitable[T]]) -> T:
        """Queue ``execute`` and return its result once the queue has run it.

        An exception raised by ``execute`` is re-raised here and does not
        affect other queued tasks.
        """

        loop = asyncio.get_running_loop()
        task: QueueTask[T] = QueueTask(
            id=f"{self.name}-{next(self._ids)}",
            execute=execute,
            enqueued_at=self._clock(),
            future=loop.create_future(),
        )
        self._tasks.append(task)
        _scraper_event("queue", step="enqueued", task_id=task.id, pending=len(self._tasks))

        if not self.is_draining:
            self._drain_task = loop.create_task(self._drain())
            self._drain_task.add_done_callback(self._on_drain_done)
        return await task.future

    def _remaining_delay(self) -> float:
        if self.last_dispatched_at is None:
            return 0.0
        elapsed = self._clock() - self.last_dispatched_at
        return max(0.0, self.min_delay - elapsed)

    async def _drain(self) -> None:
        try:
            while self._tasks:
                wait = self._remaining_delay()
                if wait > 0:
                    await self._sleep(wait)

                task = self._tasks.popleft()
                if task.future.done():
                    # Caller stopped waiting before dispatch.
                    continue
                await self._dispatch(task)
        finally:
            # Nothing will run what is left once the loop stops early.
            while self._tasks:
                leftover = self._tasks.popleft()
                if not leftover.future.done():
                    leftover.future.cancel()

    async def _dispatch(self, task: QueueTask[Any]) -> None:
        """Run one task; every outcome resolves ``task.future``.

        Cancellation is re-raised after the caller is released.
        """

        try:
            if self._limiter is not None:
                await self._limiter.acquire()

            self.last_dispatched_at = self._clock()
            self.dispatched += 1
            _scraper_event(
                "queue",
                step="dispatch",
                task_id=task.id,
                waited_seconds=round(self.last_dispatched_at - task.enqueued_at, 3),
                pending=len(self._tasks),
            )
            result = await task.execute()
        except BaseException as exc:
            self.failed += 1
            _scraper_event("queue", step="task_failed", task_id=task.id, error=short_error_message(exc))
            if not task.future.done():
                if isinstance(exc, asyncio.CancelledError):
                    task.future.cancel()
                else:
                    task.future.set_exception(exc)
            if not isinstance(exc, Exception):
                raise
            return
        if not task.future.done():
            task.future.set_result(result)

    def _on_drain_done(self, drain: "asyncio.Task[None]") -> None:
        if drain.cancelled():
            _scraper_event("queue", step="drain_cancelled", pending=len(self._tasks))
            return
        exc = drain.exception()
        if exc is not None:
            _scraper_event("queue", step="drain_failed", error=short_error_message(exc))


__all__ = [
    "MultiWindowRateLimiter",
    "QueueTask",
    "RATE_LIMIT_PRESETS",
    "RateLimitedQueue",
    "RateLimits",
    "create_rate_limiter",
]
