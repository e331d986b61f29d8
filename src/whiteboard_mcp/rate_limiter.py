"""Sliding-window FIFO rate limiter for speech-synthesis calls.

At most ``max_calls_per_minute`` tasks start inside any trailing window, and
consecutive starts are spaced ``window / max_calls_per_minute`` apart even when
the window has room, so allowances never cluster at window boundaries.

Tasks run one at a time in submission order from a single drain loop. The
``_processing`` latch keeps concurrent ``execute`` calls from starting a second
loop; it is sufficient only because asyncio never runs two coroutines at once.

Cancellation is not supported: a caller that stops awaiting ``execute`` does not
remove its task from the queue. Wrap the task itself for per-call timeouts.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .errors import QueueFullError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_WINDOW_SECONDS = 60.0


class RateLimiter:
    """FIFO task throttle with a sliding call window and even spacing."""

    def __init__(
        self,
        max_calls_per_minute: int = 10,
        *,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_queue_size: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the limiter.

        Args:
            max_calls_per_minute: Ceiling on task starts per window.
            window_seconds: Length of the sliding window.
            max_queue_size: Reject new tasks with QueueFullError once this many
                are waiting. ``None`` or 0 means unbounded.
            clock: Monotonic time source in seconds.
            sleep: Coroutine used to suspend the drain loop.
        """
        if max_calls_per_minute < 1:
            raise ValueError("max_calls_per_minute must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_calls_per_minute = max_calls_per_minute
        self.window_seconds = window_seconds
        self.min_interval = window_seconds / max_calls_per_minute
        self.max_queue_size = max_queue_size or None
        self._clock = clock
        self._sleep = sleep
        self._queue: deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self._timestamps: deque[float] = deque()
        self._processing = False
        self._drain_task: asyncio.Task | None = None
        self._inflight: asyncio.Future | None = None

    async def execute(self, task: Callable[[], Awaitable[T]]) -> T:
        """Queue *task* and return its result once it has run.

        The task's own return value or exception is passed through untouched;
        only its start time is delayed.

        Raises:
            QueueFullError: If the queue is bounded and already full.
        """
        if self.max_queue_size is not None and len(self._queue) >= self.max_queue_size:
            raise QueueFullError(
                f"Rate limiter queue is full ({self.max_queue_size} pending tasks)"
            )
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._queue.append((task, future))
        if not self._processing:
            self._processing = True
            self._drain_task = loop.create_task(self._drain())
        return await future

    def get_remaining_calls(self) -> int:
        """Return how many starts the current window still allows."""
        self._purge(self._clock())
        return self.max_calls_per_minute - len(self._timestamps)

    def get_queue_length(self) -> int:
        """Return the number of queued tasks that have not started."""
        return len(self._queue)

    async def aclose(self) -> None:
        """Stop the drain loop and cancel the running task and every queued one."""
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        while self._queue:
            _, future = self._queue.popleft()
            if not future.done():
                future.cancel()
        self._processing = False

    def _purge(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    async def _drain(self) -> None:
        try:
            while self._queue:
                now = self._clock()
                self._purge(now)

                if len(self._timestamps) >= self.max_calls_per_minute:
                    wait = self.window_seconds - (now - self._timestamps[0])
                    logger.info("Rate limit reached. Waiting %.1fs...", wait)
                    await self._sleep(wait)
                    continue

                if self._timestamps:
                    since_last = now - self._timestamps[-1]
                    if since_last < self.min_interval:
                        await self._sleep(self.min_interval - since_last)

                task, future = self._queue.popleft()
                self._timestamps.append(self._clock())
                logger.debug(
                    "Starting rate-limited task (%d queued, %d left in window)",
                    len(self._queue),
                    self.max_calls_per_minute - len(self._timestamps),
                )
                self._inflight = future
                await self._run(task, future)
                self._inflight = None
        finally:
            self._processing = False

    @staticmethod
    async def _run(task: Callable[[], Awaitable[Any]], future: asyncio.Future) -> None:
        try:
            result = await task()
        except asyncio.CancelledError:
            # Only a cancel aimed at the drain task itself may end the loop.
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            if not future.done():
                future.cancel()
        except Exception as exc:
            if not future.done():
                future.set_exception(exc)
        else:
            if not future.done():
                future.set_result(result)
