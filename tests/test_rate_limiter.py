"""Tests for the sliding-window FIFO rate limiter."""

from __future__ import annotations

import asyncio
import logging

import pytest

from whiteboard_mcp.errors import QueueFullError
from whiteboard_mcp.rate_limiter import RateLimiter


def _limiter(clock, max_calls: int = 10, **kwargs) -> RateLimiter:
    return RateLimiter(max_calls, clock=clock, sleep=clock.sleep, **kwargs)


def _recording_task(clock, starts: list[float], value=None):
    async def task():
        starts.append(clock.now)
        return value

    return task


async def _settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class TestExecute:
    async def test_returns_task_result(self, fake_clock):
        limiter = _limiter(fake_clock)

        async def task():
            return {"audio": b"pcm"}

        assert await limiter.execute(task) == {"audio": b"pcm"}

    async def test_task_exception_reaches_only_its_caller(self, fake_clock):
        """A failing task must not stop the drain loop or affect other callers."""
        limiter = _limiter(fake_clock)
        boom = ValueError("tts failed")

        async def bad():
            raise boom

        async def good():
            return "ok"

        results = await asyncio.gather(
            limiter.execute(good),
            limiter.execute(bad),
            limiter.execute(good),
            return_exceptions=True,
        )

        assert results[0] == "ok"
        assert results[1] is boom
        assert results[2] == "ok"
        assert limiter.get_queue_length() == 0

    async def test_task_cancelling_itself_does_not_stop_the_drain(self, fake_clock):
        """A task that raises CancelledError cancels only its own caller."""
        limiter = _limiter(fake_clock)

        async def cancelled():
            raise asyncio.CancelledError

        async def good():
            return "ok"

        first = asyncio.ensure_future(limiter.execute(cancelled))
        second = asyncio.ensure_future(limiter.execute(good))

        done, pending = await asyncio.wait({first, second}, timeout=1)

        assert not pending
        assert first.cancelled()
        assert second.result() == "ok"
        assert limiter.get_queue_length() == 0

    async def test_tasks_start_in_submission_order(self, fake_clock):
        limiter = _limiter(fake_clock, max_calls=1000)
        order: list[int] = []

        def make(i):
            async def task():
                order.append(i)
                return i
            return task

        results = await asyncio.gather(*(limiter.execute(make(i)) for i in range(25)))

        assert order == list(range(25))
        assert results == list(range(25))

    async def test_tasks_never_overlap(self, fake_clock):
        limiter = _limiter(fake_clock, max_calls=1000)
        active = 0
        peak = 0

        async def task():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            active -= 1

        await asyncio.gather(*(limiter.execute(task) for _ in range(8)))

        assert peak == 1

    async def test_first_call_starts_without_delay(self, fake_clock):
        limiter = _limiter(fake_clock)
        starts: list[float] = []

        await limiter.execute(_recording_task(fake_clock, starts))

        assert starts == [0.0]
        assert fake_clock.sleeps == []


class TestScheduling:
    async def test_even_spacing_under_ceiling(self, fake_clock):
        """10/min means consecutive starts at least 6s apart in a tight burst."""
        limiter = _limiter(fake_clock, max_calls=10)
        starts: list[float] = []

        await asyncio.gather(
            *(limiter.execute(_recording_task(fake_clock, starts)) for _ in range(12))
        )

        gaps = [b - a for a, b in zip(starts, starts[1:])]
        assert all(gap >= 6.0 - 1e-9 for gap in gaps)
        assert starts[:3] == pytest.approx([0.0, 6.0, 12.0])

    @pytest.mark.parametrize("max_calls", [1, 2, 3, 10])
    async def test_rate_ceiling_holds_in_every_window(self, fake_clock, max_calls):
        limiter = _limiter(fake_clock, max_calls=max_calls)
        starts: list[float] = []

        await asyncio.gather(
            *(limiter.execute(_recording_task(fake_clock, starts)) for _ in range(max_calls * 3 + 1))
        )

        for t in starts:
            in_window = [s for s in starts if t - 60.0 < s <= t]
            assert len(in_window) <= max_calls

    async def test_full_window_waits_for_oldest_to_expire(self, fake_clock, caplog):
        """With a 2-call ceiling the third start waits for the first to leave the window."""
        limiter = _limiter(fake_clock, max_calls=2)
        starts: list[float] = []

        with caplog.at_level(logging.INFO, logger="whiteboard_mcp.rate_limiter"):
            await asyncio.gather(
                *(limiter.execute(_recording_task(fake_clock, starts)) for _ in range(3))
            )

        assert starts == pytest.approx([0.0, 30.0, 60.0])
        assert fake_clock.sleeps == pytest.approx([30.0, 30.0])
        assert "Rate limit reached" in caplog.text

    async def test_slow_tasks_count_toward_spacing(self, fake_clock):
        """A task that runs longer than the interval lets the next start immediately."""
        limiter = _limiter(fake_clock, max_calls=10)
        starts: list[float] = []

        async def slow():
            starts.append(fake_clock.now)
            fake_clock.advance(10.0)

        await asyncio.gather(limiter.execute(slow), limiter.execute(slow))

        assert starts == pytest.approx([0.0, 10.0])
        assert fake_clock.sleeps == []

    async def test_idle_limiter_does_not_delay(self, fake_clock):
        limiter = _limiter(fake_clock, max_calls=10)
        starts: list[float] = []

        await limiter.execute(_recording_task(fake_clock, starts))
        fake_clock.advance(120.0)
        await limiter.execute(_recording_task(fake_clock, starts))

        assert starts == pytest.approx([0.0, 120.0])
        assert fake_clock.sleeps == []


class TestDiagnostics:
    async def test_remaining_calls_tracks_window(self, fake_clock):
        limiter = _limiter(fake_clock, max_calls=10)
        assert limiter.get_remaining_calls() == 10

        await asyncio.gather(
            *(limiter.execute(_recording_task(fake_clock, [])) for _ in range(3))
        )
        assert limiter.get_remaining_calls() == 7

        fake_clock.advance(60.0)
        assert limiter.get_remaining_calls() == 10

    async def test_queue_length_counts_unstarted_tasks(self, fake_clock):
        limiter = _limiter(fake_clock)
        gate = asyncio.Event()

        async def blocked():
            await gate.wait()

        first = asyncio.create_task(limiter.execute(blocked))
        rest = [asyncio.create_task(limiter.execute(blocked)) for _ in range(3)]
        await _settle()

        assert limiter.get_queue_length() == 3

        gate.set()
        await asyncio.gather(first, *rest)
        assert limiter.get_queue_length() == 0

    async def test_remaining_calls_does_not_disturb_scheduling(self, fake_clock):
        limiter = _limiter(fake_clock, max_calls=10)
        starts: list[float] = []
        pending = [
            asyncio.create_task(limiter.execute(_recording_task(fake_clock, starts)))
            for _ in range(3)
        ]
        limiter.get_remaining_calls()
        await asyncio.gather(*pending)

        assert starts == pytest.approx([0.0, 6.0, 12.0])


class TestBoundedQueue:
    async def test_rejects_when_full(self, fake_clock):
        limiter = _limiter(fake_clock, max_queue_size=1)
        gate = asyncio.Event()

        async def blocked():
            await gate.wait()
            return "done"

        running = asyncio.create_task(limiter.execute(blocked))
        await _settle()
        queued = asyncio.create_task(limiter.execute(blocked))
        await _settle()

        with pytest.raises(QueueFullError, match="queue is full"):
            await limiter.execute(blocked)

        gate.set()
        assert await asyncio.gather(running, queued) == ["done", "done"]

    async def test_zero_means_unbounded(self, fake_clock):
        limiter = _limiter(fake_clock, max_queue_size=0)
        assert limiter.max_queue_size is None


class TestLifecycle:
    async def test_aclose_cancels_running_and_queued(self, fake_clock):
        limiter = _limiter(fake_clock)
        gate = asyncio.Event()

        async def blocked():
            await gate.wait()

        running = asyncio.create_task(limiter.execute(blocked))
        queued = asyncio.create_task(limiter.execute(blocked))
        await _settle()

        await limiter.aclose()

        with pytest.raises(asyncio.CancelledError):
            await running
        with pytest.raises(asyncio.CancelledError):
            await queued
        assert limiter.get_queue_length() == 0

    async def test_usable_after_drain_finishes(self, fake_clock):
        limiter = _limiter(fake_clock)

        async def task():
            return 1

        assert await limiter.execute(task) == 1
        await _settle()
        assert await limiter.execute(task) == 1

    @pytest.mark.parametrize("kwargs", [{"max_calls_per_minute": 0}, {"window_seconds": 0}])
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            RateLimiter(**kwargs)
