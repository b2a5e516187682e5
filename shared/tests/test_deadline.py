"""
Unit tests for request deadlines.
"""

import asyncio

import pytest

from shared.deadline import Deadline, bounded, detached_count
from shared.errors import OperationTimeoutError


class FakeClock:
    """Settable monotonic clock."""

    def __init__(self, now: float = 50.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestDeadline:
    """Test cases for Deadline."""

    def test_remaining_counts_down(self):
        clock = FakeClock()
        deadline = Deadline(10, clock=clock)

        assert deadline.remaining() == 10
        clock.now += 4
        assert deadline.remaining() == 6
        assert not deadline.expired()

    def test_remaining_never_negative(self):
        clock = FakeClock()
        deadline = Deadline(1, clock=clock)

        clock.now += 5

        assert deadline.remaining() == 0
        assert deadline.expired()

    def test_after_starts_on_monotonic_clock(self):
        deadline = Deadline.after(5)

        assert deadline.timeout == 5
        assert 0 < deadline.remaining() <= 5
        assert not deadline.expired()


class TestBounded:
    """Test cases for bounded()."""

    @pytest.mark.asyncio
    async def test_returns_result_within_deadline(self):
        async def answer():
            return 42

        assert await bounded(answer(), Deadline(1), "answer") == 42

    @pytest.mark.asyncio
    async def test_no_deadline_waits_indefinitely(self):
        async def answer():
            await asyncio.sleep(0.01)
            return "done"

        assert await bounded(answer(), None, "answer") == "done"

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        async def broken():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await bounded(broken(), Deadline(1), "broken")

    @pytest.mark.asyncio
    async def test_spent_deadline_never_starts_the_call(self):
        started = False

        async def work():
            nonlocal started
            started = True

        with pytest.raises(OperationTimeoutError) as exc_info:
            await bounded(work(), Deadline(0), "work")

        assert started is False
        assert exc_info.value.code == "TIMEOUT"
        assert exc_info.value.details == {"operation": "work", "retryable": True}

    @pytest.mark.asyncio
    async def test_timed_out_call_runs_to_completion(self):
        finished = asyncio.Event()

        async def slow_write():
            await asyncio.sleep(0.1)
            finished.set()

        before = detached_count()
        with pytest.raises(OperationTimeoutError):
            await bounded(slow_write(), Deadline(0.01), "slow_write")

        assert detached_count() == before + 1
        await asyncio.wait_for(finished.wait(), timeout=1)
        await asyncio.sleep(0.01)
        assert detached_count() == before

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_call(self):
        finished = asyncio.Event()

        async def slow_write():
            await asyncio.sleep(0.05)
            finished.set()

        caller = asyncio.create_task(bounded(slow_write(), Deadline(5), "slow_write"))
        await asyncio.sleep(0.01)
        caller.cancel()

        with pytest.raises(asyncio.CancelledError):
            await caller

        await asyncio.wait_for(finished.wait(), timeout=1)
