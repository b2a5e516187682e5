"""
Request deadlines for calls to external dependencies.

A Deadline is created once per incoming request and handed down to every
call that leaves the process (database, cache, event bus). ``bounded`` waits
for such a call for at most the remaining time.

Calls are shielded: when the deadline passes or the request is cancelled the
caller stops waiting, but the underlying operation keeps running to
completion. Writes such as an inserted user row cannot be rolled back by
tearing down the connection midway.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, Set, TypeVar

from .errors import OperationTimeoutError
from .logging import get_logger

T = TypeVar("T")

logger = get_logger("shared.deadline")

# Shielded operations still running after their caller gave up.
_detached: Set[asyncio.Future] = set()


class Deadline:
    """Absolute expiry on a monotonic clock."""

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.timeout = timeout
        self.expires_at = clock() + timeout

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        """Deadline ``seconds`` from now on the monotonic clock."""
        return cls(seconds)

    def remaining(self) -> float:
        """Seconds left before expiry, never negative."""
        return max(0.0, self.expires_at - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0

    def __repr__(self) -> str:
        return f"Deadline(remaining={self.remaining():.3f}s)"


def _log_detached_result(task: asyncio.Future, operation: str) -> None:
    _detached.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(
            "Detached operation failed after caller stopped waiting",
            operation=operation,
            error=str(exc),
            error_type=type(exc).__name__,
        )


async def bounded(awaitable: Awaitable[T], deadline: Optional[Deadline], operation: str) -> T:
    """Await ``awaitable`` for at most the time left on ``deadline``.

    Raises:
        OperationTimeoutError: if the deadline is already spent or passes
            while waiting.
    """
    if deadline is None:
        return await awaitable

    remaining = deadline.remaining()
    if remaining <= 0:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise OperationTimeoutError(operation)

    task = asyncio.ensure_future(awaitable)
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout=remaining)
    except asyncio.TimeoutError:
        _keep_running(task, operation)
        raise OperationTimeoutError(operation) from None
    except asyncio.CancelledError:
        _keep_running(task, operation)
        raise


def _keep_running(task: asyncio.Future, operation: str) -> None:
    if task.done():
        return
    _detached.add(task)
    task.add_done_callback(lambda t: _log_detached_result(t, operation))


def detached_count() -> int:
    """Number of shielded operations still in flight."""
    return len(_detached)
