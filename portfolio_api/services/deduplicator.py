"""
RequestDeduplicator - single-flight protection for cache misses.

When several callers miss the cache for the same key at the same time, only
the first one goes upstream; the others await its result.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class RequestDeduplicator:
    """
    Coalesces concurrent coroutines that share a key.

    The shared call runs in its own task and each waiter awaits it through
    asyncio.shield. Cancelling a waiter leaves the call running while other
    waiters remain; cancelling the last one cancels the call as well.

    Usage:
        dedup = RequestDeduplicator()
        value = await dedup.dedupe("qiita:articles:10", load_articles)
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._waiters: dict[asyncio.Task[Any], int] = {}
        self._debug = debug
        self._stats = DeduplicatorStats()

    async def dedupe(self, key: str, request_fn: Callable[[], Awaitable[T]]) -> T:
        """Run request_fn for key, or join the call already in flight."""
        task = self._in_flight.get(key)
        if task is None:
            self._stats.total += 1
            self._log(f"NEW: {key}")
            task = asyncio.ensure_future(request_fn())
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            self._stats.deduplicated += 1
            self._log(f"JOIN: {key}")

        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if self._waiters[task] == 1 and not task.done():
                self._log(f"ABANDONED: {key}")
                if self._in_flight.get(key) is task:
                    del self._in_flight[key]
                task.cancel()
            raise
        finally:
            remaining = self._waiters[task] - 1
            if remaining:
                self._waiters[task] = remaining
            else:
                del self._waiters[task]

    def _forget(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Retrieve the exception so an unawaited failure is not reported
        if not task.cancelled():
            task.exception()
        self._log(f"DONE: {key}")

    async def cancel_all(self) -> int:
        """Cancel all in-flight requests."""
        tasks = list(self._in_flight.values())
        self._in_flight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            self._log(f"CANCEL_ALL: {len(tasks)} requests cancelled")
        return len(tasks)

    def get_in_flight_count(self) -> int:
        return len(self._in_flight)

    def get_stats(self) -> "DeduplicatorStats":
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")


class DeduplicatorStats:
    """Statistics for request deduplication."""

    def __init__(self):
        self.total: int = 0  # Upstream calls started
        self.deduplicated: int = 0  # Callers that joined an in-flight call
        self.in_flight: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total,
            "deduplicated": self.deduplicated,
            "in_flight": self.in_flight,
        }
