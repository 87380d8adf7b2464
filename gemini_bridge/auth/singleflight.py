"""Keyed async single-flight.

Concurrent calls for the same key share one execution of the work: the first
caller starts it as a task owned by the ``SingleFlight`` and every caller,
the first included, awaits that task through ``asyncio.shield``. Cancelling a
caller cancels only its wait. Different keys never wait on each other; the
lock only guards the in-flight table.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Generic, Hashable, TypeVar

T = TypeVar("T")


def _consume_future_exception(fut: asyncio.Future[Any]) -> None:
    """Avoid 'Future exception was never retrieved' when nobody else waited."""
    if fut.cancelled():
        return
    fut.exception()


class SingleFlight(Generic[T]):
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._inflight: dict[Hashable, asyncio.Future[T]] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    def _forget(self, key: Hashable, task: asyncio.Future[T]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def do(self, key: Hashable, work: Callable[[], Awaitable[T]]) -> T:
        """Run ``work`` once per key at a time and share its outcome.

        Exceptions propagate to every waiter. A cancelled caller stops
        waiting while the work keeps running for the others; the next call
        after the work finishes starts a fresh attempt.
        """
        async with self._lock:
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.ensure_future(work())
                task.add_done_callback(_consume_future_exception)
                task.add_done_callback(lambda done, key=key: self._forget(key, done))
                self._inflight[key] = task

        return await asyncio.shield(task)
