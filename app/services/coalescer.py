"""Collapse concurrent cache-miss computations for the same key."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestCoalescer(Generic[T]):
    """Owns the mapping from key to the task computing its value.

    The first caller for a key starts the task and registers it before
    yielding to the event loop; later callers await the same task and see
    its value or exception unchanged. The entry is dropped as soon as the
    task settles, whatever the outcome. Callers await through
    :func:`asyncio.shield`, so cancelling one of them leaves the shared
    computation running for the rest.

    The check-and-register step relies on single-threaded event loop
    scheduling; it is not safe to share one instance across threads.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Task[T]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._inflight

    def __len__(self) -> int:
        return len(self._inflight)

    def get(self, key: str) -> asyncio.Task[T] | None:
        return self._inflight.get(key)

    def start(self, key: str, factory: Callable[[], Awaitable[T]]) -> asyncio.Task[T]:
        """Return the in-flight task for ``key``, creating it if needed."""

        existing = self._inflight.get(key)
        if existing is not None:
            logger.debug("Joining in-flight computation for %s", key)
            return existing

        task = asyncio.ensure_future(factory())
        self._inflight[key] = task
        task.add_done_callback(lambda finished: self._settle(key, finished))
        return task

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task = self.start(key, factory)
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Task[T]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the outcome as observed even when every waiter was cancelled.
        if not task.cancelled():
            task.exception()
