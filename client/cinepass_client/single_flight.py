"""Coalescing of concurrent calls to the same async operation."""

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """At most one in-flight operation per key.

    The first caller for a key starts the operation; callers arriving while
    it runs await the same result (or exception). The slot is cleared when
    the operation finishes, so the next call starts a fresh one.

    Cancelling one waiter does not cancel the shared operation.
    """

    def __init__(self) -> None:
        self._in_flight: dict[Hashable, asyncio.Future[T]] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._in_flight

    async def do(self, key: Hashable, operation: Callable[[], Awaitable[T]]) -> T:
        future = self._in_flight.get(key)
        if future is None:
            future = asyncio.ensure_future(operation())
            self._in_flight[key] = future
            future.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(future)

    def _forget(self, key: Hashable, done: asyncio.Future[T]) -> None:
        if self._in_flight.get(key) is done:
            del self._in_flight[key]
        # Mark the exception retrieved even if every waiter was cancelled
        if not done.cancelled():
            done.exception()
