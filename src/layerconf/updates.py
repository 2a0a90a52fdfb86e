"""Delivery channels and update streams for watches.

Every watch hands its handler an ``UpdateStream``: an async iterator that is
lazy, possibly infinite, and cannot be restarted. Behind each stream sits an
``UpdateChannel`` that producers push into.

Channels are thread-safe. ``send`` appends under the channel's own lock and
wakes the consuming event loop with ``call_soon_threadsafe``, so providers can
notify from any thread without holding their state lock during delivery.
Elements are delivered in the order they were sent.
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from collections.abc import AsyncIterator, Callable
from typing import Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


class UpdateChannel(Generic[T]):
    """Unbounded, ordered, thread-safe queue consumed by one async iterator.

    The channel binds to the running event loop when it is created; it must
    therefore be created from inside a coroutine.
    """

    def __init__(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._lock = threading.Lock()
        self._items: deque[T] = deque()
        self._closed = False
        self._error: BaseException | None = None
        self._wakeup = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, item: T) -> None:
        """Enqueue an element. Sends after close are dropped."""
        with self._lock:
            if self._closed:
                return
            self._items.append(item)
        self._notify()

    def close(self) -> None:
        """Finish the stream once buffered elements are drained."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._notify()

    def fail(self, error: BaseException) -> None:
        """Finish the stream by raising ``error`` once buffered elements are drained."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._error = error
        self._notify()

    def _notify(self) -> None:
        if self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(self._wakeup.set)
        except RuntimeError:
            # Loop shut down between the check and the call
            pass

    def _take(self) -> tuple[bool, T | None]:
        with self._lock:
            if self._items:
                return True, self._items.popleft()
            if self._closed:
                if self._error is not None:
                    raise self._error
                raise StopAsyncIteration
            return False, None

    def __aiter__(self) -> UpdateChannel[T]:
        return self

    async def __anext__(self) -> T:
        while True:
            found, item = self._take()
            if found:
                return item  # type: ignore[return-value]
            self._wakeup.clear()
            # Re-check after clearing so a send between take and clear is not lost
            found, item = self._take()
            if found:
                return item  # type: ignore[return-value]
            await self._wakeup.wait()


class UpdateStream(Generic[T]):
    """Async iterator over watch updates handed to watch handlers.

    Example:
        async def handler(updates: UpdateStream[Result[LookupResult]]) -> None:
            async for update in updates:
                print(update.unwrap().value)
    """

    def __init__(self, source: AsyncIterator[T]) -> None:
        self._source = source

    def __aiter__(self) -> AsyncIterator[T]:
        return self._source

    async def __anext__(self) -> T:
        return await self._source.__anext__()

    def map(self, transform: Callable[[T], U]) -> UpdateStream[U]:
        """Return a stream applying ``transform`` to each element."""
        return UpdateStream(_mapped(self._source, transform))

    async def first(self) -> T:
        """Return the next element, raising if the stream has ended."""
        try:
            return await self._source.__anext__()
        except StopAsyncIteration:
            raise RuntimeError("Update stream ended before producing an element") from None


async def _mapped(source: AsyncIterator[T], transform: Callable[[T], U]) -> AsyncIterator[U]:
    async for item in source:
        yield transform(item)
