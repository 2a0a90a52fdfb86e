"""Combine-latest fan-in over several watch sources.

Each source is a watch call that still needs its handler, for example
``functools.partial(provider.watch_value, key, type)``. All sources run
concurrently as tasks. The combined stream emits the list of latest elements
(one per source, in source order), but only once every source has emitted at
least once. After that, every upstream element triggers a new emission, even
when nothing visible changed.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Generic, TypeVar

from layerconf.logging import get_logger
from layerconf.updates import UpdateChannel, UpdateStream

T = TypeVar("T")
R = TypeVar("R")

log = get_logger("combine")

WatchSource = Callable[[Callable[[UpdateStream[T]], Awaitable[None]]], Awaitable[Any]]

_UNSET: Any = object()


class _Combiner(Generic[T]):
    """Holds the latest element of every source and gates the first emission."""

    def __init__(self, count: int) -> None:
        self._lock = threading.Lock()
        self._elements: list[Any] = [_UNSET] * count
        self.channel: UpdateChannel[list[T]] = UpdateChannel()

    def update(self, index: int, element: T) -> None:
        with self._lock:
            self._elements[index] = element
            if any(item is _UNSET for item in self._elements):
                return
            # Send under the lock so emissions keep upstream arrival order
            self.channel.send(list(self._elements))


async def combine_latest(
    sources: Sequence[WatchSource[T]],
    handler: Callable[[UpdateStream[list[T]]], Awaitable[R]],
) -> R:
    """Run ``handler`` with the combined stream of all ``sources``.

    If a source raises, the combined stream raises that error to the handler.
    If a source's stream ends, the combined stream ends. The source tasks are
    cancelled when the handler returns.

    Args:
        sources: Watch calls awaiting a handler, at least one.
        handler: Coroutine function consuming the combined stream.

    Returns:
        Whatever ``handler`` returns.
    """
    if not sources:
        raise ValueError("combine_latest requires at least one source")

    combiner: _Combiner[T] = _Combiner(len(sources))

    async def run_source(index: int, source: WatchSource[T]) -> None:
        async def consume(updates: UpdateStream[T]) -> None:
            async for element in updates:
                combiner.update(index, element)

        await source(consume)
        log.debug("Watch source %d ended, ending combined stream", index)
        combiner.channel.close()

    def on_done(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            combiner.channel.fail(error)

    tasks = []
    for index, source in enumerate(sources):
        task = asyncio.create_task(run_source(index, source))
        task.add_done_callback(on_done)
        tasks.append(task)

    try:
        return await handler(UpdateStream(combiner.channel))
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        combiner.channel.close()
