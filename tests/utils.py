"""Shared test helpers."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from layerconf.key import ConfigKey
from layerconf.provider import (
    ConfigSnapshot,
    LookupResult,
    Result,
    UpdatesHandler,
    watch_snapshot_from_snapshot,
    watch_value_from_value,
)
from layerconf.updates import UpdateStream
from layerconf.values import ConfigType

R = TypeVar("R")
T = TypeVar("T")


@dataclass
class _File:
    contents: bytes
    timestamp: int


class InMemoryFileSystem:
    """FileSystem stub that counts every call.

    Timestamps advance by one on every write unless given explicitly.
    ``before_read`` runs before contents are returned, which lets a test
    change the file in the middle of a reload.
    """

    def __init__(self) -> None:
        self.files: dict[str, _File] = {}
        self.symlinks: dict[str, str] = {}
        self.directories: set[str] = set()
        self.resolve_count = 0
        self.timestamp_count = 0
        self.read_count = 0
        self.before_read: Callable[[str], Awaitable[None]] | None = None
        self._clock = 0

    def write(self, path: str, contents: bytes | str, timestamp: int | None = None) -> None:
        if isinstance(contents, str):
            contents = contents.encode("utf-8")
        if timestamp is None:
            self._clock += 1
            timestamp = self._clock
        self.files[path] = _File(contents, timestamp)

    def remove(self, path: str) -> None:
        self.files.pop(path, None)

    def mkdir(self, path: str) -> None:
        self.directories.add(path.rstrip("/"))

    def symlink(self, link: str, target: str) -> None:
        self.symlinks[link] = target

    async def resolve_symlinks(self, path: str) -> str | None:
        self.resolve_count += 1
        real_path = self.symlinks.get(path, path)
        return real_path if real_path in self.files else None

    async def last_modified_timestamp(self, path: str) -> int | None:
        self.timestamp_count += 1
        file = self.files.get(path)
        return file.timestamp if file else None

    async def file_contents(self, path: str) -> bytes | None:
        if self.before_read is not None:
            hook, self.before_read = self.before_read, None
            await hook(path)
        self.read_count += 1
        file = self.files.get(path)
        return file.contents if file else None

    async def list_file_names(self, path: str) -> list[str] | None:
        directory = path.rstrip("/")
        names = [
            name
            for parent, _, name in (file_path.rpartition("/") for file_path in self.files)
            if parent == directory and not name.startswith(".")
        ]
        if not names and directory not in self.directories:
            return None
        return sorted(names)


class RaisingProvider:
    """Provider whose every lookup raises ``error``."""

    def __init__(self, error: Exception, name: str = "RaisingProvider") -> None:
        self.error = error
        self.name = name
        self.lookups = 0

    @property
    def provider_name(self) -> str:
        return self.name

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        self.lookups += 1
        raise self.error

    async def fetch_value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return self.value(key, type)

    async def watch_value(
        self,
        key: ConfigKey,
        type: ConfigType,
        handler: UpdatesHandler[Result[LookupResult], R],
    ) -> R:
        return await watch_value_from_value(self, key, type, handler)

    def snapshot(self) -> ConfigSnapshot:
        raise self.error

    async def watch_snapshot(self, handler: UpdatesHandler[ConfigSnapshot, R]) -> R:
        return await watch_snapshot_from_snapshot(self, handler)


def key(string: str) -> ConfigKey:
    return ConfigKey.parse(string)


class Recorder(Generic[T]):
    """Watch handler that records every element it receives.

    Elements are also pushed to a queue so tests can wait for them without
    cancelling the stream itself.
    """

    def __init__(self) -> None:
        self.items: list[T] = []
        self._queue: asyncio.Queue[T] = asyncio.Queue()

    async def __call__(self, updates: UpdateStream[T]) -> list[T]:
        async for item in updates:
            self.items.append(item)
            self._queue.put_nowait(item)
        return self.items

    async def next(self, timeout: float = 1.0) -> T:
        """Next recorded element, failing the test if none arrives in time."""
        return await asyncio.wait_for(self._queue.get(), timeout)

    async def quiet(self, timeout: float = 0.05) -> bool:
        """True when nothing new arrives within ``timeout``."""
        try:
            await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return True
        return False


@asynccontextmanager
async def watching(watch: Callable[[Recorder[Any]], Awaitable[Any]]) -> AsyncIterator[Recorder[Any]]:
    """Run ``watch(recorder)`` in a task for the duration of the block.

    Example:
        async with watching(lambda h: provider.watch_value(k, ConfigType.INT, h)) as updates:
            first = await updates.next()
    """
    recorder: Recorder[Any] = Recorder()
    task = asyncio.create_task(watch(recorder))
    try:
        yield recorder
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
