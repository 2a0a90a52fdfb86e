"""Reloading file provider.

Serves values from a JSON or YAML file and picks up changes by polling.

State is one ``{snapshot, source}`` pair plus the watcher registries, all
guarded by a single lock. ``source`` is the file's resolved real path and
modification time (or ``MISSING``). A reload runs in three steps:

1. Stat the real path and timestamp outside the lock and compare them with
   the stored source under the lock. Equal means nothing to do: no read, no
   parse.
2. Read and parse outside the lock.
3. Re-check under the lock that the stored source is still the one checked
   in step 1. If another reload got there first, drop this result. Otherwise
   swap in the new snapshot and collect the watchers whose value changed.

Watchers are notified after the lock is released.

Errors during a poll tick are logged and leave the last good snapshot in
place; the next tick tries again.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import threading
from collections.abc import Collection
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from layerconf.errors import ConfigFileNotFoundError
from layerconf.key import ConfigKey
from layerconf.logging import get_logger
from layerconf.provider import (
    ConfigSnapshot,
    LookupResult,
    Result,
    UpdatesHandler,
    new_watcher_id,
    result_changed,
)
from layerconf.providers.files import FileSystem, LocalFileSystem
from layerconf.providers.snapshots import EmptySnapshot, SnapshotParser, json_parser, yaml_parser
from layerconf.updates import UpdateChannel, UpdateStream
from layerconf.values import ConfigType

if TYPE_CHECKING:
    from layerconf.schema import ReloadingFileSettings

R = TypeVar("R")

log = get_logger("reloading")

# Default poll interval in seconds
DEFAULT_POLL_INTERVAL = 15.0


@dataclass(frozen=True, slots=True)
class FileSource:
    """Identity of one version of the watched file."""

    real_path: str | None
    timestamp: int | None

    @property
    def exists(self) -> bool:
        return self.real_path is not None

    def describe(self) -> str:
        if not self.exists:
            return "missing"
        return f"{self.real_path} @ {self.timestamp}"


MISSING = FileSource(None, None)

_ValueChannel = UpdateChannel[Result[LookupResult]]


class ReloadingFileProvider:
    """A file-backed provider that reloads when the file changes.

    Create instances with ``await ReloadingFileProvider.load(...)`` (or the
    ``reloading_json_provider`` / ``reloading_yaml_provider`` helpers), then
    run the poll loop with ``start()``/``stop()`` or ``async with``.

    Example:
        provider = await reloading_yaml_provider("config.yaml", poll_interval=2.0)
        async with provider:
            reader = ConfigReader([EnvironmentVariablesProvider(), provider])
            ...
    """

    def __init__(
        self,
        *,
        file_path: str,
        parser: SnapshotParser,
        snapshot: ConfigSnapshot,
        source: FileSource,
        allow_missing: bool,
        poll_interval: float,
        file_system: FileSystem,
        provider_name: str,
    ) -> None:
        """Initialize from an already loaded state.

        Prefer ``load()``, which performs the initial read.
        """
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {poll_interval}")
        self._file_path = file_path
        self._parser = parser
        self._allow_missing = allow_missing
        self._poll_interval = poll_interval
        self._file_system = file_system
        self._provider_name = provider_name

        self._lock = threading.Lock()
        self._snapshot = snapshot
        self._source = source
        # (key, type) -> watcher id -> channel
        self._value_watchers: dict[tuple[ConfigKey, ConfigType], dict[str, _ValueChannel]] = {}
        self._snapshot_watchers: dict[str, UpdateChannel[ConfigSnapshot]] = {}

        self._running = False
        self._task: asyncio.Task[None] | None = None

    @classmethod
    async def load(
        cls,
        file_path: str | os.PathLike[str],
        parser: SnapshotParser,
        *,
        allow_missing: bool = False,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        file_system: FileSystem | None = None,
        provider_name: str | None = None,
    ) -> ReloadingFileProvider:
        """Read and parse the file, then return a provider serving it.

        Args:
            file_path: Path of the file to watch (symlinks are followed).
            parser: Turns the file's bytes into a snapshot; may raise.
            allow_missing: Serve an empty snapshot while the file is absent
                instead of failing.
            poll_interval: Seconds between change checks.
            file_system: File access, defaults to the local disk.
            provider_name: Name used in logs and diagnostics.

        Raises:
            ConfigFileNotFoundError: The file is absent and allow_missing is off.
            ConfigParseError: The parser rejected the file contents.
        """
        path = os.fspath(file_path)
        fs = file_system or LocalFileSystem()
        name = provider_name or f"ReloadingFileProvider[{os.path.basename(path)}]"

        log.debug("Performing initial load of %s", path)
        snapshot: ConfigSnapshot | None = None
        source = MISSING
        real_path = await fs.resolve_symlinks(path)
        if real_path is not None:
            timestamp = await fs.last_modified_timestamp(real_path)
            data = await fs.file_contents(real_path) if timestamp is not None else None
            if data is not None:
                snapshot = parser(data)
                source = FileSource(real_path, timestamp)
                log.debug("Loaded %s (%d bytes, timestamp %s)", real_path, len(data), timestamp)

        if snapshot is None:
            if not allow_missing:
                raise ConfigFileNotFoundError(path)
            snapshot = EmptySnapshot(name)
            log.debug("File %s is missing, starting with an empty snapshot", path)

        return cls(
            file_path=path,
            parser=parser,
            snapshot=snapshot,
            source=source,
            allow_missing=allow_missing,
            poll_interval=poll_interval,
            file_system=fs,
            provider_name=name,
        )

    @classmethod
    async def from_settings(
        cls,
        settings: ReloadingFileSettings,
        parser: SnapshotParser,
        *,
        file_system: FileSystem | None = None,
    ) -> ReloadingFileProvider:
        """Build a provider from ``ReloadingFileSettings``."""
        return await cls.load(
            settings.file_path,
            parser,
            allow_missing=settings.allow_missing,
            poll_interval=settings.poll_interval,
            file_system=file_system,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def provider_name(self) -> str:
        return self._provider_name

    @property
    def file_path(self) -> str:
        return self._file_path

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @property
    def source(self) -> FileSource:
        """The file version the current snapshot was loaded from."""
        with self._lock:
            return self._source

    @property
    def watcher_count(self) -> int:
        with self._lock:
            return self._watcher_count_locked()

    def _watcher_count_locked(self) -> int:
        return sum(len(w) for w in self._value_watchers.values()) + len(self._snapshot_watchers)

    def is_running(self) -> bool:
        return self._running

    # -------------------------------------------------------------------------
    # Reloading
    # -------------------------------------------------------------------------

    async def _stat_source(self) -> FileSource:
        real_path = await self._file_system.resolve_symlinks(self._file_path)
        if real_path is None:
            return MISSING
        timestamp = await self._file_system.last_modified_timestamp(real_path)
        if timestamp is None:
            return MISSING
        return FileSource(real_path, timestamp)

    async def reload_if_needed(self) -> bool:
        """Reload the file if its real path or timestamp changed.

        Returns:
            True if a new snapshot was committed.

        Raises:
            ConfigFileNotFoundError: The file disappeared and missing files
                are not allowed. State is left untouched.
            Exception: Anything raised by reading or parsing. State is left
                untouched.
        """
        candidate = await self._stat_source()

        with self._lock:
            original = self._source
        if original == candidate:
            log.debug("%s: source unchanged (%s), no reload needed", self._provider_name, original.describe())
            return False

        log.debug(
            "%s: source changed from %s to %s, reloading",
            self._provider_name,
            original.describe(),
            candidate.describe(),
        )

        # Read and parse outside the lock
        if candidate.exists:
            data = await self._file_system.file_contents(candidate.real_path)  # type: ignore[arg-type]
            if data is None:
                log.debug("%s: file removed half-way through a reload, not updating state", self._provider_name)
                return False
            new_snapshot = self._parser(data)
        else:
            if not self._allow_missing:
                raise ConfigFileNotFoundError(self._file_path)
            new_snapshot = EmptySnapshot(self._provider_name)

        value_updates: list[tuple[ConfigKey, Result[LookupResult], list[_ValueChannel]]] = []
        with self._lock:
            if self._source != original:
                log.debug("%s: lost race with another reload, not updating state", self._provider_name)
                return False

            old_snapshot = self._snapshot
            self._snapshot = new_snapshot
            self._source = candidate

            for (key, type), channels in self._value_watchers.items():
                if not channels:
                    continue
                old_value = Result.capture(old_snapshot.value, key, type)
                new_value = Result.capture(new_snapshot.value, key, type)
                if result_changed(old_value, new_value):
                    value_updates.append((key, new_value, list(channels.values())))
            snapshot_channels = list(self._snapshot_watchers.values())

        log.info("%s: reloaded (%s)", self._provider_name, candidate.describe())

        # Notify outside the lock
        for _, update, channels in value_updates:
            for channel in channels:
                channel.send(update)
        for channel in snapshot_channels:
            channel.send(new_snapshot)

        if value_updates or snapshot_channels:
            log.debug(
                "%s: notified watchers of keys %s and %d snapshot watchers",
                self._provider_name,
                [str(key) for key, _, _ in value_updates],
                len(snapshot_channels),
            )
        return True

    async def _poll_loop(self) -> None:
        """Main polling loop."""
        log.debug("%s: file polling starting (interval=%.1fs)", self._provider_name, self._poll_interval)
        tick = 1
        try:
            while True:
                await asyncio.sleep(self._poll_interval)
                log.debug("%s: poll tick %d", self._provider_name, tick)
                try:
                    await self.reload_if_needed()
                except Exception as e:
                    log.error("%s: poll tick %d failed, will retry on next tick: %s", self._provider_name, tick, e)
                tick += 1
        finally:
            log.debug("%s: file polling stopping", self._provider_name)

    async def run(self) -> None:
        """Poll until cancelled."""
        self._running = True
        try:
            await self._poll_loop()
        finally:
            self._running = False

    def start(self) -> None:
        """Start polling in a background task.

        Must be called from within an async context.
        """
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self.run())

    def stop(self) -> None:
        """Stop polling."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def close(self) -> None:
        """Stop polling and end every open watch stream."""
        self.stop()
        with self._lock:
            channels: list[UpdateChannel[object]] = [
                channel for watchers in self._value_watchers.values() for channel in watchers.values()
            ]
            channels.extend(self._snapshot_watchers.values())
        for channel in channels:
            channel.close()

    async def aclose(self) -> None:
        """Close the provider and wait for the poll task to finish."""
        task = self._task
        self.close()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def __aenter__(self) -> ReloadingFileProvider:
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # ConfigProvider
    # -------------------------------------------------------------------------

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        with self._lock:
            snapshot = self._snapshot
        return snapshot.value(key, type)

    async def _refresh(self) -> None:
        try:
            await self.reload_if_needed()
        except Exception as e:
            log.warning("%s: reload before fetch failed, serving last good snapshot: %s", self._provider_name, e)

    async def fetch_value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        await self._refresh()
        return self.value(key, type)

    async def fetch_snapshot(self) -> ConfigSnapshot:
        await self._refresh()
        return self.snapshot()

    async def watch_value(
        self,
        key: ConfigKey,
        type: ConfigType,
        handler: UpdatesHandler[Result[LookupResult], R],
    ) -> R:
        channel: _ValueChannel = UpdateChannel()
        watcher_id = new_watcher_id()
        with self._lock:
            self._value_watchers.setdefault((key, type), {})[watcher_id] = channel
            # Enqueued under the lock so no reload can be delivered ahead of it
            channel.send(Result.capture(self._snapshot.value, key, type))
        try:
            return await handler(UpdateStream(channel))
        finally:
            with self._lock:
                watchers = self._value_watchers.get((key, type))
                if watchers is not None:
                    watchers.pop(watcher_id, None)
                    if not watchers:
                        del self._value_watchers[(key, type)]
            channel.close()

    def snapshot(self) -> ConfigSnapshot:
        with self._lock:
            return self._snapshot

    async def watch_snapshot(self, handler: UpdatesHandler[ConfigSnapshot, R]) -> R:
        channel: UpdateChannel[ConfigSnapshot] = UpdateChannel()
        watcher_id = new_watcher_id()
        with self._lock:
            self._snapshot_watchers[watcher_id] = channel
            channel.send(self._snapshot)
        try:
            return await handler(UpdateStream(channel))
        finally:
            with self._lock:
                self._snapshot_watchers.pop(watcher_id, None)
            channel.close()

    def __repr__(self) -> str:
        with self._lock:
            snapshot = self._snapshot
        return f"{self._provider_name}<{snapshot!r}>"


async def reloading_json_provider(
    file_path: str | os.PathLike[str],
    *,
    allow_missing: bool = False,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    secret_keys: Collection[str] = (),
    file_system: FileSystem | None = None,
) -> ReloadingFileProvider:
    """Load a reloading provider for a JSON file."""
    name = f"ReloadingJSONProvider[{os.path.basename(os.fspath(file_path))}]"
    return await ReloadingFileProvider.load(
        file_path,
        json_parser(name, secret_keys),
        allow_missing=allow_missing,
        poll_interval=poll_interval,
        file_system=file_system,
        provider_name=name,
    )


async def reloading_yaml_provider(
    file_path: str | os.PathLike[str],
    *,
    allow_missing: bool = False,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    secret_keys: Collection[str] = (),
    file_system: FileSystem | None = None,
) -> ReloadingFileProvider:
    """Load a reloading provider for a YAML file."""
    name = f"ReloadingYAMLProvider[{os.path.basename(os.fspath(file_path))}]"
    return await ReloadingFileProvider.load(
        file_path,
        yaml_parser(name, secret_keys),
        allow_missing=allow_missing,
        poll_interval=poll_interval,
        file_system=file_system,
        provider_name=name,
    )
