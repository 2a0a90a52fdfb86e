"""In-memory providers.

``InMemoryProvider`` serves a fixed mapping. ``MutableInMemoryProvider`` lets
the application change values at runtime and notifies watchers, using the
same pattern as the reloading file provider: decide and mutate under the
lock, deliver outside it.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, TypeVar

from layerconf.key import ConfigKey
from layerconf.logging import get_logger
from layerconf.provider import (
    ConfigSnapshot,
    LookupResult,
    Result,
    UpdatesHandler,
    lookup_in_mapping,
    new_watcher_id,
    watch_snapshot_from_snapshot,
    watch_value_from_value,
)
from layerconf.updates import UpdateChannel, UpdateStream
from layerconf.values import ConfigType, ConfigValue

R = TypeVar("R")

log = get_logger("memory")


def _normalize(values: Mapping[Any, Any]) -> dict[ConfigKey, ConfigValue]:
    return {ConfigKey.coerce(key): ConfigValue.of(value) for key, value in values.items()}


class MemorySnapshot:
    """Immutable view over a mapping of keys to values."""

    def __init__(self, provider_name: str, values: Mapping[ConfigKey, ConfigValue]) -> None:
        self._provider_name = provider_name
        self.values: Mapping[ConfigKey, ConfigValue] = MappingProxyType(dict(values))

    @property
    def provider_name(self) -> str:
        return self._provider_name

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return lookup_in_mapping(self.values, key, type)

    def __repr__(self) -> str:
        return f"{self._provider_name}[{len(self.values)} values]"


class InMemoryProvider:
    """A provider backed by a fixed mapping.

    Keys may be ``ConfigKey`` objects or dotted strings; values may be
    ``ConfigValue`` objects or plain Python values.

    Example:
        provider = InMemoryProvider({"http.timeout": 30, "http.host": "localhost"})
    """

    def __init__(self, values: Mapping[Any, Any], name: str | None = None) -> None:
        self.name = name
        self._snapshot = MemorySnapshot(self.provider_name, _normalize(values))

    @property
    def provider_name(self) -> str:
        return f"InMemoryProvider[{self.name or ''}]"

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return self._snapshot.value(key, type)

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
        return self._snapshot

    async def watch_snapshot(self, handler: UpdatesHandler[ConfigSnapshot, R]) -> R:
        return await watch_snapshot_from_snapshot(self, handler)

    def __repr__(self) -> str:
        return f"InMemoryProvider[{self.name + ', ' if self.name else ''}{len(self._snapshot.values)} values]"


class MutableInMemoryProvider:
    """An in-memory provider whose values can change at runtime.

    Every change produces a new snapshot object; snapshots already handed out
    keep their values.

    Example:
        provider = MutableInMemoryProvider({"feature.enabled": False})
        provider.set_value("feature.enabled", True)   # notifies watchers
        provider.set_value("feature.enabled", True)   # no-op, nothing changed
        provider.set_value("feature.enabled", None)   # removes the key
    """

    def __init__(self, initial_values: Mapping[Any, Any] | None = None, name: str | None = None) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._snapshot = MemorySnapshot(self.provider_name, _normalize(initial_values or {}))
        # (key, type) -> watcher id -> channel
        self._value_watchers: dict[tuple[ConfigKey, ConfigType], dict[str, UpdateChannel[Result[LookupResult]]]] = {}
        self._snapshot_watchers: dict[str, UpdateChannel[ConfigSnapshot]] = {}

    @property
    def provider_name(self) -> str:
        return f"MutableInMemoryProvider[{self.name}]" if self.name else "MutableInMemoryProvider"

    @property
    def watcher_count(self) -> int:
        with self._lock:
            return self._watcher_count_locked()

    def _watcher_count_locked(self) -> int:
        return sum(len(w) for w in self._value_watchers.values()) + len(self._snapshot_watchers)

    def set_value(self, key: ConfigKey | str, value: ConfigValue | Any | None) -> None:
        """Set, replace, or (with None) remove the value of a key.

        Watchers are only notified when the stored value actually changes.
        """
        key = ConfigKey.coerce(key)
        new_value = None if value is None else ConfigValue.of(value)

        value_updates: list[tuple[Result[LookupResult], list[UpdateChannel[Result[LookupResult]]]]] = []
        snapshot_channels: list[UpdateChannel[ConfigSnapshot]] = []
        with self._lock:
            old_value = self._snapshot.values.get(key)
            if old_value == new_value:
                return
            values = dict(self._snapshot.values)
            if new_value is None:
                values.pop(key, None)
            else:
                values[key] = new_value
            snapshot = MemorySnapshot(self.provider_name, values)
            self._snapshot = snapshot

            for (watched_key, watched_type), channels in self._value_watchers.items():
                if watched_key != key or not channels:
                    continue
                update = Result.capture(snapshot.value, key, watched_type)
                value_updates.append((update, list(channels.values())))
            snapshot_channels = list(self._snapshot_watchers.values())

        # Deliver outside the lock
        for update, channels in value_updates:
            for channel in channels:
                channel.send(update)
        for channel in snapshot_channels:
            channel.send(snapshot)

        log.debug(
            "Set %s; notified %d value and %d snapshot watchers",
            key,
            sum(len(c) for _, c in value_updates),
            len(snapshot_channels),
        )

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        with self._lock:
            snapshot = self._snapshot
        return snapshot.value(key, type)

    async def fetch_value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return self.value(key, type)

    async def watch_value(
        self,
        key: ConfigKey,
        type: ConfigType,
        handler: UpdatesHandler[Result[LookupResult], R],
    ) -> R:
        channel: UpdateChannel[Result[LookupResult]] = UpdateChannel()
        watcher_id = new_watcher_id()
        with self._lock:
            self._value_watchers.setdefault((key, type), {})[watcher_id] = channel
            # Enqueued under the lock so no change can be delivered ahead of it
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
            count = len(self._snapshot.values)
            watchers = self._watcher_count_locked()
        prefix = f"{self.name}, " if self.name else ""
        return f"MutableInMemoryProvider[{prefix}{watchers} watchers, {count} values]"
