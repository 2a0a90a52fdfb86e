"""Providers that wrap another provider.

- ``KeyMappingProvider`` rewrites keys before they reach the upstream.
- ``SecretMarkingProvider`` marks selected values as secret.

Both delegate every operation, including watches and snapshots.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from layerconf.key import ConfigKey
from layerconf.provider import ConfigProvider, ConfigSnapshot, LookupResult, Result, UpdatesHandler
from layerconf.updates import UpdateStream
from layerconf.values import ConfigType

R = TypeVar("R")

KeyMapper = Callable[[ConfigKey], ConfigKey]
SecretPredicate = Callable[[ConfigKey], bool]


class _MappedSnapshot:
    def __init__(self, upstream: ConfigSnapshot, key_mapper: KeyMapper) -> None:
        self._upstream = upstream
        self._key_mapper = key_mapper

    @property
    def provider_name(self) -> str:
        return self._upstream.provider_name

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return self._upstream.value(self._key_mapper(key), type)


class KeyMappingProvider:
    """Rewrites keys before delegating to an upstream provider.

    Example:
        # Read "database.*" keys from "myapp.database.*" in the environment
        prefix = ConfigKey(("myapp",))
        provider = KeyMappingProvider(
            EnvironmentVariablesProvider(),
            lambda key: key.prepending(prefix) if key.components[0] == "database" else key,
        )
    """

    def __init__(self, upstream: ConfigProvider, key_mapper: KeyMapper) -> None:
        self.upstream = upstream
        self.key_mapper = key_mapper

    @property
    def provider_name(self) -> str:
        return f"KeyMappingProvider[upstream: {self.upstream.provider_name}]"

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return self.upstream.value(self.key_mapper(key), type)

    async def fetch_value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return await self.upstream.fetch_value(self.key_mapper(key), type)

    async def watch_value(
        self,
        key: ConfigKey,
        type: ConfigType,
        handler: UpdatesHandler[Result[LookupResult], R],
    ) -> R:
        return await self.upstream.watch_value(self.key_mapper(key), type, handler)

    def snapshot(self) -> ConfigSnapshot:
        return _MappedSnapshot(self.upstream.snapshot(), self.key_mapper)

    async def watch_snapshot(self, handler: UpdatesHandler[ConfigSnapshot, R]) -> R:
        async def mapped(updates: UpdateStream[ConfigSnapshot]) -> R:
            return await handler(updates.map(lambda snapshot: _MappedSnapshot(snapshot, self.key_mapper)))

        return await self.upstream.watch_snapshot(mapped)


def _mark_secret(result: LookupResult, secret: bool) -> LookupResult:
    if not secret or result.value is None:
        return result
    return LookupResult(result.encoded_key, result.value.as_secret())


class _SecretMarkingSnapshot:
    def __init__(self, upstream: ConfigSnapshot, is_secret: SecretPredicate) -> None:
        self._upstream = upstream
        self._is_secret = is_secret

    @property
    def provider_name(self) -> str:
        return self._upstream.provider_name

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return _mark_secret(self._upstream.value(key, type), self._is_secret(key))


class SecretMarkingProvider:
    """Marks values as secret when ``is_secret(key)`` is true.

    Example:
        provider = SecretMarkingProvider(
            EnvironmentVariablesProvider(),
            lambda key: key.components[-1] in {"password", "token"},
        )
    """

    def __init__(self, upstream: ConfigProvider, is_secret: SecretPredicate) -> None:
        self.upstream = upstream
        self.is_secret = is_secret

    @property
    def provider_name(self) -> str:
        return f"SecretMarkingProvider[upstream: {self.upstream.provider_name}]"

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return _mark_secret(self.upstream.value(key, type), self.is_secret(key))

    async def fetch_value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return _mark_secret(await self.upstream.fetch_value(key, type), self.is_secret(key))

    async def watch_value(
        self,
        key: ConfigKey,
        type: ConfigType,
        handler: UpdatesHandler[Result[LookupResult], R],
    ) -> R:
        secret = self.is_secret(key)

        async def marked(updates: UpdateStream[Result[LookupResult]]) -> R:
            return await handler(updates.map(lambda result: result.map(lambda r: _mark_secret(r, secret))))

        return await self.upstream.watch_value(key, type, marked)

    def snapshot(self) -> ConfigSnapshot:
        return _SecretMarkingSnapshot(self.upstream.snapshot(), self.is_secret)

    async def watch_snapshot(self, handler: UpdatesHandler[ConfigSnapshot, R]) -> R:
        async def marked(updates: UpdateStream[ConfigSnapshot]) -> R:
            return await handler(updates.map(lambda snapshot: _SecretMarkingSnapshot(snapshot, self.is_secret)))

        return await self.upstream.watch_snapshot(marked)
