"""Multi-provider resolution.

``MultiProvider`` composes an ordered list of providers, highest priority
first, into one logical provider:

- get/fetch: the first provider with a non-None value wins; later providers
  are never consulted. A provider that raises aborts the whole chain.
- watch: all providers are watched concurrently and the answer is recomputed
  from the latest result of each (combine-latest), starting once every
  provider has reported.
- snapshot: a ``MultiSnapshot`` wrapping one snapshot per provider and
  resolving lookups with the same first-match rule.
"""

from __future__ import annotations

import functools
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypeVar

from layerconf.combine import combine_latest
from layerconf.key import ConfigKey
from layerconf.logging import get_logger
from layerconf.provider import (
    ConfigProvider,
    ConfigSnapshot,
    LookupResult,
    Result,
    UpdatesHandler,
)
from layerconf.updates import UpdateStream
from layerconf.values import ConfigType, ConfigValue

R = TypeVar("R")

log = get_logger("multi")


@dataclass(frozen=True, slots=True)
class ProviderResult:
    """One provider's answer within a resolution, kept for access reporting."""

    provider_name: str
    result: Result[LookupResult]


@dataclass(frozen=True, slots=True)
class Resolution:
    """The combined answer of a provider chain for one key.

    Attributes:
        key: The key that was resolved
        provider_results: Answers of the providers that were consulted, in order
        result: The winning value (None if every provider had none), or the
            error that aborted the chain
    """

    key: ConfigKey
    provider_results: tuple[ProviderResult, ...]
    result: Result[ConfigValue | None]

    def lookup_result(self) -> Result[LookupResult]:
        """The resolution expressed as a single provider's lookup result."""
        if not self.result.ok:
            return Result.failure(self.result.error)  # type: ignore[arg-type]
        for provider_result in self.provider_results:
            lookup = provider_result.result.value
            if lookup is not None and lookup.value is not None:
                return Result.success(lookup)
        return Result.success(LookupResult(str(self.key), None))


def _resolve_latest(key: ConfigKey, names: Sequence[str], latest: Sequence[Result[LookupResult]]) -> Resolution:
    """Recompute the logical answer from each provider's latest watch result.

    The first successful non-None value wins even when a higher-priority
    provider is failing. A failure is surfaced only when no provider has a
    value, and then it is the first failure in priority order.
    """
    results: list[ProviderResult] = []
    first_error: BaseException | None = None
    for name, lookup in zip(names, latest):
        results.append(ProviderResult(name, lookup))
        if not lookup.ok:
            if first_error is None:
                first_error = lookup.error
            continue
        if lookup.value is not None and lookup.value.value is not None:
            return Resolution(key, tuple(results), Result.success(lookup.value.value))
    if first_error is not None:
        return Resolution(key, tuple(results), Result.failure(first_error))
    return Resolution(key, tuple(results), Result.success(None))


class MultiSnapshot:
    """Snapshots of every provider in a chain, taken together.

    Lookups scan the child snapshots in priority order without any I/O.
    """

    def __init__(self, snapshots: Sequence[ConfigSnapshot]) -> None:
        self.snapshots: tuple[ConfigSnapshot, ...] = tuple(snapshots)

    @property
    def provider_name(self) -> str:
        return f"MultiSnapshot[of: {', '.join(s.provider_name for s in self.snapshots)}]"

    def resolve(self, key: ConfigKey, type: ConfigType) -> Resolution:
        results: list[ProviderResult] = []
        for child in self.snapshots:
            try:
                lookup = child.value(key, type)
            except Exception as e:
                results.append(ProviderResult(child.provider_name, Result.failure(e)))
                return Resolution(key, tuple(results), Result.failure(e))
            results.append(ProviderResult(child.provider_name, Result.success(lookup)))
            if lookup.value is not None:
                return Resolution(key, tuple(results), Result.success(lookup.value))
        return Resolution(key, tuple(results), Result.success(None))

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return self.resolve(key, type).lookup_result().unwrap()

    def __repr__(self) -> str:
        return self.provider_name


class MultiProvider:
    """An ordered chain of providers acting as a single provider.

    Example:
        provider = MultiProvider([
            EnvironmentVariablesProvider(),
            await reloading_yaml_provider("config.yaml"),
        ])
        provider.value(ConfigKey.parse("http.timeout"), ConfigType.INT)
    """

    def __init__(self, providers: Sequence[ConfigProvider]) -> None:
        if not providers:
            raise ValueError("MultiProvider requires at least one nested provider")
        self.providers: tuple[ConfigProvider, ...] = tuple(providers)

    @property
    def provider_name(self) -> str:
        return f"MultiProvider[of: {', '.join(p.provider_name for p in self.providers)}]"

    def __repr__(self) -> str:
        return self.provider_name

    # -------------------------------------------------------------------------
    # get / fetch
    # -------------------------------------------------------------------------

    def resolve_value(self, key: ConfigKey, type: ConfigType) -> Resolution:
        """Resolve a key against the current values of every provider."""
        results: list[ProviderResult] = []
        for provider in self.providers:
            try:
                lookup = provider.value(key, type)
            except Exception as e:
                # A raising provider aborts the chain; later providers are skipped
                results.append(ProviderResult(provider.provider_name, Result.failure(e)))
                return Resolution(key, tuple(results), Result.failure(e))
            results.append(ProviderResult(provider.provider_name, Result.success(lookup)))
            if lookup.value is not None:
                return Resolution(key, tuple(results), Result.success(lookup.value))
        return Resolution(key, tuple(results), Result.success(None))

    async def resolve_fetch(self, key: ConfigKey, type: ConfigType) -> Resolution:
        """Like ``resolve_value`` but lets each consulted provider refresh first."""
        results: list[ProviderResult] = []
        for provider in self.providers:
            try:
                lookup = await provider.fetch_value(key, type)
            except Exception as e:
                results.append(ProviderResult(provider.provider_name, Result.failure(e)))
                return Resolution(key, tuple(results), Result.failure(e))
            results.append(ProviderResult(provider.provider_name, Result.success(lookup)))
            if lookup.value is not None:
                return Resolution(key, tuple(results), Result.success(lookup.value))
        return Resolution(key, tuple(results), Result.success(None))

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return self.resolve_value(key, type).lookup_result().unwrap()

    async def fetch_value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        resolution = await self.resolve_fetch(key, type)
        return resolution.lookup_result().unwrap()

    # -------------------------------------------------------------------------
    # watch
    # -------------------------------------------------------------------------

    async def watch_resolutions(
        self,
        key: ConfigKey,
        type: ConfigType,
        handler: UpdatesHandler[Resolution, R],
    ) -> R:
        """Watch a key across all providers, yielding a ``Resolution`` per update."""
        names = [provider.provider_name for provider in self.providers]
        sources = [functools.partial(provider.watch_value, key, type) for provider in self.providers]

        async def on_combined(updates: UpdateStream[list[Result[LookupResult]]]) -> R:
            return await handler(updates.map(lambda latest: _resolve_latest(key, names, latest)))

        log.debug("Watching %s across %d providers", key, len(self.providers))
        return await combine_latest(sources, on_combined)

    async def watch_value(
        self,
        key: ConfigKey,
        type: ConfigType,
        handler: UpdatesHandler[Result[LookupResult], R],
    ) -> R:
        async def on_resolutions(updates: UpdateStream[Resolution]) -> R:
            return await handler(updates.map(Resolution.lookup_result))

        return await self.watch_resolutions(key, type, on_resolutions)

    # -------------------------------------------------------------------------
    # snapshots
    # -------------------------------------------------------------------------

    def snapshot(self) -> MultiSnapshot:
        return MultiSnapshot([provider.snapshot() for provider in self.providers])

    async def watch_snapshot(self, handler: UpdatesHandler[MultiSnapshot, R]) -> R:
        sources = [provider.watch_snapshot for provider in self.providers]

        async def on_combined(updates: UpdateStream[list[ConfigSnapshot]]) -> R:
            return await handler(updates.map(MultiSnapshot))

        return await combine_latest(sources, on_combined)
