"""Reader facade.

``ConfigReader`` is what applications use to read configuration. It resolves
keys against a prioritized provider chain and offers three access patterns:

- get: synchronous, served from cached values
- fetch: async, lets providers refresh first
- watch: async, streams the value and every change to a handler

Example:
    reader = ConfigReader([
        CommandLineArgumentsProvider(),
        EnvironmentVariablesProvider(),
        await reloading_yaml_provider("config.yaml"),
    ])

    timeout = reader.get("http.timeout", ConfigType.INT, default=30)
    token = reader.require("api.token")

    async def on_level(updates):
        async for level in updates:
            logger.setLevel(level)

    await reader.watch("log.level", on_level, default="INFO")
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, TypeVar, Union

from layerconf.access import AccessEvent, AccessKind, AccessReporter
from layerconf.errors import MissingRequiredValueError
from layerconf.key import ConfigKey
from layerconf.multi import MultiProvider, MultiSnapshot, Resolution
from layerconf.provider import ConfigProvider, UpdatesHandler
from layerconf.updates import UpdateStream
from layerconf.values import ConfigType

R = TypeVar("R")

KeyLike = Union[str, Iterable[str], ConfigKey]


def _payload(resolution: Resolution, default: Any) -> Any:
    if not resolution.result.ok or resolution.result.value is None:
        return default
    return resolution.result.value.content


def _required_payload(resolution: Resolution) -> Any:
    value = resolution.result.unwrap()
    if value is None:
        raise MissingRequiredValueError(resolution.key)
    return value.content


class _KeyScope:
    """Prefixing and access reporting shared by both reader types."""

    def __init__(self, prefix: ConfigKey | None, access_reporter: AccessReporter | None) -> None:
        self.prefix = prefix
        self.access_reporter = access_reporter

    def _absolute(self, key: KeyLike) -> ConfigKey:
        key = ConfigKey.coerce(key)
        if self.prefix is None:
            return key
        return key.prepending(self.prefix)

    def _scoped_prefix(self, prefix: KeyLike) -> ConfigKey:
        return self._absolute(prefix)

    def _report(self, kind: AccessKind, type: ConfigType, resolution: Resolution) -> None:
        if self.access_reporter is None:
            return
        self.access_reporter.report(
            AccessEvent(kind, resolution.key, type, resolution.provider_results, resolution.result)
        )


class ConfigReader(_KeyScope):
    """Reads configuration values from a chain of providers.

    Providers are listed highest priority first. Keys can be given as dotted
    strings (``"http.timeout"``) or ``ConfigKey`` objects.

    Args:
        providers: One provider or an ordered list of providers.
        access_reporter: Receives an ``AccessEvent`` for every read.
    """

    def __init__(
        self,
        providers: ConfigProvider | Sequence[ConfigProvider],
        *,
        access_reporter: AccessReporter | None = None,
        prefix: ConfigKey | None = None,
    ) -> None:
        super().__init__(prefix, access_reporter)
        if isinstance(providers, MultiProvider):
            self.provider = providers
        elif isinstance(providers, Sequence):
            self.provider = MultiProvider(providers)
        else:
            self.provider = MultiProvider([providers])

    def scoped(self, prefix: KeyLike) -> ConfigReader:
        """Return a reader that prepends ``prefix`` to every key.

        Example:
            http = reader.scoped("http")
            http.get("timeout", ConfigType.INT)  # reads "http.timeout"
        """
        return ConfigReader(self.provider, access_reporter=self.access_reporter, prefix=self._scoped_prefix(prefix))

    # -------------------------------------------------------------------------
    # get
    # -------------------------------------------------------------------------

    def resolve(self, key: KeyLike, type: ConfigType = ConfigType.STRING) -> Resolution:
        """Resolve a key and report the access, without interpreting the outcome."""
        resolution = self.provider.resolve_value(self._absolute(key), type)
        self._report(AccessKind.GET, type, resolution)
        return resolution

    def get(self, key: KeyLike, type: ConfigType = ConfigType.STRING, default: Any = None) -> Any:
        """Return the value for ``key``, or ``default`` if absent or unreadable."""
        return _payload(self.resolve(key, type), default)

    def require(self, key: KeyLike, type: ConfigType = ConfigType.STRING) -> Any:
        """Return the value for ``key``.

        Raises:
            MissingRequiredValueError: No provider has a value.
            ValueNotConvertibleError: The winning value has the wrong type.
        """
        return _required_payload(self.resolve(key, type))

    # -------------------------------------------------------------------------
    # fetch
    # -------------------------------------------------------------------------

    async def resolve_fetch(self, key: KeyLike, type: ConfigType = ConfigType.STRING) -> Resolution:
        resolution = await self.provider.resolve_fetch(self._absolute(key), type)
        self._report(AccessKind.FETCH, type, resolution)
        return resolution

    async def fetch(self, key: KeyLike, type: ConfigType = ConfigType.STRING, default: Any = None) -> Any:
        """Like ``get`` but lets providers refresh from their source first."""
        return _payload(await self.resolve_fetch(key, type), default)

    async def fetch_required(self, key: KeyLike, type: ConfigType = ConfigType.STRING) -> Any:
        """Like ``require`` but lets providers refresh from their source first."""
        return _required_payload(await self.resolve_fetch(key, type))

    # -------------------------------------------------------------------------
    # watch
    # -------------------------------------------------------------------------

    async def watch(
        self,
        key: KeyLike,
        handler: UpdatesHandler[Any, R],
        type: ConfigType = ConfigType.STRING,
        default: Any = None,
    ) -> R:
        """Run ``handler`` with a stream of values for ``key``.

        The first element is the current value. Absent or unreadable values
        are delivered as ``default``. The watch ends when the handler returns.
        """

        def to_payload(resolution: Resolution) -> Any:
            self._report(AccessKind.WATCH, type, resolution)
            return _payload(resolution, default)

        async def on_resolutions(updates: UpdateStream[Resolution]) -> R:
            return await handler(updates.map(to_payload))

        return await self.provider.watch_resolutions(self._absolute(key), type, on_resolutions)

    async def watch_resolutions(
        self,
        key: KeyLike,
        handler: UpdatesHandler[Resolution, R],
        type: ConfigType = ConfigType.STRING,
    ) -> R:
        """Like ``watch`` but delivers full ``Resolution`` objects, errors included."""

        def reported(resolution: Resolution) -> Resolution:
            self._report(AccessKind.WATCH, type, resolution)
            return resolution

        async def on_resolutions(updates: UpdateStream[Resolution]) -> R:
            return await handler(updates.map(reported))

        return await self.provider.watch_resolutions(self._absolute(key), type, on_resolutions)

    # -------------------------------------------------------------------------
    # snapshots
    # -------------------------------------------------------------------------

    def snapshot(self) -> ConfigSnapshotReader:
        """Return a reader over one consistent snapshot of every provider."""
        return ConfigSnapshotReader(self.provider.snapshot(), prefix=self.prefix, access_reporter=self.access_reporter)

    async def watch_snapshot(self, handler: UpdatesHandler[ConfigSnapshotReader, R]) -> R:
        """Run ``handler`` with a stream of snapshot readers, one per change."""

        def to_reader(snapshot: MultiSnapshot) -> ConfigSnapshotReader:
            return ConfigSnapshotReader(snapshot, prefix=self.prefix, access_reporter=self.access_reporter)

        async def on_snapshots(updates: UpdateStream[MultiSnapshot]) -> R:
            return await handler(updates.map(to_reader))

        return await self.provider.watch_snapshot(on_snapshots)

    def __repr__(self) -> str:
        scope = f", prefix={self.prefix}" if self.prefix is not None else ""
        return f"ConfigReader[{self.provider.provider_name}{scope}]"


class ConfigSnapshotReader(_KeyScope):
    """Reads values from a fixed snapshot.

    Several reads from the same snapshot reader are mutually consistent, even
    while providers reload in the background.
    """

    def __init__(
        self,
        snapshot: MultiSnapshot,
        *,
        prefix: ConfigKey | None = None,
        access_reporter: AccessReporter | None = None,
    ) -> None:
        super().__init__(prefix, access_reporter)
        self.snapshot = snapshot

    def scoped(self, prefix: KeyLike) -> ConfigSnapshotReader:
        return ConfigSnapshotReader(
            self.snapshot, prefix=self._scoped_prefix(prefix), access_reporter=self.access_reporter
        )

    def resolve(self, key: KeyLike, type: ConfigType = ConfigType.STRING) -> Resolution:
        resolution = self.snapshot.resolve(self._absolute(key), type)
        self._report(AccessKind.GET, type, resolution)
        return resolution

    def get(self, key: KeyLike, type: ConfigType = ConfigType.STRING, default: Any = None) -> Any:
        return _payload(self.resolve(key, type), default)

    def require(self, key: KeyLike, type: ConfigType = ConfigType.STRING) -> Any:
        return _required_payload(self.resolve(key, type))

    def __repr__(self) -> str:
        return f"ConfigSnapshotReader[{self.snapshot.provider_name}]"
