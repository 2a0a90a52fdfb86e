"""Core protocols for configuration providers.

These protocols define the contract between:
- Concrete sources (environment, CLI, files, in-memory maps) and the
  multi-provider resolver
- The resolver and the ``ConfigReader`` facade

Every watch method takes a handler coroutine function. The handler receives
an ``UpdateStream`` whose first element is the current value (or snapshot),
followed by change-driven elements. The watch registration lives exactly as
long as the handler runs; whatever the handler returns is returned by the
watch call.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from layerconf.errors import ValueNotConvertibleError
from layerconf.key import ConfigKey
from layerconf.updates import UpdateChannel, UpdateStream
from layerconf.values import ConfigType, ConfigValue

T = TypeVar("T")
R = TypeVar("R")


# -----------------------------------------------------------------------------
# Data Classes
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LookupResult:
    """Answer from one provider for one key.

    Attributes:
        encoded_key: The key as the provider encodes it (diagnostics only)
        value: The value, or None when the provider has no value for the key
    """

    encoded_key: str
    value: ConfigValue | None


@dataclass(frozen=True, slots=True, eq=False)
class Result(Generic[T]):
    """Outcome of an operation that may have failed.

    Used as the element type of value watches, where a failing lookup is
    delivered as an element instead of ending the stream.
    """

    value: T | None = None
    error: BaseException | None = None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> Result[T]:
        return cls(error=error)

    @classmethod
    def capture(cls, fn: Callable[..., T], *args: Any) -> Result[T]:
        """Call ``fn`` and wrap its return value or raised exception."""
        try:
            return cls(value=fn(*args))
        except Exception as e:
            return cls(error=e)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, raising the stored error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def map(self, transform: Callable[[T], Any]) -> Result[Any]:
        if self.error is not None:
            return self
        return Result(value=transform(self.value))  # type: ignore[arg-type]

    def __repr__(self) -> str:
        if self.error is not None:
            return f"Result.failure({self.error!r})"
        return f"Result.success({self.value!r})"


def result_changed(old: Result[Any], new: Result[Any]) -> bool:
    """Whether a watcher should be told about a transition from old to new.

    Two successes differ when their values differ. A failure on either side
    always counts as a change, so watchers of failing lookups are re-notified.
    """
    if not old.ok or not new.ok:
        return True
    return old.value != new.value


# -----------------------------------------------------------------------------
# Protocols
# -----------------------------------------------------------------------------


@runtime_checkable
class ConfigSnapshot(Protocol):
    """An immutable, point-in-time view of one provider's values.

    Reading several keys from the same snapshot always gives mutually
    consistent answers, even while the provider reloads.
    """

    @property
    def provider_name(self) -> str: ...

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        """Look up a key; raises only when the stored value has the wrong type."""
        ...


UpdatesHandler = Callable[[UpdateStream[T]], Awaitable[R]]


@runtime_checkable
class ConfigProvider(Protocol):
    """A source of configuration values.

    Implementations:
    - InMemoryProvider / MutableInMemoryProvider: Python mappings
    - EnvironmentVariablesProvider: os.environ or a dotenv file
    - CommandLineArgumentsProvider: ``--flag value`` style arguments
    - FileProvider / ReloadingFileProvider: JSON or YAML files
    - MultiProvider: an ordered chain of the above
    """

    @property
    def provider_name(self) -> str: ...

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        """Return the currently cached answer without doing I/O."""
        ...

    async def fetch_value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        """Refresh from the source if possible, then answer."""
        ...

    async def watch_value(
        self,
        key: ConfigKey,
        type: ConfigType,
        handler: UpdatesHandler[Result[LookupResult], R],
    ) -> R:
        """Run ``handler`` with a stream of lookup results for ``key``."""
        ...

    def snapshot(self) -> ConfigSnapshot:
        """Return the current snapshot."""
        ...

    async def watch_snapshot(self, handler: UpdatesHandler[ConfigSnapshot, R]) -> R:
        """Run ``handler`` with a stream of snapshots."""
        ...


# -----------------------------------------------------------------------------
# Helpers for providers
# -----------------------------------------------------------------------------


def new_watcher_id() -> str:
    return uuid.uuid4().hex


def lookup_in_mapping(
    values: Mapping[ConfigKey, ConfigValue],
    key: ConfigKey,
    type: ConfigType,
) -> LookupResult:
    """Look up a key in a mapping of typed values, enforcing the requested type."""
    encoded_key = str(key)
    value = values.get(key)
    if value is None:
        return LookupResult(encoded_key, None)
    if value.type is not type:
        raise ValueNotConvertibleError(encoded_key, type)
    return LookupResult(encoded_key, value)


async def watch_value_from_value(
    provider: ConfigProvider,
    key: ConfigKey,
    type: ConfigType,
    handler: UpdatesHandler[Result[LookupResult], R],
) -> R:
    """Watch implementation for providers whose values never change.

    Emits the current lookup result once; the stream then stays open until
    the handler returns.
    """
    channel: UpdateChannel[Result[LookupResult]] = UpdateChannel()
    channel.send(Result.capture(provider.value, key, type))
    try:
        return await handler(UpdateStream(channel))
    finally:
        channel.close()


async def watch_snapshot_from_snapshot(
    provider: ConfigProvider,
    handler: UpdatesHandler[ConfigSnapshot, R],
) -> R:
    """Snapshot watch implementation for providers that never change."""
    channel: UpdateChannel[ConfigSnapshot] = UpdateChannel()
    channel.send(provider.snapshot())
    try:
        return await handler(UpdateStream(channel))
    finally:
        channel.close()
