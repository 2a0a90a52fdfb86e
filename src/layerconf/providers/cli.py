"""Command line arguments provider.

Recognized forms:

    --port 8080           single value
    --hosts a b c         several values, read as an array
    --hosts=a,b,c         commas split values
    --verbose             bare flag, reads as bool true
    --port=               explicit empty string

Repeating an option appends to its values. Tokens that do not follow an
option are ignored. Keys are encoded with ``CLIKeyEncoder``, so
``http.serverTimeout`` reads ``--http-server-timeout``.
"""

from __future__ import annotations

import sys
from collections.abc import Collection, Mapping, Sequence
from types import MappingProxyType
from typing import TypeVar

from layerconf.coders import CLIKeyEncoder, decode_strings
from layerconf.key import ConfigKey
from layerconf.provider import (
    ConfigSnapshot,
    LookupResult,
    Result,
    UpdatesHandler,
    watch_snapshot_from_snapshot,
    watch_value_from_value,
)
from layerconf.values import ConfigType, ConfigValue

R = TypeVar("R")


def _split_values(values: Sequence[str]) -> list[str]:
    out: list[str] = []
    for value in values:
        if not value:
            out.append("")
        else:
            out.extend(value.split(","))
    return out


def parse_arguments(arguments: Sequence[str]) -> dict[str, list[str]]:
    """Group option values by option name.

    ``arguments`` excludes the program name.
    """
    result: dict[str, list[str]] = {}
    current: str | None = None
    for argument in arguments:
        if argument.startswith("--"):
            name, sep, value = argument.partition("=")
            if sep:
                result.setdefault(name, []).extend(_split_values([value]))
                current = None
            else:
                result.setdefault(name, [])
                current = name
        elif current is not None:
            result[current].extend(_split_values([argument]))
    return result


class CLISnapshot:
    """Immutable view over parsed command line options."""

    key_encoder = CLIKeyEncoder()

    def __init__(
        self,
        provider_name: str,
        arguments: Mapping[str, Sequence[str]],
        secret_names: Collection[str] = (),
    ) -> None:
        self._provider_name = provider_name
        self.arguments: Mapping[str, tuple[str, ...]] = MappingProxyType(
            {name: tuple(values) for name, values in arguments.items()}
        )
        self._secret_names = frozenset(secret_names)

    @property
    def provider_name(self) -> str:
        return self._provider_name

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        encoded_key = self.key_encoder.encode(key)
        values = self.arguments.get(encoded_key)
        if values is None:
            return LookupResult(encoded_key, None)
        is_secret = encoded_key in self._secret_names
        # A bare flag
        if type is ConfigType.BOOL and not values:
            return LookupResult(encoded_key, ConfigValue(ConfigType.BOOL, True, is_secret))
        return LookupResult(encoded_key, decode_strings(values, type, encoded_key, is_secret))

    def __repr__(self) -> str:
        return f"{self._provider_name}[{len(self.arguments)} values]"


class CommandLineArgumentsProvider:
    """A provider backed by command line options.

    Args:
        argv: Full argument vector including the program name; defaults to
            ``sys.argv``.
        secret_names: Option names (``--api-token``) whose values are secret.

    Example:
        provider = CommandLineArgumentsProvider(["app", "--port", "8080", "--verbose"])
    """

    def __init__(
        self,
        argv: Sequence[str] | None = None,
        *,
        secret_names: Collection[str] = (),
    ) -> None:
        arguments = list(sys.argv if argv is None else argv)[1:]
        self._snapshot = CLISnapshot(self.provider_name, parse_arguments(arguments), secret_names)

    @property
    def provider_name(self) -> str:
        return "CommandLineArgumentsProvider"

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
        return repr(self._snapshot)
