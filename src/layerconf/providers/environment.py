"""Environment variable provider.

Keys are encoded with ``EnvironmentKeyEncoder``, so ``http.serverTimeout``
reads ``HTTP_SERVER_TIMEOUT``. Values are plain strings until looked up, then
parsed according to the requested type:

- int / double: Python number syntax
- bool: ``true/yes/1`` or ``false/no/0``, case-insensitive
- bytes: base64
- arrays: split on the array separator (default ``,``), trimmed, empty
  items dropped

Variables can also come from a dotenv file, loaded with python-dotenv.
"""

from __future__ import annotations

import os
from collections.abc import Collection, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import TypeVar

from dotenv import dotenv_values

from layerconf.coders import EnvironmentKeyEncoder, decode_strings
from layerconf.errors import ConfigFileNotFoundError
from layerconf.key import ConfigKey
from layerconf.logging import get_logger
from layerconf.provider import (
    ConfigSnapshot,
    LookupResult,
    Result,
    UpdatesHandler,
    watch_snapshot_from_snapshot,
    watch_value_from_value,
)
from layerconf.values import ConfigType

R = TypeVar("R")

log = get_logger("environment")


class EnvironmentSnapshot:
    """Immutable copy of a set of environment variables."""

    key_encoder = EnvironmentKeyEncoder()

    def __init__(
        self,
        provider_name: str,
        variables: Mapping[str, str],
        secret_names: Collection[str] = (),
        array_separator: str = ",",
    ) -> None:
        self._provider_name = provider_name
        self.variables: Mapping[str, str] = MappingProxyType(dict(variables))
        self._secret_names = frozenset(secret_names)
        self._array_separator = array_separator

    @property
    def provider_name(self) -> str:
        return self._provider_name

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        encoded_key = self.key_encoder.encode(key)
        raw = self.variables.get(encoded_key)
        if raw is None:
            return LookupResult(encoded_key, None)
        if type.is_array:
            strings = [item.strip() for item in raw.split(self._array_separator)]
            strings = [item for item in strings if item]
        else:
            strings = [raw]
        is_secret = encoded_key in self._secret_names
        return LookupResult(encoded_key, decode_strings(strings, type, encoded_key, is_secret))

    def __repr__(self) -> str:
        return f"{self._provider_name}[{len(self.variables)} values]"


class EnvironmentVariablesProvider:
    """A provider backed by environment variables.

    The variables are copied when the provider is created; later changes to
    ``os.environ`` are not seen.

    Example:
        provider = EnvironmentVariablesProvider(secret_names={"API_TOKEN"})
        provider = EnvironmentVariablesProvider({"HTTP_TIMEOUT": "15"})
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        *,
        secret_names: Collection[str] = (),
        array_separator: str = ",",
        name: str = "EnvironmentVariablesProvider",
    ) -> None:
        variables = os.environ if environ is None else environ
        self._snapshot = EnvironmentSnapshot(name, variables, secret_names, array_separator)

    @classmethod
    def from_env_file(
        cls,
        path: str | os.PathLike[str],
        *,
        allow_missing: bool = False,
        secret_names: Collection[str] = (),
        array_separator: str = ",",
    ) -> EnvironmentVariablesProvider:
        """Load variables from a dotenv file.

        Args:
            path: Path to the ``.env`` style file.
            allow_missing: Return an empty provider if the file does not exist.
            secret_names: Variable names whose values are secret.
            array_separator: Separator for array values.

        Raises:
            ConfigFileNotFoundError: The file does not exist and allow_missing is off.
        """
        env_path = Path(path)
        name = f"EnvironmentVariablesProvider[{env_path.name}]"
        if not env_path.exists():
            if not allow_missing:
                raise ConfigFileNotFoundError(str(env_path))
            log.debug("Env file %s not found, using no variables", env_path)
            return cls({}, secret_names=secret_names, array_separator=array_separator, name=name)

        # Variables declared without a value come back as None
        values = {key: value for key, value in dotenv_values(env_path).items() if value is not None}
        log.debug("Loaded %d variables from %s", len(values), env_path)
        return cls(values, secret_names=secret_names, array_separator=array_separator, name=name)

    @property
    def provider_name(self) -> str:
        return self._snapshot.provider_name

    def environment_value(self, name: str) -> str | None:
        """Raw value of a variable by its exact name."""
        return self._snapshot.variables.get(name)

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
