"""Exceptions raised by layerconf.

A key that is absent from a provider is never an error: lookups return a
``LookupResult`` whose value is ``None``. The exceptions here cover type
mismatches, required values, and unusable configuration sources.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from layerconf.key import ConfigKey
    from layerconf.values import ConfigType


class ConfigError(Exception):
    """Base class for all layerconf errors."""


class ValueNotConvertibleError(ConfigError):
    """A value exists for the key but cannot be read as the requested type."""

    def __init__(self, name: str, type: ConfigType) -> None:
        self.name = name
        self.type = type
        super().__init__(f"Config value for key '{name}' failed to convert to type {type.value}.")


class MissingRequiredValueError(ConfigError):
    """A required value was not found in any provider."""

    def __init__(self, key: ConfigKey) -> None:
        self.key = key
        super().__init__(f"Missing required config value for key: {key}.")


class ConfigFileNotFoundError(ConfigError):
    """A configuration file does not exist and missing files are not allowed."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Config file not found: {path}")


class ConfigParseError(ConfigError):
    """A configuration source could not be parsed into a snapshot."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to parse {source}: {reason}")
