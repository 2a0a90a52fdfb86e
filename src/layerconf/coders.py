"""Key encoders and decoders.

Encoders turn a ``ConfigKey`` into the string a particular source uses:

- ``SeparatorKeyEncoder.DOT``: ``http.serverTimeout`` (JSON/YAML flattening)
- ``EnvironmentKeyEncoder``: ``HTTP_SERVER_TIMEOUT``
- ``CLIKeyEncoder``: ``--http-server-timeout``
- ``DirectoryFileKeyEncoder``: ``http-serverTimeout``

Encoders are pure functions of the key; context is ignored.

The value decoders at the bottom turn the raw strings of environment
variables and command line options into typed values.
"""

from __future__ import annotations

import base64
import binascii
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar, Protocol

from layerconf.errors import ValueNotConvertibleError
from layerconf.key import ConfigKey, ContextValue
from layerconf.values import ConfigType, ConfigValue

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z])(?=[A-Z])")
_NON_ALNUM = re.compile(r"[^0-9A-Za-z]")
_NON_FILE_NAME = re.compile(r"[^0-9A-Za-z-]")


class ConfigKeyEncoder(Protocol):
    """Turns a key into a provider-native string."""

    def encode(self, key: ConfigKey) -> str: ...


@dataclass(frozen=True)
class SeparatorKeyEncoder:
    """Joins key components with a separator."""

    separator: str

    DOT: ClassVar[SeparatorKeyEncoder]
    DASH: ClassVar[SeparatorKeyEncoder]

    def encode(self, key: ConfigKey) -> str:
        return self.separator.join(key.components)


SeparatorKeyEncoder.DOT = SeparatorKeyEncoder(".")
SeparatorKeyEncoder.DASH = SeparatorKeyEncoder("-")


class EnvironmentKeyEncoder:
    """Encodes keys as environment variable names.

    camelCase boundaries become underscores, everything is uppercased, and
    any character that is not a letter or digit becomes an underscore.
    ``("http", "serverTimeout")`` encodes to ``HTTP_SERVER_TIMEOUT``.
    """

    def encode(self, key: ConfigKey) -> str:
        parts = []
        for component in key.components:
            component = _CAMEL_BOUNDARY.sub("_", component)
            parts.append(_NON_ALNUM.sub("_", component.upper()))
        return "_".join(parts)


class CLIKeyEncoder:
    """Encodes keys as long command line options.

    ``("http", "serverTimeout")`` encodes to ``--http-server-timeout``.
    """

    def encode(self, key: ConfigKey) -> str:
        parts = []
        for component in key.components:
            component = _CAMEL_BOUNDARY.sub("-", component).lower()
            parts.append(component.replace("_", "-"))
        return "--" + "-".join(parts)


class DirectoryFileKeyEncoder:
    """Encodes keys as file names inside a directory.

    Components are joined with dashes, and any character that is not a
    letter, digit, or dash becomes an underscore. Case is kept.
    ``("database", "password")`` encodes to ``database-password``.
    """

    def encode(self, key: ConfigKey) -> str:
        return "-".join(_NON_FILE_NAME.sub("_", component) for component in key.components)


class DotSeparatorKeyDecoder:
    """Decodes ``"a.b.c"`` into a key with components ``("a", "b", "c")``."""

    separator = "."

    @classmethod
    def decode(cls, string: str, context: Mapping[str, ContextValue] | None = None) -> ConfigKey:
        components = [part for part in string.split(cls.separator) if part]
        return ConfigKey(components, context)


# -----------------------------------------------------------------------------
# Value decoders for string-based sources (environment, command line)
# -----------------------------------------------------------------------------

_TRUE_STRINGS = frozenset({"true", "yes", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "0"})


def decode_bool(string: str) -> bool | None:
    """Parse ``true/yes/1`` or ``false/no/0`` (case-insensitive)."""
    lowered = string.strip().lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    return None


def decode_bytes(string: str) -> bytes | None:
    """Decode a base64 string, or None if it is not valid base64."""
    try:
        return base64.b64decode(string, validate=True)
    except (binascii.Error, ValueError):
        return None


def _decode_int(string: str) -> int | None:
    try:
        return int(string.strip())
    except ValueError:
        return None


def _decode_double(string: str) -> float | None:
    try:
        return float(string.strip())
    except ValueError:
        return None


_SCALAR_DECODERS: dict[ConfigType, Callable[[str], Any]] = {
    ConfigType.STRING: lambda string: string,
    ConfigType.INT: _decode_int,
    ConfigType.DOUBLE: _decode_double,
    ConfigType.BOOL: decode_bool,
    ConfigType.BYTES: decode_bytes,
}


def decode_strings(
    strings: Sequence[str],
    type: ConfigType,
    encoded_key: str,
    is_secret: bool = False,
) -> ConfigValue:
    """Convert raw string values into a typed ``ConfigValue``.

    Scalar types need exactly one string. Array types decode every string.

    Raises:
        ValueNotConvertibleError: A string does not parse as the requested type.
    """
    element_type = type.element_type
    if element_type is None:
        if len(strings) != 1:
            raise ValueNotConvertibleError(encoded_key, type)
        content = _SCALAR_DECODERS[type](strings[0])
        if content is None:
            raise ValueNotConvertibleError(encoded_key, type)
        return ConfigValue(type, content, is_secret)

    decode = _SCALAR_DECODERS[element_type]
    items = []
    for string in strings:
        item = decode(string)
        if item is None:
            raise ValueNotConvertibleError(encoded_key, type)
        items.append(item)
    return ConfigValue(type, items, is_secret)
