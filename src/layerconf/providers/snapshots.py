"""Snapshots parsed from JSON and YAML documents.

Documents are flattened into dot-joined keys:

    {"http": {"port": 8080, "hosts": ["a", "b"]}}

becomes ``http.port = 8080`` and ``http.hosts = ["a", "b"]``. The top level
must be a mapping; leaves must be scalars or lists of scalars. Values keep
their parsed Python form and are converted to the requested ``ConfigType`` at
lookup time.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

import yaml

from layerconf.coders import SeparatorKeyEncoder
from layerconf.errors import ConfigParseError, ValueNotConvertibleError
from layerconf.key import ConfigKey
from layerconf.provider import ConfigSnapshot, LookupResult
from layerconf.values import ConfigType, ConfigValue

SnapshotParser = Callable[[bytes], ConfigSnapshot]

_SCALARS = (str, int, float, bool)


@dataclass(frozen=True, slots=True)
class _Leaf:
    value: Any
    is_secret: bool


class _Mismatch(Exception):
    pass


def _flatten(
    data: Mapping[Any, Any],
    source: str,
    secret_keys: Collection[str],
    prefix: tuple[str, ...] = (),
    out: dict[str, _Leaf] | None = None,
) -> dict[str, _Leaf]:
    out = {} if out is None else out
    for raw_name, item in data.items():
        path = prefix + (str(raw_name),)
        name = ".".join(path)
        if item is None:
            continue
        if isinstance(item, Mapping):
            _flatten(item, source, secret_keys, path, out)
        elif isinstance(item, _SCALARS):
            out[name] = _Leaf(item, name in secret_keys)
        elif isinstance(item, list):
            for element in item:
                if not isinstance(element, _SCALARS):
                    raise ConfigParseError(
                        source, f"unexpected value type {type(element).__name__} in array at {name}"
                    )
            out[name] = _Leaf(tuple(item), name in secret_keys)
        else:
            raise ConfigParseError(source, f"unsupported value type {type(item).__name__} at {name}")
    return out


def _as_int(item: Any) -> int:
    if isinstance(item, bool):
        return int(item)
    if isinstance(item, int):
        return item
    if isinstance(item, float) and item.is_integer():
        return int(item)
    raise _Mismatch


def _as_double(item: Any) -> float:
    if isinstance(item, (bool, int, float)):
        return float(item)
    raise _Mismatch


def _as_bool(item: Any) -> bool:
    if isinstance(item, (bool, int, float)):
        return bool(item)
    raise _Mismatch


def _as_string(item: Any) -> str:
    if isinstance(item, str):
        return item
    raise _Mismatch


def _as_bytes(item: Any) -> bytes:
    if not isinstance(item, str):
        raise _Mismatch
    try:
        return base64.b64decode(item, validate=True)
    except (binascii.Error, ValueError):
        raise _Mismatch from None


_CONVERTERS: dict[ConfigType, Callable[[Any], Any]] = {
    ConfigType.STRING: _as_string,
    ConfigType.INT: _as_int,
    ConfigType.DOUBLE: _as_double,
    ConfigType.BOOL: _as_bool,
    ConfigType.BYTES: _as_bytes,
}


class FlatSnapshot:
    """Immutable snapshot of a flattened document.

    Use ``JSONSnapshot.parse`` or ``YAMLSnapshot.parse`` to build one from
    raw bytes.
    """

    key_encoder = SeparatorKeyEncoder.DOT

    def __init__(self, provider_name: str, values: Mapping[str, _Leaf]) -> None:
        self._provider_name = provider_name
        self._values = MappingProxyType(dict(values))

    @property
    def provider_name(self) -> str:
        return self._provider_name

    @property
    def encoded_keys(self) -> frozenset[str]:
        return frozenset(self._values)

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        encoded_key = self.key_encoder.encode(key)
        leaf = self._values.get(encoded_key)
        if leaf is None:
            return LookupResult(encoded_key, None)
        try:
            content = self._convert(leaf.value, type)
        except _Mismatch:
            raise ValueNotConvertibleError(encoded_key, type) from None
        return LookupResult(encoded_key, ConfigValue(type, content, leaf.is_secret))

    @staticmethod
    def _convert(item: Any, type: ConfigType) -> Any:
        element_type = type.element_type
        if element_type is None:
            if isinstance(item, tuple):
                raise _Mismatch
            return _CONVERTERS[type](item)
        if not isinstance(item, tuple):
            raise _Mismatch
        convert = _CONVERTERS[element_type]
        return tuple(convert(element) for element in item)

    def __repr__(self) -> str:
        return f"{self._provider_name}[{len(self._values)} values]"


class JSONSnapshot(FlatSnapshot):
    """Snapshot of a JSON object document."""

    @classmethod
    def parse(
        cls,
        data: bytes,
        provider_name: str = "JSONSnapshot",
        secret_keys: Collection[str] = (),
    ) -> JSONSnapshot:
        try:
            document = json.loads(data.decode("utf-8")) if data.strip() else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ConfigParseError(provider_name, str(e)) from e
        if not isinstance(document, dict):
            raise ConfigParseError(provider_name, "the top-level JSON value must be an object")
        return cls(provider_name, _flatten(document, provider_name, frozenset(secret_keys)))


class YAMLSnapshot(FlatSnapshot):
    """Snapshot of a YAML mapping document."""

    @classmethod
    def parse(
        cls,
        data: bytes,
        provider_name: str = "YAMLSnapshot",
        secret_keys: Collection[str] = (),
    ) -> YAMLSnapshot:
        try:
            document = yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise ConfigParseError(provider_name, str(e)) from e
        if document is None:
            document = {}
        if not isinstance(document, dict):
            raise ConfigParseError(provider_name, "the top-level YAML value must be a mapping")
        return cls(provider_name, _flatten(document, provider_name, frozenset(secret_keys)))


class EmptySnapshot:
    """Snapshot with no values, used when a file is allowed to be missing."""

    def __init__(self, provider_name: str) -> None:
        self._provider_name = provider_name

    @property
    def provider_name(self) -> str:
        return self._provider_name

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        return LookupResult(str(key), None)

    def __repr__(self) -> str:
        return f"{self._provider_name}[empty]"


def json_parser(provider_name: str = "JSONSnapshot", secret_keys: Collection[str] = ()) -> SnapshotParser:
    """Parser closure producing ``JSONSnapshot`` objects."""

    def parse(data: bytes) -> ConfigSnapshot:
        return JSONSnapshot.parse(data, provider_name, secret_keys)

    return parse


def yaml_parser(provider_name: str = "YAMLSnapshot", secret_keys: Collection[str] = ()) -> SnapshotParser:
    """Parser closure producing ``YAMLSnapshot`` objects."""

    def parse(data: bytes) -> ConfigSnapshot:
        return YAMLSnapshot.parse(data, provider_name, secret_keys)

    return parse
