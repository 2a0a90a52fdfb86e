"""Configuration value types.

``ConfigValue`` is a tagged union: a ``ConfigType`` tag, a payload, and a
secret flag. Values are immutable; array payloads are stored as tuples.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ConfigType(Enum):
    """The type of a configuration value."""

    STRING = "string"
    INT = "int"
    DOUBLE = "double"
    BOOL = "bool"
    BYTES = "bytes"
    STRING_ARRAY = "stringArray"
    INT_ARRAY = "intArray"
    DOUBLE_ARRAY = "doubleArray"
    BOOL_ARRAY = "boolArray"
    BYTE_CHUNK_ARRAY = "byteChunkArray"

    @property
    def is_array(self) -> bool:
        return self in _ARRAY_ELEMENT_TYPES

    @property
    def element_type(self) -> ConfigType | None:
        """Scalar type of array elements, or None for scalar types."""
        return _ARRAY_ELEMENT_TYPES.get(self)

    def array_type(self) -> ConfigType:
        """Array type whose elements are this scalar type."""
        for array, element in _ARRAY_ELEMENT_TYPES.items():
            if element is self:
                return array
        raise ValueError(f"{self.value} has no array form")


_ARRAY_ELEMENT_TYPES = {
    ConfigType.STRING_ARRAY: ConfigType.STRING,
    ConfigType.INT_ARRAY: ConfigType.INT,
    ConfigType.DOUBLE_ARRAY: ConfigType.DOUBLE,
    ConfigType.BOOL_ARRAY: ConfigType.BOOL,
    ConfigType.BYTE_CHUNK_ARRAY: ConfigType.BYTES,
}

_SCALAR_PYTHON_TYPES: dict[ConfigType, type] = {
    ConfigType.STRING: str,
    ConfigType.INT: int,
    ConfigType.DOUBLE: float,
    ConfigType.BOOL: bool,
    ConfigType.BYTES: bytes,
}


def _check_scalar(type: ConfigType, item: Any) -> Any:
    expected = _SCALAR_PYTHON_TYPES[type]
    # bool is a subclass of int; keep the tags apart
    if expected is int and isinstance(item, bool):
        raise TypeError(f"Expected {type.value}, got bool")
    if expected is float and isinstance(item, int) and not isinstance(item, bool):
        return float(item)
    if expected is bytes and isinstance(item, (bytearray, memoryview)):
        return bytes(item)
    if not isinstance(item, expected):
        raise TypeError(f"Expected {type.value}, got {item.__class__.__name__}")
    return item


def _infer_type(value: Any) -> ConfigType:
    if isinstance(value, bool):
        return ConfigType.BOOL
    if isinstance(value, int):
        return ConfigType.INT
    if isinstance(value, float):
        return ConfigType.DOUBLE
    if isinstance(value, str):
        return ConfigType.STRING
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ConfigType.BYTES
    if isinstance(value, (list, tuple)):
        if not value:
            raise TypeError("Cannot infer the element type of an empty sequence")
        return _infer_type(value[0]).array_type()
    raise TypeError(f"Unsupported config value: {value!r}")


@dataclass(frozen=True, slots=True)
class ConfigValue:
    """A typed, immutable configuration value.

    Equality covers the type tag, the payload and the secret flag, so an
    int 1 and a double 1.0 are different values.

    Example:
        ConfigValue.of(30)                  # int
        ConfigValue.of(["a", "b"])          # stringArray
        ConfigValue(ConfigType.DOUBLE, 1)   # payload normalized to 1.0
    """

    type: ConfigType
    content: Any
    is_secret: bool = False

    def __post_init__(self) -> None:
        element = self.type.element_type
        if element is None:
            content = _check_scalar(self.type, self.content)
        else:
            if isinstance(self.content, (str, bytes)):
                raise TypeError(f"Expected a sequence for {self.type.value}")
            content = tuple(_check_scalar(element, item) for item in self.content)
        object.__setattr__(self, "content", content)

    @classmethod
    def of(cls, value: Any, is_secret: bool = False) -> ConfigValue:
        """Build a value from a Python object, inferring its type."""
        if isinstance(value, ConfigValue):
            return value
        return cls(_infer_type(value), value, is_secret)

    def as_secret(self) -> ConfigValue:
        if self.is_secret:
            return self
        return ConfigValue(self.type, self.content, True)

    def __str__(self) -> str:
        if self.is_secret:
            return f"[{self.type.value}: <REDACTED>]"
        return f"[{self.type.value}: {_describe(self.type, self.content)}]"

    def __repr__(self) -> str:
        return f"ConfigValue{self}"


def _describe(type: ConfigType, content: Any) -> str:
    if type is ConfigType.BYTES:
        return f"{len(content)} bytes, prefix: {content[:32].hex()}"
    if type is ConfigType.BYTE_CHUNK_ARRAY:
        return ", ".join(f"{len(chunk)} bytes, prefix: {chunk[:32].hex()}" for chunk in content)
    if type.is_array:
        return ", ".join(str(item) for item in content)
    return str(content)
