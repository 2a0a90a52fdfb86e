"""Configuration keys.

A key is an ordered sequence of string components (``("http", "timeout")``)
plus an optional context mapping of scalar values. Keys are immutable and
hashable so providers can use them directly as dictionary keys.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Union

ContextValue = Union[str, int, float, bool]


def _context_signature(context: Iterable[tuple[str, ContextValue]]) -> str:
    return ";".join(f"{name}={_render_context_value(value)}" for name, value in sorted(context))


def _render_context_value(value: ContextValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@total_ordering
@dataclass(frozen=True, slots=True)
class ConfigKey:
    """An absolute configuration key.

    Two keys are equal when their components match in order and their
    context holds the same name/value pairs.

    Example:
        key = ConfigKey.parse("http.timeout")
        key.components  # ("http", "timeout")
        str(key.appending(ConfigKey(("ms",))))  # "http.timeout.ms"
    """

    components: tuple[str, ...]
    context: frozenset[tuple[str, ContextValue]] = field(default_factory=frozenset)

    def __init__(
        self,
        components: Iterable[str],
        context: Mapping[str, ContextValue] | Iterable[tuple[str, ContextValue]] | None = None,
    ) -> None:
        parts = tuple(components)
        for part in parts:
            if not isinstance(part, str) or not part:
                raise ValueError(f"Key components must be non-empty strings, got {parts!r}")
        if context is None:
            pairs: frozenset[tuple[str, ContextValue]] = frozenset()
        elif isinstance(context, Mapping):
            pairs = frozenset(context.items())
        else:
            pairs = frozenset(context)
        object.__setattr__(self, "components", parts)
        object.__setattr__(self, "context", pairs)

    @classmethod
    def parse(cls, string: str, context: Mapping[str, ContextValue] | None = None) -> ConfigKey:
        """Decode a dot-separated key string."""
        from layerconf.coders import DotSeparatorKeyDecoder

        return DotSeparatorKeyDecoder.decode(string, context)

    @classmethod
    def coerce(cls, key: str | Iterable[str] | ConfigKey) -> ConfigKey:
        """Accept a key object, a dotted string, or a sequence of components."""
        if isinstance(key, ConfigKey):
            return key
        if isinstance(key, str):
            return cls.parse(key)
        return cls(key)

    @property
    def context_dict(self) -> dict[str, ContextValue]:
        return dict(self.context)

    def appending(self, other: ConfigKey) -> ConfigKey:
        """Return a key with ``other``'s components after this key's.

        Context values from ``other`` win on conflict.
        """
        merged = self.context_dict
        merged.update(other.context_dict)
        return ConfigKey(self.components + other.components, merged)

    def prepending(self, prefix: ConfigKey) -> ConfigKey:
        """Return a key with ``prefix``'s components before this key's."""
        return prefix.appending(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ConfigKey):
            return NotImplemented
        for mine, theirs in zip(self.components, other.components):
            if mine != theirs:
                return mine < theirs
        my_signature = _context_signature(self.context)
        their_signature = _context_signature(other.context)
        if my_signature != their_signature:
            return my_signature < their_signature
        return len(self.components) < len(other.components)

    def __str__(self) -> str:
        key_string = ".".join(self.components)
        if not self.context:
            return key_string
        return f"{key_string} [{_context_signature(self.context)}]"

    def __repr__(self) -> str:
        return f"ConfigKey({str(self)!r})"
