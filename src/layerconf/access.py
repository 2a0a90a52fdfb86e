"""Access reporting.

Every read through a ``ConfigReader`` produces an ``AccessEvent`` describing
which key was asked for, what each consulted provider answered, and the
final outcome. Events go to an ``AccessReporter``.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Protocol, TextIO, runtime_checkable

from layerconf.key import ConfigKey
from layerconf.logging import get_logger
from layerconf.multi import ProviderResult
from layerconf.provider import Result
from layerconf.values import ConfigType, ConfigValue

log = get_logger("access")


class AccessKind(Enum):
    """How a value was accessed."""

    GET = "get"
    FETCH = "fetch"
    WATCH = "watch"


@dataclass(frozen=True, slots=True)
class AccessEvent:
    """One configuration access.

    Attributes:
        kind: get, fetch, or watch
        key: The absolute key that was resolved
        type: The requested value type
        provider_results: Answers of the consulted providers, in priority order
        result: The resolved value (None if absent), or the error raised
        timestamp: Seconds since the epoch when the access happened
    """

    kind: AccessKind
    key: ConfigKey
    type: ConfigType
    provider_results: tuple[ProviderResult, ...]
    result: Result[ConfigValue | None]
    timestamp: float = field(default_factory=time.time)

    def describe(self) -> str:
        """Single-line summary with secret values redacted."""
        if not self.result.ok:
            outcome = f"error: {self.result.error}"
        elif self.result.value is None:
            outcome = "not found"
        else:
            outcome = str(self.result.value)
        winner = self._winning_provider()
        source = f" from {winner}" if winner else ""
        return f"{self.kind.value} {self.key} ({self.type.value}) -> {outcome}{source}"

    def _winning_provider(self) -> str | None:
        if not self.result.ok or self.result.value is None or not self.provider_results:
            return None
        return self.provider_results[-1].provider_name


@runtime_checkable
class AccessReporter(Protocol):
    """Receives access events."""

    def report(self, event: AccessEvent) -> None: ...


class AccessLogger:
    """Logs every access event through the library logger.

    Values marked secret are logged as ``<REDACTED>``.
    """

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.DEBUG) -> None:
        self.logger = logger or log
        self.level = level

    def report(self, event: AccessEvent) -> None:
        if not self.logger.isEnabledFor(self.level):
            return
        self.logger.log(self.level, "Config %s", event.describe())


class BroadcastingAccessReporter:
    """Forwards each event to several reporters in order."""

    def __init__(self, reporters: Sequence[AccessReporter]) -> None:
        self.reporters = tuple(reporters)

    def report(self, event: AccessEvent) -> None:
        for reporter in self.reporters:
            reporter.report(event)


# Environment variable naming an access log file
ACCESS_LOG_ENV_VAR = "LAYERCONF_ACCESS_LOG_FILE"


class FileAccessLogger:
    """Appends one line per access event to a file.

    The file and its parent directories are created if needed. Each process
    writes a header first so interleaved runs can be told apart. Secret
    values are written as ``<REDACTED>``.

    Example:
        with FileAccessLogger("/tmp/config-access.log") as access_log:
            reader = ConfigReader(providers, access_reporter=access_log)
            ...
    """

    def __init__(self, file_path: str | os.PathLike[str]) -> None:
        self.file_path = Path(file_path).expanduser()
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._file: TextIO | None = open(self.file_path, "a", encoding="utf-8")
        try:
            self._file.write(f"---\nEmitting config events from process {os.getpid()}\n---\n")
            self._file.flush()
        except OSError:
            self._file.close()
            raise

    @classmethod
    def from_environment(cls) -> FileAccessLogger | None:
        """Create a logger for the file named by LAYERCONF_ACCESS_LOG_FILE, if set."""
        file_path = os.environ.get(ACCESS_LOG_ENV_VAR)
        if not file_path:
            return None
        return cls(file_path)

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._file is None

    def report(self, event: AccessEvent) -> None:
        line = f"{_format_timestamp(event.timestamp)} {event.describe()}\n"
        with self._lock:
            if self._file is None:
                return
            try:
                self._file.write(line)
                self._file.flush()
            except OSError as e:
                log.error("Failed to write to access log %s: %s", self.file_path, e)

    def close(self) -> None:
        """Close the file. Later events are dropped."""
        with self._lock:
            if self._file is None:
                return
            self._file.close()
            self._file = None

    def __enter__(self) -> FileAccessLogger:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"FileAccessLogger[{self.file_path}]"


def _format_timestamp(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).astimezone().isoformat(timespec="milliseconds")
