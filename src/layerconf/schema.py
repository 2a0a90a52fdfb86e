"""Settings dataclasses for layerconf itself.

These can be filled in by hand or read from another ``ConfigReader``, so a
provider's own settings can come from the environment or a bootstrap file.

Example config.yaml:
    logging:
      level: DEBUG
      file: /var/log/app.log
    config:
      file_path: /etc/app/config.json
      poll_interval_seconds: 5
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from layerconf.values import ConfigType

if TYPE_CHECKING:
    from layerconf.reader import ConfigReader


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # TRACE, DEBUG, VERBOSE, INFO, WARNING, ERROR
    verbose: int | None = None  # 0 (errors only) to 4 (trace); overrides level
    file: str | None = None  # Log file path


@dataclass
class ReloadingFileSettings:
    """Settings for a ``ReloadingFileProvider``."""

    file_path: str
    allow_missing: bool = False
    poll_interval: float = 15.0  # Seconds

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")

    @classmethod
    def from_reader(cls, reader: ConfigReader) -> ReloadingFileSettings:
        """Read settings from ``file_path``, ``allow_missing`` and ``poll_interval_seconds``.

        Use a scoped reader to read them from under a prefix.

        Raises:
            MissingRequiredValueError: ``file_path`` is not set.
        """
        return cls(
            file_path=reader.require("file_path"),
            allow_missing=reader.get("allow_missing", ConfigType.BOOL, default=False),
            poll_interval=reader.get("poll_interval_seconds", ConfigType.DOUBLE, default=15.0),
        )


def load_logging_config(reader: ConfigReader) -> LoggingConfig:
    """Read ``logging.level``, ``logging.verbose`` and ``logging.file``."""
    scoped = reader.scoped("logging")
    return LoggingConfig(
        level=scoped.get("level"),
        verbose=scoped.get("verbose", ConfigType.INT),
        file=scoped.get("file"),
    )
