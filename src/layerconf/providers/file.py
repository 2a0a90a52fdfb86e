"""One-shot file provider.

Reads and parses a file once. Use ``ReloadingFileProvider`` to pick up
changes while the application runs.
"""

from __future__ import annotations

import os
from collections.abc import Collection
from typing import TypeVar

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
from layerconf.providers.files import FileSystem, LocalFileSystem
from layerconf.providers.snapshots import EmptySnapshot, SnapshotParser, json_parser, yaml_parser
from layerconf.values import ConfigType

R = TypeVar("R")

log = get_logger("file")


class FileProvider:
    """A provider serving the parsed contents of a file, read once."""

    def __init__(self, file_path: str, snapshot: ConfigSnapshot) -> None:
        self.file_path = file_path
        self._snapshot = snapshot

    @classmethod
    async def load(
        cls,
        file_path: str | os.PathLike[str],
        parser: SnapshotParser,
        *,
        allow_missing: bool = False,
        file_system: FileSystem | None = None,
    ) -> FileProvider:
        """Read and parse a file.

        Raises:
            ConfigFileNotFoundError: The file is absent and allow_missing is off.
            ConfigParseError: The parser rejected the file contents.
        """
        path = os.fspath(file_path)
        fs = file_system or LocalFileSystem()
        data: bytes | None = None
        real_path = await fs.resolve_symlinks(path)
        if real_path is not None:
            data = await fs.file_contents(real_path)
        if data is None:
            if not allow_missing:
                raise ConfigFileNotFoundError(path)
            log.debug("File %s is missing, serving no values", path)
            return cls(path, EmptySnapshot(f"FileProvider[{os.path.basename(path)}]"))
        log.debug("Loaded %s (%d bytes)", real_path, len(data))
        return cls(path, parser(data))

    @classmethod
    async def load_json(
        cls,
        file_path: str | os.PathLike[str],
        *,
        allow_missing: bool = False,
        secret_keys: Collection[str] = (),
    ) -> FileProvider:
        name = f"JSONProvider[{os.path.basename(os.fspath(file_path))}]"
        return await cls.load(file_path, json_parser(name, secret_keys), allow_missing=allow_missing)

    @classmethod
    async def load_yaml(
        cls,
        file_path: str | os.PathLike[str],
        *,
        allow_missing: bool = False,
        secret_keys: Collection[str] = (),
    ) -> FileProvider:
        name = f"YAMLProvider[{os.path.basename(os.fspath(file_path))}]"
        return await cls.load(file_path, yaml_parser(name, secret_keys), allow_missing=allow_missing)

    @property
    def provider_name(self) -> str:
        return self._snapshot.provider_name

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
        return f"FileProvider<{self._snapshot!r}>"
