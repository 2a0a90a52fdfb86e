"""Directory files provider.

Reads every regular file in a directory once, mapping each file name to a
key with ``DirectoryFileKeyEncoder``: ``database.password`` reads the file
``database-password``. This is the layout of mounted secret volumes, so all
files are treated as secret unless ``secret_names`` says otherwise.

File contents stay raw until looked up, then are parsed for the requested
type:

- bytes: the raw file contents
- byte chunk arrays: the whole file as a single chunk
- everything else: the contents decoded as UTF-8 and trimmed, then parsed
  like environment variable values (arrays split on ``array_separator``)
"""

from __future__ import annotations

import os
from collections.abc import Collection, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TypeVar

from layerconf.coders import DirectoryFileKeyEncoder, decode_strings
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
from layerconf.values import ConfigType, ConfigValue

R = TypeVar("R")

log = get_logger("directory")


@dataclass(frozen=True, slots=True)
class FileValue:
    """Raw contents of one file in the directory."""

    data: bytes
    is_secret: bool

    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace").strip()


class DirectorySnapshot:
    """Immutable view over the files read from a directory."""

    key_encoder = DirectoryFileKeyEncoder()

    def __init__(
        self,
        provider_name: str,
        files: Mapping[str, FileValue],
        array_separator: str = ",",
    ) -> None:
        self._provider_name = provider_name
        self.files: Mapping[str, FileValue] = MappingProxyType(dict(files))
        self._array_separator = array_separator

    @property
    def provider_name(self) -> str:
        return self._provider_name

    def value(self, key: ConfigKey, type: ConfigType) -> LookupResult:
        file_name = self.key_encoder.encode(key)
        file_value = self.files.get(file_name)
        if file_value is None:
            return LookupResult(file_name, None)
        return LookupResult(file_name, self._parse(file_name, file_value, type))

    def _parse(self, file_name: str, file_value: FileValue, type: ConfigType) -> ConfigValue:
        if type is ConfigType.BYTES:
            return ConfigValue(type, file_value.data, file_value.is_secret)
        if type is ConfigType.BYTE_CHUNK_ARRAY:
            return ConfigValue(type, [file_value.data], file_value.is_secret)
        text = file_value.text()
        if type.is_array:
            strings = [item.strip() for item in text.split(self._array_separator)]
            strings = [item for item in strings if item]
        else:
            strings = [text]
        return decode_strings(strings, type, file_name, file_value.is_secret)

    def describe(self) -> str:
        """List every file and its trimmed contents, secrets redacted."""
        values = ", ".join(
            f"{name}={'<REDACTED>' if value.is_secret else value.text()}"
            for name, value in sorted(self.files.items())
        )
        return f"{self._provider_name}[{len(self.files)} files: {values}]"

    def __repr__(self) -> str:
        return f"{self._provider_name}[{len(self.files)} files]"


class DirectoryFilesProvider:
    """A provider backed by one file per key in a directory.

    Files are read once by ``load()``; later changes on disk are not seen.

    Example:
        # /run/secrets/database-password holds the password
        secrets = await DirectoryFilesProvider.load("/run/secrets")
        reader = ConfigReader([EnvironmentVariablesProvider(), secrets])
        reader.require("database.password")
    """

    def __init__(self, snapshot: DirectorySnapshot, directory_path: str) -> None:
        self._snapshot = snapshot
        self.directory_path = directory_path

    @classmethod
    async def load(
        cls,
        directory_path: str | os.PathLike[str],
        *,
        secret_names: Collection[str] | None = None,
        array_separator: str = ",",
        allow_missing: bool = False,
        file_system: FileSystem | None = None,
        provider_name: str = "DirectoryFilesProvider",
    ) -> DirectoryFilesProvider:
        """Read every file in a directory.

        Args:
            directory_path: Directory to read. Hidden files are skipped.
            secret_names: File names whose values are secret. None marks every
                file secret.
            array_separator: Separator for array values.
            allow_missing: Return an empty provider if the directory does not
                exist.
            file_system: File access, defaults to the local disk.
            provider_name: Name used in logs and diagnostics.

        Raises:
            ConfigFileNotFoundError: The directory does not exist and
                allow_missing is off.
        """
        path = os.fspath(directory_path)
        fs = file_system or LocalFileSystem()

        file_names = await fs.list_file_names(path)
        if file_names is None:
            if not allow_missing:
                raise ConfigFileNotFoundError(path)
            log.debug("Directory %s not found, using no files", path)
            file_names = []

        secrets = None if secret_names is None else frozenset(secret_names)
        files: dict[str, FileValue] = {}
        for file_name in file_names:
            data = await fs.file_contents(os.path.join(path, file_name))
            if data is None:
                # Removed between listing and reading
                continue
            files[file_name] = FileValue(data, secrets is None or file_name in secrets)

        log.debug("Loaded %d files from %s", len(files), path)
        return cls(DirectorySnapshot(provider_name, files, array_separator), path)

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

    def describe(self) -> str:
        return self._snapshot.describe()

    def __repr__(self) -> str:
        return repr(self._snapshot)
