"""File-system access used by file-backed providers.

Every operation returns None when the path does not exist instead of
raising, so "allow missing" behavior composes without exception handling.
Other OS errors propagate.
"""

from __future__ import annotations

import asyncio
import os
from typing import Protocol


class FileSystem(Protocol):
    """Minimal async file-system interface for file-backed providers."""

    async def resolve_symlinks(self, path: str) -> str | None:
        """Return the real path with symlinks resolved, or None if missing."""
        ...

    async def last_modified_timestamp(self, path: str) -> int | None:
        """Return the modification time in nanoseconds, or None if missing."""
        ...

    async def file_contents(self, path: str) -> bytes | None:
        """Return the file's bytes, or None if missing."""
        ...

    async def list_file_names(self, path: str) -> list[str] | None:
        """Return names of the regular files in a directory, or None if missing.

        Hidden files (names starting with a dot) are skipped.
        """
        ...


class LocalFileSystem:
    """FileSystem backed by the local disk.

    Blocking calls run in a worker thread so the event loop stays responsive.
    """

    async def resolve_symlinks(self, path: str) -> str | None:
        return await asyncio.to_thread(self._resolve_symlinks, path)

    async def last_modified_timestamp(self, path: str) -> int | None:
        return await asyncio.to_thread(self._last_modified_timestamp, path)

    async def file_contents(self, path: str) -> bytes | None:
        return await asyncio.to_thread(self._file_contents, path)

    async def list_file_names(self, path: str) -> list[str] | None:
        return await asyncio.to_thread(self._list_file_names, path)

    @staticmethod
    def _resolve_symlinks(path: str) -> str | None:
        real_path = os.path.realpath(os.path.expanduser(path))
        if not os.path.exists(real_path):
            return None
        return real_path

    @staticmethod
    def _last_modified_timestamp(path: str) -> int | None:
        try:
            # Nanosecond precision so quick successive writes are distinguishable
            return os.stat(path).st_mtime_ns
        except FileNotFoundError:
            return None

    @staticmethod
    def _file_contents(path: str) -> bytes | None:
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None

    @staticmethod
    def _list_file_names(path: str) -> list[str] | None:
        directory = os.path.expanduser(path)
        if not os.path.isdir(directory):
            return None
        with os.scandir(directory) as entries:
            # is_file() follows symlinks, so mounted secret files are included
            return sorted(entry.name for entry in entries if not entry.name.startswith(".") and entry.is_file())
