"""File-system collaborator used by the folder store and recovery service."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Protocol, Union, runtime_checkable

from ..errors import FileSystemError
from ..utils import file_io

__all__ = ["DirectoryEntry", "FileSystem", "FolderPicker", "LocalFileSystem"]

LOGGER = logging.getLogger(__name__)

FolderPicker = Callable[[], Union[str, None, Awaitable[Union[str, None]]]]


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    name: str
    path: str
    is_directory: bool


@runtime_checkable
class FileSystem(Protocol):
    """Asynchronous file access. Failures raise :class:`FileSystemError`."""

    async def select_folder(self) -> str | None:
        ...

    async def list_directory(self, path: str) -> list[DirectoryEntry]:
        ...

    async def read_text_file(self, path: str) -> str:
        ...

    async def read_binary_file(self, path: str) -> bytes:
        ...

    async def write_text_file(self, path: str, content: str) -> None:
        ...

    async def exists(self, path: str) -> bool:
        ...

    async def classify(self, path: str) -> file_io.FileInfo:
        ...


def sort_entries(entries: list[DirectoryEntry]) -> list[DirectoryEntry]:
    """Folders first, then case-insensitive name order."""

    return sorted(entries, key=lambda entry: (not entry.is_directory, entry.name.lower()))


class LocalFileSystem:
    """:class:`FileSystem` backed by the local disk.

    Blocking calls run on the default executor via :func:`asyncio.to_thread`.
    Folder selection is delegated to ``picker`` (a Qt dialog in the desktop
    app); without one, selection always reports "cancelled".
    """

    def __init__(self, picker: FolderPicker | None = None) -> None:
        self._picker = picker

    async def select_folder(self) -> str | None:
        if self._picker is None:
            LOGGER.debug("LocalFileSystem.select_folder: no picker configured")
            return None
        result = self._picker()
        if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
            result = await result
        return str(result) if result else None

    async def list_directory(self, path: str) -> list[DirectoryEntry]:
        return await self._run(self._list_directory_sync, path)

    async def read_text_file(self, path: str) -> str:
        return await self._run(file_io.read_text, path, normalize_newlines=False)

    async def read_binary_file(self, path: str) -> bytes:
        return await self._run(lambda target: Path(target).read_bytes(), path)

    async def write_text_file(self, path: str, content: str) -> None:
        await self._run(file_io.write_text, path, content)

    async def exists(self, path: str) -> bool:
        if not path:
            return False
        return await asyncio.to_thread(os.path.exists, path)

    async def classify(self, path: str) -> file_io.FileInfo:
        return await self._run(self._classify_sync, path)

    @staticmethod
    def _list_directory_sync(path: str) -> list[DirectoryEntry]:
        entries: list[DirectoryEntry] = []
        with os.scandir(path) as iterator:
            for item in iterator:
                try:
                    is_dir = item.is_dir()
                except OSError:
                    is_dir = False
                entries.append(DirectoryEntry(name=item.name, path=item.path, is_directory=is_dir))
        return sort_entries(entries)

    @staticmethod
    def _classify_sync(path: str) -> file_io.FileInfo:
        with open(path, "rb") as handle:
            head = handle.read(4096)
        return file_io.classify_file(path, head)

    async def _run(self, func, path: str, *args, **kwargs):  # type: ignore[no-untyped-def]
        try:
            return await asyncio.to_thread(func, path, *args, **kwargs)
        except (OSError, UnicodeDecodeError) as exc:
            message = exc.strerror if isinstance(exc, OSError) and exc.strerror else str(exc)
            raise FileSystemError(message, path=path) from exc
