"""Shared pytest fixtures and stub collaborators."""

from __future__ import annotations

import asyncio
import os
import posixpath
from typing import Any

import pytest

from deskpad.errors import FileSystemError
from deskpad.services.filesystem import DirectoryEntry, sort_entries
from deskpad.utils.file_io import FileInfo, classify_file

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


class FakeFileSystem:
    """In-memory :class:`~deskpad.services.filesystem.FileSystem`.

    ``files`` maps POSIX paths to text; directories are implied by the paths
    plus anything listed in ``folders``. Tests can queue folder selections and
    hold individual calls open with :class:`asyncio.Event` gates.
    """

    def __init__(self, files: dict[str, str] | None = None, *, folders: list[str] | None = None) -> None:
        self.files: dict[str, str] = dict(files or {})
        self.folders: set[str] = set(folders or [])
        self.binary: set[str] = set()
        self.unreadable: set[str] = set()
        self.selections: list[Any] = []
        self.list_gates: dict[str, asyncio.Event] = {}
        self.read_gates: dict[str, asyncio.Event] = {}
        self.writes: list[tuple[str, str]] = []
        self.listed: list[str] = []
        self.reads: list[str] = []

    def _is_folder(self, path: str) -> bool:
        if path in self.folders:
            return True
        prefix = path.rstrip("/") + "/"
        return any(item.startswith(prefix) for item in [*self.files, *self.folders])

    async def select_folder(self) -> str | None:
        if not self.selections:
            return None
        item = self.selections.pop(0)
        if isinstance(item, tuple):
            gate, value = item
            await gate.wait()
            item = value
        if isinstance(item, Exception):
            raise item
        return item

    async def list_directory(self, path: str) -> list[DirectoryEntry]:
        self.listed.append(path)
        gate = self.list_gates.get(path)
        if gate is not None:
            await gate.wait()
        if path in self.unreadable:
            raise FileSystemError("Permission denied", path=path)
        if not self._is_folder(path):
            raise FileSystemError("No such directory", path=path)
        prefix = path.rstrip("/") + "/"
        children: dict[str, DirectoryEntry] = {}
        for item in [*self.files, *self.folders]:
            if not item.startswith(prefix):
                continue
            name = item[len(prefix):].split("/", 1)[0]
            child = posixpath.join(path, name)
            is_dir = child not in self.files
            children.setdefault(name, DirectoryEntry(name=name, path=child, is_directory=is_dir))
        return sort_entries(list(children.values()))

    async def read_text_file(self, path: str) -> str:
        self.reads.append(path)
        gate = self.read_gates.get(path)
        if gate is not None:
            await gate.wait()
        if path in self.unreadable:
            raise FileSystemError("Permission denied", path=path)
        if path not in self.files:
            raise FileSystemError("No such file", path=path)
        return self.files[path]

    async def read_binary_file(self, path: str) -> bytes:
        return (await self.read_text_file(path)).encode("utf-8")

    async def write_text_file(self, path: str, content: str) -> None:
        if path in self.unreadable:
            raise FileSystemError("Read-only file system", path=path)
        self.writes.append((path, content))
        self.files[path] = content

    async def exists(self, path: str) -> bool:
        return path in self.files or self._is_folder(path)

    async def classify(self, path: str) -> FileInfo:
        if path in self.binary:
            return FileInfo(is_text=False, encoding="binary")
        if path not in self.files and path not in self.unreadable:
            raise FileSystemError("No such file", path=path)
        return classify_file(path, self.files.get(path, "").encode("utf-8"))


@pytest.fixture
def fake_fs() -> FakeFileSystem:
    return FakeFileSystem(
        {
            "/project/readme.md": "# Project\n",
            "/project/src/main.py": "print('hi')\n",
            "/project/src/util.py": "def helper():\n    return 1\n",
        }
    )


@pytest.fixture
def settings_path(tmp_path) -> Any:
    return tmp_path / "settings.json"


@pytest.fixture
def fs_factory() -> type[FakeFileSystem]:
    return FakeFileSystem
