"""Detect and repair stale file references in a loaded session."""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import replace
from pathlib import PurePath
from typing import Iterable

from ..errors import FileSystemError
from ..session.models import OpenFileState, WorkspaceSession
from .filesystem import FileSystem

__all__ = ["MISSING_PREFIX", "FilePathRecoveryService", "is_missing", "original_path", "missing_placeholder"]

LOGGER = logging.getLogger(__name__)

MISSING_PREFIX = "MISSING:"


def is_missing(path: str) -> bool:
    return path.startswith(MISSING_PREFIX)


def original_path(path: str) -> str:
    """Strip any tombstone prefix from ``path``."""

    while is_missing(path):
        path = path[len(MISSING_PREFIX):]
    return path


def missing_placeholder(path: str) -> str:
    return f"// File not found: {path}\n// This file may have been moved or deleted."


class FilePathRecoveryService:
    """Relocates moved files by basename or marks them missing.

    Nothing is ever dropped from a session: an entry whose file cannot be
    found keeps its place as a tombstone (``MISSING:<path>``) so the user can
    see what was lost.
    """

    def __init__(self, file_system: FileSystem, *, max_depth: int = 8) -> None:
        self._fs = file_system
        self._max_depth = max_depth

    async def validate_path(self, path: str) -> bool:
        if not path or is_missing(path):
            return False
        try:
            return await self._fs.exists(path)
        except FileSystemError as exc:
            LOGGER.debug("exists(%s) failed, treating as missing: %s", path, exc)
            return False

    async def find_by_basename(self, basename: str, search_roots: Iterable[str]) -> str | None:
        """Depth-first search for a file called ``basename``.

        Roots are searched in order; within a directory entries are visited in
        listing order. Unreadable directories are skipped.
        """

        if not basename:
            return None
        visited: set[str] = set()
        for root in search_roots:
            if not root:
                continue
            found = await self._search(root, basename, 0, visited)
            if found is not None:
                return found
        return None

    async def recover_file_paths(self, session: WorkspaceSession) -> WorkspaceSession:
        """Return a copy of ``session`` with every broken file reference repaired or tombstoned."""

        recovered = copy.deepcopy(session)
        roots = list(session.folder_paths)
        repaired: list[OpenFileState] = []
        for entry in recovered.open_files:
            repaired.append(await self._recover_entry(entry, roots))
        recovered.open_files = repaired
        return recovered

    async def handle_missing_files(self, session: WorkspaceSession) -> WorkspaceSession:
        """Return the session with every entry retained, tombstones included."""

        handled = copy.deepcopy(session)
        missing = sum(1 for entry in handled.open_files if is_missing(entry.file_path))
        if missing:
            LOGGER.info("Session %s has %d missing file(s)", session.id, missing)
        return handled

    async def _recover_entry(self, entry: OpenFileState, roots: list[str]) -> OpenFileState:
        if not entry.file_path:
            return entry
        path = original_path(entry.file_path)
        if await self.validate_path(path):
            if is_missing(entry.file_path):
                LOGGER.info("Previously missing file is back: %s", path)
                return replace(entry, file_path=path)
            return entry

        relocated = await self.find_by_basename(PurePath(path).name, roots)
        if relocated is not None:
            LOGGER.info("Recovered %s at %s", path, relocated)
            return replace(entry, file_path=relocated)

        if is_missing(entry.file_path):
            return entry
        LOGGER.warning("File not found, marking missing: %s", path)
        return replace(entry, file_path=f"{MISSING_PREFIX}{path}", content=missing_placeholder(path))

    async def _search(self, directory: str, basename: str, depth: int, visited: set[str]) -> str | None:
        if depth > self._max_depth:
            return None
        key = os.path.normpath(directory)
        if key in visited:
            return None
        visited.add(key)
        try:
            entries = await self._fs.list_directory(directory)
        except FileSystemError as exc:
            LOGGER.debug("Skipping unreadable directory %s: %s", directory, exc)
            return None
        for entry in entries:
            if entry.is_directory:
                found = await self._search(entry.path, basename, depth + 1, visited)
                if found is not None:
                    return found
            elif entry.name == basename:
                return entry.path
        return None
