"""Folder tree and file-opening state backing the sidebar and tab strip."""

from __future__ import annotations

import logging
import os
from typing import Iterable

from ..editor.tabs import Tab
from ..editor.workspace import TabManager
from ..errors import FileSystemError
from ..events import ActiveTabChanged, ErrorCleared, ErrorRaised, EventBus, FolderOpened, TabOpened
from ..services.concurrency import CancellationToken, OperationGuard
from ..services.filesystem import DirectoryEntry, FileSystem
from ..utils.file_io import infer_language

__all__ = ["FileStore", "UNSUPPORTED_FILE_MESSAGE"]

LOGGER = logging.getLogger(__name__)

UNSUPPORTED_FILE_MESSAGE = "Cannot open binary or unsupported file type."
_FOLDER_KIND = "folder"


class FileStore:
    """Coordinates folder selection, tree listing and file opening.

    Folder operations share one guard slot, so a newer ``open_folder`` or
    ``load_file_tree`` supersedes an older one still awaiting I/O. File opens
    are guarded per path. Failures land in :attr:`error` and are published as
    :class:`~deskpad.events.ErrorRaised`.
    """

    def __init__(
        self,
        file_system: FileSystem,
        tabs: TabManager,
        *,
        guard: OperationGuard | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._fs = file_system
        self._tabs = tabs
        self._guard = guard or OperationGuard()
        self._bus = event_bus
        self._tokens: set[CancellationToken] = set()
        self.current_folder: str | None = None
        self.file_tree: list[DirectoryEntry] = []
        self.known_folders: list[str] = []
        self.error: str | None = None

    @property
    def tabs(self) -> TabManager:
        return self._tabs

    @property
    def is_loading(self) -> bool:
        return any(self._guard.is_current(token) for token in self._tokens)

    @property
    def is_opening_folder(self) -> bool:
        return any(
            token.kind == _FOLDER_KIND and self._guard.is_current(token) for token in self._tokens
        )

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------
    async def open_folder(self) -> str | None:
        """Ask the user for a folder and load its tree.

        Returns the folder that became current, or ``None`` when selection was
        cancelled, failed, or was superseded by a newer folder operation.
        """

        token = self._begin(_FOLDER_KIND)
        try:
            try:
                folder = await self._fs.select_folder()
            except FileSystemError as exc:
                self._fail(token, f"Failed to open folder: {exc}")
                return None
            if not self._guard.is_current(token):
                LOGGER.debug("open_folder #%d superseded after selection", token.generation)
                return None
            if not folder:
                LOGGER.debug("open_folder: selection cancelled")
                return None
            if not await self._load_tree(folder, token):
                return None
            return folder
        finally:
            self._end(token)

    async def load_file_tree(self, path: str) -> bool:
        token = self._begin(_FOLDER_KIND)
        try:
            return await self._load_tree(path, token)
        finally:
            self._end(token)

    async def restore_folders(self, paths: Iterable[str]) -> None:
        """Re-open the folders recorded in a session; the first becomes current."""

        folders = [path for path in paths if path]
        self.known_folders = list(dict.fromkeys(folders))
        if folders:
            await self.load_file_tree(folders[0])

    async def _load_tree(self, folder: str, token: CancellationToken) -> bool:
        try:
            entries = await self._fs.list_directory(folder)
        except FileSystemError as exc:
            self._fail(token, f"Failed to load file tree: {exc}")
            return False
        if not self._guard.is_current(token):
            LOGGER.debug("Dropping stale tree listing for %s", folder)
            return False
        self.current_folder = folder
        self.file_tree = list(entries)
        if folder not in self.known_folders:
            self.known_folders.append(folder)
        LOGGER.info("Opened folder %s (%d entries)", folder, len(self.file_tree))
        self._publish(FolderOpened(path=folder, entry_count=len(self.file_tree)))
        return True

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------
    async def open_file(self, path: str) -> Tab | None:
        """Open ``path`` in a tab, or focus the tab that already shows it."""

        existing = self._tabs.find_tab_by_path(path)
        if existing is not None:
            self.set_active(existing.id)
            return existing

        token = self._begin(f"open:{os.path.normpath(path)}")
        try:
            try:
                info = await self._fs.classify(path)
                if not info.is_text:
                    self._fail(token, UNSUPPORTED_FILE_MESSAGE)
                    return None
                content = await self._fs.read_text_file(path)
            except FileSystemError as exc:
                self._fail(token, f"Failed to open file: {exc}")
                return None

            if not self._guard.is_current(token):
                return self._tabs.find_tab_by_path(path)
            existing = self._tabs.find_tab_by_path(path)
            if existing is not None:
                self.set_active(existing.id)
                return existing

            encoding = info.encoding if info.encoding not in {"binary", "unknown"} else "utf-8"
            tab = self._tabs.add_tab(
                path, content=content, language=infer_language(path), encoding=encoding
            )
            self._publish(TabOpened(tab_id=tab.id, path=path))
            self._publish(ActiveTabChanged(tab_id=self._tabs.active_tab_id))
            return tab
        finally:
            self._end(token)

    async def save_file(self, tab_id: str) -> bool:
        tab = self._tabs.get_tab(tab_id)
        if tab is None:
            return False
        if tab.is_untitled:
            self._set_error("Failed to save file: document has no path")
            return False
        try:
            await self._fs.write_text_file(tab.path, tab.content)
        except FileSystemError as exc:
            self._set_error(f"Failed to save file: {exc}")
            return False
        self._tabs.mark_modified(tab_id, False)
        LOGGER.debug("Saved %s", tab.path)
        return True

    # ------------------------------------------------------------------
    # Tab passthroughs
    # ------------------------------------------------------------------
    def close_tab(self, tab_id: str) -> None:
        before = self._tabs.active_tab_id
        self._tabs.close_tab(tab_id)
        if self._tabs.active_tab_id != before:
            self._publish(ActiveTabChanged(tab_id=self._tabs.active_tab_id))

    def set_active(self, tab_id: str) -> None:
        before = self._tabs.active_tab_id
        self._tabs.set_active(tab_id)
        if self._tabs.active_tab_id != before:
            self._publish(ActiveTabChanged(tab_id=self._tabs.active_tab_id))

    def clear_error(self) -> None:
        if self.error is None:
            return
        self.error = None
        self._publish(ErrorCleared())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _begin(self, kind: str) -> CancellationToken:
        token = self._guard.begin(kind)
        self._tokens.add(token)
        self.error = None
        return token

    def _end(self, token: CancellationToken) -> None:
        self._tokens.discard(token)
        self._guard.finish(token)

    def _fail(self, token: CancellationToken, message: str) -> None:
        if not self._guard.is_current(token):
            LOGGER.debug("Ignoring failure from superseded operation: %s", message)
            return
        self._set_error(message)

    def _set_error(self, message: str) -> None:
        LOGGER.warning(message)
        self.error = message
        self._publish(ErrorRaised(message=message))

    def _publish(self, event) -> None:  # type: ignore[no-untyped-def]
        if self._bus is not None:
            self._bus.publish(event)
