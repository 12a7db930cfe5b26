"""Versioned, validated session persistence with backups and auto-save."""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from ..errors import CorruptRecordError, StorageError
from ..session.models import CURRENT_SCHEMA_VERSION, WorkspaceSession
from .storage import BACKUPS, SESSIONS, SessionStorage

__all__ = [
    "PersistenceOptions",
    "SaveResult",
    "ValidationResult",
    "SessionPersistenceService",
    "migrate_record",
]

LOGGER = logging.getLogger(__name__)

AutoSaveCallback = Callable[[], Awaitable[Any]]

_MISSING_FIELDS = "Missing required session fields"
_INVALID_OPEN_FILES = "Invalid open_files in session"

_SESSION_KEYS = {
    "openFiles": "open_files",
    "folderPaths": "folder_paths",
    "activeTabId": "active_tab_id",
    "lastAccessed": "last_accessed",
    "windowState": "window_state",
    "editorSettings": "editor_settings",
}
_OPEN_FILE_KEYS = {
    "filePath": "file_path",
    "tabId": "tab_id",
    "isModified": "is_modified",
    "isPinned": "is_pinned",
    "cursorPosition": "cursor_position",
    "scrollPosition": "scroll_position",
    "viewState": "view_state",
}
_SCROLL_KEYS = {"scrollTop": "scroll_top", "scrollLeft": "scroll_left"}
_WINDOW_KEYS = {
    "isMaximized": "is_maximized",
    "sidebarVisible": "sidebar_visible",
    "statusBarVisible": "status_bar_visible",
    "zoomLevel": "zoom_level",
}
_EDITOR_KEYS = {
    "fontSize": "font_size",
    "fontFamily": "font_family",
    "tabSize": "tab_size",
    "insertSpaces": "insert_spaces",
    "wordWrap": "word_wrap",
}


@dataclass(slots=True)
class PersistenceOptions:
    auto_save: bool = True
    save_interval: float = 30.0
    max_sessions: int = 10
    backup_enabled: bool = True


@dataclass(frozen=True, slots=True)
class SaveResult:
    success: bool
    session_id: str | None = None
    error: str | None = None
    warning: str | None = None


@dataclass(frozen=True, slots=True)
class ValidationResult:
    is_valid: bool
    error: str | None = None


# ----------------------------------------------------------------------
# Schema migration
# ----------------------------------------------------------------------
def _rename(payload: dict[str, Any], mapping: Mapping[str, str]) -> None:
    for legacy, current in mapping.items():
        if legacy in payload:
            value = payload.pop(legacy)
            payload.setdefault(current, value)


def _migrate_0_to_1(record: dict[str, Any]) -> dict[str, Any]:
    record["version"] = 1
    return record


def _migrate_1_to_2(record: dict[str, Any]) -> dict[str, Any]:
    _rename(record, _SESSION_KEYS)
    for entry in record.get("open_files") or []:
        if not isinstance(entry, dict):
            continue
        _rename(entry, _OPEN_FILE_KEYS)
        if isinstance(entry.get("scroll_position"), dict):
            _rename(entry["scroll_position"], _SCROLL_KEYS)
    if isinstance(record.get("window_state"), dict):
        _rename(record["window_state"], _WINDOW_KEYS)
    if isinstance(record.get("editor_settings"), dict):
        _rename(record["editor_settings"], _EDITOR_KEYS)
    record["version"] = 2
    return record


_MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: _migrate_0_to_1,
    1: _migrate_1_to_2,
}


def migrate_record(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Bring a stored record up to :data:`CURRENT_SCHEMA_VERSION`.

    Steps run in order from the record's version. Unknown keys are carried
    through untouched; records from a newer schema are returned as-is.
    """

    record = copy.deepcopy(dict(raw))
    version = record.get("version")
    if not isinstance(version, int) or isinstance(version, bool) or version < 0:
        version = 0
    if version > CURRENT_SCHEMA_VERSION:
        LOGGER.warning(
            "Session record %s has schema version %s (newer than %s); loading unchanged",
            record.get("id"),
            version,
            CURRENT_SCHEMA_VERSION,
        )
        return record
    while version < CURRENT_SCHEMA_VERSION:
        record = _MIGRATIONS[version](record)
        LOGGER.debug("Migrated session %s to schema version %s", record.get("id"), record["version"])
        version = record["version"]
    return record


class SessionPersistenceService:
    """Saves, loads, validates, backs up and auto-saves workspace sessions."""

    def __init__(self, storage: SessionStorage, options: PersistenceOptions | None = None) -> None:
        self._storage = storage
        self.options = options or PersistenceOptions()
        self._auto_save_task: asyncio.Task[None] | None = None

    @property
    def storage(self) -> SessionStorage:
        return self._storage

    @property
    def auto_save_running(self) -> bool:
        return self._auto_save_task is not None and not self._auto_save_task.done()

    # ------------------------------------------------------------------
    # Save / load
    # ------------------------------------------------------------------
    async def save(self, session: WorkspaceSession) -> SaveResult:
        """Persist ``session`` after validating it.

        Invalid sessions are rejected without touching storage. Storage
        failures are reported in the result rather than raised. Once the
        primary record is written the save counts as successful; a failed
        backup or prune only sets ``warning``.
        """

        validation = self.validate(session)
        if not validation.is_valid:
            LOGGER.warning("Refusing to save invalid session %r: %s", getattr(session, "id", None), validation.error)
            return SaveResult(success=False, session_id=getattr(session, "id", None) or None, error=validation.error)

        record = session.to_dict()
        record["version"] = CURRENT_SCHEMA_VERSION
        try:
            await asyncio.to_thread(self._storage.write, SESSIONS, session.id, record)
        except StorageError as exc:
            LOGGER.warning("Failed to save session %s: %s", session.id, exc)
            return SaveResult(success=False, session_id=session.id, error=f"Failed to save session: {exc}")

        warning: str | None = None
        try:
            if self.options.backup_enabled:
                await self.backup(session)
            await self._prune(keep=session.id)
        except StorageError as exc:
            LOGGER.warning("Session %s saved, but backup or pruning failed: %s", session.id, exc)
            warning = f"Backup or pruning failed: {exc}"
        LOGGER.debug("Saved session %s (%d open files)", session.id, len(session.open_files))
        return SaveResult(success=True, session_id=session.id, warning=warning)

    async def load(self, session_id: str) -> WorkspaceSession | None:
        """Load, migrate and validate ``session_id``, falling back to its backup."""

        try:
            raw = await asyncio.to_thread(self._storage.read, SESSIONS, session_id)
        except CorruptRecordError as exc:
            LOGGER.warning("%s; trying backup", exc)
            return await self.restore(session_id)
        except StorageError as exc:
            LOGGER.warning("Unable to read session %s: %s", session_id, exc)
            return await self.restore(session_id)
        if raw is None:
            return None
        session = self._decode(raw)
        if session is None:
            LOGGER.warning("Session %s failed validation; trying backup", session_id)
            return await self.restore(session_id)
        return session

    def validate(self, session: WorkspaceSession | Mapping[str, Any] | Any) -> ValidationResult:
        """Structural check; never raises."""

        if isinstance(session, WorkspaceSession):
            values = (session.id, session.name, session.timestamp)
            open_files: Any = session.open_files
        elif isinstance(session, Mapping):
            values = (session.get("id"), session.get("name"), session.get("timestamp"))
            open_files = session.get("open_files")
        else:
            return ValidationResult(False, _MISSING_FIELDS)
        if not all(values):
            return ValidationResult(False, _MISSING_FIELDS)
        if not isinstance(open_files, list):
            return ValidationResult(False, _INVALID_OPEN_FILES)
        return ValidationResult(True)

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------
    async def backup(self, session: WorkspaceSession) -> None:
        record = session.to_dict()
        record["version"] = CURRENT_SCHEMA_VERSION
        await asyncio.to_thread(self._storage.write, BACKUPS, session.id, record)

    async def restore(self, session_id: str) -> WorkspaceSession | None:
        try:
            raw = await asyncio.to_thread(self._storage.read, BACKUPS, session_id)
        except StorageError as exc:
            LOGGER.warning("Backup for session %s is unusable: %s", session_id, exc)
            return None
        if raw is None:
            return None
        session = self._decode(raw)
        if session is None:
            LOGGER.warning("Backup for session %s failed validation", session_id)
        else:
            LOGGER.info("Restored session %s from backup", session_id)
        return session

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------
    async def delete(self, session_id: str) -> bool:
        try:
            removed = await asyncio.to_thread(self._storage.delete, SESSIONS, session_id)
            await asyncio.to_thread(self._storage.delete, BACKUPS, session_id)
        except StorageError as exc:
            LOGGER.warning("Failed to delete session %s: %s", session_id, exc)
            return False
        return removed

    def list_session_ids(self) -> list[str]:
        return self._storage.keys(SESSIONS)

    async def read_summaries(self) -> list[dict[str, Any]]:
        """Return migrated records for every readable stored session."""

        summaries: list[dict[str, Any]] = []
        for session_id in self.list_session_ids():
            try:
                raw = await asyncio.to_thread(self._storage.read, SESSIONS, session_id)
            except StorageError as exc:
                LOGGER.debug("Skipping unreadable session %s: %s", session_id, exc)
                continue
            if raw is None:
                continue
            record = migrate_record(raw)
            if self.validate(record).is_valid:
                summaries.append(record)
        return summaries

    async def _prune(self, *, keep: str) -> None:
        limit = self.options.max_sessions
        if limit <= 0:
            return
        summaries = await self.read_summaries()
        if len(summaries) <= limit:
            return
        candidates = sorted(
            (record for record in summaries if record.get("id") != keep),
            key=lambda record: record.get("timestamp") or 0,
        )
        excess = len(summaries) - limit
        for record in candidates[:excess]:
            LOGGER.info("Pruning old session %s", record.get("id"))
            await self.delete(str(record["id"]))

    def _decode(self, raw: Mapping[str, Any]) -> WorkspaceSession | None:
        record = migrate_record(raw)
        if not self.validate(record).is_valid:
            return None
        try:
            return WorkspaceSession.from_dict(record)
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Session record %s could not be decoded: %s", record.get("id"), exc)
            return None

    # ------------------------------------------------------------------
    # Auto-save
    # ------------------------------------------------------------------
    def start_auto_save(self, callback: AutoSaveCallback) -> bool:
        """Start the periodic save task; returns ``False`` if it was not started."""

        if not self.options.auto_save:
            LOGGER.debug("Auto-save disabled; not starting timer")
            return False
        if self.auto_save_running:
            return False
        loop = asyncio.get_running_loop()
        self._auto_save_task = loop.create_task(self._auto_save_loop(callback), name="deskpad-auto-save")
        LOGGER.debug("Auto-save started (interval=%ss)", self.options.save_interval)
        return True

    async def stop_auto_save(self) -> None:
        task = self._auto_save_task
        self._auto_save_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        LOGGER.debug("Auto-save stopped")

    async def _auto_save_loop(self, callback: AutoSaveCallback) -> None:
        interval = max(0.0, float(self.options.save_interval))
        while True:
            await asyncio.sleep(interval)
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Auto-save callback failed")
