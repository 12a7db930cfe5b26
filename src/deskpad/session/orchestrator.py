"""Session orchestration: snapshot, save, load, recover and re-hydrate."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import fields, replace
from typing import Any, Callable

from ..editor.tabs import Tab
from ..editor.view_state import EditorSnapshot, EditorStateCapture, EditorSurface
from ..editor.workspace import TabManager
from ..events import (
    EventBus,
    SessionLoaded,
    SessionSaved,
    SessionSaveFailed,
    SettingsChanged,
    WorkspaceRestored,
)
from ..services.concurrency import CancellationToken, OperationGuard
from ..services.debounce import Debouncer
from ..services.persistence import SaveResult, SessionPersistenceService
from ..services.recovery import FilePathRecoveryService, is_missing
from ..services.settings import Settings, SettingsStore
from .file_store import FileStore
from .models import EditorSettings, OpenFileState, WindowState, WorkspaceSession, new_session_id, now_ms

__all__ = [
    "SessionOrchestrator",
    "SESSION_CHANNEL",
    "SESSION_OPERATION",
    "PREFERENCES_CHANNEL",
    "WINDOW_CHANNEL",
]

LOGGER = logging.getLogger(__name__)

SESSION_CHANNEL = "session"
SESSION_OPERATION = "session"
PREFERENCES_CHANNEL = "preferences"
WINDOW_CHANNEL = "window"

SurfaceProvider = Callable[[], "EditorSurface | None"]


class SessionOrchestrator:
    """Owns the current :class:`WorkspaceSession` and keeps it in sync with the tabs.

    The orchestrator snapshots the :class:`TabManager` (plus captured editor
    view state) into a session record, persists it through the
    :class:`SessionPersistenceService`, and on startup loads, repairs and
    re-hydrates it. Writes triggered by tab edits and preference changes are
    debounced per channel.

    Loads share one ``"session"`` slot in the :class:`OperationGuard`, so when
    they overlap only the most recent one is adopted. A save whose session
    stopped being current while it was in flight is not adopted either.
    """

    def __init__(
        self,
        persistence: SessionPersistenceService,
        recovery: FilePathRecoveryService,
        tabs: TabManager,
        *,
        settings: Settings,
        settings_store: SettingsStore | None = None,
        file_store: FileStore | None = None,
        editor_capture: EditorStateCapture | None = None,
        surface_provider: SurfaceProvider | None = None,
        event_bus: EventBus | None = None,
        debouncer: Debouncer | None = None,
        guard: OperationGuard | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._persistence = persistence
        self._recovery = recovery
        self._tabs = tabs
        self._settings = settings
        self._settings_store = settings_store
        self._file_store = file_store
        self._capture = editor_capture
        self._surface_provider = surface_provider
        self._bus = event_bus
        self._debouncer = debouncer or Debouncer()
        self._guard = guard or OperationGuard()
        self._clock = clock or now_ms
        self._current: WorkspaceSession | None = None
        self._watching = False
        self._restoring = False
        self._surface_tab_id: str | None = None
        self._deleted: set[str] = set()
        self._tabs.add_listener(self._sync_surface)

    @property
    def current_session(self) -> WorkspaceSession | None:
        return self._current

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    async def create_session(self, name: str) -> str:
        """Start a new, empty session, make it current and persist it."""

        token = self._guard.begin(SESSION_OPERATION)
        try:
            stamp = self._clock()
            session = WorkspaceSession(
                id=new_session_id(),
                name=name,
                timestamp=stamp,
                last_accessed=stamp,
                window_state=replace(self._settings.window),
                editor_settings=replace(self._settings.editor),
            )
            self._current = session
            self._remember_session(session.id)
            result = await self._persistence.save(session)
            self._report(result)
        finally:
            self._guard.finish(token)
        LOGGER.info("Created session %s (%s)", session.id, name)
        return session.id

    async def update_current_session(self) -> SaveResult | None:
        """Snapshot the workspace into the current session and save it.

        The snapshot only becomes the current session if nothing replaced the
        session while the write was in flight. A session deleted meanwhile is
        removed from storage again.
        """

        base = self._current
        if base is None:
            LOGGER.debug("update_current_session: no current session")
            return None
        self._capture_active_surface()
        snapshot = self.snapshot()
        result = await self._persistence.save(snapshot)
        if snapshot.id in self._deleted:
            LOGGER.info("Session %s was deleted while saving; discarding the write", snapshot.id)
            await self._persistence.delete(snapshot.id)
            return SaveResult(success=False, session_id=snapshot.id, error="Session was deleted")
        if self._current is not base:
            LOGGER.debug("Current session changed while saving %s; keeping the newer one", snapshot.id)
        elif result.success:
            self._current = snapshot
        self._report(result)
        return result

    async def load_session(self, session_id: str) -> WorkspaceSession | None:
        """Load, repair and adopt ``session_id`` as the current session.

        Returns ``None`` when the session does not exist or when a newer
        session operation superseded this one.
        """

        token = self._guard.begin(SESSION_OPERATION)
        try:
            return await self._load(session_id, token)
        finally:
            self._guard.finish(token)

    async def delete_session(self, session_id: str) -> bool:
        self._deleted.add(session_id)
        if self._current is not None and self._current.id == session_id:
            self._debouncer.cancel(SESSION_CHANNEL)
        removed = await self._persistence.delete(session_id)
        if self._current is not None and self._current.id == session_id:
            self._current = None
        if self._settings.last_session_id == session_id:
            self._settings.last_session_id = None
            self._persist_settings()
        return removed

    async def list_sessions(self) -> list[WorkspaceSession]:
        """Persisted sessions, most recently accessed first."""

        sessions = [WorkspaceSession.from_dict(record) for record in await self._persistence.read_summaries()]
        sessions.sort(key=lambda session: session.last_accessed, reverse=True)
        return sessions

    def snapshot(self) -> WorkspaceSession:
        """Build a session record from the current tabs, folders and settings."""

        if self._current is None:
            raise RuntimeError("No current session to snapshot")
        stamp = self._clock()
        open_files = [self._file_state(tab) for tab in self._tabs.tabs]
        folders = list(self._current.folder_paths)
        if self._file_store is not None:
            folders = list(self._file_store.known_folders)
            current = self._file_store.current_folder
            if current:
                folders = [current, *[path for path in folders if path != current]]
        return replace(
            self._current,
            timestamp=stamp,
            last_accessed=stamp,
            folder_paths=folders,
            open_files=open_files,
            active_tab_id=self._tabs.active_tab_id,
            window_state=replace(self._settings.window),
            editor_settings=replace(self._settings.editor),
        )

    # ------------------------------------------------------------------
    # Re-hydration
    # ------------------------------------------------------------------
    def rehydrate_tabs(self, session: WorkspaceSession | None = None) -> int:
        """Replace the open tabs with the ones recorded in ``session``."""

        target = session or self._current
        if target is None:
            return 0
        self._restoring = True
        try:
            self._tabs.close_all()
            id_map: dict[str, str] = {}
            for entry in target.open_files:
                tab = self._tabs.add_tab(
                    entry.file_path,
                    title=entry.title or None,
                    content=entry.content,
                    language=entry.language,
                    encoding=entry.encoding,
                    is_modified=entry.is_modified,
                    is_pinned=entry.is_pinned,
                    tab_id=entry.tab_id or None,
                    make_active=False,
                )
                id_map.setdefault(entry.tab_id, tab.id)
                self._tabs.set_view_state(
                    tab.id,
                    EditorSnapshot(
                        cursor=replace(entry.cursor_position),
                        scroll=replace(entry.scroll_position),
                        selection=entry.selection,
                        view_state=entry.view_state,
                    ),
                )
            active = id_map.get(target.active_tab_id or "")
            if active is not None:
                self._tabs.set_active(active)
            self._restore_active_surface()
        finally:
            self._restoring = False

        count = self._tabs.tab_count()
        LOGGER.info("Restored %d tab(s) from session %s", count, target.id)
        self._publish(WorkspaceRestored(tab_count=count, active_tab_id=self._tabs.active_tab_id))
        return count

    async def restore_last_session(self) -> WorkspaceSession | None:
        session_id = self._settings.last_session_id
        if not session_id:
            return None
        token = self._guard.begin(SESSION_OPERATION)
        try:
            session = await self._load(session_id, token)
            if session is None:
                if self._guard.is_current(token):
                    LOGGER.warning("Last session %s could not be restored", session_id)
                return None
            if self._file_store is not None:
                await self._file_store.restore_folders(session.folder_paths)
            if not self._guard.is_current(token):
                LOGGER.debug("Restore of session %s superseded before re-hydration", session_id)
                return None
            self.rehydrate_tabs(session)
            return session
        finally:
            self._guard.finish(token)

    # ------------------------------------------------------------------
    # Debounced persistence
    # ------------------------------------------------------------------
    def schedule_save(self) -> None:
        if self._current is None or self._restoring:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.debug("schedule_save: no running event loop; skipping")
            return
        self._debouncer.schedule(
            SESSION_CHANNEL, self._settings.session_debounce_seconds, self.update_current_session
        )

    def watch_tabs(self) -> None:
        if self._watching:
            return
        self._tabs.add_listener(self._on_tabs_changed)
        self._watching = True

    def unwatch_tabs(self) -> None:
        if not self._watching:
            return
        self._tabs.remove_listener(self._on_tabs_changed)
        self._watching = False

    def update_preferences(self, **changes: Any) -> None:
        """Apply editor preference changes and persist them after a short delay."""

        applied = _known_changes(EditorSettings, changes)
        if not applied:
            return
        self._settings.editor = replace(self._settings.editor, **applied)
        self._publish(SettingsChanged(channel=PREFERENCES_CHANNEL, changes=applied))
        self._schedule_settings(PREFERENCES_CHANNEL, self._settings.preferences_debounce_seconds)

    def update_window_state(self, **changes: Any) -> None:
        applied = _known_changes(WindowState, changes)
        if not applied:
            return
        self._settings.window = replace(self._settings.window, **applied)
        self._publish(SettingsChanged(channel=WINDOW_CHANNEL, changes=applied))
        self._schedule_settings(WINDOW_CHANNEL, self._settings.window_debounce_seconds)

    # ------------------------------------------------------------------
    # Startup / teardown
    # ------------------------------------------------------------------
    def start(self) -> None:
        self.watch_tabs()
        self._persistence.options.auto_save = self._settings.autosave_enabled
        self._persistence.options.save_interval = self._settings.autosave_interval
        self._persistence.start_auto_save(self._auto_save)

    async def shutdown(self) -> None:
        """Stop timers, flush pending writes and save one last time."""

        await self._persistence.stop_auto_save()
        self._guard.cancel_all()
        self._debouncer.cancel(SESSION_CHANNEL)
        await self._debouncer.flush()
        if self._current is not None:
            await self.update_current_session()
        self._persist_settings()
        self.unwatch_tabs()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _load(self, session_id: str, token: CancellationToken) -> WorkspaceSession | None:
        session = await self._persistence.load(session_id)
        if not self._still_wanted(token, session_id):
            return None
        if session is None:
            LOGGER.info("Session %s not found", session_id)
            return None
        recovered = await self._recovery.recover_file_paths(session)
        if not self._still_wanted(token, session_id):
            return None
        handled = await self._recovery.handle_missing_files(recovered)
        if not self._still_wanted(token, session_id):
            return None
        handled.last_accessed = self._clock()

        self._current = handled
        self._settings.editor = replace(handled.editor_settings)
        self._settings.window = replace(handled.window_state)
        self._remember_session(handled.id)

        missing = sum(1 for entry in handled.open_files if is_missing(entry.file_path))
        self._publish(SessionLoaded(session_id=handled.id, missing_count=missing))
        return handled

    def _still_wanted(self, token: CancellationToken, session_id: str) -> bool:
        if not self._guard.is_current(token):
            LOGGER.debug("Load of session %s superseded by a newer session operation", session_id)
            return False
        if session_id in self._deleted:
            LOGGER.debug("Session %s was deleted while loading", session_id)
            return False
        return True

    async def _auto_save(self) -> None:
        if self._current is not None:
            await self.update_current_session()

    def _on_tabs_changed(self, reason: str) -> None:
        LOGGER.debug("Tabs changed (%s); scheduling session save", reason)
        self.schedule_save()

    def _schedule_settings(self, channel: str, delay: float) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._persist_settings()
            return

        async def _flush() -> None:
            self._persist_settings()
            await self.update_current_session()

        self._debouncer.schedule(channel, delay, _flush)

    def _file_state(self, tab: Tab) -> OpenFileState:
        stored = self._tabs.view_state(tab.id)
        snapshot = stored if isinstance(stored, EditorSnapshot) else EditorSnapshot()
        return OpenFileState(
            file_path=tab.path,
            tab_id=tab.id,
            title=tab.title,
            content=tab.content,
            is_modified=tab.is_modified,
            is_pinned=tab.is_pinned,
            cursor_position=replace(snapshot.cursor),
            scroll_position=replace(snapshot.scroll),
            selection=snapshot.selection,
            language=tab.language,
            encoding=tab.encoding,
            view_state=snapshot.view_state,
        )

    def _surface(self) -> EditorSurface | None:
        if self._capture is None or self._surface_provider is None:
            return None
        return self._surface_provider()

    def _sync_surface(self, _reason: str = "") -> None:
        """Swap the surface over to the active tab when it changes."""

        active = self._tabs.active_tab_id
        if active == self._surface_tab_id:
            return
        surface = self._surface()
        if surface is None or self._capture is None:
            return
        previous = self._surface_tab_id
        # set first: capture() notifies listeners again
        self._surface_tab_id = active
        if previous is not None:
            self._capture.capture(previous, surface)
        if active is None:
            surface.set_value("")
        else:
            self._capture.restore(active, surface)

    def capture_surface(self) -> None:
        """Copy the surface's text and view state into the tab it is showing."""

        self._capture_active_surface()

    def _capture_active_surface(self) -> None:
        surface = self._surface()
        shown = self._surface_tab_id
        if surface is None or shown is None or self._capture is None:
            return
        self._capture.capture(shown, surface)

    def _restore_active_surface(self) -> None:
        surface = self._surface()
        if surface is None or self._capture is None:
            return
        active = self._tabs.active_tab_id
        self._surface_tab_id = active
        if active is not None:
            self._capture.restore(active, surface)

    def _remember_session(self, session_id: str) -> None:
        if self._settings.last_session_id != session_id:
            self._settings.last_session_id = session_id
            self._persist_settings()

    def _persist_settings(self) -> None:
        if self._settings_store is None:
            return
        try:
            self._settings_store.save(self._settings)
        except OSError as exc:
            LOGGER.warning("Failed to persist settings: %s", exc)

    def _report(self, result: SaveResult) -> None:
        if result.success:
            self._publish(SessionSaved(session_id=result.session_id or ""))
        else:
            LOGGER.warning("Session save failed: %s", result.error)
            self._publish(SessionSaveFailed(session_id=result.session_id, error=result.error or ""))

    def _publish(self, event) -> None:  # type: ignore[no-untyped-def]
        if self._bus is not None:
            self._bus.publish(event)


def _known_changes(cls: type, changes: dict[str, Any]) -> dict[str, Any]:
    allowed = {item.name for item in fields(cls)}
    unknown = sorted(set(changes) - allowed)
    if unknown:
        LOGGER.warning("Ignoring unknown %s fields: %s", cls.__name__, unknown)
    return {key: value for key, value in changes.items() if key in allowed}
