"""Factory wiring the session engine's collaborators together.

The bootstrap process:
1. Creates the event bus, tab manager and operation guard
2. Creates storage, persistence and recovery services
3. Creates the folder/file store and editor-state capture
4. Creates the session orchestrator
5. Registers the default actions

Usage:
    from deskpad.shell import build_shell

    shell = build_shell(settings, settings_store=store)
    await shell.orchestrator.restore_last_session()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .editor.view_state import EditorStateCapture
from .editor.workspace import TabManager
from .events import EventBus
from .services.actions import Action, ActionRegistry
from .services.concurrency import OperationGuard
from .services.debounce import Debouncer
from .services.filesystem import FileSystem, LocalFileSystem
from .services.persistence import PersistenceOptions, SessionPersistenceService
from .services.recovery import FilePathRecoveryService
from .services.settings import Settings, SettingsStore
from .services.storage import SessionStorage
from .session.file_store import FileStore
from .session.orchestrator import SessionOrchestrator, SurfaceProvider

__all__ = ["ShellContext", "build_shell", "register_default_actions"]

_LOGGER = logging.getLogger(__name__)

_ZOOM_STEP = 0.1
_ZOOM_RANGE = (0.5, 3.0)
_TAB_ACTIONS = ("file.save", "file.close", "tabs.closeOthers", "tabs.closeToRight", "tabs.closeAll")


@dataclass(slots=True)
class ShellContext:
    """Everything the UI layer needs to drive a workspace."""

    settings: Settings
    settings_store: SettingsStore | None
    event_bus: EventBus
    tabs: TabManager
    guard: OperationGuard
    file_system: FileSystem
    file_store: FileStore
    storage: SessionStorage
    persistence: SessionPersistenceService
    recovery: FilePathRecoveryService
    capture: EditorStateCapture
    debouncer: Debouncer
    orchestrator: SessionOrchestrator
    actions: ActionRegistry


def build_shell(
    settings: Settings,
    *,
    settings_store: SettingsStore | None = None,
    file_system: FileSystem | None = None,
    surface_provider: SurfaceProvider | None = None,
    event_bus: EventBus | None = None,
) -> ShellContext:
    """Create and wire all session-engine components for ``settings``."""

    _LOGGER.info("Bootstrapping workspace shell...")
    bus = event_bus or EventBus()
    tabs = TabManager()
    guard = OperationGuard()
    fs = file_system or LocalFileSystem()

    storage = SessionStorage(Path(settings.session_dir).expanduser())
    persistence = SessionPersistenceService(
        storage,
        PersistenceOptions(
            auto_save=settings.autosave_enabled,
            save_interval=settings.autosave_interval,
            max_sessions=settings.max_sessions,
            backup_enabled=settings.backup_enabled,
        ),
    )
    recovery = FilePathRecoveryService(fs)
    _LOGGER.debug("Session storage at %s", storage.root)

    file_store = FileStore(fs, tabs, guard=guard, event_bus=bus)
    capture = EditorStateCapture(tabs)
    debouncer = Debouncer()
    orchestrator = SessionOrchestrator(
        persistence,
        recovery,
        tabs,
        settings=settings,
        settings_store=settings_store,
        file_store=file_store,
        editor_capture=capture,
        surface_provider=surface_provider,
        event_bus=bus,
        debouncer=debouncer,
        guard=guard,
    )

    shell = ShellContext(
        settings=settings,
        settings_store=settings_store,
        event_bus=bus,
        tabs=tabs,
        guard=guard,
        file_system=fs,
        file_store=file_store,
        storage=storage,
        persistence=persistence,
        recovery=recovery,
        capture=capture,
        debouncer=debouncer,
        orchestrator=orchestrator,
        actions=ActionRegistry(),
    )
    register_default_actions(shell)
    _LOGGER.info("Workspace shell ready")
    return shell


def register_default_actions(shell: ShellContext) -> None:
    """Register the built-in file, tab, session and view actions."""

    tabs = shell.tabs
    store = shell.file_store
    orchestrator = shell.orchestrator
    settings = shell.settings

    def _active() -> str | None:
        return tabs.active_tab_id

    async def _save() -> Any:
        orchestrator.capture_surface()
        tab_id = _active()
        if tab_id is not None:
            return await store.save_file(tab_id)
        return False

    def _close() -> None:
        tab_id = _active()
        if tab_id is not None:
            store.close_tab(tab_id)

    def _on_active(handler: Any) -> Any:
        def _run() -> None:
            tab_id = _active()
            if tab_id is not None:
                handler(tab_id)

        return _run

    def _zoom(delta: float | None) -> Any:
        def _run() -> None:
            current = settings.window.zoom_level
            target = 1.0 if delta is None else current + delta
            low, high = _ZOOM_RANGE
            orchestrator.update_window_state(zoom_level=round(min(max(target, low), high), 2))

        return _run

    registry = shell.actions
    for action in (
        Action("file.newFile", "New File", lambda: tabs.add_tab(), shortcut="Ctrl+N"),
        Action("file.openFolder", "Open Folder...", store.open_folder, shortcut="Ctrl+Shift+O"),
        Action("file.save", "Save", _save, shortcut="Ctrl+S"),
        Action("file.close", "Close", _close, shortcut="Ctrl+W"),
        Action("tabs.closeOthers", "Close Others", _on_active(tabs.close_others)),
        Action("tabs.closeToRight", "Close to the Right", _on_active(tabs.close_to_right)),
        Action("tabs.closeAll", "Close All", tabs.close_all),
        Action("session.save", "Save Session", orchestrator.update_current_session),
        Action(
            "view.toggleSidebar",
            "Toggle Sidebar",
            lambda: orchestrator.update_window_state(sidebar_visible=not settings.window.sidebar_visible),
            shortcut="Ctrl+B",
        ),
        Action(
            "view.toggleStatusBar",
            "Toggle Status Bar",
            lambda: orchestrator.update_window_state(
                status_bar_visible=not settings.window.status_bar_visible
            ),
        ),
        Action("view.zoomIn", "Zoom In", _zoom(_ZOOM_STEP), shortcut="Ctrl+="),
        Action("view.zoomOut", "Zoom Out", _zoom(-_ZOOM_STEP), shortcut="Ctrl+-"),
        Action("view.resetZoom", "Reset Zoom", _zoom(None), shortcut="Ctrl+0"),
    ):
        registry.register(action)

    def _refresh(_reason: str = "") -> None:
        has_tab = tabs.active_tab_id is not None
        for action_id in _TAB_ACTIONS:
            registry.update_state(action_id, has_tab)

    tabs.add_listener(_refresh)
    _refresh()
