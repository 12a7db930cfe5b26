"""Tests for the action registry and the default shell actions."""

from __future__ import annotations

from pathlib import Path

import pytest

from deskpad.errors import ActionDisabledError, ActionNotFoundError
from deskpad.services.actions import Action, ActionRegistry
from deskpad.services.settings import Settings
from deskpad.shell import build_shell


@pytest.mark.asyncio
async def test_execute_sync_and_async_callbacks() -> None:
    registry = ActionRegistry()

    async def _async() -> str:
        return "async"

    registry.register(Action("a.sync", "Sync", lambda: "sync"))
    registry.register(Action("a.async", "Async", _async))

    assert await registry.execute("a.sync") == "sync"
    assert await registry.execute("a.async") == "async"


@pytest.mark.asyncio
async def test_unknown_and_disabled_actions_raise() -> None:
    registry = ActionRegistry()
    registry.register(Action("file.save", "Save", lambda: None, enabled=False))

    with pytest.raises(ActionNotFoundError, match="Action not found: missing"):
        await registry.execute("missing")
    with pytest.raises(ActionDisabledError, match="Action is disabled: file.save"):
        await registry.execute("file.save")

    registry.update_state("file.save", True)
    assert await registry.execute("file.save") is None


@pytest.mark.asyncio
async def test_callback_errors_propagate() -> None:
    registry = ActionRegistry()

    def _boom() -> None:
        raise RuntimeError("boom")

    registry.register(Action("x", "X", _boom))

    with pytest.raises(RuntimeError):
        await registry.execute("x")


def test_register_replaces_and_queries() -> None:
    registry = ActionRegistry()
    registry.register(Action("x", "Old", lambda: None))
    registry.register(Action("x", "New", lambda: None, shortcut="Ctrl+X"))

    assert "x" in registry
    assert registry.get("x").label == "New"
    assert [action.id for action in registry.all()] == ["x"]
    assert registry.get("y") is None
    registry.update_state("y", False)


# ---------------------------------------------------------------------------
# Default actions
# ---------------------------------------------------------------------------


def _shell(tmp_path: Path, fake_fs):
    settings = Settings(session_dir=str(tmp_path), autosave_enabled=False)
    return build_shell(settings, file_system=fake_fs)


def test_tab_actions_follow_active_tab(tmp_path: Path, fake_fs) -> None:
    shell = _shell(tmp_path, fake_fs)

    assert shell.actions.get("file.save").enabled is False
    assert shell.actions.get("file.newFile").enabled is True

    tab = shell.tabs.add_tab()
    assert shell.actions.get("file.save").enabled is True

    shell.tabs.close_tab(tab.id)
    assert shell.actions.get("tabs.closeAll").enabled is False


@pytest.mark.asyncio
async def test_new_file_and_close_actions(tmp_path: Path, fake_fs) -> None:
    shell = _shell(tmp_path, fake_fs)

    tab = await shell.actions.execute("file.newFile")
    assert shell.tabs.active_tab_id == tab.id

    await shell.actions.execute("file.close")
    assert shell.tabs.tab_count() == 0


@pytest.mark.asyncio
async def test_open_folder_and_save_actions(tmp_path: Path, fake_fs) -> None:
    shell = _shell(tmp_path, fake_fs)
    fake_fs.selections.append("/project")

    assert await shell.actions.execute("file.openFolder") == "/project"

    tab = await shell.file_store.open_file("/project/readme.md")
    shell.tabs.update_content(tab.id, "# New\n")
    assert await shell.actions.execute("file.save") is True
    assert fake_fs.files["/project/readme.md"] == "# New\n"


@pytest.mark.asyncio
async def test_close_others_and_to_right(tmp_path: Path, fake_fs) -> None:
    shell = _shell(tmp_path, fake_fs)
    first, second, third = (shell.tabs.add_tab(content=str(index)) for index in range(3))
    shell.tabs.set_active(second.id)

    await shell.actions.execute("tabs.closeToRight")
    assert shell.tabs.tab_order == [first.id, second.id]

    await shell.actions.execute("tabs.closeOthers")
    assert shell.tabs.tab_order == [second.id]
    assert third.id not in shell.tabs.tab_order


@pytest.mark.asyncio
async def test_view_actions_update_window_state(tmp_path: Path, fake_fs) -> None:
    shell = _shell(tmp_path, fake_fs)

    await shell.actions.execute("view.toggleSidebar")
    assert shell.settings.window.sidebar_visible is False

    await shell.actions.execute("view.toggleStatusBar")
    assert shell.settings.window.status_bar_visible is False

    await shell.actions.execute("view.zoomIn")
    assert shell.settings.window.zoom_level == pytest.approx(1.1)

    for _ in range(40):
        await shell.actions.execute("view.zoomOut")
    assert shell.settings.window.zoom_level == pytest.approx(0.5)

    await shell.actions.execute("view.resetZoom")
    assert shell.settings.window.zoom_level == pytest.approx(1.0)
    shell.debouncer.cancel_all()
