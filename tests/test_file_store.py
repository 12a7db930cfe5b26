"""Tests for folder loading and file opening in the file store."""

from __future__ import annotations

import asyncio

import pytest

from deskpad.editor.workspace import TabManager
from deskpad.errors import FileSystemError
from deskpad.events import ActiveTabChanged, ErrorCleared, ErrorRaised, EventBus, FolderOpened, TabOpened
from deskpad.session.file_store import UNSUPPORTED_FILE_MESSAGE, FileStore


def _store(fs, bus: EventBus | None = None) -> FileStore:
    return FileStore(fs, TabManager(), event_bus=bus)


def _recorder(bus: EventBus, *event_types: type) -> list:
    received: list = []

    def _handler(event) -> None:
        received.append(event)

    for event_type in event_types:
        bus.subscribe(event_type, _handler)
    return received


# ---------------------------------------------------------------------------
# Folders
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_open_folder_loads_tree(fake_fs) -> None:
    bus = EventBus()
    events = _recorder(bus, FolderOpened)
    store = _store(fake_fs, bus)
    fake_fs.selections.append("/project")

    result = await store.open_folder()

    assert result == "/project"
    assert store.current_folder == "/project"
    assert [entry.name for entry in store.file_tree] == ["src", "readme.md"]
    assert store.file_tree[0].is_directory
    assert store.known_folders == ["/project"]
    assert events == [FolderOpened(path="/project", entry_count=2)]
    assert not store.is_loading


@pytest.mark.asyncio
async def test_cancelled_selection_leaves_state_unchanged(fake_fs) -> None:
    store = _store(fake_fs)
    fake_fs.selections.append("/project")
    await store.open_folder()

    result = await store.open_folder()

    assert result is None
    assert store.current_folder == "/project"
    assert store.error is None
    assert not store.is_opening_folder


@pytest.mark.asyncio
async def test_selection_failure_sets_error(fake_fs) -> None:
    bus = EventBus()
    errors = _recorder(bus, ErrorRaised)
    store = _store(fake_fs, bus)
    fake_fs.selections.append(FileSystemError("Dialog unavailable"))

    assert await store.open_folder() is None

    assert store.error == "Failed to open folder: Dialog unavailable"
    assert errors == [ErrorRaised(message="Failed to open folder: Dialog unavailable")]


@pytest.mark.asyncio
async def test_tree_failure_sets_error(fake_fs) -> None:
    store = _store(fake_fs)
    fake_fs.selections.append("/nowhere")

    assert await store.open_folder() is None

    assert store.error == "Failed to load file tree: No such directory"
    assert store.current_folder is None


@pytest.mark.asyncio
async def test_overlapping_open_folder_latest_wins(fs_factory) -> None:
    fs = fs_factory({"/one/a.txt": "a", "/two/b.txt": "b"})
    store = _store(fs)
    first_gate, second_gate = asyncio.Event(), asyncio.Event()
    fs.selections = [(first_gate, "/one"), (second_gate, "/two")]

    first = asyncio.create_task(store.open_folder())
    await asyncio.sleep(0)
    second = asyncio.create_task(store.open_folder())
    await asyncio.sleep(0)
    assert store.is_opening_folder

    second_gate.set()
    assert await second == "/two"
    first_gate.set()
    assert await first is None

    assert store.current_folder == "/two"
    assert [entry.name for entry in store.file_tree] == ["b.txt"]
    assert fs.listed == ["/two"]
    assert not store.is_opening_folder


@pytest.mark.asyncio
async def test_stale_tree_listing_is_discarded(fs_factory) -> None:
    fs = fs_factory({"/one/a.txt": "a", "/two/b.txt": "b"})
    store = _store(fs)
    gate = asyncio.Event()
    fs.list_gates["/one"] = gate

    slow = asyncio.create_task(store.load_file_tree("/one"))
    await asyncio.sleep(0)
    assert await store.load_file_tree("/two") is True
    gate.set()

    assert await slow is False
    assert store.current_folder == "/two"


@pytest.mark.asyncio
async def test_restore_folders_records_all_and_loads_first(fs_factory) -> None:
    fs = fs_factory({"/one/a.txt": "a", "/two/b.txt": "b"})
    store = _store(fs)

    await store.restore_folders(["/one", "", "/two", "/one"])

    assert store.known_folders == ["/one", "/two"]
    assert store.current_folder == "/one"


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_open_file_creates_active_tab(fake_fs) -> None:
    bus = EventBus()
    events = _recorder(bus, TabOpened, ActiveTabChanged)
    store = _store(fake_fs, bus)

    tab = await store.open_file("/project/src/main.py")

    assert tab is not None
    assert tab.title == "main.py"
    assert tab.content == "print('hi')\n"
    assert tab.language == "python"
    assert store.tabs.active_tab_id == tab.id
    assert events == [TabOpened(tab_id=tab.id, path="/project/src/main.py"), ActiveTabChanged(tab_id=tab.id)]


@pytest.mark.asyncio
async def test_open_file_twice_focuses_existing_tab(fake_fs) -> None:
    store = _store(fake_fs)
    first = await store.open_file("/project/readme.md")
    await store.open_file("/project/src/main.py")

    again = await store.open_file("/project/readme.md")

    assert again is first
    assert store.tabs.tab_count == 2
    assert store.tabs.active_tab_id == first.id
    assert fake_fs.reads.count("/project/readme.md") == 1


@pytest.mark.asyncio
async def test_concurrent_opens_of_same_path_create_one_tab(fake_fs) -> None:
    store = _store(fake_fs)
    gate = asyncio.Event()
    fake_fs.read_gates["/project/readme.md"] = gate

    first = asyncio.create_task(store.open_file("/project/readme.md"))
    second = asyncio.create_task(store.open_file("/project/readme.md"))
    await asyncio.sleep(0)
    gate.set()
    await asyncio.gather(first, second)

    assert store.tabs.tab_count == 1
    assert store.error is None


@pytest.mark.asyncio
async def test_binary_file_is_rejected(fake_fs) -> None:
    store = _store(fake_fs)
    fake_fs.files["/project/logo.png"] = ""
    fake_fs.binary.add("/project/logo.png")

    assert await store.open_file("/project/logo.png") is None

    assert store.error == UNSUPPORTED_FILE_MESSAGE
    assert store.tabs.tab_count == 0


@pytest.mark.asyncio
async def test_missing_file_reports_error(fake_fs) -> None:
    store = _store(fake_fs)

    assert await store.open_file("/project/missing.txt") is None

    assert store.error == "Failed to open file: No such file"


@pytest.mark.asyncio
async def test_next_operation_clears_previous_error(fake_fs) -> None:
    store = _store(fake_fs)
    await store.open_file("/project/missing.txt")

    await store.open_file("/project/readme.md")

    assert store.error is None


@pytest.mark.asyncio
async def test_clear_error_publishes_once(fake_fs) -> None:
    bus = EventBus()
    cleared = _recorder(bus, ErrorCleared)
    store = _store(fake_fs, bus)
    await store.open_file("/project/missing.txt")

    store.clear_error()
    store.clear_error()

    assert store.error is None
    assert len(cleared) == 1


@pytest.mark.asyncio
async def test_save_file_writes_and_clears_modified(fake_fs) -> None:
    store = _store(fake_fs)
    tab = await store.open_file("/project/readme.md")
    store.tabs.update_content(tab.id, "# Changed\n")
    store.tabs.mark_modified(tab.id, True)

    assert await store.save_file(tab.id) is True

    assert fake_fs.writes == [("/project/readme.md", "# Changed\n")]
    assert not store.tabs.get_tab(tab.id).is_modified


@pytest.mark.asyncio
async def test_save_file_failures(fake_fs) -> None:
    store = _store(fake_fs)
    tab = await store.open_file("/project/readme.md")
    fake_fs.unreadable.add("/project/readme.md")

    assert await store.save_file(tab.id) is False
    assert store.error == "Failed to save file: Read-only file system"

    untitled = store.tabs.add_tab()
    assert await store.save_file(untitled.id) is False
    assert await store.save_file("no-such-tab") is False


@pytest.mark.asyncio
async def test_close_tab_publishes_new_active(fake_fs) -> None:
    bus = EventBus()
    store = _store(fake_fs, bus)
    first = await store.open_file("/project/readme.md")
    second = await store.open_file("/project/src/main.py")
    changes = _recorder(bus, ActiveTabChanged)

    store.close_tab(second.id)

    assert changes == [ActiveTabChanged(tab_id=first.id)]
    store.close_tab(first.id)
    assert changes[-1] == ActiveTabChanged(tab_id=None)
