"""Tests for stale file reference detection and repair."""

from __future__ import annotations

import pytest

from deskpad.services.recovery import (
    MISSING_PREFIX,
    FilePathRecoveryService,
    is_missing,
    missing_placeholder,
    original_path,
)
from deskpad.session.models import OpenFileState, WorkspaceSession


def _session(*paths: str, folders: list[str] | None = None) -> WorkspaceSession:
    return WorkspaceSession(
        id="s1",
        name="Work",
        folder_paths=folders if folders is not None else ["/project"],
        open_files=[
            OpenFileState(file_path=path, tab_id=f"t{index}", content=f"content {index}")
            for index, path in enumerate(paths)
        ],
    )


def test_prefix_helpers() -> None:
    assert is_missing("MISSING:/a")
    assert not is_missing("/a")
    assert original_path("MISSING:MISSING:/a") == "/a"
    assert missing_placeholder("/a") == "// File not found: /a\n// This file may have been moved or deleted."


@pytest.mark.asyncio
async def test_existing_and_missing_file(fake_fs) -> None:
    service = FilePathRecoveryService(fake_fs)
    session = _session("/project/readme.md", "/gone/lost.txt")

    recovered = await service.recover_file_paths(session)

    assert len(recovered.open_files) == 2
    kept, missing = recovered.open_files
    assert kept.file_path == "/project/readme.md"
    assert kept.content == "content 0"
    assert missing.file_path == f"{MISSING_PREFIX}/gone/lost.txt"
    assert missing.content == missing_placeholder("/gone/lost.txt")
    assert session.open_files[1].file_path == "/gone/lost.txt"


@pytest.mark.asyncio
async def test_moved_file_is_relocated_by_basename(fake_fs) -> None:
    service = FilePathRecoveryService(fake_fs)
    session = _session("/old/location/util.py")

    recovered = await service.recover_file_paths(session)

    entry = recovered.open_files[0]
    assert entry.file_path == "/project/src/util.py"
    assert entry.content == "content 0"


@pytest.mark.asyncio
async def test_tombstone_is_not_double_prefixed(fake_fs) -> None:
    service = FilePathRecoveryService(fake_fs)
    session = _session(f"{MISSING_PREFIX}/gone/lost.txt")

    recovered = await service.recover_file_paths(session)

    assert recovered.open_files[0].file_path == f"{MISSING_PREFIX}/gone/lost.txt"


@pytest.mark.asyncio
async def test_tombstone_recovers_when_file_returns(fake_fs) -> None:
    service = FilePathRecoveryService(fake_fs)
    session = _session(f"{MISSING_PREFIX}/project/readme.md")

    recovered = await service.recover_file_paths(session)

    assert recovered.open_files[0].file_path == "/project/readme.md"


@pytest.mark.asyncio
async def test_untitled_entries_are_left_alone(fake_fs) -> None:
    service = FilePathRecoveryService(fake_fs)
    session = _session("")

    recovered = await service.recover_file_paths(session)

    assert recovered.open_files[0].file_path == ""
    assert recovered.open_files[0].content == "content 0"


@pytest.mark.asyncio
async def test_find_by_basename_searches_roots_in_order(fs_factory) -> None:
    fs = fs_factory({"/a/deep/x.txt": "", "/b/x.txt": ""})
    service = FilePathRecoveryService(fs)

    assert await service.find_by_basename("x.txt", ["/b", "/a"]) == "/b/x.txt"
    assert await service.find_by_basename("x.txt", ["/a", "/b"]) == "/a/deep/x.txt"
    assert await service.find_by_basename("y.txt", ["/a", "/b"]) is None


@pytest.mark.asyncio
async def test_find_by_basename_skips_unreadable_directories(fs_factory) -> None:
    fs = fs_factory({"/root/locked/x.txt": "", "/root/open/x.txt": ""})
    fs.unreadable.add("/root/locked")
    service = FilePathRecoveryService(fs)

    assert await service.find_by_basename("x.txt", ["/root"]) == "/root/open/x.txt"


@pytest.mark.asyncio
async def test_find_by_basename_respects_max_depth(fs_factory) -> None:
    fs = fs_factory({"/r/1/2/3/x.txt": ""})

    assert await FilePathRecoveryService(fs, max_depth=1).find_by_basename("x.txt", ["/r"]) is None
    assert await FilePathRecoveryService(fs, max_depth=3).find_by_basename("x.txt", ["/r"]) == "/r/1/2/3/x.txt"


@pytest.mark.asyncio
async def test_handle_missing_files_keeps_everything(fake_fs) -> None:
    service = FilePathRecoveryService(fake_fs)
    session = _session("/project/readme.md", f"{MISSING_PREFIX}/gone.txt")

    handled = await service.handle_missing_files(session)

    assert [entry.file_path for entry in handled.open_files] == [
        "/project/readme.md",
        f"{MISSING_PREFIX}/gone.txt",
    ]
