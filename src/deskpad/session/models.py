"""Dataclasses describing a persisted workspace session."""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Mapping

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "Position",
    "ScrollPosition",
    "Selection",
    "OpenFileState",
    "WindowState",
    "EditorSettings",
    "WorkspaceSession",
    "now_ms",
    "new_session_id",
]

CURRENT_SCHEMA_VERSION = 2


def now_ms() -> int:
    """Return wall-clock milliseconds since the epoch."""

    return int(time.time() * 1000)


def new_session_id() -> str:
    return uuid.uuid4().hex


def _known(cls: type, payload: Mapping[str, Any]) -> dict[str, Any]:
    names = {item.name for item in fields(cls)}
    return {key: value for key, value in payload.items() if key in names}


@dataclass(slots=True)
class Position:
    line: int = 1
    column: int = 1

    @classmethod
    def from_dict(cls, payload: Any) -> "Position":
        if not isinstance(payload, Mapping):
            return cls()
        return cls(**_known(cls, payload))


@dataclass(slots=True)
class ScrollPosition:
    scroll_top: float = 0
    scroll_left: float = 0

    @classmethod
    def from_dict(cls, payload: Any) -> "ScrollPosition":
        if not isinstance(payload, Mapping):
            return cls()
        return cls(**_known(cls, payload))


@dataclass(slots=True)
class Selection:
    start: Position = field(default_factory=Position)
    end: Position = field(default_factory=Position)

    @classmethod
    def from_dict(cls, payload: Any) -> "Selection | None":
        if not isinstance(payload, Mapping):
            return None
        return cls(start=Position.from_dict(payload.get("start")), end=Position.from_dict(payload.get("end")))


@dataclass(slots=True)
class OpenFileState:
    """Persisted description of one open tab."""

    file_path: str
    tab_id: str
    title: str = "Untitled"
    content: str = ""
    is_modified: bool = False
    is_pinned: bool = False
    cursor_position: Position = field(default_factory=Position)
    scroll_position: ScrollPosition = field(default_factory=ScrollPosition)
    selection: Selection | None = None
    language: str = "plaintext"
    encoding: str = "utf-8"
    view_state: Any = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "OpenFileState":
        data = _known(cls, payload)
        data.setdefault("file_path", "")
        data.setdefault("tab_id", "")
        data["cursor_position"] = Position.from_dict(data.get("cursor_position"))
        data["scroll_position"] = ScrollPosition.from_dict(data.get("scroll_position"))
        data["selection"] = Selection.from_dict(data.get("selection"))
        return cls(**data)


@dataclass(slots=True)
class WindowState:
    width: int = 800
    height: int = 600
    x: int = 0
    y: int = 0
    is_maximized: bool = False
    sidebar_visible: bool = True
    status_bar_visible: bool = True
    zoom_level: float = 1.0

    @classmethod
    def from_dict(cls, payload: Any) -> "WindowState":
        if not isinstance(payload, Mapping):
            return cls()
        return cls(**_known(cls, payload))


@dataclass(slots=True)
class EditorSettings:
    theme: str = "light"
    font_size: int = 14
    font_family: str = "monospace"
    tab_size: int = 2
    insert_spaces: bool = True
    word_wrap: str = "off"

    @classmethod
    def from_dict(cls, payload: Any) -> "EditorSettings":
        if not isinstance(payload, Mapping):
            return cls()
        return cls(**_known(cls, payload))


@dataclass(slots=True)
class WorkspaceSession:
    """The complete persisted description of a workspace."""

    id: str
    name: str
    timestamp: int = field(default_factory=now_ms)
    last_accessed: int = field(default_factory=now_ms)
    folder_paths: list[str] = field(default_factory=list)
    open_files: list[OpenFileState] = field(default_factory=list)
    active_tab_id: str | None = None
    window_state: WindowState = field(default_factory=WindowState)
    editor_settings: EditorSettings = field(default_factory=EditorSettings)
    version: int = CURRENT_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready record stored by the persistence layer."""

        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WorkspaceSession":
        """Build a session from a migrated, validated record.

        Unknown keys are dropped and missing optional keys fall back to their
        defaults; ``id``/``name`` must already have been validated.
        """

        data = _known(cls, payload)
        open_files = data.get("open_files") or []
        data["open_files"] = [
            OpenFileState.from_dict(entry) for entry in open_files if isinstance(entry, Mapping)
        ]
        data["folder_paths"] = [str(path) for path in data.get("folder_paths") or []]
        data["window_state"] = WindowState.from_dict(data.get("window_state"))
        data["editor_settings"] = EditorSettings.from_dict(data.get("editor_settings"))
        return cls(**data)

    def file_for_tab(self, tab_id: str) -> OpenFileState | None:
        for entry in self.open_files:
            if entry.tab_id == tab_id:
                return entry
        return None
