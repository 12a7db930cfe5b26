"""Dataclasses representing open document tabs and tab groups."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from pathlib import PurePath

__all__ = ["Tab", "TabGroup", "generate_tab_id", "title_for_path", "preview_for"]

_PREVIEW_LINES = 3


def generate_tab_id() -> str:
    return uuid.uuid4().hex


def title_for_path(path: str, fallback: str = "Untitled") -> str:
    """Return the display title for ``path``: its basename, or ``fallback``."""

    if not path:
        return fallback
    return PurePath(path).name or path


def preview_for(content: str) -> str:
    return "\n".join(content.split("\n")[:_PREVIEW_LINES])


@dataclass(slots=True)
class Tab:
    """One open document and its modification state."""

    id: str
    path: str = ""
    title: str = "Untitled"
    is_modified: bool = False
    is_pinned: bool = False
    is_active: bool = False
    language: str = "plaintext"
    encoding: str = "utf-8"
    content: str = ""
    preview: str = ""
    last_accessed: float = field(default_factory=time.monotonic)

    @property
    def is_untitled(self) -> bool:
        return not self.path


@dataclass(slots=True)
class TabGroup:
    id: str
    name: str
    tab_ids: list[str] = field(default_factory=list)
    is_active: bool = False
