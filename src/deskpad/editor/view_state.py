"""Adapter that snapshots and restores per-tab editor view state.

The editing surface is an external component. The session engine only needs
its text, cursor, scroll offset, selection, and an opaque serialisable view
state blob, which is stored per tab id and handed back without inspection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..session.models import Position, ScrollPosition, Selection
from .workspace import TabManager

__all__ = ["EditorSurface", "EditorSnapshot", "EditorStateCapture", "MemoryEditorSurface"]

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class EditorSurface(Protocol):
    """Minimal interface consumed from the text editing component."""

    def get_value(self) -> str:
        ...

    def set_value(self, text: str) -> None:
        ...

    def get_view_state(self) -> Any:
        ...

    def restore_view_state(self, state: Any) -> None:
        ...

    def get_cursor_position(self) -> Position:
        ...

    def get_scroll_position(self) -> ScrollPosition:
        ...

    def get_selection(self) -> Selection | None:
        ...


@dataclass(slots=True)
class EditorSnapshot:
    """View state captured from a surface for one tab."""

    cursor: Position = field(default_factory=Position)
    scroll: ScrollPosition = field(default_factory=ScrollPosition)
    selection: Selection | None = None
    view_state: Any = None


class EditorStateCapture:
    """Moves text and view state between a surface and the :class:`TabManager`."""

    def __init__(self, tabs: TabManager) -> None:
        self._tabs = tabs

    def capture(self, tab_id: str, surface: EditorSurface) -> EditorSnapshot | None:
        """Record the surface's state for ``tab_id`` and mirror its text into the tab."""

        tab = self._tabs.get_tab(tab_id)
        if tab is None:
            return None
        snapshot = EditorSnapshot(
            cursor=surface.get_cursor_position(),
            scroll=surface.get_scroll_position(),
            selection=surface.get_selection(),
            view_state=surface.get_view_state(),
        )
        self._tabs.set_view_state(tab_id, snapshot)

        text = surface.get_value()
        if text != tab.content:
            self._tabs.update_content(tab_id, text)
            self._tabs.mark_modified(tab_id, True)
        return snapshot

    def restore(self, tab_id: str, surface: EditorSurface) -> bool:
        """Load ``tab_id``'s content into ``surface`` and re-apply its view state."""

        tab = self._tabs.get_tab(tab_id)
        if tab is None:
            return False
        surface.set_value(tab.content)
        snapshot = self.snapshot(tab_id)
        if snapshot is not None and snapshot.view_state is not None:
            try:
                surface.restore_view_state(snapshot.view_state)
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Discarding unusable view state for tab %s: %s", tab_id, exc)
        return True

    def snapshot(self, tab_id: str) -> EditorSnapshot | None:
        state = self._tabs.view_state(tab_id)
        return state if isinstance(state, EditorSnapshot) else None


class MemoryEditorSurface:
    """Headless surface holding text and view state in memory."""

    def __init__(self, text: str = "") -> None:
        self._text = text
        self.cursor = Position()
        self.scroll = ScrollPosition()
        self.selection: Selection | None = None
        self.restored_state: Any = None

    def get_value(self) -> str:
        return self._text

    def set_value(self, text: str) -> None:
        self._text = text

    def get_view_state(self) -> Any:
        return {
            "cursor": [self.cursor.line, self.cursor.column],
            "scroll": [self.scroll.scroll_top, self.scroll.scroll_left],
        }

    def restore_view_state(self, state: Any) -> None:
        self.restored_state = state
        if isinstance(state, dict):
            line, column = state.get("cursor", (1, 1))
            top, left = state.get("scroll", (0, 0))
            self.cursor = Position(line=line, column=column)
            self.scroll = ScrollPosition(scroll_top=top, scroll_left=left)

    def get_cursor_position(self) -> Position:
        return Position(self.cursor.line, self.cursor.column)

    def get_scroll_position(self) -> ScrollPosition:
        return ScrollPosition(self.scroll.scroll_top, self.scroll.scroll_left)

    def get_selection(self) -> Selection | None:
        return self.selection
