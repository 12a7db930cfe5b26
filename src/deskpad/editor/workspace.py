"""In-memory tab set: lifecycle, ordering, activation, pinning and groups."""

from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any, Callable, Dict, Iterable, Iterator, List, Protocol

from .tabs import Tab, TabGroup, generate_tab_id, preview_for, title_for_path

__all__ = ["TabManager", "ChangeListener"]

LOGGER = logging.getLogger(__name__)


class ChangeListener(Protocol):
    """Callback fired after every effective mutation of the tab set."""

    def __call__(self, reason: str) -> None:  # pragma: no cover - protocol
        ...


def _normalize_path(path: str) -> str:
    if not path:
        return ""
    return os.path.normpath(os.path.expanduser(path))


class TabManager:
    """Owns the open tabs, their order, and the active tab.

    Every method is a synchronous state transition; there is no I/O here.
    ``_order`` is the single source of truth for display order and is always a
    permutation of the keys of ``_tabs``. Operations naming an unknown tab id
    are silent no-ops.
    """

    def __init__(self, *, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self._tabs: Dict[str, Tab] = {}
        self._order: List[str] = []
        self._active_tab_id: str | None = None
        self._groups: Dict[str, TabGroup] = {}
        self._active_group_id: str | None = None
        self._view_states: Dict[str, Any] = {}
        self._listeners: List[ChangeListener] = []

    # ------------------------------------------------------------------
    # Tab lifecycle
    # ------------------------------------------------------------------
    def add_tab(
        self,
        path: str = "",
        *,
        title: str | None = None,
        content: str = "",
        language: str | None = None,
        encoding: str = "utf-8",
        is_modified: bool = False,
        is_pinned: bool = False,
        tab_id: str | None = None,
        make_active: bool = True,
    ) -> Tab:
        """Create a tab, append it to the order and (by default) activate it.

        Opening a path that is already open activates the existing tab rather
        than creating a duplicate.
        """

        existing = self.find_tab_by_path(path) if path else None
        if existing is not None:
            LOGGER.debug("TabManager.add_tab: %s already open as %s", path, existing.id)
            self.set_active(existing.id)
            return existing

        new_id = tab_id or generate_tab_id()
        if new_id in self._tabs:
            LOGGER.warning("TabManager.add_tab: tab id %s already in use; generating a new one", new_id)
            new_id = generate_tab_id()

        tab = Tab(
            id=new_id,
            path=path,
            title=title or title_for_path(path),
            is_modified=is_modified,
            is_pinned=is_pinned,
            language=language or "plaintext",
            encoding=encoding,
            content=content,
            preview=preview_for(content),
            last_accessed=self._clock(),
        )
        self._tabs[new_id] = tab
        self._order.append(new_id)
        if make_active or self._active_tab_id is None:
            self._activate(new_id)
        self._notify("add")
        return tab

    def close_tab(self, tab_id: str) -> Tab | None:
        """Close ``tab_id``; a closed active tab hands focus right, then left."""

        if tab_id not in self._tabs:
            return None
        index = self._order.index(tab_id)
        tab = self._remove(tab_id)
        if self._active_tab_id == tab_id:
            if index < len(self._order):
                self._activate(self._order[index])
            elif index - 1 >= 0 and self._order:
                self._activate(self._order[index - 1])
            else:
                self._activate(None)
        self._notify("close")
        return tab

    def close_others(self, tab_id: str) -> None:
        """Collapse the open set to ``tab_id``. Pinned tabs are not spared."""

        if tab_id not in self._tabs:
            return
        for other in [candidate for candidate in self._order if candidate != tab_id]:
            self._remove(other)
        self._order = [tab_id]
        self._activate(tab_id)
        self._notify("close_others")

    def close_to_right(self, tab_id: str) -> None:
        """Close every tab after ``tab_id`` in display order."""

        if tab_id not in self._tabs:
            return
        cut = self._order.index(tab_id) + 1
        doomed = self._order[cut:]
        if not doomed:
            return
        for other in doomed:
            self._remove(other)
        if self._active_tab_id not in self._tabs:
            self._activate(tab_id)
        self._notify("close_to_right")

    def close_all(self) -> None:
        if not self._tabs:
            return
        self._tabs.clear()
        self._order.clear()
        self._view_states.clear()
        for group in self._groups.values():
            group.tab_ids.clear()
        self._active_tab_id = None
        self._notify("close_all")

    # ------------------------------------------------------------------
    # Activation & ordering
    # ------------------------------------------------------------------
    def set_active(self, tab_id: str) -> None:
        if tab_id not in self._tabs or self._active_tab_id == tab_id:
            return
        self._activate(tab_id)
        self._notify("activate")

    def reorder(self, from_index: int, to_index: int) -> None:
        """Move the tab at ``from_index`` to ``to_index`` in display order."""

        size = len(self._order)
        if not (0 <= from_index < size and 0 <= to_index < size) or from_index == to_index:
            return
        moved = self._order.pop(from_index)
        self._order.insert(to_index, moved)
        self._notify("reorder")

    # ------------------------------------------------------------------
    # Per-tab flags and content
    # ------------------------------------------------------------------
    def pin(self, tab_id: str) -> None:
        self._set_pinned(tab_id, True)

    def unpin(self, tab_id: str) -> None:
        self._set_pinned(tab_id, False)

    def update_content(self, tab_id: str, content: str) -> None:
        """Replace the tab's text. Callers decide separately whether it is modified."""

        tab = self._tabs.get(tab_id)
        if tab is None:
            return
        tab.content = content
        tab.preview = preview_for(content)
        tab.last_accessed = self._clock()
        self._notify("content")

    def mark_modified(self, tab_id: str, is_modified: bool) -> None:
        tab = self._tabs.get(tab_id)
        if tab is None or tab.is_modified == is_modified:
            return
        tab.is_modified = is_modified
        self._notify("modified")

    def rename(self, tab_id: str, path: str) -> None:
        """Point ``tab_id`` at ``path`` (e.g. after "save as")."""

        tab = self._tabs.get(tab_id)
        if tab is None:
            return
        tab.path = path
        tab.title = title_for_path(path)
        self._notify("rename")

    # ------------------------------------------------------------------
    # Opaque editor view state
    # ------------------------------------------------------------------
    def set_view_state(self, tab_id: str, state: Any) -> None:
        if tab_id in self._tabs:
            self._view_states[tab_id] = state

    def view_state(self, tab_id: str) -> Any:
        return self._view_states.get(tab_id)

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------
    def create_group(self, name: str) -> TabGroup:
        group = TabGroup(id=f"group-{uuid.uuid4().hex[:12]}", name=name)
        self._groups[group.id] = group
        self._set_active_group(group.id)
        self._notify("group_create")
        return group

    def move_to_group(self, tab_id: str, group_id: str) -> None:
        if tab_id not in self._tabs or group_id not in self._groups:
            return
        for group in self._groups.values():
            if tab_id in group.tab_ids:
                group.tab_ids.remove(tab_id)
        self._groups[group_id].tab_ids.append(tab_id)
        self._notify("group_move")

    def close_group(self, group_id: str) -> None:
        """Close the group and every tab in it."""

        group = self._groups.pop(group_id, None)
        if group is None:
            return
        active_closed = self._active_tab_id in group.tab_ids
        for tab_id in list(group.tab_ids):
            if tab_id in self._tabs:
                self._remove(tab_id)
        if active_closed:
            self._activate(self._order[0] if self._order else None)
        if self._active_group_id == group_id:
            self._active_group_id = None
        self._notify("group_close")

    def set_active_group(self, group_id: str) -> None:
        if group_id not in self._groups:
            return
        self._set_active_group(group_id)
        self._notify("group_activate")

    def group_for_tab(self, tab_id: str) -> TabGroup | None:
        for group in self._groups.values():
            if tab_id in group.tab_ids:
                return group
        return None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------
    @property
    def tabs(self) -> list[Tab]:
        """Tabs in display order."""

        return [self._tabs[tab_id] for tab_id in self._order]

    @property
    def tab_order(self) -> list[str]:
        return list(self._order)

    @property
    def active_tab_id(self) -> str | None:
        return self._active_tab_id

    @property
    def active_tab(self) -> Tab | None:
        if self._active_tab_id is None:
            return None
        return self._tabs.get(self._active_tab_id)

    @property
    def groups(self) -> list[TabGroup]:
        return list(self._groups.values())

    @property
    def active_group_id(self) -> str | None:
        return self._active_group_id

    def iter_tabs(self) -> Iterator[Tab]:
        for tab_id in self._order:
            yield self._tabs[tab_id]

    def tab_ids(self) -> Iterable[str]:
        return tuple(self._order)

    def tab_count(self) -> int:
        return len(self._order)

    def get_tab(self, tab_id: str) -> Tab | None:
        return self._tabs.get(tab_id)

    def find_tab_by_path(self, path: str) -> Tab | None:
        normalized = _normalize_path(path)
        if not normalized:
            return None
        for tab in self.iter_tabs():
            if tab.path and _normalize_path(tab.path) == normalized:
                return tab
        return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _activate(self, tab_id: str | None) -> None:
        if self._active_tab_id is not None and self._active_tab_id in self._tabs:
            self._tabs[self._active_tab_id].is_active = False
        self._active_tab_id = tab_id
        if tab_id is not None:
            tab = self._tabs[tab_id]
            tab.is_active = True
            tab.last_accessed = self._clock()

    def _remove(self, tab_id: str) -> Tab:
        tab = self._tabs.pop(tab_id)
        self._order.remove(tab_id)
        self._view_states.pop(tab_id, None)
        for group in self._groups.values():
            if tab_id in group.tab_ids:
                group.tab_ids.remove(tab_id)
        return tab

    def _set_pinned(self, tab_id: str, pinned: bool) -> None:
        tab = self._tabs.get(tab_id)
        if tab is None or tab.is_pinned == pinned:
            return
        tab.is_pinned = pinned
        self._notify("pin" if pinned else "unpin")

    def _set_active_group(self, group_id: str | None) -> None:
        for group in self._groups.values():
            group.is_active = group.id == group_id
        self._active_group_id = group_id

    def _notify(self, reason: str) -> None:
        LOGGER.debug(
            "TabManager.%s: %d tabs, active=%s", reason, len(self._order), self._active_tab_id
        )
        for listener in list(self._listeners):
            listener(reason)
