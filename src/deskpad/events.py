"""Event bus and event types used to decouple the session engine from the UI.

The shell publishes events when tabs, folders, or sessions change so that UI
layers (tab strip, sidebar, error banner) can react without holding writable
references to the engine's state.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar
from weakref import WeakMethod

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events published on the :class:`EventBus`."""


# =============================================================================
# Tab events
# =============================================================================


@dataclass(slots=True)
class TabOpened(Event):
    """A document tab was added to the open set.

    Attributes:
        tab_id: Identifier of the new tab.
        path: File path backing the tab, or ``""`` for untitled documents.
    """

    tab_id: str
    path: str = ""


@dataclass(slots=True)
class ActiveTabChanged(Event):
    """The focused tab changed; ``tab_id`` is ``None`` when no tabs remain."""

    tab_id: str | None


# =============================================================================
# Folder events
# =============================================================================


@dataclass(slots=True)
class FolderOpened(Event):
    """A folder finished loading into the sidebar tree.

    Attributes:
        path: The folder that became current.
        entry_count: Number of top-level entries listed.
    """

    path: str
    entry_count: int


# =============================================================================
# Session events
# =============================================================================


@dataclass(slots=True)
class SessionSaved(Event):
    session_id: str


@dataclass(slots=True)
class SessionSaveFailed(Event):
    session_id: str | None
    error: str


@dataclass(slots=True)
class SessionLoaded(Event):
    """A session was loaded and its file references repaired.

    Attributes:
        session_id: Identifier of the loaded session.
        missing_count: Number of entries tombstoned during recovery.
    """

    session_id: str
    missing_count: int = 0


@dataclass(slots=True)
class WorkspaceRestored(Event):
    """Tabs were re-created from a loaded session."""

    tab_count: int
    active_tab_id: str | None


# =============================================================================
# UI events
# =============================================================================


@dataclass(slots=True)
class ErrorRaised(Event):
    """A user-visible failure that should be shown as a dismissible banner."""

    message: str


@dataclass(slots=True)
class ErrorCleared(Event):
    pass


@dataclass(slots=True)
class SettingsChanged(Event):
    """Settings were modified; ``changes`` maps field names to new values."""

    channel: str
    changes: dict[str, Any]


class EventBus(Generic[E]):
    """A typed publish-subscribe bus.

    Bound-method handlers are held through :class:`weakref.WeakMethod` so a
    discarded widget does not keep receiving events; plain functions are held
    strongly. Not thread-safe: publish from the event loop thread only.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: defaultdict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register ``handler`` for events of exactly ``event_type``."""
        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug(
            "Subscribed handler %s to event type %s",
            _handler_name(handler),
            event_type.__name__,
        )

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                return

    def publish(self, event: E) -> None:
        """Deliver ``event`` synchronously; handler failures are logged, not raised."""
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            return

        logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))
        dead: list[int] = []
        for index, handler_ref in enumerate(list(handlers)):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(index)
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
        for index in reversed(dead):
            handlers.pop(index)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: Any, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref
        return self._ref()

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        if resolved is None:
            return False
        return resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "TabOpened",
    "ActiveTabChanged",
    "FolderOpened",
    "SessionSaved",
    "SessionSaveFailed",
    "SessionLoaded",
    "WorkspaceRestored",
    "ErrorRaised",
    "ErrorCleared",
    "SettingsChanged",
]
