"""Editor package containing the tab model, tab manager and view-state adapters."""

from .tabs import Tab, TabGroup
from .view_state import EditorSnapshot, EditorStateCapture, EditorSurface, MemoryEditorSurface
from .workspace import TabManager

__all__ = [
    "Tab",
    "TabGroup",
    "TabManager",
    "EditorSnapshot",
    "EditorStateCapture",
    "EditorSurface",
    "MemoryEditorSurface",
]
