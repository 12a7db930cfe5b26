"""Session data model, folder/file store, and the session orchestrator."""

from .models import (
    CURRENT_SCHEMA_VERSION,
    EditorSettings,
    OpenFileState,
    Position,
    ScrollPosition,
    Selection,
    WindowState,
    WorkspaceSession,
)

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "EditorSettings",
    "OpenFileState",
    "Position",
    "ScrollPosition",
    "Selection",
    "WindowState",
    "WorkspaceSession",
]
