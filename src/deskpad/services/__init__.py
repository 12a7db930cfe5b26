"""Persistence, recovery, file-system and coordination services."""

from .actions import Action, ActionRegistry
from .concurrency import CancellationToken, OperationGuard
from .debounce import Debouncer
from .filesystem import DirectoryEntry, FileSystem, LocalFileSystem
from .persistence import PersistenceOptions, SaveResult, SessionPersistenceService, ValidationResult
from .recovery import MISSING_PREFIX, FilePathRecoveryService
from .settings import Settings, SettingsStore
from .storage import SessionStorage

__all__ = [
    "Action",
    "ActionRegistry",
    "CancellationToken",
    "OperationGuard",
    "Debouncer",
    "DirectoryEntry",
    "FileSystem",
    "LocalFileSystem",
    "PersistenceOptions",
    "SaveResult",
    "SessionPersistenceService",
    "ValidationResult",
    "MISSING_PREFIX",
    "FilePathRecoveryService",
    "Settings",
    "SettingsStore",
    "SessionStorage",
]
