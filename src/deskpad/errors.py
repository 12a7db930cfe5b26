"""Exception hierarchy shared across the Deskpad session engine."""

from __future__ import annotations

__all__ = [
    "DeskpadError",
    "FileSystemError",
    "StorageError",
    "CorruptRecordError",
    "ActionError",
    "ActionNotFoundError",
    "ActionDisabledError",
]


class DeskpadError(Exception):
    """Base class for all errors raised by Deskpad."""


class FileSystemError(DeskpadError):
    """Raised by file-system collaborators; the message is user-presentable."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class StorageError(DeskpadError):
    """Raised when the session store cannot read or write a record."""


class CorruptRecordError(StorageError):
    """Raised when a stored record exists but cannot be decoded."""

    def __init__(self, namespace: str, key: str, reason: str) -> None:
        super().__init__(f"Corrupt {namespace} record {key!r}: {reason}")
        self.namespace = namespace
        self.key = key


class ActionError(DeskpadError):
    """Base class for action dispatch failures."""

    def __init__(self, message: str, action_id: str) -> None:
        super().__init__(message)
        self.action_id = action_id


class ActionNotFoundError(ActionError):
    def __init__(self, action_id: str) -> None:
        super().__init__(f"Action not found: {action_id}", action_id)


class ActionDisabledError(ActionError):
    def __init__(self, action_id: str) -> None:
        super().__init__(f"Action is disabled: {action_id}", action_id)
