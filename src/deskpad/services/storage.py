"""JSON record storage for sessions and their backups."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping

from ..errors import CorruptRecordError, StorageError
from ..utils.file_io import decode_key, encode_key

__all__ = ["SessionStorage", "SESSIONS", "BACKUPS"]

LOGGER = logging.getLogger(__name__)

SESSIONS = "sessions"
BACKUPS = "backups"
_SUFFIX = ".json"


class SessionStorage:
    """Keyed JSON documents grouped into namespaces under ``root``.

    Each record lives at ``<root>/<namespace>/<key>.json`` and is replaced
    atomically on write.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, namespace: str, key: str) -> Path:
        """Location of ``key``; raises :class:`StorageError` for unusable keys."""

        try:
            return self._root / encode_key(namespace) / f"{encode_key(key)}{_SUFFIX}"
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Unusable storage key {key!r} in {namespace!r}: {exc}") from exc

    def read(self, namespace: str, key: str) -> dict[str, Any] | None:
        """Return the decoded record, ``None`` when absent.

        Raises:
            CorruptRecordError: the file exists but is not a JSON object.
            StorageError: the file could not be read.
        """

        path = self.path_for(namespace, key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Unable to read {path}: {exc}") from exc
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CorruptRecordError(namespace, key, str(exc)) from exc
        if not isinstance(payload, Mapping):
            raise CorruptRecordError(namespace, key, "record is not an object")
        return dict(payload)

    def write(self, namespace: str, key: str, payload: Mapping[str, Any]) -> Path:
        path = self.path_for(namespace, key)
        try:
            body = json.dumps(payload, indent=2, sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Record {key!r} is not JSON serialisable: {exc}") from exc
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            descriptor, tmp_name = tempfile.mkstemp(
                dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
                    handle.write(body)
                os.replace(tmp_name, path)
            finally:
                if os.path.exists(tmp_name):  # pragma: no cover - cleanup path
                    os.unlink(tmp_name)
        except OSError as exc:
            raise StorageError(str(exc)) from exc
        LOGGER.debug("SessionStorage.write: %s/%s (%d bytes)", namespace, key, len(body))
        return path

    def delete(self, namespace: str, key: str) -> bool:
        path = self.path_for(namespace, key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Unable to delete {path}: {exc}") from exc
        return True

    def keys(self, namespace: str) -> list[str]:
        """Stored keys in ``namespace``, decoded back to their original form."""

        try:
            directory = self._root / encode_key(namespace)
        except ValueError:
            return []
        if not directory.is_dir():
            return []
        return sorted(decode_key(item.stem) for item in directory.glob(f"*{_SUFFIX}") if item.is_file())
