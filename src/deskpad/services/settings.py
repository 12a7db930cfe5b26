"""Settings dataclasses and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from ..session.models import EditorSettings, WindowState

__all__ = ["Settings", "SettingsStore", "DEFAULT_SETTINGS_DIR"]

LOGGER = logging.getLogger(__name__)
DEFAULT_SETTINGS_DIR = Path.home() / ".deskpad"
_DEFAULT_SETTINGS_PATH = DEFAULT_SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_RECENT_FILES_LIMIT = 20
_ENV_OVERRIDES: Mapping[str, str] = {
    "DESKPAD_SESSION_DIR": "session_dir",
    "DESKPAD_LAST_SESSION": "last_session_id",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "DESKPAD_DEBUG_LOGGING": "debug_logging",
    "DESKPAD_AUTOSAVE": "autosave_enabled",
    "DESKPAD_BACKUP": "backup_enabled",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "DESKPAD_AUTOSAVE_INTERVAL": "autosave_interval",
    "DESKPAD_SESSION_DEBOUNCE": "session_debounce_seconds",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "DESKPAD_MAX_SESSIONS": "max_sessions",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between runs."""

    session_dir: str = str(DEFAULT_SETTINGS_DIR)
    autosave_enabled: bool = True
    autosave_interval: float = 30.0
    backup_enabled: bool = True
    max_sessions: int = 10
    session_debounce_seconds: float = 1.0
    preferences_debounce_seconds: float = 0.5
    window_debounce_seconds: float = 0.5
    last_session_id: str | None = None
    recent_files: list[str] = field(default_factory=list)
    debug_logging: bool = False
    editor: EditorSettings = field(default_factory=EditorSettings)
    window: WindowState = field(default_factory=WindowState)

    def remember_file(self, path: str) -> None:
        """Move ``path`` to the front of ``recent_files``."""

        if not path:
            return
        if path in self.recent_files:
            self.recent_files.remove(path)
        self.recent_files.insert(0, path)
        del self.recent_files[_RECENT_FILES_LIMIT:]


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI/environment overrides when present."""

        payload = self._read_payload()
        settings = Settings()

        if payload:
            data = _filter_fields(payload)
            data["editor"] = EditorSettings.from_dict(data.get("editor"))
            data["window"] = WindowState.from_dict(data.get("window"))
            recent = data.get("recent_files")
            if not isinstance(recent, list):
                data.pop("recent_files", None)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()

        version_mismatch = bool(payload) and payload.get("version") != _SETTINGS_VERSION
        if version_mismatch:
            try:
                self.save(settings)
            except OSError as exc:  # pragma: no cover - defensive guard
                LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")

        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload = asdict(settings)
        payload["version"] = _SETTINGS_VERSION
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug(
            "Settings saved to %s (last_session_id=%s)", self._path, settings.last_session_id
        )
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
            payload = json.loads(text)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in allowed or value is None:
                continue
            filtered[key] = value
        if isinstance(filtered.get("editor"), Mapping):
            filtered["editor"] = replace(settings.editor, **_known(EditorSettings, filtered["editor"]))
        if isinstance(filtered.get("window"), Mapping):
            filtered["window"] = replace(settings.window, **_known(WindowState, filtered["window"]))
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid integer",
                    env_name,
                    value,
                )
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid float", env_name, value
                )
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return _known(Settings, payload)


def _known(cls: type, payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(cls)}
    return {key: value for key, value in payload.items() if key in allowed}
