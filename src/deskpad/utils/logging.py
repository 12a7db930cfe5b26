"""Logging setup driven by Deskpad settings.

Logs live next to the session store (``<session_dir>/logs/deskpad.log``)
unless ``DESKPAD_LOG_DIR`` points elsewhere. Only the handlers installed here
are ever replaced, so handlers added by a host application or by pytest stay
attached.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Protocol

__all__ = ["LoggingOptions", "setup_logging", "set_level", "teardown_logging", "get_logger", "get_log_path"]

LOG_FILE_NAME = "deskpad.log"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "qasync")
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _LoggingSettings(Protocol):
    session_dir: str
    debug_logging: bool


@dataclass(frozen=True, slots=True)
class LoggingOptions:
    level: int = logging.INFO
    log_dir: Path | None = None
    console: bool = True
    max_bytes: int = 1_000_000
    backup_count: int = 3

    @classmethod
    def from_settings(cls, settings: _LoggingSettings, *, debug: bool = False, **extra: Any) -> LoggingOptions:
        """Derive options from ``settings``; ``debug`` forces DEBUG level."""

        level = logging.DEBUG if debug or settings.debug_logging else logging.INFO
        log_dir = Path(settings.session_dir).expanduser() / "logs"
        return cls(level=level, log_dir=log_dir, **extra)

    def resolved_dir(self) -> Path:
        override = os.environ.get("DESKPAD_LOG_DIR")
        if override:
            return Path(override).expanduser()
        if self.log_dir is not None:
            return Path(self.log_dir).expanduser()
        return Path.home() / ".deskpad" / "logs"


_active: LoggingOptions | None = None
_log_path: Path | None = None
_handlers: list[logging.Handler] = []


def setup_logging(options: LoggingOptions | None = None, *, force: bool = False) -> Path:
    """Install the rotating file handler (plus console) on the root logger.

    Calling again with options that differ only in ``level`` adjusts levels in
    place. Any other change, or ``force``, rebuilds Deskpad's handlers.
    """

    global _active, _log_path
    options = options or LoggingOptions()
    if _active is not None and _log_path is not None and not force:
        if options == _active:
            return _log_path
        if options == replace(_active, level=options.level):
            set_level(options.level)
            return _log_path

    target_dir = options.resolved_dir()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / LOG_FILE_NAME
    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=options.max_bytes, backupCount=options.backup_count, encoding="utf-8"
        )
    ]
    if options.console:
        handlers.append(logging.StreamHandler())

    _remove_handlers()
    root = logging.getLogger()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
        _handlers.append(handler)
    logging.captureWarnings(True)

    _active = options
    _log_path = log_path
    set_level(options.level)
    return log_path


def set_level(level: int) -> None:
    """Change the level of the root logger and Deskpad's handlers."""

    global _active
    logging.getLogger().setLevel(level)
    for handler in _handlers:
        handler.setLevel(level)
    quiet_level = logging.WARNING if level < logging.WARNING else level
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
    if _active is not None:
        _active = replace(_active, level=level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_log_path() -> Path | None:
    """Return the currently configured log file if available."""

    return _log_path


def _remove_handlers() -> None:
    root = logging.getLogger()
    while _handlers:
        handler = _handlers.pop()
        root.removeHandler(handler)
        handler.close()


def teardown_logging() -> None:
    """Detach and close Deskpad's handlers and forget the active options."""

    global _active, _log_path
    _remove_handlers()
    _active = None
    _log_path = None
