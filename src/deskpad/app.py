"""Application bootstrap helpers for the Deskpad desktop app."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, is_dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, cast, get_args, get_origin, get_type_hints

from .editor.qt_surface import QtEditorSurface
from .services.settings import Settings, SettingsStore
from .shell import ShellContext, build_shell
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_LOGGER = logging.getLogger(__name__)
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_DEFAULT_SESSION_NAME = "Default"


@dataclass(slots=True)
class QtRuntime:
    """Container returned by :func:`create_qapp`."""

    app: Any
    loop: asyncio.AbstractEventLoop


def configure_logging(settings: Settings, *, debug: bool = False, force: bool = False) -> Path:
    """Send logs to the session directory at the level ``settings`` asks for."""

    options = logging_utils.LoggingOptions.from_settings(settings, debug=debug)
    log_path = logging_utils.setup_logging(options, force=force)
    _LOGGER.debug("Logging to %s (level=%s)", log_path, logging.getLevelName(options.level))
    _install_qt_message_handler()
    return log_path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, TypeError, ValueError) as exc:  # pragma: no cover - defensive path
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def create_qapp(settings: Settings) -> QtRuntime:
    """Create a qasync-powered QApplication instance."""

    try:  # Local import to avoid mandatory PySide6 dependency at import time.
        from PySide6.QtWidgets import QApplication
    except ImportError as exc:  # pragma: no cover - depends on desktop stack
        raise RuntimeError("PySide6 must be installed to launch the Deskpad UI.") from exc

    try:
        from qasync import QEventLoop
    except ImportError as exc:  # pragma: no cover - depends on env setup
        raise RuntimeError("qasync is required to run the async Qt event loop.") from exc

    os.environ.setdefault("QT_ENABLE_HIGHDPI_SCALING", "1")
    app = cast(Any, QApplication.instance() or QApplication(sys.argv))
    app.setApplicationName("Deskpad")
    app.setApplicationDisplayName("Deskpad")

    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)
    try:
        app.aboutToQuit.connect(loop.stop)  # type: ignore[attr-defined]
    except AttributeError:  # pragma: no cover - in case of mock QApplication
        pass

    if settings.editor.theme.lower() == "dark":
        app.setStyle("Fusion")

    return QtRuntime(app=app, loop=loop)


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the `deskpad` console script."""

    args, passthrough = _parse_cli_args(argv)
    _rewrite_sys_argv(passthrough)

    settings_path = args.settings_path or os.environ.get("DESKPAD_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    overrides_mapping: Dict[str, Any] | None = cli_overrides or None
    settings = load_settings(resolved_path, store=settings_store, overrides=overrides_mapping)
    configure_logging(settings, debug=_env_flag("DESKPAD_DEBUG", default=False))

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return

    if args.list_sessions:
        shell = build_shell(settings, settings_store=settings_store)
        _list_sessions(shell)
        return

    if args.dump_session:
        shell = build_shell(settings, settings_store=settings_store)
        if not _dump_session(shell, args.dump_session):
            print(f"Session not found: {args.dump_session}", file=sys.stderr)
            raise SystemExit(1)
        return

    runtime = create_qapp(settings)
    window, shell = _build_window(settings, settings_store)
    window.show()

    loop = runtime.loop
    loop.create_task(_start_session(shell))
    try:
        loop.run_forever()
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
    finally:
        with contextlib.suppress(RuntimeError):
            loop.run_until_complete(shell.orchestrator.shutdown())
        _drain_event_loop(loop)
        logging_utils.teardown_logging()
        loop.close()


async def _start_session(shell: ShellContext) -> None:
    """Restore the last session (or create one) and start auto-save."""

    orchestrator = shell.orchestrator
    session = await orchestrator.restore_last_session()
    if session is None:
        await orchestrator.create_session(_DEFAULT_SESSION_NAME)
    orchestrator.start()


def _build_window(settings: Settings, store: SettingsStore) -> tuple[Any, ShellContext]:  # pragma: no cover - Qt only
    from PySide6.QtWidgets import QFileDialog, QMainWindow

    window = QMainWindow()
    window.setWindowTitle("Deskpad")
    surface = QtEditorSurface(parent=window)
    window.setCentralWidget(surface.widget)
    state = settings.window
    window.resize(state.width, state.height)
    window.move(state.x, state.y)
    if state.is_maximized:
        window.showMaximized()

    def _pick_folder() -> str | None:
        return QFileDialog.getExistingDirectory(window, "Open Folder") or None

    from .services.filesystem import LocalFileSystem

    shell = build_shell(
        settings,
        settings_store=store,
        file_system=LocalFileSystem(picker=_pick_folder),
        surface_provider=lambda: surface,
    )
    return window, shell


def _list_sessions(shell: ShellContext, stream: TextIO | None = None) -> None:
    destination = stream or sys.stdout
    sessions = asyncio.run(shell.orchestrator.list_sessions())
    payload = [
        {
            "id": session.id,
            "name": session.name,
            "last_accessed": session.last_accessed,
            "open_files": len(session.open_files),
        }
        for session in sessions
    ]
    json.dump(payload, destination, indent=2)
    destination.write("\n")


def _dump_session(shell: ShellContext, session_id: str, stream: TextIO | None = None) -> bool:
    destination = stream or sys.stdout
    session = asyncio.run(shell.persistence.load(session_id))
    if session is None:
        return False
    json.dump(session.to_dict(), destination, indent=2)
    destination.write("\n")
    return True


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _drain_event_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel outstanding tasks and shutdown async machinery before closing."""

    if loop.is_closed():
        return

    async def _cleanup() -> None:
        current_task = None
        with contextlib.suppress(RuntimeError):
            current_task = asyncio.current_task(loop=loop)

        tasks = [
            task
            for task in asyncio.all_tasks(loop)
            if not task.done() and task is not current_task
        ]
        if tasks:
            _LOGGER.debug("Canceling %s pending asyncio task(s) before shutdown.", len(tasks))
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        shutdown_steps = [
            getattr(loop, "shutdown_asyncgens", None),
            getattr(loop, "shutdown_default_executor", None),
        ]
        for step in shutdown_steps:
            if step is None:
                continue
            with contextlib.suppress(RuntimeError, NotImplementedError):
                await step()

    try:
        loop.run_until_complete(_cleanup())
    except RuntimeError as exc:  # pragma: no cover - defensive guard
        _LOGGER.debug("Unable to drain asyncio loop: %s", exc)


def _install_qt_message_handler() -> None:
    """Redirect Qt warnings to the Python logging stack when available."""

    try:
        from PySide6.QtCore import QtMsgType, qInstallMessageHandler
    except ImportError:  # pragma: no cover - PySide6 optional during tests
        return

    level_map = {
        QtMsgType.QtDebugMsg: logging.DEBUG,
        QtMsgType.QtInfoMsg: logging.INFO,
        QtMsgType.QtWarningMsg: logging.WARNING,
        QtMsgType.QtCriticalMsg: logging.ERROR,
        QtMsgType.QtFatalMsg: logging.CRITICAL,
    }

    def _handler(mode, context, message):  # type: ignore[no-untyped-def]
        del context
        level = level_map.get(mode, logging.INFO)
        logging.getLogger("PySide6").log(level, message)

    qInstallMessageHandler(_handler)


def _parse_cli_args(argv: Sequence[str] | None) -> tuple[argparse.Namespace, list[str]]:
    parser = argparse.ArgumentParser(
        prog="deskpad",
        add_help=True,
        description="Launch the Deskpad editor or inspect its settings and saved sessions.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.deskpad/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings before launch (repeatable).",
    )
    parser.add_argument(
        "--list-sessions",
        action="store_true",
        help="Print the saved sessions, most recently used first, and exit.",
    )
    parser.add_argument(
        "--dump-session",
        metavar="ID",
        help="Print one saved session record as JSON and exit.",
    )
    return parser.parse_known_args(argv)


def _rewrite_sys_argv(passthrough: Sequence[str]) -> None:
    program = sys.argv[0] if sys.argv else "deskpad"
    sys.argv = [program, *passthrough]


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is type(None) or normalized.lower() in {"none", "null"}:
        return None
    if is_dataclass(target):
        try:
            payload = json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dataclass overrides must be valid JSON") from exc
        if not isinstance(payload, dict):
            raise ValueError("Dataclass overrides must be JSON objects")
        return payload
    if target is list:
        try:
            return json.loads(normalized or "[]")
        except json.JSONDecodeError as exc:
            raise ValueError("List overrides must be valid JSON arrays") from exc
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": asdict(settings), "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("DESKPAD_"))
