"""Qt-backed :class:`~deskpad.editor.view_state.EditorSurface`.

Wraps a ``QPlainTextEdit`` so the session engine can read and restore text,
caret, selection and scroll offsets. The view state blob is a JSON string so
it can be stored verbatim in the session record.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..session.models import Position, ScrollPosition, Selection

QTextCursor: Any = None
QPlainTextEdit: Any = None

try:  # pragma: no cover - PySide6 optional in CI
    from PySide6.QtGui import QTextCursor as _QtTextCursor
    from PySide6.QtWidgets import QPlainTextEdit as _QtPlainTextEdit

    QTextCursor = _QtTextCursor
    QPlainTextEdit = _QtPlainTextEdit
except ImportError:  # pragma: no cover - runtime fallback
    pass

__all__ = ["QtEditorSurface", "qt_available"]

LOGGER = logging.getLogger(__name__)


def qt_available() -> bool:
    return QPlainTextEdit is not None


class QtEditorSurface:  # pragma: no cover - requires a QApplication
    """Adapter between a ``QPlainTextEdit`` and the session engine."""

    def __init__(self, editor: Any | None = None, parent: Any | None = None) -> None:
        if editor is None:
            if QPlainTextEdit is None:
                raise RuntimeError("PySide6 must be installed to create a Qt editor surface.")
            editor = QPlainTextEdit(parent)
        self._editor = editor

    @property
    def widget(self) -> Any:
        return self._editor

    def get_value(self) -> str:
        return self._editor.toPlainText()

    def set_value(self, text: str) -> None:
        if self._editor.toPlainText() != text:
            self._editor.setPlainText(text)

    def get_view_state(self) -> Any:
        cursor = self._editor.textCursor()
        anchor = self._position_for(cursor.anchor())
        caret = self._position_for(cursor.position())
        scroll = self.get_scroll_position()
        return json.dumps(
            {
                "anchor": [anchor.line, anchor.column],
                "cursor": [caret.line, caret.column],
                "scroll": [scroll.scroll_top, scroll.scroll_left],
            }
        )

    def restore_view_state(self, state: Any) -> None:
        payload = json.loads(state) if isinstance(state, str) else state
        if not isinstance(payload, dict):
            raise ValueError("Editor view state must be an object")
        anchor_line, anchor_column = payload.get("anchor") or payload.get("cursor") or (1, 1)
        line, column = payload.get("cursor") or (1, 1)
        cursor = self._editor.textCursor()
        cursor.setPosition(self._offset_for(int(anchor_line), int(anchor_column)))
        cursor.setPosition(self._offset_for(int(line), int(column)), QTextCursor.MoveMode.KeepAnchor)
        self._editor.setTextCursor(cursor)
        top, left = payload.get("scroll") or (0, 0)
        self._editor.verticalScrollBar().setValue(int(top))
        self._editor.horizontalScrollBar().setValue(int(left))

    def get_cursor_position(self) -> Position:
        return self._position_for(self._editor.textCursor().position())

    def get_scroll_position(self) -> ScrollPosition:
        return ScrollPosition(
            scroll_top=self._editor.verticalScrollBar().value(),
            scroll_left=self._editor.horizontalScrollBar().value(),
        )

    def get_selection(self) -> Selection | None:
        cursor = self._editor.textCursor()
        if not cursor.hasSelection():
            return None
        return Selection(
            start=self._position_for(cursor.selectionStart()),
            end=self._position_for(cursor.selectionEnd()),
        )

    def _position_for(self, offset: int) -> Position:
        block = self._editor.document().findBlock(offset)
        return Position(line=block.blockNumber() + 1, column=offset - block.position() + 1)

    def _offset_for(self, line: int, column: int) -> int:
        document = self._editor.document()
        block = document.findBlockByNumber(max(0, line - 1))
        if not block.isValid():
            return max(0, document.characterCount() - 1)
        return block.position() + min(max(0, column - 1), max(0, block.length() - 1))
