"""File IO, classification, and formatting helpers used by the session engine."""

from __future__ import annotations

import codecs
import locale
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePath
from urllib.parse import quote, unquote

__all__ = [
    "FileInfo",
    "read_text",
    "write_text",
    "classify_file",
    "infer_language",
    "is_text_extension",
    "format_file_size",
    "count_lines",
    "encode_key",
    "decode_key",
]

_BOM_MAP: dict[bytes, str] = {
    codecs.BOM_UTF8: "utf-8-sig",
    codecs.BOM_UTF32_LE: "utf-32-le",
    codecs.BOM_UTF32_BE: "utf-32-be",
    codecs.BOM_UTF16_LE: "utf-16-le",
    codecs.BOM_UTF16_BE: "utf-16-be",
}
_TEXT_EXTENSIONS = frozenset(
    {
        ".txt", ".md", ".markdown", ".json", ".js", ".ts", ".jsx", ".tsx", ".html",
        ".css", ".scss", ".sass", ".less", ".xml", ".yaml", ".yml", ".toml", ".ini",
        ".cfg", ".conf", ".config", ".env", ".gitignore", ".dockerignore",
        ".editorconfig", ".eslintrc", ".prettierrc", ".babelrc", ".npmrc",
        ".gitattributes", ".gitmodules", ".gitconfig", ".bashrc", ".zshrc",
        ".profile", ".bash_profile", ".vimrc", ".py", ".pyi", ".rs", ".go", ".c",
        ".h", ".cpp", ".java", ".rb", ".php", ".sh", ".sql", ".log", ".csv",
    }
)
_BINARY_EXTENSIONS = frozenset(
    {
        ".exe", ".dll", ".so", ".dylib", ".bin", ".dat", ".db", ".sqlite",
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".ico", ".svg", ".pdf",
        ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".zip", ".rar",
        ".tar", ".gz", ".bz2", ".7z", ".mp3", ".mp4", ".avi", ".mov",
    }
)
_LANGUAGE_EXTENSIONS: dict[str, tuple[str, ...]] = {
    "javascript": ("js", "jsx", "mjs"),
    "typescript": ("ts", "tsx"),
    "html": ("html", "htm", "xhtml"),
    "css": ("css",),
    "scss": ("scss", "sass"),
    "json": ("json",),
    "markdown": ("md", "markdown"),
    "python": ("py", "pyw", "pyi"),
    "java": ("java",),
    "cpp": ("cpp", "cc", "cxx", "c++"),
    "c": ("c", "h"),
    "php": ("php", "phtml"),
    "ruby": ("rb", "erb"),
    "go": ("go",),
    "rust": ("rs",),
    "sql": ("sql",),
    "xml": ("xml", "xsd", "xsl"),
    "yaml": ("yaml", "yml"),
    "toml": ("toml",),
    "ini": ("ini", "cfg", "conf"),
    "shell": ("sh", "bash", "zsh", "fish"),
    "powershell": ("ps1", "psm1"),
    "batch": ("bat", "cmd"),
    "plaintext": ("txt", "log"),
}
_EXTENSION_LANGUAGE = {
    ext: language for language, extensions in _LANGUAGE_EXTENSIONS.items() for ext in extensions
}
_SIZE_UNITS = ("B", "KB", "MB", "GB")
_SNIFF_BYTES = 4096


@dataclass(slots=True, frozen=True)
class FileInfo:
    """Result of classifying a file as editable text or not."""

    is_text: bool
    encoding: str


def read_text(
    path: Path | str,
    *,
    encoding: str | None = None,
    errors: str = "strict",
    normalize_newlines: bool = True,
) -> str:
    """Read a text file with encoding detection and optional newline normalization."""

    target = Path(path)
    raw = target.read_bytes()
    detected_encoding = encoding or _detect_encoding(raw)
    text = raw.decode(detected_encoding, errors=errors)
    text = _strip_bom(text)
    return _normalize_newlines(text) if normalize_newlines else text


def write_text(
    path: Path | str,
    content: str,
    *,
    encoding: str = "utf-8",
    newline: str = "\n",
    atomic: bool = True,
) -> Path:
    """Write text to disk using atomic semantics and configurable newline style."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    normalized = _apply_newline_policy(content, newline)
    if not atomic:
        with target.open("w", encoding=encoding, newline="") as handle:
            handle.write(normalized)
            handle.flush()
            os.fsync(handle.fileno())
        return target

    descriptor, tmp_name = tempfile.mkstemp(
        dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(descriptor, "w", encoding=encoding, newline="") as handle:
            handle.write(normalized)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    finally:
        if os.path.exists(tmp_name):  # pragma: no cover - cleanup path
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
    return target


def classify_file(path: Path | str, raw: bytes) -> FileInfo:
    """Decide whether ``raw`` (the head of ``path``) can be opened as text.

    Known extensions short-circuit; anything else is sniffed for NUL bytes and
    then decoded as UTF-8 and UTF-16LE in turn.
    """

    suffix = PurePath(str(path)).suffix.lower()
    if suffix in _BINARY_EXTENSIONS:
        return FileInfo(is_text=False, encoding="binary")
    if suffix in _TEXT_EXTENSIONS:
        return FileInfo(is_text=True, encoding="utf-8")

    head = raw[:_SNIFF_BYTES]
    for bom, encoding in _BOM_MAP.items():
        if head.startswith(bom):
            return FileInfo(is_text=True, encoding=encoding)
    if b"\x00" in head:
        return FileInfo(is_text=False, encoding="binary")
    for candidate in ("utf-8", "utf-16-le"):
        try:
            head.decode(candidate)
        except UnicodeDecodeError:
            continue
        return FileInfo(is_text=True, encoding=candidate)
    return FileInfo(is_text=False, encoding="unknown")


def is_text_extension(path: Path | str) -> bool:
    suffix = PurePath(str(path)).suffix.lower()
    return suffix in _TEXT_EXTENSIONS or suffix.lstrip(".") in _EXTENSION_LANGUAGE


def infer_language(path: Path | str | None) -> str:
    """Return the editor language id for ``path`` based on its extension."""

    if not path:
        return "plaintext"
    suffix = PurePath(str(path)).suffix.lower().lstrip(".")
    return _EXTENSION_LANGUAGE.get(suffix, "plaintext")


def format_file_size(size: int | float) -> str:
    """Render a byte count using binary (1024-based) units with one decimal."""

    value = float(size)
    unit_index = 0
    while value >= 1024 and unit_index < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit_index += 1
    return f"{value:.1f} {_SIZE_UNITS[unit_index]}"


def count_lines(text: str | None) -> int:
    if not text:
        return 0
    return text.count("\n") + 1


def encode_key(value: str) -> str:
    """Percent-encode ``value`` into a single file name component.

    The mapping is reversible with :func:`decode_key`, so distinct keys never
    share a file. Dot-only keys are fully escaped to keep them out of ``.``
    and ``..``.
    """

    if not value:
        raise ValueError("Storage key must not be empty")
    encoded = quote(value, safe="")
    if not encoded.strip("."):
        encoded = "%2E" * len(encoded)
    return encoded


def decode_key(name: str) -> str:
    return unquote(name)


def _detect_encoding(raw: bytes) -> str:
    for bom, encoding in _BOM_MAP.items():
        if raw.startswith(bom):
            return encoding

    preferred = locale.getpreferredencoding(False) or "utf-8"
    seen: set[str] = set()
    for candidate in ("utf-8", preferred, "latin-1"):
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)
        try:
            raw.decode(candidate)
            return candidate
        except UnicodeDecodeError:
            continue
    return "utf-8"


def _normalize_newlines(text: str) -> str:
    if "\r" not in text:
        return text
    text = text.replace("\r\n", "\n")
    return text.replace("\r", "\n")


def _strip_bom(text: str) -> str:
    return text[1:] if text.startswith("\ufeff") else text


def _apply_newline_policy(content: str, newline: str) -> str:
    normalized = _normalize_newlines(content)
    if newline == "\n":
        return normalized
    if newline == "\r\n":
        return normalized.replace("\n", "\r\n")
    if newline == "\r":
        return normalized.replace("\n", "\r")
    raise ValueError(f"Unsupported newline policy: {newline!r}")
