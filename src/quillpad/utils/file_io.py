"""Reading and writing document text on the local filesystem."""

from __future__ import annotations

import codecs
import locale
import os
import tempfile
from pathlib import Path

__all__ = ["read_text", "sniff_encoding", "write_text"]

# Longer marks first: the UTF-32-LE mark starts with the UTF-16-LE one.
_BYTE_ORDER_MARKS: tuple[tuple[bytes, str], ...] = (
    (codecs.BOM_UTF32_LE, "utf-32"),
    (codecs.BOM_UTF32_BE, "utf-32"),
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


def sniff_encoding(raw: bytes) -> str:
    """Guess the encoding of ``raw``.

    A byte-order mark decides outright. Otherwise the first of UTF-8, the
    locale's preferred encoding and Latin-1 that decodes cleanly wins.
    """

    for mark, encoding in _BYTE_ORDER_MARKS:
        if raw.startswith(mark):
            return encoding
    candidates = dict.fromkeys(("utf-8", locale.getpreferredencoding(False) or "utf-8", "latin-1"))
    for candidate in candidates:
        try:
            raw.decode(candidate)
        except (UnicodeDecodeError, LookupError):
            continue
        return candidate
    return "utf-8"


def read_text(
    path: Path | str,
    *,
    encoding: str | None = None,
    errors: str = "strict",
    normalize_newlines: bool = True,
) -> str:
    """Return the text stored at ``path``.

    The BOM-aware codecs consume the byte-order mark. ``\\r\\n`` and lone
    ``\\r`` become ``\\n`` unless ``normalize_newlines`` is false.
    """

    raw = Path(path).read_bytes()
    text = raw.decode(encoding or sniff_encoding(raw), errors=errors)
    if text.startswith("\ufeff"):
        text = text[1:]
    if normalize_newlines and "\r" in text:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text


def write_text(
    path: Path | str,
    content: str,
    *,
    encoding: str = "utf-8",
    atomic: bool = True,
) -> Path:
    """Write ``content`` to ``path`` verbatim, creating parent directories.

    Atomic writes go to a hidden sibling file that replaces ``path`` once it
    is flushed, so readers never observe a partial document.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    if not atomic:
        _write_synced(target, content, encoding)
        return target

    descriptor, scratch = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    os.close(descriptor)
    try:
        _write_synced(Path(scratch), content, encoding)
        os.replace(scratch, target)
    except BaseException:
        Path(scratch).unlink(missing_ok=True)
        raise
    return target


def _write_synced(target: Path, content: str, encoding: str) -> None:
    with target.open("w", encoding=encoding, newline="") as handle:
        handle.write(content)
        handle.flush()
        os.fsync(handle.fileno())
