"""Dataclasses describing open sessions and captured buffer snapshots."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from ..utils.language import detect_language


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def _generate_session_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class Session:
    """An open editable document bound to a single file path.

    ``dirty`` is owned by the registry and recomputed from the content cache
    after every buffer mutation and every baseline update.
    """

    path: Path
    id: str = field(default_factory=_generate_session_id)
    title: str = ""
    language: str = ""
    dirty: bool = False
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not self.title:
            self.title = self.path.name or str(self.path)
        if not self.language:
            self.language = detect_language(self.path)

    @property
    def display_title(self) -> str:
        """Title shown in the tab strip, prefixed with ``*`` while unsaved."""

        return f"*{self.title}" if self.dirty else self.title

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.id,
            "path": str(self.path),
            "title": self.title,
            "language": self.language,
            "dirty": self.dirty,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class BufferSnapshot:
    """Immutable copy of the active buffer taken at a single instant."""

    session_id: str
    text: str
    cursor: int
    language: str
    path: str | None = None

    @property
    def prefix(self) -> str:
        return self.text[: self.cursor]

    @property
    def suffix(self) -> str:
        return self.text[self.cursor :]
