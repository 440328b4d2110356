"""Per-session buffer/baseline pairs and the save operation.

The cache is the single place that answers "is this session dirty": a session
is dirty exactly when its current buffer differs from its baseline, the text
last read from or written to the document store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterator

from ..errors import DocumentIOError
from ..ui.events import EventBus, SessionSaved, SessionSaveFailed

if TYPE_CHECKING:  # pragma: no cover
    from ..services.document_store import DocumentStore
    from .document_model import Session

__all__ = ["ContentCacheEntry", "ContentCache", "SaveCoordinator"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ContentCacheEntry:
    """Live buffer text plus the baseline it is compared against."""

    current: str
    baseline: str

    @property
    def dirty(self) -> bool:
        return self.current != self.baseline


class ContentCache:
    """Owns one :class:`ContentCacheEntry` per open session id."""

    def __init__(self) -> None:
        self._entries: Dict[str, ContentCacheEntry] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._entries))

    def create(self, session_id: str, content: str) -> ContentCacheEntry:
        """Create the entry for a freshly loaded session (current == baseline)."""

        entry = ContentCacheEntry(current=content, baseline=content)
        self._entries[session_id] = entry
        return entry

    def get(self, session_id: str) -> ContentCacheEntry | None:
        return self._entries.get(session_id)

    def require(self, session_id: str) -> ContentCacheEntry:
        entry = self._entries.get(session_id)
        if entry is None:
            raise KeyError(f"No content cached for session {session_id}")
        return entry

    def update(self, session_id: str, text: str) -> bool:
        """Store ``text`` as the current buffer and return the recomputed dirty flag."""

        entry = self.require(session_id)
        entry.current = text
        return entry.dirty

    def mark_saved(self, session_id: str, saved_text: str) -> bool:
        """Move the baseline to ``saved_text`` and return the recomputed dirty flag."""

        entry = self.require(session_id)
        entry.baseline = saved_text
        return entry.dirty

    def drop(self, session_id: str) -> ContentCacheEntry | None:
        return self._entries.pop(session_id, None)

    def evict(self, session_id: str) -> ContentCacheEntry | None:
        """Forget a session's buffer without closing it; the next switch re-reads from disk."""

        entry = self._entries.pop(session_id, None)
        if entry is not None:
            LOGGER.debug("Evicted cached content for session %s", session_id)
        return entry

    def is_dirty(self, session_id: str) -> bool:
        entry = self._entries.get(session_id)
        return entry.dirty if entry is not None else False


class SaveCoordinator:
    """Writes a session's current buffer and advances its baseline on success."""

    def __init__(
        self,
        document_store: "DocumentStore",
        cache: ContentCache,
        event_bus: EventBus | None = None,
    ) -> None:
        self._store = document_store
        self._cache = cache
        self._bus = event_bus

    async def save(self, session: "Session") -> bool:
        """Persist ``session`` and return its dirty flag afterwards.

        The text written is captured before the write is awaited; the baseline
        advances to that captured text, so edits made while the write was in
        flight keep the session dirty.

        Raises:
            DocumentIOError: The write failed. The baseline is untouched and no
                retry is scheduled.
        """
        entry = self._cache.require(session.id)
        snapshot = entry.current
        path = str(session.path)
        try:
            await self._store.write_file(path, snapshot)
        except DocumentIOError as exc:
            LOGGER.warning("Save failed for %s: %s", path, exc)
            self._publish(SessionSaveFailed(session_id=session.id, path=path, error=str(exc)))
            raise

        if self._cache.get(session.id) is not entry:
            LOGGER.debug("Session %s closed while saving; baseline not updated", session.id)
            return False
        dirty = self._cache.mark_saved(session.id, snapshot)
        LOGGER.debug("Saved %s (%d chars, dirty=%s)", path, len(snapshot), dirty)
        self._publish(SessionSaved(session_id=session.id, path=path))
        return dirty

    def _publish(self, event: SessionSaved | SessionSaveFailed) -> None:
        if self._bus is not None:
            self._bus.publish(event)
