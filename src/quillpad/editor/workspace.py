"""Session registry managing open documents and the single live buffer."""

from __future__ import annotations

import inspect
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterator, List

from ..errors import DocumentIOError, ErrorCode, ValidationError
from ..ui.events import (
    ActiveSessionChanged,
    Event,
    EventBus,
    SessionClosed,
    SessionDirtyChanged,
    SessionOpened,
)
from .content_cache import ContentCache, SaveCoordinator
from .document_model import BufferSnapshot, Session

if TYPE_CHECKING:  # pragma: no cover
    from ..services.document_store import DocumentStore, RecentFilesStore

__all__ = [
    "DEFAULT_CONTEXT_KEY",
    "ConfirmCallback",
    "LiveBuffer",
    "SessionRegistry",
    "context_key_for",
]

LOGGER = logging.getLogger(__name__)
DEFAULT_CONTEXT_KEY = "default"

ConfirmCallback = Callable[[Session], "bool | Awaitable[bool]"]


def context_key_for(session: Session | None) -> str:
    """Return the conversation context key associated with ``session``."""

    if session is None:
        return DEFAULT_CONTEXT_KEY
    return str(session.path)


def _normalize_locator(path: Path | str) -> Path:
    return Path(os.path.normpath(os.path.expanduser(str(path))))


def _locator_key(path: Path) -> str:
    return os.path.normcase(str(path))


@dataclass(slots=True)
class LiveBuffer:
    """Text and cursor of the session currently shown in the editor widget."""

    text: str = ""
    cursor: int = 0

    def load(self, text: str, cursor: int | None = None) -> None:
        self.text = text
        self.cursor = self._clamp(cursor if cursor is not None else 0)

    def replace(self, text: str, cursor: int | None = None) -> None:
        self.text = text
        self.cursor = self._clamp(self.cursor if cursor is None else cursor)

    def move_cursor(self, cursor: int) -> int:
        self.cursor = self._clamp(cursor)
        return self.cursor

    def _clamp(self, cursor: int) -> int:
        return max(0, min(int(cursor), len(self.text)))


class SessionRegistry:
    """Owns the ordered list of open sessions and which one is active.

    Exactly one live buffer exists. Edits land in the buffer and in the active
    session's :class:`ContentCacheEntry` at the same time; switching sessions
    flushes the buffer into the cache before the next session's text is loaded.

    Every ``await`` on the document store is followed by a re-check of the
    registry state, since other calls may have opened, closed, or edited
    sessions while the read or write was pending.
    """

    def __init__(
        self,
        document_store: "DocumentStore",
        *,
        recent_files: "RecentFilesStore | None" = None,
        event_bus: EventBus | None = None,
        cache: ContentCache | None = None,
        placeholder_text: str = "",
    ) -> None:
        self._store = document_store
        self._recent_files = recent_files
        self._bus = event_bus or EventBus()
        self._cache = cache or ContentCache()
        self._saver = SaveCoordinator(document_store, self._cache, self._bus)
        self._sessions: Dict[str, Session] = {}
        self._order: List[str] = []
        self._cursors: Dict[str, int] = {}
        self._active_id: str | None = None
        self._placeholder = placeholder_text
        self._buffer = LiveBuffer(text=placeholder_text)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    async def open(self, path: Path | str) -> Session:
        """Open ``path`` (or re-activate its existing session) and make it active.

        Raises:
            DocumentIOError: The document store could not read the file. No
                session is created.
        """
        locator = _normalize_locator(path)
        existing = self.find_by_path(locator)
        if existing is not None:
            LOGGER.debug("SessionRegistry.open: reusing session %s for %s", existing.id, locator)
            return await self.switch_to(existing.id)

        content = await self._store.read_file(str(locator))

        existing = self.find_by_path(locator)
        if existing is not None:
            LOGGER.debug("SessionRegistry.open: %s was opened while reading", locator)
            return await self.switch_to(existing.id)

        session = Session(path=locator)
        self._cache.create(session.id, content)
        self._sessions[session.id] = session
        self._order.append(session.id)
        LOGGER.debug(
            "SessionRegistry.open: session_id=%s, path=%s, language=%s",
            session.id,
            locator,
            session.language,
        )
        self._publish(SessionOpened(session_id=session.id, path=str(locator)))

        self._flush_active()
        self._activate(session, content, 0)
        self._remember_recent(locator)
        return session

    async def close(self, session_id: str, confirm: ConfirmCallback | None = None) -> bool:
        """Close a session, asking ``confirm`` first when it has unsaved changes.

        Returns:
            False when the session is dirty and the close was not confirmed
            (no confirmation callback, or the callback declined); the session
            list is then unchanged. True once the session is gone.
        """
        session = self._require(session_id)
        if session_id == self._active_id:
            self._flush_active()

        if session.dirty:
            if confirm is None:
                LOGGER.info("Close of dirty session %s refused: no confirmation", session_id)
                return False
            decision: Any = confirm(session)
            if inspect.isawaitable(decision):
                decision = await decision
            if not decision:
                LOGGER.debug("Close of session %s declined by user", session_id)
                return False
            if session_id not in self._sessions:
                return True

        was_active = session_id == self._active_id
        self._order.remove(session_id)
        del self._sessions[session_id]
        self._cache.drop(session_id)
        self._cursors.pop(session_id, None)
        LOGGER.debug("SessionRegistry.close: session_id=%s, path=%s", session_id, session.path)
        self._publish(SessionClosed(session_id=session_id, path=str(session.path)))

        if was_active:
            self._active_id = None
            await self._activate_fallback()
        return True

    async def switch_to(self, session_id: str) -> Session:
        """Make ``session_id`` active, loading its cached buffer.

        The outgoing buffer is flushed into its cache entry first. When the
        target has no cache entry (evicted externally) the text is re-read
        from the document store; a failed read leaves the active session as
        it was and raises :class:`DocumentIOError`.
        """
        session = self._require(session_id)
        if self._active_id == session_id:
            return session

        self._flush_active()
        entry = self._cache.get(session_id)
        if entry is None:
            LOGGER.debug("SessionRegistry.switch_to: cache miss for %s, re-reading", session_id)
            content = await self._store.read_file(str(session.path))
            session = self._require(session_id)
            entry = self._cache.get(session_id) or self._cache.create(session_id, content)
            self._flush_active()
            self._refresh_dirty(session)

        self._activate(session, entry.current, self._cursors.get(session_id, 0))
        return session

    # ------------------------------------------------------------------
    # Buffer mutation
    # ------------------------------------------------------------------
    def apply_edit(self, text: str, cursor: int | None = None) -> bool:
        """Replace the active buffer with ``text`` and return the session's dirty flag."""

        session = self.require_active()
        self._buffer.replace(text, cursor)
        dirty = self._cache.update(session.id, self._buffer.text)
        self._set_dirty(session, dirty)
        return dirty

    def insert_at_cursor(self, text: str) -> int:
        """Insert ``text`` at the cursor, leaving the cursor after it; returns the new cursor."""

        buffer = self._buffer
        offset = buffer.cursor
        updated = buffer.text[:offset] + text + buffer.text[offset:]
        self.apply_edit(updated, offset + len(text))
        return self._buffer.cursor

    def move_cursor(self, cursor: int) -> int:
        self.require_active()
        return self._buffer.move_cursor(cursor)

    async def save(self, session_id: str | None = None) -> bool:
        """Write a session (the active one by default) to its document store.

        Returns:
            True when the session is clean afterwards.

        Raises:
            ValidationError: No session was given and none is active.
            DocumentIOError: The write failed; the session stays dirty.
        """
        session = self._require(session_id) if session_id else self.require_active()
        if session.id == self._active_id:
            self._flush_active()
        if session.id not in self._cache:
            return True
        try:
            await self._saver.save(session)
        finally:
            if session.id in self._sessions:
                self._refresh_dirty(session)
        return not session.dirty

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------
    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def content_cache(self) -> ContentCache:
        return self._cache

    @property
    def recent_files(self) -> "RecentFilesStore | None":
        return self._recent_files

    @property
    def active_session_id(self) -> str | None:
        return self._active_id

    @property
    def active_session(self) -> Session | None:
        if self._active_id is None:
            return None
        return self._sessions.get(self._active_id)

    @property
    def active_context_key(self) -> str:
        return context_key_for(self.active_session)

    @property
    def buffer_text(self) -> str:
        return self._buffer.text

    @property
    def cursor(self) -> int:
        return self._buffer.cursor

    def require_active(self) -> Session:
        session = self.active_session
        if session is None:
            raise ValidationError(
                error_code=ErrorCode.NO_ACTIVE_SESSION,
                message="No active session",
            )
        return session

    def sessions(self) -> tuple[Session, ...]:
        return tuple(self._sessions[session_id] for session_id in self._order)

    def session_ids(self) -> tuple[str, ...]:
        return tuple(self._order)

    def __iter__(self) -> Iterator[Session]:
        return iter(self.sessions())

    def __len__(self) -> int:
        return len(self._order)

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def find_by_path(self, path: Path | str) -> Session | None:
        key = _locator_key(_normalize_locator(path))
        for session in self.sessions():
            if _locator_key(session.path) == key:
                return session
        return None

    def is_dirty(self, session_id: str) -> bool:
        return self._require(session_id).dirty

    def cached_text(self, session_id: str) -> str | None:
        """Return the buffer text for ``session_id``, flushing the live buffer when active."""

        if session_id == self._active_id:
            return self._buffer.text
        entry = self._cache.get(session_id)
        return entry.current if entry is not None else None

    def snapshot(self) -> BufferSnapshot | None:
        """Capture the active buffer by value; ``None`` when nothing is open."""

        session = self.active_session
        if session is None:
            return None
        return BufferSnapshot(
            session_id=session.id,
            text=self._buffer.text,
            cursor=self._buffer.cursor,
            language=session.language,
            path=str(session.path),
        )

    def serialize_state(self) -> dict[str, Any]:
        """Return the open sessions and active id for persistence layers."""

        return {
            "open_sessions": [session.to_dict() for session in self.sessions()],
            "active_session_id": self._active_id,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise ValidationError(
                error_code=ErrorCode.SESSION_NOT_FOUND,
                message=f"Unknown session: {session_id}",
                details={"session_id": session_id},
            )
        return session

    def _flush_active(self) -> None:
        session = self.active_session
        if session is None:
            return
        self._cursors[session.id] = self._buffer.cursor
        if session.id not in self._cache:
            self._cache.create(session.id, self._buffer.text)
        self._set_dirty(session, self._cache.update(session.id, self._buffer.text))

    def _activate(self, session: Session, text: str, cursor: int) -> None:
        self._active_id = session.id
        self._buffer.load(text, cursor)
        self._publish(
            ActiveSessionChanged(session_id=session.id, context_key=context_key_for(session))
        )

    async def _activate_fallback(self) -> None:
        for session_id in reversed(self._order):
            try:
                await self.switch_to(session_id)
                return
            except DocumentIOError as exc:
                LOGGER.warning("Unable to reload session %s after close: %s", session_id, exc)
            if self._active_id is not None:
                return
        self._active_id = None
        self._buffer.load(self._placeholder)
        self._publish(ActiveSessionChanged(session_id=None, context_key=DEFAULT_CONTEXT_KEY))

    def _refresh_dirty(self, session: Session) -> None:
        self._set_dirty(session, self._cache.is_dirty(session.id))

    def _set_dirty(self, session: Session, dirty: bool) -> None:
        if session.dirty == dirty:
            return
        session.dirty = dirty
        self._publish(SessionDirtyChanged(session_id=session.id, dirty=dirty))

    def _remember_recent(self, path: Path) -> None:
        if self._recent_files is None:
            return
        try:
            self._recent_files.add(str(path))
        except Exception as exc:
            LOGGER.warning("Unable to record recent file %s: %s", path, exc)

    def _publish(self, event: Event) -> None:
        self._bus.publish(event)
