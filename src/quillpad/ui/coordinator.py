"""Presentation-facing facade wiring the registry and both AI coordinators."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List

from ..ai.completion import CompletionCoordinator, CompletionState
from ..chat.message_model import ChatMessage
from ..chat.stream_coordinator import StreamCoordinator
from ..editor.document_model import Session
from ..editor.workspace import ConfirmCallback, SessionRegistry
from ..search.file_index import quick_open
from ..search.fuzzy import FuzzyCandidate
from ..services.settings import Settings
from .events import ActiveSessionChanged, EventBus

if TYPE_CHECKING:  # pragma: no cover
    from ..ai.providers import ConversationProvider, SuggestionProvider
    from ..services.conversation_store import PersistedConversationStore

__all__ = ["EditorCoordinator", "EditorView", "SessionView"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SessionView:
    session_id: str
    title: str
    path: str
    language: str
    dirty: bool
    active: bool


@dataclass(slots=True, frozen=True)
class EditorView:
    """Read-only state the presentation layer renders."""

    sessions: tuple[SessionView, ...]
    active_session_id: str | None
    buffer_text: str
    cursor: int
    suggestion: str | None
    completion_state: CompletionState
    context_key: str
    messages: tuple[ChatMessage, ...]
    streaming: bool

    def dirty(self, session_id: str) -> bool:
        for session in self.sessions:
            if session.session_id == session_id:
                return session.dirty
        return False


class EditorCoordinator:
    """Routes user intents to the session registry and the AI coordinators.

    Switching the active session resets the completion coordinator and moves
    the chat to the new session's context key; both happen in response to
    :class:`ActiveSessionChanged`, whichever operation caused the switch.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        suggestion_provider: "SuggestionProvider",
        conversation_provider: "ConversationProvider",
        conversation_store: "PersistedConversationStore",
        settings: Settings | None = None,
        workspace_root: Path | str | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._registry = registry
        self._workspace_root = Path(workspace_root) if workspace_root else None
        self._completion = CompletionCoordinator(
            suggestion_provider,
            registry.snapshot,
            inserter=self._insert_suggestion,
            event_bus=registry.event_bus,
            debounce_seconds=self._settings.debounce_seconds,
            min_prefix_chars=self._settings.completion_min_prefix_chars,
            enabled=self._settings.completion_enabled,
        )
        self._stream = StreamCoordinator(
            conversation_provider,
            conversation_store,
            event_bus=registry.event_bus,
            active_context_key=registry.active_context_key,
        )
        registry.event_bus.subscribe(ActiveSessionChanged, self._handle_active_session_changed)

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def completion(self) -> CompletionCoordinator:
        return self._completion

    @property
    def stream(self) -> StreamCoordinator:
        return self._stream

    @property
    def event_bus(self) -> EventBus:
        return self._registry.event_bus

    # ------------------------------------------------------------------
    # Session intents
    # ------------------------------------------------------------------
    async def open(self, path: Path | str) -> Session:
        session = await self._registry.open(path)
        await self._load_active_history()
        return session

    async def close(self, session_id: str | None = None, confirm: ConfirmCallback | None = None) -> bool:
        target = session_id or self._registry.require_active().id
        closed = await self._registry.close(target, confirm)
        if closed:
            await self._load_active_history()
        return closed

    async def switch_to(self, session_id: str) -> Session:
        session = await self._registry.switch_to(session_id)
        await self._load_active_history()
        return session

    async def save(self, session_id: str | None = None) -> bool:
        return await self._registry.save(session_id)

    # ------------------------------------------------------------------
    # Buffer intents
    # ------------------------------------------------------------------
    def edit(self, text: str, cursor: int | None = None) -> bool:
        dirty = self._registry.apply_edit(text, cursor)
        self._completion.notify_edit()
        return dirty

    def type_text(self, text: str) -> int:
        cursor = self._registry.insert_at_cursor(text)
        self._completion.notify_edit()
        return cursor

    def move_cursor(self, cursor: int) -> int:
        position = self._registry.move_cursor(cursor)
        self._completion.notify_cursor_moved()
        return position

    def accept_suggestion(self) -> str | None:
        return self._completion.accept()

    def dismiss_suggestion(self) -> None:
        self._completion.dismiss()

    # ------------------------------------------------------------------
    # Chat intents
    # ------------------------------------------------------------------
    async def send_chat(self, text: str) -> asyncio.Task[None]:
        snapshot = self._registry.snapshot()
        return await self._stream.send_message(
            text,
            self._registry.active_context_key,
            code=snapshot.text if snapshot else "",
            language=snapshot.language if snapshot else None,
        )

    async def stop_chat(self) -> bool:
        return await self._stream.stop(self._registry.active_context_key)

    async def retry_chat(self) -> asyncio.Task[None]:
        return await self._stream.retry(self._registry.active_context_key)

    async def clear_chat(self) -> None:
        await self._stream.clear(self._registry.active_context_key)

    # ------------------------------------------------------------------
    # Quick open
    # ------------------------------------------------------------------
    async def quick_open(self, query: str, root: Path | str | None = None) -> List[FuzzyCandidate]:
        search_root = root or self._workspace_root or Path.cwd()
        recent_store = self._registry.recent_files
        recent = list(recent_store.list()) if recent_store is not None else []
        return await quick_open(
            query,
            search_root,
            recent=recent,
            limit=self._settings.quick_open_limit,
            excluded=self._settings.excluded_directories,
        )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def view(self) -> EditorView:
        registry = self._registry
        active_id = registry.active_session_id
        suggestion = self._completion.suggestion
        context_key = self._stream.active_context_key
        return EditorView(
            sessions=tuple(
                SessionView(
                    session_id=session.id,
                    title=session.display_title,
                    path=str(session.path),
                    language=session.language,
                    dirty=session.dirty,
                    active=session.id == active_id,
                )
                for session in registry.sessions()
            ),
            active_session_id=active_id,
            buffer_text=registry.buffer_text,
            cursor=registry.cursor,
            suggestion=suggestion.text if suggestion is not None else None,
            completion_state=self._completion.state,
            context_key=context_key,
            messages=tuple(self._stream.visible_messages(context_key)),
            streaming=self._stream.is_streaming(context_key),
        )

    async def aclose(self) -> None:
        self.event_bus.unsubscribe(ActiveSessionChanged, self._handle_active_session_changed)
        await self._completion.aclose()
        await self._stream.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _insert_suggestion(self, text: str) -> None:
        self._registry.insert_at_cursor(text)

    def _handle_active_session_changed(self, event: ActiveSessionChanged) -> None:
        self._completion.reset()
        self._stream.set_active_context(event.context_key)

    async def _load_active_history(self) -> None:
        await self._stream.conversation(self._stream.active_context_key)
