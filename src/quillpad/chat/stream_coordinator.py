"""Epoch-guarded streaming chat coordinator with per-context persisted history.

Each context key owns a :class:`StreamState`. Sending a message, stopping,
or clearing bumps that state's generation; chunks and completions are tagged
with the generation they were issued under and applied only while it is still
current. Cancelling a stream therefore never touches the network call: the
provider keeps delivering, and everything it delivers is dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List

from ..ai.providers import ChatContext, ConversationProvider
from ..errors import ErrorCode, ProviderError, ValidationError
from ..ui.events import (
    ConversationCleared,
    Event,
    EventBus,
    StreamChunk,
    StreamCompleted,
    StreamFailed,
    StreamStarted,
    StreamStopped,
)
from .message_model import ChatMessage, Conversation

if TYPE_CHECKING:  # pragma: no cover
    from ..services.conversation_store import PersistedConversationStore

__all__ = ["DEFAULT_CONTEXT_KEY", "StreamCoordinator", "StreamState"]

LOGGER = logging.getLogger(__name__)
DEFAULT_CONTEXT_KEY = "default"


@dataclass(slots=True)
class StreamState:
    """Live stream bookkeeping for one context key."""

    generation: int = 0
    accumulated_text: str = ""
    streaming: bool = False


class StreamCoordinator:
    """Sends chat messages and folds streamed replies into conversations."""

    def __init__(
        self,
        provider: ConversationProvider,
        store: "PersistedConversationStore",
        *,
        event_bus: EventBus | None = None,
        active_context_key: str = DEFAULT_CONTEXT_KEY,
    ) -> None:
        self._provider = provider
        self._store = store
        self._bus = event_bus
        self._active_key = active_context_key or DEFAULT_CONTEXT_KEY
        self._states: Dict[str, StreamState] = {}
        self._conversations: Dict[str, Conversation] = {}
        self._loading: Dict[str, asyncio.Task[List[ChatMessage]]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Context handling
    # ------------------------------------------------------------------
    @property
    def active_context_key(self) -> str:
        return self._active_key

    def set_active_context(self, context_key: str | None) -> str:
        self._active_key = context_key or DEFAULT_CONTEXT_KEY
        LOGGER.debug("Active chat context -> %s", self._active_key)
        return self._active_key

    def state(self, context_key: str | None = None) -> StreamState:
        key = self._resolve_key(context_key)
        state = self._states.get(key)
        if state is None:
            state = self._states[key] = StreamState()
        return state

    def is_streaming(self, context_key: str | None = None) -> bool:
        state = self._states.get(self._resolve_key(context_key))
        return bool(state and state.streaming)

    def is_loaded(self, context_key: str | None = None) -> bool:
        return self._resolve_key(context_key) in self._conversations

    async def conversation(self, context_key: str | None = None) -> Conversation:
        """Return the conversation for ``context_key``, loading it on first access."""

        key = self._resolve_key(context_key)
        cached = self._conversations.get(key)
        if cached is not None:
            return cached

        task = self._loading.get(key)
        if task is None:
            task = asyncio.ensure_future(self._store.load(key))
            self._loading[key] = task
        try:
            messages = await task
        except (OSError, ValueError) as exc:
            LOGGER.warning("Unable to load conversation for %s: %s", key, exc)
            messages = []
        finally:
            if self._loading.get(key) is task:
                del self._loading[key]

        conversation = self._conversations.get(key)
        if conversation is None:
            conversation = Conversation.from_messages(key, messages)
            self._conversations[key] = conversation
            LOGGER.debug("Loaded %d message(s) for context %s", len(messages), key)
        return conversation

    def visible_messages(self, context_key: str | None = None) -> List[ChatMessage]:
        """Persisted messages plus the in-progress assistant reply, if any."""

        key = self._resolve_key(context_key)
        conversation = self._conversations.get(key)
        messages = list(conversation.messages) if conversation is not None else []
        state = self._states.get(key)
        if state is not None and state.streaming and state.accumulated_text:
            messages.append(
                ChatMessage(
                    role="assistant",
                    content=state.accumulated_text,
                    metadata={"streaming": True},
                )
            )
        return messages

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def send_message(
        self,
        text: str,
        context_key: str | None = None,
        *,
        code: str = "",
        language: str | None = None,
    ) -> asyncio.Task[None]:
        """Start a new generation for ``context_key`` and dispatch ``text``.

        Returns the task driving the provider call; awaiting it waits for the
        stream to complete, fail, or be superseded.

        Raises:
            ValidationError: ``text`` is blank.
        """
        if not text or not text.strip():
            raise ValidationError(error_code=ErrorCode.EMPTY_MESSAGE, message="Message is empty")
        key = self._resolve_key(context_key)
        conversation = await self.conversation(key)

        state = self.state(key)
        state.generation += 1
        state.accumulated_text = ""
        state.streaming = True
        generation = state.generation

        context = ChatContext(
            context_key=key,
            history=conversation.history(),
            code=code,
            language=language,
        )
        conversation.append(ChatMessage(role="user", content=text))
        LOGGER.debug("Sending chat message (context=%s, generation=%s)", key, generation)
        self._publish(StreamStarted(context_key=key, generation=generation, prompt=text))

        task = asyncio.get_running_loop().create_task(self._run_stream(key, generation, text, context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        await self._persist(key)
        return task

    async def retry(self, context_key: str | None = None) -> asyncio.Task[None]:
        """Resend the most recent user message under a fresh generation."""

        key = self._resolve_key(context_key)
        conversation = await self.conversation(key)
        last = conversation.last_user_message()
        if last is None:
            raise ValidationError(
                error_code=ErrorCode.NOTHING_TO_RETRY,
                message="No user message to retry",
                details={"context_key": key},
            )
        LOGGER.debug("Retrying last user message for %s", key)
        return await self.send_message(last.content, key)

    async def stop(self, context_key: str | None = None) -> bool:
        """Supersede the live stream; returns False when nothing was streaming.

        Text received before the stop is kept as an assistant message.
        """
        key = self._resolve_key(context_key)
        state = self.state(key)
        was_streaming = state.streaming
        partial = state.accumulated_text
        state.generation += 1
        state.streaming = False
        state.accumulated_text = ""
        if not was_streaming:
            return False

        LOGGER.debug("Stopped stream for %s (generation now %s)", key, state.generation)
        if partial:
            conversation = await self.conversation(key)
            conversation.append(ChatMessage(role="assistant", content=partial, metadata={"stopped": True}))
            await self._persist(key)
        self._publish(StreamStopped(context_key=key, generation=state.generation))
        return True

    async def clear(self, context_key: str | None = None) -> None:
        """Start a new chat: invalidate the live stream and empty the stored history."""

        key = self._resolve_key(context_key)
        state = self.state(key)
        state.generation += 1
        state.streaming = False
        state.accumulated_text = ""
        conversation = await self.conversation(key)
        conversation.clear()
        await self._persist(key)
        self._publish(ConversationCleared(context_key=key))

    # ------------------------------------------------------------------
    # Stream callbacks
    # ------------------------------------------------------------------
    def apply_chunk(self, context_key: str, generation: int, chunk: str) -> bool:
        """Append ``chunk`` when ``generation`` is current for ``context_key``."""

        state = self._states.get(context_key)
        if state is None or generation != state.generation or not state.streaming:
            LOGGER.debug(
                "Dropping stale chunk (context=%s, chunk generation=%s, current=%s)",
                context_key,
                generation,
                state.generation if state else None,
            )
            return False
        state.accumulated_text += chunk
        self._publish(StreamChunk(context_key=context_key, generation=generation, content=chunk))
        return True

    async def complete_stream(self, context_key: str, generation: int) -> ChatMessage | None:
        state = self._states.get(context_key)
        if state is None or generation != state.generation or not state.streaming:
            LOGGER.debug("Ignoring completion of superseded stream %s/%s", context_key, generation)
            return None
        text = state.accumulated_text
        state.streaming = False
        state.accumulated_text = ""
        message: ChatMessage | None = None
        if text:
            conversation = await self.conversation(context_key)
            message = conversation.append(ChatMessage(role="assistant", content=text))
            await self._persist(context_key)
        LOGGER.debug("Stream completed (context=%s, generation=%s, chars=%d)", context_key, generation, len(text))
        self._publish(StreamCompleted(context_key=context_key, generation=generation, response_text=text))
        return message

    async def fail_stream(self, context_key: str, generation: int, error: BaseException) -> ChatMessage | None:
        state = self._states.get(context_key)
        if state is None or generation != state.generation or not state.streaming:
            LOGGER.debug("Ignoring failure of superseded stream %s/%s: %s", context_key, generation, error)
            return None
        state.streaming = False
        state.accumulated_text = ""
        reason = error.message if isinstance(error, ProviderError) else (str(error) or type(error).__name__)
        LOGGER.warning("Chat request failed for %s: %s", context_key, reason)
        conversation = await self.conversation(context_key)
        message = conversation.append(
            ChatMessage(role="assistant", content=f"Error: {reason}", metadata={"error": True})
        )
        await self._persist(context_key)
        self._publish(StreamFailed(context_key=context_key, generation=generation, error=reason))
        return message

    async def aclose(self) -> None:
        tasks = tuple(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _run_stream(self, context_key: str, generation: int, text: str, context: ChatContext) -> None:
        def on_chunk(chunk: str) -> None:
            self.apply_chunk(context_key, generation, chunk)

        try:
            await self._provider.send_streaming(text, context, on_chunk)
        except ProviderError as exc:
            await self.fail_stream(context_key, generation, exc)
            return
        except Exception as exc:
            LOGGER.exception("Conversation provider raised unexpectedly")
            await self.fail_stream(context_key, generation, exc)
            return
        await self.complete_stream(context_key, generation)

    async def _persist(self, context_key: str) -> None:
        conversation = self._conversations.get(context_key)
        if conversation is None:
            return
        try:
            await self._store.save(context_key, list(conversation.messages))
        except (OSError, ValueError, TypeError) as exc:
            LOGGER.warning("Unable to persist conversation for %s: %s", context_key, exc)

    def _resolve_key(self, context_key: str | None) -> str:
        return context_key or self._active_key

    def _publish(self, event: Event) -> None:
        if self._bus is not None:
            self._bus.publish(event)
