"""Provider contracts consumed by the completion and chat coordinators.

The coordinators only see :class:`SuggestionProvider` and
:class:`ConversationProvider`. The client-backed implementations below adapt
:class:`~quillpad.ai.client.AIClient` and translate every backend failure into
:class:`~quillpad.errors.ProviderError`.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Protocol, runtime_checkable

import httpx
from openai import OpenAIError

from ..editor.document_model import BufferSnapshot
from ..errors import ErrorCode, ProviderError
from . import prompts
from .client import AIClient

__all__ = [
    "ChatContext",
    "ChunkCallback",
    "ClientConversationProvider",
    "ClientSuggestionProvider",
    "ConversationProvider",
    "SuggestionProvider",
]

LOGGER = logging.getLogger(__name__)

ChunkCallback = Callable[[str], "Awaitable[None] | None"]


@dataclass(slots=True)
class ChatContext:
    """Everything a chat request needs besides the user's text."""

    context_key: str
    history: List[Dict[str, str]] = field(default_factory=list)
    code: str = ""
    language: str | None = None


@runtime_checkable
class SuggestionProvider(Protocol):
    """Single-shot inline completion backend."""

    async def request_completion(
        self,
        buffer_snapshot: BufferSnapshot,
        cursor_offset: int,
        language_hint: str | None,
    ) -> str:
        ...


@runtime_checkable
class ConversationProvider(Protocol):
    """Streaming chat backend delivering text deltas through ``on_chunk``."""

    async def send_streaming(self, text: str, context: ChatContext, on_chunk: ChunkCallback) -> None:
        ...


def _unavailable() -> ProviderError:
    return ProviderError(
        error_code=ErrorCode.PROVIDER_UNAVAILABLE,
        message="AI provider not configured. Set an API key and model first.",
    )


def _wrap(exc: BaseException) -> ProviderError:
    return ProviderError(
        error_code=ErrorCode.PROVIDER_FAILED,
        message=str(exc) or type(exc).__name__,
        details={"exception": type(exc).__name__},
    )


class ClientSuggestionProvider:
    """Requests inline completions from an OpenAI-compatible endpoint."""

    def __init__(
        self,
        client: AIClient | None,
        *,
        model: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 150,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def request_completion(
        self,
        buffer_snapshot: BufferSnapshot,
        cursor_offset: int,
        language_hint: str | None,
    ) -> str:
        if self._client is None:
            raise _unavailable()
        snapshot = buffer_snapshot
        if cursor_offset != snapshot.cursor or (language_hint and language_hint != snapshot.language):
            snapshot = BufferSnapshot(
                session_id=snapshot.session_id,
                text=snapshot.text,
                cursor=cursor_offset,
                language=language_hint or snapshot.language,
                path=snapshot.path,
            )
        filename = Path(snapshot.path).name if snapshot.path else None
        try:
            raw = await self._client.complete(
                prompts.completion_messages(snapshot, filename=filename),
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                model=self._model,
            )
        except (OpenAIError, httpx.HTTPError) as exc:
            raise _wrap(exc) from exc
        return prompts.clean_completion(raw)


class ClientConversationProvider:
    """Streams chat replies from an OpenAI-compatible endpoint."""

    def __init__(
        self,
        client: AIClient | None,
        *,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        system_prompt: str | None = None,
    ) -> None:
        self._client = client
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._system_prompt = system_prompt

    async def send_streaming(self, text: str, context: ChatContext, on_chunk: ChunkCallback) -> None:
        if self._client is None:
            raise _unavailable()
        messages = prompts.chat_messages(
            text,
            history=context.history,
            code=context.code,
            language=context.language,
            system_prompt=self._system_prompt,
        )
        try:
            async for event in self._client.stream_chat(
                messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            ):
                if event.type != "content.delta" or not event.content:
                    continue
                result: Any = on_chunk(event.content)
                if inspect.isawaitable(result):
                    await result
        except (OpenAIError, httpx.HTTPError) as exc:
            raise _wrap(exc) from exc
