"""OpenAI-compatible client used by the completion and chat providers."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable, Mapping, cast

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIError, APIStatusError, RateLimitError
from openai.types.chat import ChatCompletionMessageParam
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..services.settings import Settings

LOGGER = logging.getLogger(__name__)

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    APIError,
    APIStatusError,
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
)


@dataclass(slots=True)
class ClientSettings:
    """Connection and retry options for :class:`AIClient`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, *, model: str | None = None) -> "ClientSettings":
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=model or settings.model,
            organization=settings.organization,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            default_headers=dict(settings.default_headers) or None,
            debug_logging=settings.debug_logging,
        )


@dataclass(slots=True)
class AIStreamEvent:
    """One normalized streaming event: a content delta or a terminal value."""

    type: str
    content: str | None = None


# Stream event type -> attribute that carries its text.
_STREAM_EVENT_FIELDS: dict[str, str] = {
    "content.delta": "delta",
    "content.done": "content",
    "refusal.done": "refusal",
}

Message = Mapping[str, Any] | ChatCompletionMessageParam


class AIClient:
    """Talks to an OpenAI-compatible endpoint for chat streams and completions."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=dict(settings.default_headers) if settings.default_headers else None,
        )

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def stream_chat(
        self,
        messages: Iterable[Message],
        *,
        temperature: float | None = 0.7,
        max_tokens: int | None = None,
        model: str | None = None,
        **extra_params: Any,
    ) -> AsyncIterator[AIStreamEvent]:
        """Stream chat completions for the provided messages.

        Retries only cover failures before the first content delta; later
        failures propagate to the caller.
        """

        payload = self._request_payload(messages, temperature, max_tokens, model, extra_params)
        LOGGER.debug("Streaming chat via %s (%d message(s))", payload["model"], len(payload["messages"]))

        emitted = False

        def _before_first_delta(exc: BaseException) -> bool:
            return not emitted and isinstance(exc, RETRYABLE_ERRORS)

        async for attempt in self._retry_policy(retry_if_exception(_before_first_delta)):
            with attempt:
                async with self._client.chat.completions.stream(**payload) as stream:
                    async for raw_event in stream:
                        event = _to_stream_event(raw_event)
                        if event is None:
                            continue
                        if event.type == "content.delta":
                            emitted = True
                        yield event

    async def complete(
        self,
        messages: Iterable[Message],
        *,
        temperature: float | None = 0.2,
        max_tokens: int | None = None,
        model: str | None = None,
        **extra_params: Any,
    ) -> str:
        """Return the assistant text of a single non-streamed completion."""

        payload = self._request_payload(messages, temperature, max_tokens, model, extra_params)
        LOGGER.debug("Requesting completion via %s", payload["model"])

        response: Any = None
        async for attempt in self._retry_policy(retry_if_exception_type(RETRYABLE_ERRORS)):
            with attempt:
                response = await self._client.chat.completions.create(**payload)
        for choice in getattr(response, "choices", None) or ():
            message = getattr(choice, "message", None)
            return str(getattr(message, "content", None) or "")
        return ""

    async def aclose(self) -> None:
        """Release the HTTP connections held by the underlying client."""

        close = getattr(self._client, "close", None)
        if close is not None and inspect.isawaitable(result := close()):
            await result

    def _retry_policy(self, retry: Any) -> AsyncRetrying:
        settings = self._settings
        return AsyncRetrying(
            retry=retry,
            stop=stop_after_attempt(max(1, settings.max_retries)),
            wait=wait_exponential(multiplier=settings.retry_min_seconds, max=settings.retry_max_seconds),
            reraise=True,
        )

    def _request_payload(
        self,
        messages: Iterable[Message],
        temperature: float | None,
        max_tokens: int | None,
        model: str | None,
        extra_params: Mapping[str, Any],
    ) -> dict[str, Any]:
        try:
            message_list = [cast(ChatCompletionMessageParam, dict(message)) for message in messages]
        except (TypeError, ValueError) as exc:
            raise TypeError("Messages must be mapping-like objects") from exc
        if not message_list:
            raise ValueError("At least one message is required to start a chat")

        payload: dict[str, Any] = {"model": model or self._settings.model, "messages": message_list}
        optional = {"temperature": temperature, "max_tokens": max_tokens}
        payload.update({key: value for key, value in optional.items() if value is not None})
        payload.update(extra_params)
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)
        return payload

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            LOGGER.debug("Prompt payload:\n%s", json.dumps(payload, ensure_ascii=False, indent=2))
        except (TypeError, ValueError):
            LOGGER.debug("Prompt payload (not JSON serializable): %r", payload)


def _to_stream_event(raw_event: Any) -> AIStreamEvent | None:
    event_type = getattr(raw_event, "type", None)
    field = _STREAM_EVENT_FIELDS.get(event_type) if isinstance(event_type, str) else None
    if field is None:
        return None
    value = getattr(raw_event, field, None)
    if event_type == "content.delta":
        # Empty deltas carry nothing worth forwarding.
        return AIStreamEvent(type=event_type, content=str(value)) if value else None
    return AIStreamEvent(type=event_type, content=value)
