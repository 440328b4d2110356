"""Event bus and event types announcing session, suggestion, and stream changes.

The core never calls into the presentation layer directly: it publishes the
events below and widgets subscribe to the ones they render.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar
from weakref import WeakMethod

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events published on the :class:`EventBus`."""


# Event types published too often to log individually
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Session Events
# =============================================================================


@dataclass(slots=True)
class SessionOpened(Event):
    """A new session was created for ``path``."""

    session_id: str
    path: str


@dataclass(slots=True)
class SessionClosed(Event):
    """A session and its content cache entry were removed."""

    session_id: str
    path: str


@dataclass(slots=True)
class ActiveSessionChanged(Event):
    """The active session changed; ``session_id`` is ``None`` when nothing is open.

    Attributes:
        session_id: The newly active session, if any.
        context_key: The conversation context key for the new active session.
    """

    session_id: str | None
    context_key: str


@dataclass(slots=True)
class SessionDirtyChanged(Event):
    """A session's dirty flag flipped."""

    session_id: str
    dirty: bool


@dataclass(slots=True)
class SessionSaved(Event):
    """A session's buffer was written to its document store."""

    session_id: str
    path: str


@dataclass(slots=True)
class SessionSaveFailed(Event):
    """A save attempt failed; the session stays dirty."""

    session_id: str
    path: str
    error: str


# =============================================================================
# Inline Suggestion Events
# =============================================================================


@dataclass(slots=True)
class SuggestionShown(Event):
    """A completion response was accepted for display as ghost text."""

    generation: int
    text: str
    cursor_offset: int


@dataclass(slots=True)
class SuggestionCleared(Event):
    """The displayed ghost text was removed.

    Attributes:
        accepted: True when the suggestion was committed into the buffer.
    """

    accepted: bool = False


# =============================================================================
# Conversation Stream Events
# =============================================================================


@dataclass(slots=True)
class StreamStarted(Event):
    """A chat request was dispatched for ``context_key``."""

    context_key: str
    generation: int
    prompt: str


@dataclass(slots=True)
class StreamChunk(Event):
    """A chunk was appended to the in-progress assistant message."""

    context_key: str
    generation: int
    content: str


_QUIET_EVENT_TYPES.add(StreamChunk)


@dataclass(slots=True)
class StreamCompleted(Event):
    """The stream finished and its text was persisted as an assistant message."""

    context_key: str
    generation: int
    response_text: str


@dataclass(slots=True)
class StreamFailed(Event):
    """The provider failed; an error message was appended to the conversation."""

    context_key: str
    generation: int
    error: str


@dataclass(slots=True)
class StreamStopped(Event):
    """The user stopped the stream; later chunks for the old generation are dropped."""

    context_key: str
    generation: int


@dataclass(slots=True)
class ConversationCleared(Event):
    """The persisted history for ``context_key`` was emptied."""

    context_key: str


class EventBus(Generic[E]):
    """Synchronous publish/subscribe hub keyed by exact event type.

    Bound methods are held through :class:`weakref.WeakMethod` so subscribing
    does not keep the owning object alive; plain functions are held strongly.
    A handler that raises is logged and the remaining handlers still run.

    Not thread-safe: publish and subscribe from the event loop thread only.
    """

    __slots__ = ("_subscriptions",)

    def __init__(self) -> None:
        self._subscriptions: dict[type[Event], list[Callable[[], Handler | None]]] = {}

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._subscriptions.setdefault(event_type, []).append(_reference(handler))
        logger.debug("%s subscribed to %s", _describe(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        refs = self._subscriptions.get(event_type, [])
        for ref in refs:
            if ref() == handler:
                refs.remove(ref)
                break

    def publish(self, event: E) -> None:
        event_type = type(event)
        refs = self._subscriptions.get(event_type)
        if not refs:
            return
        if event_type not in _QUIET_EVENT_TYPES:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(refs))

        for ref in tuple(refs):
            handler = ref()
            if handler is None:
                if ref in refs:
                    refs.remove(ref)
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("%s failed while handling %s", _describe(handler), event_type.__name__)

    def clear(self) -> None:
        self._subscriptions.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is None:
            return sum(map(len, self._subscriptions.values()))
        return len(self._subscriptions.get(event_type, ()))


def _reference(handler: Handler) -> Callable[[], Handler | None]:
    """Return a zero-argument callable that yields ``handler`` while it is alive."""

    if inspect.ismethod(handler):
        return WeakMethod(handler)
    return lambda: handler


def _describe(handler: Handler) -> str:
    if inspect.ismethod(handler):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__qualname__", None) or repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "SessionOpened",
    "SessionClosed",
    "ActiveSessionChanged",
    "SessionDirtyChanged",
    "SessionSaved",
    "SessionSaveFailed",
    "SuggestionShown",
    "SuggestionCleared",
    "StreamStarted",
    "StreamChunk",
    "StreamCompleted",
    "StreamFailed",
    "StreamStopped",
    "ConversationCleared",
]
