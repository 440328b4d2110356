"""Debounced, generation-guarded inline completion coordinator."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable

from ..editor.document_model import BufferSnapshot
from ..errors import ProviderError
from ..ui.events import EventBus, SuggestionCleared, SuggestionShown
from .providers import SuggestionProvider

__all__ = [
    "CompletionCoordinator",
    "CompletionState",
    "InlineSuggestion",
    "SuggestionRequestToken",
]

LOGGER = logging.getLogger(__name__)

SnapshotProvider = Callable[[], "BufferSnapshot | None"]
SuggestionInserter = Callable[[str], Any]


class CompletionState(enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DISPLAYING = "displaying"


@dataclass(slots=True, frozen=True)
class SuggestionRequestToken:
    """Identifies one dispatched request and the buffer it was computed from."""

    generation: int
    buffer_snapshot: BufferSnapshot
    cursor_offset: int


@dataclass(slots=True, frozen=True)
class InlineSuggestion:
    """Ghost text currently displayed at ``cursor_offset``."""

    token: SuggestionRequestToken
    text: str

    @property
    def generation(self) -> int:
        return self.token.generation

    @property
    def cursor_offset(self) -> int:
        return self.token.cursor_offset


class CompletionCoordinator:
    """Drives the Idle → Pending → InFlight → Displaying cycle for ghost text.

    The coordinator owns exactly one debounce handle. Each request carries the
    generation current at dispatch time; a response is applied only when that
    generation still matches, so edits, cursor moves, dismissals, and session
    switches invalidate outstanding requests without cancelling them.
    """

    def __init__(
        self,
        provider: SuggestionProvider,
        snapshot_provider: SnapshotProvider,
        *,
        inserter: SuggestionInserter | None = None,
        event_bus: EventBus | None = None,
        debounce_seconds: float = 0.8,
        min_prefix_chars: int = 10,
        enabled: bool = True,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._provider = provider
        self._snapshot_provider = snapshot_provider
        self._inserter = inserter
        self._bus = event_bus
        self._debounce_seconds = max(0.0, float(debounce_seconds))
        self._min_prefix_chars = max(0, int(min_prefix_chars))
        self._enabled = enabled
        self._loop = loop
        self._timer: asyncio.TimerHandle | None = None
        self._generation = 0
        self._state = CompletionState.IDLE
        self._suggestion: InlineSuggestion | None = None
        self._requests: set[asyncio.Task[None]] = set()
        self._dispatch_count = 0

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    @property
    def state(self) -> CompletionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def suggestion(self) -> InlineSuggestion | None:
        return self._suggestion

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    @property
    def dispatch_count(self) -> int:
        """Number of requests handed to the provider since construction."""

        return self._dispatch_count

    @property
    def pending_requests(self) -> tuple[asyncio.Task[None], ...]:
        return tuple(self._requests)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = bool(value)
        if not self._enabled:
            self.dismiss()

    # ------------------------------------------------------------------
    # Input signals
    # ------------------------------------------------------------------
    def notify_edit(self) -> None:
        """Record a buffer edit: drop any ghost text and re-arm the debounce timer."""

        self._cancel_timer()
        self._clear_suggestion(accepted=False)
        if self._state is CompletionState.IN_FLIGHT:
            self._invalidate("edit while in flight")
        if not self._enabled:
            self._set_state(CompletionState.IDLE)
            return
        loop = self._loop or asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce_seconds, self._on_timer)
        self._set_state(CompletionState.PENDING)

    def notify_cursor_moved(self) -> None:
        """A cursor move without an edit dismisses the suggestion."""

        self.dismiss()

    def accept(self) -> str | None:
        """Commit the displayed suggestion at the cursor; returns the inserted text."""

        suggestion = self._suggestion
        if self._state is not CompletionState.DISPLAYING or suggestion is None:
            return None
        self._cancel_timer()
        self._suggestion = None
        self._set_state(CompletionState.IDLE)
        self._publish(SuggestionCleared(accepted=True))
        if self._inserter is not None:
            self._inserter(suggestion.text)
        LOGGER.debug("Accepted suggestion (generation=%s, chars=%d)", suggestion.generation, len(suggestion.text))
        return suggestion.text

    def dismiss(self) -> None:
        self._cancel_timer()
        if self._state is CompletionState.IN_FLIGHT:
            self._invalidate("dismissed")
        self._clear_suggestion(accepted=False)
        self._set_state(CompletionState.IDLE)

    def reset(self) -> None:
        """Invalidate everything outstanding; used when the active session changes."""

        self._cancel_timer()
        self._invalidate("reset")
        self._clear_suggestion(accepted=False)
        self._set_state(CompletionState.IDLE)

    def trigger_now(self) -> SuggestionRequestToken | None:
        """Skip the quiescence wait and fire the timer immediately."""

        self._cancel_timer()
        return self._fire()

    async def aclose(self) -> None:
        self.reset()
        tasks = tuple(self._requests)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._requests.clear()

    # ------------------------------------------------------------------
    # Timer and request handling
    # ------------------------------------------------------------------
    def _on_timer(self) -> None:
        self._timer = None
        self._fire()

    def _fire(self) -> SuggestionRequestToken | None:
        if not self._enabled:
            self._set_state(CompletionState.IDLE)
            return None
        snapshot = self._snapshot_provider()
        if snapshot is None or len(snapshot.prefix.strip()) < self._min_prefix_chars:
            self._set_state(CompletionState.IDLE)
            return None

        self._generation += 1
        token = SuggestionRequestToken(
            generation=self._generation,
            buffer_snapshot=snapshot,
            cursor_offset=snapshot.cursor,
        )
        self._dispatch_count += 1
        self._set_state(CompletionState.IN_FLIGHT)
        LOGGER.debug(
            "Dispatching completion request (generation=%s, cursor=%s, language=%s)",
            token.generation,
            token.cursor_offset,
            snapshot.language,
        )
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self._run_request(token))
        self._requests.add(task)
        task.add_done_callback(self._requests.discard)
        return token

    async def _run_request(self, token: SuggestionRequestToken) -> None:
        snapshot = token.buffer_snapshot
        try:
            result: Any = self._provider.request_completion(snapshot, token.cursor_offset, snapshot.language)
            if inspect.isawaitable(result):
                result = await result
        except ProviderError as exc:
            LOGGER.warning("Completion request failed (generation=%s): %s", token.generation, exc)
            self._finish_without_result(token)
            return
        except Exception:
            LOGGER.exception("Completion provider raised unexpectedly (generation=%s)", token.generation)
            self._finish_without_result(token)
            return
        self.apply_response(token, result if isinstance(result, str) else "")

    def apply_response(self, token: SuggestionRequestToken, text: str) -> bool:
        """Display ``text`` when ``token`` is still current; returns whether it was applied."""

        if token.generation != self._generation or self._state is not CompletionState.IN_FLIGHT:
            LOGGER.debug(
                "Discarding stale completion (token=%s, current=%s)",
                token.generation,
                self._generation,
            )
            return False
        if not text.strip():
            self._set_state(CompletionState.IDLE)
            return False
        self._suggestion = InlineSuggestion(token=token, text=text)
        self._set_state(CompletionState.DISPLAYING)
        self._publish(
            SuggestionShown(generation=token.generation, text=text, cursor_offset=token.cursor_offset)
        )
        return True

    def _finish_without_result(self, token: SuggestionRequestToken) -> None:
        if token.generation == self._generation and self._state is CompletionState.IN_FLIGHT:
            self._set_state(CompletionState.IDLE)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _invalidate(self, reason: str) -> None:
        self._generation += 1
        LOGGER.debug("Completion generation -> %s (%s)", self._generation, reason)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _clear_suggestion(self, *, accepted: bool) -> None:
        if self._suggestion is None:
            return
        self._suggestion = None
        self._publish(SuggestionCleared(accepted=accepted))

    def _set_state(self, state: CompletionState) -> None:
        if state is not self._state:
            LOGGER.debug("Completion state %s -> %s", self._state.value, state.value)
            self._state = state

    def _publish(self, event: SuggestionShown | SuggestionCleared) -> None:
        if self._bus is not None:
            self._bus.publish(event)
