"""Shared test helpers and stub collaborators.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Sequence, Type, TypeVar

from quillpad.ai.providers import ChatContext, ChunkCallback
from quillpad.editor.document_model import BufferSnapshot
from quillpad.errors import DocumentIOError, ProviderError
from quillpad.ui.events import Event, EventBus

E = TypeVar("E", bound=Event)


class MemoryDocumentStore:
    """In-memory :class:`DocumentStore` with switchable failures.

    Example:
        store = MemoryDocumentStore({"a.ts": "X"})
        store.fail_writes = True
    """

    def __init__(self, files: Dict[str, str] | None = None) -> None:
        self.files: Dict[str, str] = dict(files or {})
        self.reads: List[str] = []
        self.writes: List[tuple[str, str]] = []
        self.fail_reads = False
        self.fail_writes = False
        self.write_gate: asyncio.Event | None = None
        self.read_gate: asyncio.Event | None = None

    async def read_file(self, path: str) -> str:
        self.reads.append(path)
        if self.read_gate is not None:
            await self.read_gate.wait()
        if self.fail_reads or path not in self.files:
            raise DocumentIOError.read_failed(path, "No such file")
        return self.files[path]

    async def write_file(self, path: str, content: str) -> None:
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.fail_writes:
            raise DocumentIOError.write_failed(path, "Disk full")
        self.writes.append((path, content))
        self.files[path] = content


class MemoryRecentFiles:
    def __init__(self) -> None:
        self.paths: List[str] = []

    def list(self) -> Sequence[str]:
        return tuple(self.paths)

    def add(self, path: str) -> None:
        if path in self.paths:
            self.paths.remove(path)
        self.paths.insert(0, path)


class FakeSuggestionProvider:
    """Suggestion provider answering with ``response`` or parking until released."""

    def __init__(self, response: str = "suggestion()", *, hold: bool = False) -> None:
        self.response = response
        self.hold = hold
        self.calls: List[tuple[BufferSnapshot, int, str | None]] = []
        self.error: BaseException | None = None
        self._waiters: List[asyncio.Future[str]] = []

    async def request_completion(
        self,
        buffer_snapshot: BufferSnapshot,
        cursor_offset: int,
        language_hint: str | None,
    ) -> str:
        self.calls.append((buffer_snapshot, cursor_offset, language_hint))
        if self.error is not None:
            raise self.error
        if not self.hold:
            return self.response
        waiter: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        return await waiter

    def release(self, index: int, text: str) -> None:
        self._waiters[index].set_result(text)


class FakeConversationProvider:
    """Conversation provider delivering scripted chunks.

    With ``hold=True`` each call waits for :meth:`release` before sending its
    chunks, which lets tests interleave ``stop()`` with a live request.
    """

    def __init__(self, chunks: Sequence[str] = ("He", "llo"), *, hold: bool = False) -> None:
        self.chunks = list(chunks)
        self.hold = hold
        self.error: ProviderError | None = None
        self.calls: List[tuple[str, ChatContext]] = []
        self.callbacks: List[ChunkCallback] = []
        self._gate = asyncio.Event()

    async def send_streaming(self, text: str, context: ChatContext, on_chunk: ChunkCallback) -> None:
        self.calls.append((text, context))
        self.callbacks.append(on_chunk)
        if self.hold:
            await self._gate.wait()
        for chunk in self.chunks:
            on_chunk(chunk)
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error

    def release(self) -> None:
        self._gate.set()


def collect(bus: EventBus, event_type: Type[E]) -> List[E]:
    """Subscribe a list-appending handler and return the list."""

    received: List[E] = []
    bus.subscribe(event_type, received.append)
    return received
