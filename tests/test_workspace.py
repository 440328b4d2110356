"""Unit tests for the session registry."""

from __future__ import annotations

import asyncio

import pytest

from quillpad.editor.workspace import SessionRegistry, context_key_for
from quillpad.errors import DocumentIOError, ErrorCode, ValidationError
from quillpad.ui.events import (
    ActiveSessionChanged,
    SessionClosed,
    SessionDirtyChanged,
    SessionOpened,
    SessionSaveFailed,
    SessionSaved,
)

from tests.helpers import MemoryDocumentStore, MemoryRecentFiles, collect


def _assert_dirty_invariant(registry: SessionRegistry) -> None:
    for session in registry.sessions():
        entry = registry.content_cache.require(session.id)
        assert session.dirty == (entry.current != entry.baseline)


@pytest.mark.asyncio
async def test_open_creates_session_and_activates_it(registry: SessionRegistry, event_bus) -> None:
    opened = collect(event_bus, SessionOpened)
    activated = collect(event_bus, ActiveSessionChanged)

    session = await registry.open("a.ts")

    assert registry.active_session_id == session.id
    assert registry.buffer_text == "X"
    assert session.title == "a.ts"
    assert session.language == "typescript"
    assert session.dirty is False
    assert [event.session_id for event in opened] == [session.id]
    assert activated[-1].context_key == "a.ts"


@pytest.mark.asyncio
async def test_open_same_locator_twice_returns_same_session(
    registry: SessionRegistry, document_store: MemoryDocumentStore
) -> None:
    first = await registry.open("a.ts")
    await registry.open("b.ts")
    second = await registry.open("./a.ts")

    assert second.id == first.id
    assert len(registry) == 2
    assert registry.active_session_id == first.id
    assert document_store.reads.count("a.ts") == 1


@pytest.mark.asyncio
async def test_concurrent_open_of_same_path_creates_one_session(document_store: MemoryDocumentStore) -> None:
    registry = SessionRegistry(document_store)
    document_store.read_gate = asyncio.Event()

    first = asyncio.create_task(registry.open("a.ts"))
    second = asyncio.create_task(registry.open("a.ts"))
    await asyncio.sleep(0)
    document_store.read_gate.set()
    a, b = await asyncio.gather(first, second)

    assert a.id == b.id
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_open_failure_creates_no_session(registry: SessionRegistry) -> None:
    with pytest.raises(DocumentIOError) as excinfo:
        await registry.open("missing.ts")

    assert excinfo.value.error_code == ErrorCode.READ_FAILED
    assert len(registry) == 0
    assert registry.active_session_id is None


@pytest.mark.asyncio
async def test_open_records_recent_file(registry: SessionRegistry, recent_files: MemoryRecentFiles) -> None:
    await registry.open("a.ts")
    await registry.open("b.ts")
    await registry.open("a.ts")

    assert recent_files.list() == ("b.ts", "a.ts")


@pytest.mark.asyncio
async def test_recent_file_failure_does_not_block_open(document_store: MemoryDocumentStore) -> None:
    class _BrokenRecent:
        def list(self):
            return ()

        def add(self, path: str) -> None:
            raise OSError("read-only settings")

    registry = SessionRegistry(document_store, recent_files=_BrokenRecent())

    session = await registry.open("a.ts")

    assert registry.active_session_id == session.id


@pytest.mark.asyncio
async def test_edit_switch_round_trip_preserves_buffer_and_dirty(registry: SessionRegistry) -> None:
    a = await registry.open("a.ts")
    registry.apply_edit("XY")
    b = await registry.open("b.ts")

    assert registry.buffer_text == "const b = 1;\n"

    await registry.switch_to(b.id)
    await registry.switch_to(a.id)

    assert registry.buffer_text == "XY"
    assert registry.is_dirty(a.id) is True
    assert registry.is_dirty(b.id) is False
    _assert_dirty_invariant(registry)


@pytest.mark.asyncio
async def test_dirty_flag_tracks_baseline(registry: SessionRegistry, event_bus) -> None:
    changes = collect(event_bus, SessionDirtyChanged)
    session = await registry.open("a.ts")

    assert registry.apply_edit("XY") is True
    assert registry.apply_edit("X") is False
    _assert_dirty_invariant(registry)
    assert [event.dirty for event in changes] == [True, False]
    assert session.display_title == "a.ts"


@pytest.mark.asyncio
async def test_switch_restores_cursor(registry: SessionRegistry) -> None:
    a = await registry.open("a.ts")
    registry.apply_edit("hello", cursor=3)
    b = await registry.open("b.ts")
    registry.move_cursor(5)

    await registry.switch_to(a.id)
    assert registry.cursor == 3
    await registry.switch_to(b.id)
    assert registry.cursor == 5


@pytest.mark.asyncio
async def test_switch_rereads_evicted_cache(registry: SessionRegistry, document_store: MemoryDocumentStore) -> None:
    a = await registry.open("a.ts")
    await registry.open("b.ts")
    registry.content_cache.evict(a.id)
    document_store.files["a.ts"] = "fresh"

    await registry.switch_to(a.id)

    assert registry.buffer_text == "fresh"
    assert document_store.reads.count("a.ts") == 2
    assert registry.is_dirty(a.id) is False


@pytest.mark.asyncio
async def test_switch_to_unknown_session_raises(registry: SessionRegistry) -> None:
    with pytest.raises(ValidationError) as excinfo:
        await registry.switch_to("nope")
    assert excinfo.value.error_code == ErrorCode.SESSION_NOT_FOUND


@pytest.mark.asyncio
async def test_close_dirty_session_declined_leaves_list_unchanged(registry: SessionRegistry) -> None:
    a = await registry.open("a.ts")
    registry.apply_edit("XY")

    assert await registry.close(a.id, confirm=lambda _session: False) is False
    assert await registry.close(a.id) is False
    assert registry.session_ids() == (a.id,)
    assert registry.active_session_id == a.id
    assert registry.buffer_text == "XY"


@pytest.mark.asyncio
async def test_close_dirty_session_with_async_confirm(registry: SessionRegistry, event_bus) -> None:
    closed = collect(event_bus, SessionClosed)
    a = await registry.open("a.ts")
    registry.apply_edit("XY")

    async def _confirm(session) -> bool:
        assert session.id == a.id
        return True

    assert await registry.close(a.id, confirm=_confirm) is True
    assert len(registry) == 0
    assert a.id not in registry.content_cache
    assert [event.session_id for event in closed] == [a.id]


@pytest.mark.asyncio
async def test_closing_active_session_activates_last_remaining(registry: SessionRegistry, document_store) -> None:
    document_store.files["c.ts"] = "c"
    a = await registry.open("a.ts")
    b = await registry.open("b.ts")
    c = await registry.open("c.ts")
    await registry.switch_to(b.id)

    assert await registry.close(b.id) is True
    assert registry.active_session_id == c.id
    assert registry.buffer_text == "c"

    assert await registry.close(c.id) is True
    assert registry.active_session_id == a.id


@pytest.mark.asyncio
async def test_closing_last_session_resets_buffer(registry: SessionRegistry, event_bus) -> None:
    activated = collect(event_bus, ActiveSessionChanged)
    a = await registry.open("a.ts")

    await registry.close(a.id)

    assert registry.active_session is None
    assert registry.buffer_text == ""
    assert registry.snapshot() is None
    assert activated[-1].session_id is None
    assert activated[-1].context_key == "default"


@pytest.mark.asyncio
async def test_save_success_moves_baseline(registry: SessionRegistry, document_store, event_bus) -> None:
    saved = collect(event_bus, SessionSaved)
    a = await registry.open("a.ts")
    registry.apply_edit("XY")

    assert await registry.save() is True

    entry = registry.content_cache.require(a.id)
    assert entry.baseline == entry.current == "XY"
    assert registry.is_dirty(a.id) is False
    assert document_store.files["a.ts"] == "XY"
    assert [event.session_id for event in saved] == [a.id]


@pytest.mark.asyncio
async def test_save_failure_keeps_session_dirty(registry: SessionRegistry, document_store, event_bus) -> None:
    failures = collect(event_bus, SessionSaveFailed)
    a = await registry.open("a.ts")
    registry.apply_edit("XY")
    document_store.fail_writes = True

    with pytest.raises(DocumentIOError) as excinfo:
        await registry.save()

    assert excinfo.value.error_code == ErrorCode.WRITE_FAILED
    assert registry.is_dirty(a.id) is True
    assert registry.content_cache.require(a.id).baseline == "X"
    assert len(failures) == 1

    document_store.fail_writes = False
    assert await registry.save(a.id) is True


@pytest.mark.asyncio
async def test_edit_during_save_keeps_session_dirty(registry: SessionRegistry, document_store) -> None:
    a = await registry.open("a.ts")
    registry.apply_edit("XY")
    document_store.write_gate = asyncio.Event()

    pending = asyncio.create_task(registry.save())
    await asyncio.sleep(0)
    registry.apply_edit("XYZ")
    document_store.write_gate.set()

    assert await pending is False
    assert document_store.files["a.ts"] == "XY"
    assert registry.is_dirty(a.id) is True
    _assert_dirty_invariant(registry)


@pytest.mark.asyncio
async def test_save_without_active_session_raises(registry: SessionRegistry) -> None:
    with pytest.raises(ValidationError) as excinfo:
        await registry.save()
    assert excinfo.value.error_code == ErrorCode.NO_ACTIVE_SESSION


@pytest.mark.asyncio
async def test_insert_at_cursor_moves_cursor_after_text(registry: SessionRegistry) -> None:
    await registry.open("a.ts")
    registry.move_cursor(1)

    assert registry.insert_at_cursor("YZ") == 3
    assert registry.buffer_text == "XYZ"


@pytest.mark.asyncio
async def test_snapshot_is_captured_by_value(registry: SessionRegistry) -> None:
    await registry.open("a.ts")
    registry.apply_edit("abc", cursor=2)
    snapshot = registry.snapshot()
    registry.apply_edit("abcdef", cursor=6)

    assert snapshot is not None
    assert snapshot.text == "abc"
    assert snapshot.prefix == "ab"
    assert snapshot.suffix == "c"
    assert snapshot.language == "typescript"


@pytest.mark.asyncio
async def test_serialize_state_lists_sessions(registry: SessionRegistry) -> None:
    a = await registry.open("a.ts")
    b = await registry.open("b.ts")

    state = registry.serialize_state()

    assert [entry["session_id"] for entry in state["open_sessions"]] == [a.id, b.id]
    assert state["active_session_id"] == b.id


def test_context_key_for_defaults_without_session() -> None:
    assert context_key_for(None) == "default"
