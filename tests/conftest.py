"""Shared pytest fixtures."""

from __future__ import annotations

import logging

import pytest

from quillpad.editor.workspace import SessionRegistry
from quillpad.ui.events import EventBus

from tests.helpers import MemoryDocumentStore, MemoryRecentFiles


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in (
        "QUILLPAD_API_KEY",
        "QUILLPAD_BASE_URL",
        "QUILLPAD_MODEL",
        "QUILLPAD_COMPLETION_MODEL",
        "QUILLPAD_ORGANIZATION",
        "QUILLPAD_CONVERSATION_DIR",
        "QUILLPAD_DEBUG_LOGGING",
        "QUILLPAD_COMPLETION_ENABLED",
        "QUILLPAD_REQUEST_TIMEOUT",
        "QUILLPAD_CHAT_TEMPERATURE",
        "QUILLPAD_COMPLETION_DEBOUNCE_MS",
        "QUILLPAD_DEBUG",
        "QUILLPAD_SETTINGS_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("QUILLPAD_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def document_store() -> MemoryDocumentStore:
    return MemoryDocumentStore({"a.ts": "X", "b.ts": "const b = 1;\n"})


@pytest.fixture
def recent_files() -> MemoryRecentFiles:
    return MemoryRecentFiles()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def registry(document_store: MemoryDocumentStore, recent_files: MemoryRecentFiles, event_bus: EventBus) -> SessionRegistry:
    return SessionRegistry(document_store, recent_files=recent_files, event_bus=event_bus)


@pytest.fixture
def caplog_debug(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    caplog.set_level(logging.DEBUG, logger="quillpad")
    return caplog
