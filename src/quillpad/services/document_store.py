"""Document and recent-file stores consumed by the session registry.

Both contracts are ``Protocol`` classes so tests and alternative backends can
supply their own implementations. The file-backed store runs blocking disk
access in a worker thread and reports failures as :class:`DocumentIOError`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable, Protocol, Sequence, runtime_checkable

from ..errors import DocumentIOError
from ..utils.file_io import read_text, write_text
from .settings import Settings, SettingsStore

__all__ = [
    "DocumentStore",
    "FileDocumentStore",
    "RecentFilesStore",
    "SettingsRecentFilesStore",
]

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class DocumentStore(Protocol):
    """Reads and writes document content by path."""

    async def read_file(self, path: str) -> str:
        """Return the content at ``path`` or raise :class:`DocumentIOError`."""
        ...

    async def write_file(self, path: str, content: str) -> None:
        """Persist ``content`` at ``path`` or raise :class:`DocumentIOError`."""
        ...


@runtime_checkable
class RecentFilesStore(Protocol):
    """Most-recent-first list of opened paths."""

    def list(self) -> Sequence[str]:
        ...

    def add(self, path: str) -> None:
        ...


class FileDocumentStore:
    """Local filesystem implementation of :class:`DocumentStore`."""

    def __init__(self, *, encoding: str | None = None, atomic: bool = True) -> None:
        self._encoding = encoding
        self._atomic = atomic

    async def read_file(self, path: str) -> str:
        try:
            return await asyncio.to_thread(read_text, path, encoding=self._encoding)
        except (OSError, UnicodeError) as exc:
            raise DocumentIOError.read_failed(str(path), _describe(exc)) from exc

    async def write_file(self, path: str, content: str) -> None:
        try:
            await asyncio.to_thread(
                write_text,
                path,
                content,
                encoding=self._encoding or "utf-8",
                atomic=self._atomic,
            )
        except (OSError, UnicodeError) as exc:
            raise DocumentIOError.write_failed(str(path), _describe(exc)) from exc


class SettingsRecentFilesStore:
    """Recent-files list kept in :class:`Settings` and persisted on every change.

    Inside a running event loop the settings file is written from a worker
    thread; writes are chained so they land in the order of the changes.
    :meth:`flush` waits for the last one.
    """

    def __init__(
        self,
        settings: Settings,
        store: SettingsStore | None = None,
        *,
        normalizer: Callable[[str], str] | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._normalize = normalizer or _normalize_path
        self._pending: asyncio.Task[None] | None = None

    def list(self) -> Sequence[str]:
        return tuple(self._settings.recent_files)

    def add(self, path: str) -> None:
        normalized = self._normalize(path)
        limit = max(1, self._settings.max_recent_files)
        updated: list[str] = [normalized]
        for existing in self._settings.recent_files:
            if self._normalize(existing) == normalized:
                continue
            updated.append(existing)
            if len(updated) >= limit:
                break
        self._settings.recent_files = updated
        LOGGER.debug("Recent files updated: %s (total=%d)", normalized, len(updated))
        if self._store is None:
            return
        snapshot = replace(self._settings, recent_files=list(updated))
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._store.save(snapshot)
            return
        self._pending = loop.create_task(self._save_after(self._pending, self._store, snapshot))

    async def flush(self) -> None:
        """Wait until every queued settings write has finished."""

        if self._pending is not None:
            await self._pending

    async def _save_after(
        self, previous: asyncio.Task[None] | None, store: SettingsStore, snapshot: Settings
    ) -> None:
        if previous is not None:
            await previous
        try:
            await asyncio.to_thread(store.save, snapshot)
        except OSError as exc:
            LOGGER.warning("Unable to persist recent files to %s: %s", store.path, exc)


def _normalize_path(path: str) -> str:
    return str(Path(path).expanduser().resolve())


def _describe(exc: BaseException) -> str:
    if isinstance(exc, OSError) and exc.strerror:
        return exc.strerror
    return str(exc) or type(exc).__name__
