"""Persistence for chat histories keyed by conversation context."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Protocol, Sequence, runtime_checkable

from ..chat.message_model import ChatMessage
from ..utils.file_io import write_text

__all__ = ["PersistedConversationStore", "JsonConversationStore", "InMemoryConversationStore"]

LOGGER = logging.getLogger(__name__)
_STORE_VERSION = 1
_SLUG_RE = re.compile(r"[^A-Za-z0-9._-]+")


@runtime_checkable
class PersistedConversationStore(Protocol):
    """Loads and saves the message list for a context key."""

    async def load(self, context_key: str) -> list[ChatMessage]:
        ...

    async def save(self, context_key: str, messages: Sequence[ChatMessage]) -> None:
        ...


class JsonConversationStore:
    """Stores one JSON document per context key inside ``directory``.

    File names combine a readable slug of the key with a digest of the full
    key, so distinct paths that slug identically never share a file.
    """

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory).expanduser()
        self._locks: Dict[str, asyncio.Lock] = {}

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, context_key: str) -> Path:
        digest = hashlib.sha1(context_key.encode("utf-8")).hexdigest()[:12]
        slug = _SLUG_RE.sub("_", Path(context_key).name).strip("._") or "conversation"
        return self._directory / f"{slug}-{digest}.json"

    async def load(self, context_key: str) -> list[ChatMessage]:
        payload = await asyncio.to_thread(self._read_payload, self.path_for(context_key))
        return _coerce_messages(payload.get("messages"))

    async def save(self, context_key: str, messages: Sequence[ChatMessage]) -> None:
        """Write ``messages`` for ``context_key``.

        Saves for one key are serialized in call order, so the file always ends
        up holding the most recently requested snapshot.
        """

        payload = {
            "version": _STORE_VERSION,
            "context_key": context_key,
            "messages": [message.to_dict() for message in messages],
        }
        lock = self._locks.setdefault(context_key, asyncio.Lock())
        async with lock:
            await asyncio.to_thread(self._write_payload, self.path_for(context_key), payload)

    def _read_payload(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Conversation file %s is not valid JSON: %s", path, exc)
            return {}
        return dict(data) if isinstance(data, Mapping) else {}

    def _write_payload(self, path: Path, payload: Mapping[str, Any]) -> None:
        write_text(path, json.dumps(payload, indent=2, ensure_ascii=False))


class InMemoryConversationStore:
    """Process-local store, used when no conversation directory is configured."""

    def __init__(self) -> None:
        self._data: dict[str, list[Dict[str, Any]]] = {}

    async def load(self, context_key: str) -> list[ChatMessage]:
        return _coerce_messages(self._data.get(context_key))

    async def save(self, context_key: str, messages: Sequence[ChatMessage]) -> None:
        self._data[context_key] = [message.to_dict() for message in messages]


def _coerce_messages(value: Any) -> list[ChatMessage]:
    if not isinstance(value, list):
        return []
    result: list[ChatMessage] = []
    for entry in value:
        if not isinstance(entry, Mapping):
            continue
        message = ChatMessage.from_dict(entry)
        if message is not None:
            result.append(message)
    return result
