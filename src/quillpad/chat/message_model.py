"""Chat message and conversation data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Literal, Mapping

ChatRole = Literal["user", "assistant"]
_ROLES: frozenset[str] = frozenset({"user", "assistant"})


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ChatMessage:
    """Represents a row inside the chat history list."""

    role: ChatRole
    content: str
    created_at: datetime = field(default_factory=_utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return bool(self.metadata.get("error"))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for persistence."""

        payload: Dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }
        if self.metadata:
            payload["metadata"] = dict(self.metadata)
        return payload

    def as_prompt_message(self) -> Dict[str, str]:
        """Return the ``{"role", "content"}`` mapping sent to chat providers."""

        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ChatMessage | None":
        """Rebuild a message from :meth:`to_dict` output; malformed rows yield ``None``."""

        role = payload.get("role")
        content = payload.get("content")
        if role not in _ROLES or not isinstance(content, str):
            return None
        created_at = _utcnow()
        raw_created = payload.get("created_at")
        if isinstance(raw_created, str):
            try:
                created_at = datetime.fromisoformat(raw_created)
            except ValueError:
                pass
        metadata = payload.get("metadata")
        return cls(
            role=role,
            content=content,
            created_at=created_at,
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )


@dataclass(slots=True)
class Conversation:
    """Ordered message history persisted under ``context_key``."""

    context_key: str
    messages: list[ChatMessage] = field(default_factory=list)

    def append(self, message: ChatMessage) -> ChatMessage:
        self.messages.append(message)
        return message

    def last_user_message(self) -> ChatMessage | None:
        for message in reversed(self.messages):
            if message.role == "user":
                return message
        return None

    def history(self) -> list[Dict[str, str]]:
        """Prompt-ready history, excluding error placeholders."""

        return [message.as_prompt_message() for message in self.messages if not message.is_error]

    def clear(self) -> None:
        self.messages.clear()

    @classmethod
    def from_messages(cls, context_key: str, messages: Iterable[ChatMessage]) -> "Conversation":
        return cls(context_key=context_key, messages=list(messages))
