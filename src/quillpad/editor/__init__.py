"""Session registry, content cache, and document models."""

from .content_cache import ContentCache, ContentCacheEntry, SaveCoordinator
from .document_model import BufferSnapshot, Session
from .workspace import LiveBuffer, SessionRegistry, context_key_for

__all__ = [
    "BufferSnapshot",
    "ContentCache",
    "ContentCacheEntry",
    "LiveBuffer",
    "SaveCoordinator",
    "Session",
    "SessionRegistry",
    "context_key_for",
]
