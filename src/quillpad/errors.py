"""Error hierarchy shared by the session, completion, and chat layers.

Every error carries a machine-readable ``error_code`` plus a human-readable
message so the presentation layer can render it without string matching.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


class ErrorCode:
    """Constants for error codes attached to :class:`QuillpadError` instances."""

    # Document/file errors
    READ_FAILED = "read_failed"
    WRITE_FAILED = "write_failed"

    # Provider errors
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    PROVIDER_FAILED = "provider_failed"

    # Validation errors
    SESSION_NOT_FOUND = "session_not_found"
    NO_ACTIVE_SESSION = "no_active_session"
    EMPTY_MESSAGE = "empty_message"
    NOTHING_TO_RETRY = "nothing_to_retry"
    INVALID_PARAMETER = "invalid_parameter"


@dataclass
class QuillpadError(Exception):
    """Base exception class for all surfaced quillpad errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for status bars and logs."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class DocumentIOError(QuillpadError):
    """Raised when a document cannot be read from or written to its store."""

    error_code: str = field(default=ErrorCode.READ_FAILED)
    message: str = field(default="Document I/O failed")
    details: dict[str, Any] = field(default_factory=dict)
    path: str | None = field(default=None)

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.path is not None:
            self.details.setdefault("path", self.path)

    @classmethod
    def read_failed(cls, path: str, reason: str) -> "DocumentIOError":
        return cls(
            error_code=ErrorCode.READ_FAILED,
            message=f"Unable to read {path}: {reason}",
            path=path,
        )

    @classmethod
    def write_failed(cls, path: str, reason: str) -> "DocumentIOError":
        return cls(
            error_code=ErrorCode.WRITE_FAILED,
            message=f"Unable to write {path}: {reason}",
            path=path,
        )


@dataclass
class ProviderError(QuillpadError):
    """Raised when an AI backend request fails or no backend is configured."""

    error_code: str = field(default=ErrorCode.PROVIDER_FAILED)
    message: str = field(default="AI request failed")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationError(QuillpadError):
    """Raised when an operation is rejected before any state changes."""

    error_code: str = field(default=ErrorCode.INVALID_PARAMETER)
    message: str = field(default="Invalid request")
    details: dict[str, Any] = field(default_factory=dict)

    severity: ClassVar[str] = "warning"


__all__ = [
    "ErrorCode",
    "QuillpadError",
    "DocumentIOError",
    "ProviderError",
    "ValidationError",
]
