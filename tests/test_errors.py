"""Tests for the error hierarchy."""

from __future__ import annotations

from quillpad.errors import (
    DocumentIOError,
    ErrorCode,
    ProviderError,
    QuillpadError,
    ValidationError,
)


class TestErrorCode:
    """Tests for ErrorCode constants."""

    def test_document_errors(self) -> None:
        assert ErrorCode.READ_FAILED == "read_failed"
        assert ErrorCode.WRITE_FAILED == "write_failed"

    def test_validation_errors(self) -> None:
        assert ErrorCode.SESSION_NOT_FOUND == "session_not_found"
        assert ErrorCode.EMPTY_MESSAGE == "empty_message"


class TestQuillpadError:
    """Tests for the base error class."""

    def test_str_includes_code(self) -> None:
        error = QuillpadError(error_code="boom", message="Something went wrong")

        assert str(error) == "[boom] Something went wrong"
        assert error.args == ("Something went wrong",)
        assert error.severity == "error"

    def test_to_dict_omits_empty_details(self) -> None:
        error = QuillpadError(error_code="boom", message="m")

        assert error.to_dict() == {"error": "boom", "message": "m"}

    def test_to_dict_includes_details(self) -> None:
        error = QuillpadError(error_code="boom", message="m", details={"k": 1})

        assert error.to_dict()["details"] == {"k": 1}


class TestDocumentIOError:
    """Tests for DocumentIOError factories."""

    def test_read_failed(self) -> None:
        error = DocumentIOError.read_failed("/tmp/a.ts", "No such file")

        assert error.error_code == ErrorCode.READ_FAILED
        assert error.path == "/tmp/a.ts"
        assert error.details == {"path": "/tmp/a.ts"}
        assert "No such file" in error.message

    def test_write_failed(self) -> None:
        error = DocumentIOError.write_failed("/tmp/a.ts", "disk full")

        assert error.error_code == ErrorCode.WRITE_FAILED
        assert isinstance(error, QuillpadError)


class TestSeverity:
    def test_validation_is_warning(self) -> None:
        assert ValidationError().severity == "warning"
        assert ProviderError().severity == "error"
        assert ProviderError().error_code == ErrorCode.PROVIDER_FAILED
