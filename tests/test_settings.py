"""Tests for the settings persistence layer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from quillpad.services.settings import (
    SecretVault,
    Settings,
    SettingsStore,
    apply_overrides,
    redact_secret,
)


def _store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json", vault=SecretVault(key_path=tmp_path / "settings.key"))


def test_load_returns_defaults_when_file_missing(tmp_path: Path) -> None:
    settings = _store(tmp_path).load()

    assert settings == Settings()
    assert settings.completion_debounce_ms == 800
    assert settings.completion_min_prefix_chars == 10
    assert settings.max_recent_files == 20
    assert "node_modules" in settings.excluded_directories


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    store = _store(tmp_path)
    original = Settings(
        base_url="https://example.com/v1",
        api_key="super-secret",
        model="gpt-4.1-mini",
        completion_model="fast-model",
        recent_files=["/work/a.ts"],
        default_headers={"X-Test": "1"},
        completion_debounce_ms=300,
    )

    store.save(original)
    reloaded = _store(tmp_path).load()

    assert reloaded == original


def test_api_key_is_encrypted_on_disk(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save(Settings(api_key="sk-live-123456"))

    payload = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))

    assert "api_key" not in payload
    assert payload["api_key_ciphertext"] != "sk-live-123456"
    assert payload["version"] == 1
    assert (tmp_path / "settings.key").exists()


def test_load_legacy_plaintext_api_key(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text(
        json.dumps({"api_key": "legacy-key", "model": "old-model", "unknown_field": 1}),
        encoding="utf-8",
    )

    settings = _store(tmp_path).load()

    assert settings.api_key == "legacy-key"
    assert settings.model == "old-model"


def test_invalid_json_falls_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text("{not json", encoding="utf-8")

    assert _store(tmp_path).load() == Settings()


def test_undecryptable_key_is_dropped(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text(
        json.dumps({"api_key_ciphertext": "garbage"}),
        encoding="utf-8",
    )

    assert _store(tmp_path).load().api_key == ""


def test_environment_overrides_win(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = _store(tmp_path)
    store.save(Settings(model="file-model", completion_debounce_ms=500))
    monkeypatch.setenv("QUILLPAD_MODEL", "env-model")
    monkeypatch.setenv("QUILLPAD_COMPLETION_DEBOUNCE_MS", "250")
    monkeypatch.setenv("QUILLPAD_DEBUG_LOGGING", "yes")
    monkeypatch.setenv("QUILLPAD_REQUEST_TIMEOUT", "not-a-number")

    settings = store.load()

    assert settings.model == "env-model"
    assert settings.completion_debounce_ms == 250
    assert settings.debug_logging is True
    assert settings.request_timeout == 90.0


def test_cli_overrides_apply_before_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QUILLPAD_MODEL", "env-model")

    settings = _store(tmp_path).load(overrides={"model": "cli-model", "chat_max_tokens": 99})

    assert settings.model == "env-model"
    assert settings.chat_max_tokens == 99


def test_apply_overrides_ignores_unknown_and_none() -> None:
    settings = apply_overrides(Settings(), {"model": "m", "nope": 1, "organization": None})

    assert settings.model == "m"
    assert settings.organization is None


def test_derived_values() -> None:
    settings = Settings(model="chat", completion_debounce_ms=250)

    assert settings.effective_completion_model == "chat"
    assert settings.debounce_seconds == 0.25
    assert Settings(completion_model="fast").effective_completion_model == "fast"


def test_conversation_dir_defaults_under_settings_dir(tmp_path: Path) -> None:
    assert Settings().resolved_conversation_dir(tmp_path) == tmp_path / "conversations"
    assert Settings(conversation_dir=str(tmp_path / "chats")).resolved_conversation_dir() == tmp_path / "chats"


def test_redact_secret() -> None:
    assert redact_secret("") == ""
    assert redact_secret("abc") == "***"
    assert redact_secret("sk-123456") == "*****3456"
