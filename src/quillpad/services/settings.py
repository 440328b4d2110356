"""Settings dataclass and its JSON persistence."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Mapping

from cryptography.fernet import Fernet, InvalidToken

from ..search.file_index import DEFAULT_EXCLUDED_DIRECTORIES
from ..utils.file_io import write_text

__all__ = [
    "Settings",
    "SettingsStore",
    "SecretVault",
    "SETTINGS_DIR",
    "apply_overrides",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
SETTINGS_DIR = Path.home() / ".quillpad"
_DEFAULT_SETTINGS_PATH = SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_API_KEY_FIELD = "api_key_ciphertext"
_TRUE_VALUES = frozenset({"1", "true", "yes", "on", "debug"})


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


# Environment variable -> (settings field, parser). Parsers raise ValueError on bad input.
_ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "QUILLPAD_API_KEY": ("api_key", str),
    "QUILLPAD_BASE_URL": ("base_url", str),
    "QUILLPAD_MODEL": ("model", str),
    "QUILLPAD_COMPLETION_MODEL": ("completion_model", str),
    "QUILLPAD_ORGANIZATION": ("organization", str),
    "QUILLPAD_CONVERSATION_DIR": ("conversation_dir", str),
    "QUILLPAD_DEBUG_LOGGING": ("debug_logging", _parse_bool),
    "QUILLPAD_COMPLETION_ENABLED": ("completion_enabled", _parse_bool),
    "QUILLPAD_REQUEST_TIMEOUT": ("request_timeout", float),
    "QUILLPAD_CHAT_TEMPERATURE": ("chat_temperature", float),
    "QUILLPAD_COMPLETION_DEBOUNCE_MS": ("completion_debounce_ms", int),
}


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between runs."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    chat_temperature: float = 0.7
    chat_max_tokens: int = 2048
    completion_enabled: bool = True
    completion_model: str | None = None
    completion_temperature: float = 0.2
    completion_max_tokens: int = 150
    completion_debounce_ms: int = 800
    completion_min_prefix_chars: int = 10
    recent_files: list[str] = field(default_factory=list)
    max_recent_files: int = 20
    conversation_dir: str | None = None
    quick_open_limit: int = 50
    excluded_directories: list[str] = field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_DIRECTORIES)
    )
    default_headers: dict[str, str] = field(default_factory=dict)
    debug_logging: bool = False

    @property
    def effective_completion_model(self) -> str:
        return self.completion_model or self.model

    @property
    def debounce_seconds(self) -> float:
        return max(0, self.completion_debounce_ms) / 1000.0

    def resolved_conversation_dir(self, settings_dir: Path | None = None) -> Path:
        if self.conversation_dir:
            return Path(self.conversation_dir).expanduser()
        return (settings_dir or SETTINGS_DIR) / "conversations"


class SecretVault:
    """Encrypts the API key with a Fernet key stored beside the settings file.

    The key file is created on first use and readable by the owner only.
    """

    def __init__(self, key_path: Path | None = None) -> None:
        self._key_path = key_path or (SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        return self._cipher().encrypt(secret.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        return self._cipher().decrypt(token.encode("ascii")).decode("utf-8")

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            if self._key_path.exists():
                key = self._key_path.read_bytes().strip()
            else:
                key = Fernet.generate_key()
                write_text(self._key_path, key.decode("ascii"), encoding="ascii")
                if os.name != "nt":  # pragma: no cover - depends on OS
                    self._key_path.chmod(0o600)
                LOGGER.info("Created settings key at %s", self._key_path)
            self._fernet = Fernet(key)
        return self._fernet


class SettingsStore:
    """Reads and writes :class:`Settings` as JSON, keeping the API key encrypted."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Build settings from the file, then CLI ``overrides``, then ``QUILLPAD_*`` variables.

        A missing or corrupt file yields defaults; an undecryptable key yields
        an empty API key. Later sources win.
        """

        payload = self._read_payload()
        ciphertext = payload.pop(_API_KEY_FIELD, None)
        plaintext = payload.pop("api_key", None)
        try:
            settings = Settings(**_known_fields(payload))
        except TypeError as exc:
            LOGGER.warning("Ignoring malformed settings in %s: %s", self._path, exc)
            settings = Settings()
        api_key = self._decrypt_api_key(ciphertext) or plaintext
        if isinstance(api_key, str) and api_key:
            settings = replace(settings, api_key=api_key)

        if overrides:
            settings = apply_overrides(settings, overrides, source="CLI")
        return apply_overrides(settings, _environment_overrides(), source="environment")

    def save(self, settings: Settings) -> Path:
        """Persist settings with an atomic replace; the API key is stored encrypted."""

        data = asdict(settings)
        api_key = data.pop("api_key", "")
        if api_key:
            data[_API_KEY_FIELD] = self._vault.encrypt(api_key)
        data["version"] = _SETTINGS_VERSION
        write_text(self._path, json.dumps(data, indent=2, sort_keys=True))
        LOGGER.debug("Saved settings to %s", self._path)
        return self._path

    def _read_payload(self) -> dict[str, Any]:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            LOGGER.warning("Settings file %s is unreadable, using defaults: %s", self._path, exc)
            return {}
        return dict(data) if isinstance(data, Mapping) else {}

    def _decrypt_api_key(self, ciphertext: Any) -> str:
        if not isinstance(ciphertext, str) or not ciphertext:
            return ""
        try:
            return self._vault.decrypt(ciphertext)
        except (InvalidToken, ValueError) as exc:
            LOGGER.warning("Stored API key could not be decrypted: %s", exc)
            return ""


def _environment_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for env_name, (field_name, parse) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        try:
            overrides[field_name] = parse(raw)
        except ValueError:
            LOGGER.warning("Ignoring %s=%r: expected %s", env_name, raw, getattr(parse, "__name__", "value"))
    return overrides


def apply_overrides(
    settings: Settings,
    overrides: Mapping[str, Any],
    *,
    source: str = "runtime",
) -> Settings:
    """Return a copy of ``settings`` with known, non-``None`` override keys applied."""

    allowed = {item.name for item in fields(Settings)}
    filtered = {
        key: value for key, value in overrides.items() if key in allowed and value is not None
    }
    if filtered:
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
        settings = replace(settings, **filtered)
    return settings


def redact_secret(value: str | None) -> str:
    """Mask all but the last four characters of ``value``."""

    if not value:
        return ""
    if len(value) <= 4:
        return "*" * len(value)
    return f"{'*' * (len(value) - 4)}{value[-4:]}"


def _known_fields(payload: Mapping[str, Any]) -> dict[str, Any]:
    allowed = {item.name for item in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}
