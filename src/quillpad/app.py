"""Application bootstrap helpers and the ``quillpad`` command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.client import AIClient, ClientSettings
from .ai.providers import ClientConversationProvider, ClientSuggestionProvider
from .editor.workspace import SessionRegistry
from .errors import QuillpadError
from .search.file_index import quick_open
from .services.conversation_store import JsonConversationStore
from .services.document_store import FileDocumentStore, SettingsRecentFilesStore
from .services.settings import Settings, SettingsStore, redact_secret
from .ui.coordinator import EditorCoordinator
from .ui.events import EventBus
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    """Container returned by :func:`build_context`."""

    settings: Settings
    settings_store: SettingsStore | None
    coordinator: EditorCoordinator
    client: AIClient | None = None
    recent_files: SettingsRecentFilesStore | None = None


def configure_logging(debug: bool = False, *, force: bool = False, console: bool = False) -> None:
    """Configure structured logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, force=force, console=console)
    logging_utils.set_level(level)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def build_context(
    settings: Settings,
    *,
    settings_store: SettingsStore | None = None,
    workspace_root: Path | str | None = None,
    client: AIClient | None = None,
) -> AppContext:
    """Assemble the registry, providers, and coordinators for one editor process."""

    ai_client = client or _build_ai_client(settings)
    recent_files = SettingsRecentFilesStore(settings, settings_store)
    registry = SessionRegistry(FileDocumentStore(), recent_files=recent_files, event_bus=EventBus())
    settings_dir = settings_store.path.parent if settings_store is not None else None
    coordinator = EditorCoordinator(
        registry,
        suggestion_provider=ClientSuggestionProvider(
            ai_client,
            model=settings.effective_completion_model,
            temperature=settings.completion_temperature,
            max_tokens=settings.completion_max_tokens,
        ),
        conversation_provider=ClientConversationProvider(
            ai_client,
            temperature=settings.chat_temperature,
            max_tokens=settings.chat_max_tokens,
        ),
        conversation_store=JsonConversationStore(settings.resolved_conversation_dir(settings_dir)),
        settings=settings,
        workspace_root=workspace_root,
    )
    return AppContext(
        settings=settings,
        settings_store=settings_store,
        coordinator=coordinator,
        client=ai_client,
        recent_files=recent_files,
    )


async def shutdown(context: AppContext) -> None:
    await context.coordinator.aclose()
    if context.recent_files is not None:
        await context.recent_files.flush()
    if context.client is not None:
        await context.client.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``quillpad`` console script."""

    args = _parse_cli_args(argv)

    debug = _env_flag("QUILLPAD_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("QUILLPAD_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if settings.debug_logging and not debug:
        configure_logging(True)

    if args.quick_open is not None:
        return asyncio.run(_run_quick_open(settings, args.quick_open, args.root))

    if args.files:
        return asyncio.run(_run_open(settings, settings_store, args.files, args.root))

    _LOGGER.info("No files given; nothing to do.")
    return 0


async def _run_quick_open(settings: Settings, query: str, root: str | None) -> int:
    results = await quick_open(
        query,
        Path(root or ".").expanduser(),
        recent=settings.recent_files,
        limit=settings.quick_open_limit,
        excluded=settings.excluded_directories,
    )
    for candidate in results:
        print(candidate.path)
    return 0


async def _run_open(
    settings: Settings,
    settings_store: SettingsStore,
    files: Sequence[str],
    root: str | None,
    *,
    stream: TextIO | None = None,
) -> int:
    destination = stream or sys.stdout
    context = build_context(settings, settings_store=settings_store, workspace_root=root)
    status = 0
    try:
        for path in files:
            try:
                await context.coordinator.open(path)
            except QuillpadError as exc:
                print(str(exc), file=sys.stderr)
                status = 1
        json.dump(context.coordinator.registry.serialize_state(), destination, indent=2)
        destination.write("\n")
    finally:
        await shutdown(context)
    return status


def _build_ai_client(settings: Settings) -> AIClient | None:
    if not settings.api_key:
        _LOGGER.info("AI features disabled: no API key configured.")
        return None
    return AIClient(ClientSettings.from_settings(settings))


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="quillpad",
        add_help=True,
        description="Open documents in a quillpad session or inspect its configuration.",
    )
    parser.add_argument("files", nargs="*", metavar="FILE", help="Documents to open.")
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.quillpad/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument(
        "--quick-open",
        metavar="QUERY",
        help="Print files under --root ranked against QUERY and exit.",
    )
    parser.add_argument("--root", metavar="DIR", help="Workspace root used for quick open.")
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    if raw_value.lower() in {"none", "null"} and target is not str:
        return None
    if target is str or target is Any:
        return raw_value
    if target is bool:
        return _parse_bool(raw_value)
    if target is int:
        return int(raw_value, 10)
    if target is float:
        return float(raw_value)
    if target in (list, dict):
        try:
            value = json.loads(raw_value or ("[]" if target is list else "{}"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"{target.__name__} overrides must be valid JSON") from exc
        if not isinstance(value, target):
            raise ValueError(f"Expected a JSON {target.__name__}")
        return value
    return raw_value


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return _resolve_annotation(args[0])


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("QUILLPAD_"))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
