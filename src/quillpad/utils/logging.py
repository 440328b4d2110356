"""Process-wide logging configuration.

Modules log through ``logging.getLogger(__name__)``; this module only decides
where records go. Records are written to ``quillpad.log`` (rotated) inside the
log directory, which defaults to ``~/.quillpad/logs`` and can be moved with
``QUILLPAD_LOG_DIR``.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["LOG_FILENAME", "get_log_path", "set_level", "setup_logging"]

LOG_FILENAME = "quillpad.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_DEFAULT_LOG_DIR = Path.home() / ".quillpad" / "logs"
_LOG_DIR_ENV = "QUILLPAD_LOG_DIR"
# Third-party loggers that are chatty at DEBUG/INFO.
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")

_log_path: Path | None = None
_handlers: list[logging.Handler] = []


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Route root logging to a rotating file and, optionally, stderr.

    Only the first call installs handlers; later calls return the active log
    path unless ``force`` is set.
    """

    global _log_path
    if _log_path is not None and not force:
        return _log_path

    directory = Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / LOG_FILENAME
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _handlers[:] = handlers
    _log_path = path
    set_level(level)
    logging.getLogger(__name__).debug("Logging to %s", path)
    return path


def set_level(level: int) -> None:
    """Change the level of the root logger and of the installed handlers."""

    logging.getLogger().setLevel(level)
    for handler in _handlers:
        handler.setLevel(level)
    quiet = max(level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)


def get_log_path() -> Path | None:
    """Return the active log file, or ``None`` before :func:`setup_logging` ran."""

    return _log_path
