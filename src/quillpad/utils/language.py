"""Map file names to the language hints passed to completion and chat requests."""

from __future__ import annotations

from pathlib import PurePath

__all__ = ["DEFAULT_LANGUAGE", "detect_language"]

DEFAULT_LANGUAGE = "plaintext"

_EXTENSION_MAP: dict[str, str] = {
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "pyw": "python",
    "pyi": "python",
    "java": "java",
    "kt": "kotlin",
    "kts": "kotlin",
    "scala": "scala",
    "c": "c",
    "h": "c",
    "cpp": "cpp",
    "cc": "cpp",
    "cxx": "cpp",
    "hpp": "cpp",
    "cs": "csharp",
    "go": "go",
    "rs": "rust",
    "swift": "swift",
    "rb": "ruby",
    "php": "php",
    "html": "html",
    "htm": "html",
    "css": "css",
    "scss": "scss",
    "less": "less",
    "vue": "vue",
    "svelte": "svelte",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "toml": "toml",
    "xml": "xml",
    "md": "markdown",
    "markdown": "markdown",
    "sql": "sql",
    "sh": "shell",
    "bash": "shell",
    "zsh": "shell",
    "ps1": "powershell",
    "txt": "plaintext",
}

_FILENAME_MAP: dict[str, str] = {
    "dockerfile": "dockerfile",
    "makefile": "makefile",
}


def detect_language(path: str | PurePath | None) -> str:
    """Return the language hint for ``path`` based on its name or extension."""

    if not path:
        return DEFAULT_LANGUAGE
    name = PurePath(path).name.lower()
    if name in _FILENAME_MAP:
        return _FILENAME_MAP[name]
    suffix = PurePath(name).suffix.lstrip(".")
    return _EXTENSION_MAP.get(suffix, DEFAULT_LANGUAGE)
