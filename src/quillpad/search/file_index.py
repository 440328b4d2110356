"""Workspace file listing feeding the quick-open fuzzy matcher."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path, PurePath
from typing import Collection, Iterable, List, Sequence, Tuple

from .fuzzy import FuzzyCandidate, is_subsequence, rank_candidates

__all__ = ["DEFAULT_EXCLUDED_DIRECTORIES", "list_files", "quick_open", "walk_files"]

LOGGER = logging.getLogger(__name__)

DEFAULT_EXCLUDED_DIRECTORIES: tuple[str, ...] = (
    "node_modules",
    ".git",
    "dist",
    "build",
    ".vscode",
    ".idea",
    "__pycache__",
    ".cache",
    "coverage",
    ".next",
    ".nuxt",
)


def walk_files(root: Path | str, excluded: Collection[str] = DEFAULT_EXCLUDED_DIRECTORIES) -> List[Tuple[str, str]]:
    """Return ``(path, name)`` pairs for every file under ``root``.

    Excluded directory names are pruned wherever they appear; unreadable
    directories are skipped.
    """

    base = Path(root).expanduser().resolve()
    skip = set(excluded)
    results: List[Tuple[str, str]] = []

    def _on_error(exc: OSError) -> None:
        LOGGER.debug("Skipping unreadable directory %s: %s", exc.filename, exc)

    for dirpath, dirnames, filenames in os.walk(base, onerror=_on_error):
        dirnames[:] = sorted(name for name in dirnames if name not in skip)
        for filename in sorted(filenames):
            if filename in skip:
                continue
            results.append((os.path.join(dirpath, filename), filename))
    return results


async def list_files(
    root: Path | str,
    *,
    excluded: Collection[str] | None = None,
) -> List[Tuple[str, str]]:
    """Walk ``root`` in a worker thread."""

    files = await asyncio.to_thread(walk_files, root, excluded if excluded is not None else DEFAULT_EXCLUDED_DIRECTORIES)
    LOGGER.debug("Indexed %d file(s) under %s", len(files), root)
    return files


async def quick_open(
    query: str,
    root: Path | str,
    *,
    recent: Sequence[str] = (),
    limit: int = 50,
    excluded: Collection[str] | None = None,
    files: Iterable[Tuple[str, str]] | None = None,
) -> List[FuzzyCandidate]:
    """Rank files under ``root`` against ``query``.

    A blank query lists the recent files in recency order. Otherwise only
    files whose name contains the query as an ordered subsequence are ranked.
    ``files`` may be supplied to reuse an earlier listing.
    """

    limit = max(0, limit)
    if not query.strip():
        return [
            FuzzyCandidate(path=path, name=PurePath(path).name, score=1000 - index, is_recently_used=True)
            for index, path in enumerate(list(recent)[:limit])
        ]
    listing = list(files) if files is not None else await list_files(root, excluded=excluded)
    matching = [(path, name) for path, name in listing if is_subsequence(query, name)]
    return rank_candidates(matching, query, recent=recent)[:limit]
