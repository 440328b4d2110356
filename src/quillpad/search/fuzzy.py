"""Heuristic fuzzy scoring and ranking of file paths for quick open.

Scores are built from a handful of additive bonuses over the file name:

* exact case-insensitive name match short-circuits to :data:`EXACT_MATCH_SCORE`;
* a name starting with the query gets :data:`PREFIX_BONUS`;
* a left-to-right scan adds ``10 * run`` per matched query character, where
  ``run`` is the length of the current unbroken run of matches;
* an ordered subsequence match adds :data:`SUBSEQUENCE_BONUS`, plus
  :data:`WORD_START_BONUS` when the query can be matched entirely on word
  starts (``qo`` on ``QuickOpen``);
* every path segment costs :data:`DEPTH_PENALTY`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Collection, Iterable, List, Sequence, Tuple, Union

__all__ = [
    "FuzzyCandidate",
    "is_subsequence",
    "rank_candidates",
    "score_candidate",
]

EXACT_MATCH_SCORE = 1000
PREFIX_BONUS = 500
RUN_WEIGHT = 10
SUBSEQUENCE_BONUS = 100
WORD_START_BONUS = 50
DEPTH_PENALTY = 5

_SEGMENT_RE = re.compile(r"[/\\]")
_WORD_SEPARATORS = frozenset("-_. ")


@dataclass(slots=True)
class FuzzyCandidate:
    path: str
    name: str
    score: int = 0
    is_recently_used: bool = False
    exact_match: bool = False


CandidateInput = Union[FuzzyCandidate, str, Tuple[str, str]]


def score_candidate(name: str, path: str, query: str) -> int:
    """Score ``query`` against a candidate file ``name`` located at ``path``."""

    lower_name = name.lower()
    lower_query = query.lower()
    if lower_name == lower_query:
        return EXACT_MATCH_SCORE

    score = 0
    if lower_query and lower_name.startswith(lower_query):
        score += PREFIX_BONUS

    run = 0
    query_index = 0
    for char in lower_name:
        if query_index >= len(lower_query):
            break
        if char == lower_query[query_index]:
            run += 1
            query_index += 1
            score += RUN_WEIGHT * run
        else:
            run = 0

    if lower_query and query_index == len(lower_query):
        score += SUBSEQUENCE_BONUS
        if _matches_word_starts(name, lower_query):
            score += WORD_START_BONUS

    score -= DEPTH_PENALTY * _segment_count(path)
    return score


def is_subsequence(query: str, name: str) -> bool:
    """True when every character of ``query`` occurs in ``name`` in order."""

    remaining = iter(name.lower())
    return all(char in remaining for char in query.lower())


def rank_candidates(
    candidates: Iterable[CandidateInput],
    query: str,
    *,
    recent: Collection[str] = (),
) -> List[FuzzyCandidate]:
    """Score and order ``candidates`` for ``query``.

    Exact name matches come first, then recently used paths, then the rest.
    Within each group candidates are ordered by descending score; equal scores
    keep their input order.
    """

    recent_set = set(recent)
    scored: List[FuzzyCandidate] = []
    for item in candidates:
        candidate = _coerce(item)
        candidate.score = score_candidate(candidate.name, candidate.path, query)
        candidate.exact_match = candidate.name.lower() == query.lower()
        candidate.is_recently_used = candidate.is_recently_used or candidate.path in recent_set
        scored.append(candidate)
    scored.sort(key=_rank_key)
    return scored


def _rank_key(candidate: FuzzyCandidate) -> tuple[int, int]:
    if candidate.exact_match:
        tier = 0
    elif candidate.is_recently_used:
        tier = 1
    else:
        tier = 2
    return tier, -candidate.score


def _coerce(item: CandidateInput) -> FuzzyCandidate:
    if isinstance(item, FuzzyCandidate):
        return FuzzyCandidate(path=item.path, name=item.name, is_recently_used=item.is_recently_used)
    if isinstance(item, str):
        return FuzzyCandidate(path=item, name=PurePath(item).name)
    path, name = item
    return FuzzyCandidate(path=path, name=name)


def _matches_word_starts(name: str, lower_query: str) -> bool:
    starts = _word_starts(name)
    query_index = 0
    for char in starts:
        if query_index < len(lower_query) and char == lower_query[query_index]:
            query_index += 1
    return query_index == len(lower_query)


def _word_starts(name: str) -> Sequence[str]:
    result: List[str] = []
    previous = ""
    for index, char in enumerate(name):
        if char in _WORD_SEPARATORS:
            previous = char
            continue
        if index == 0 or previous in _WORD_SEPARATORS or (char.isupper() and previous.islower()):
            result.append(char.lower())
        previous = char
    return result


def _segment_count(path: str) -> int:
    return len(_SEGMENT_RE.split(path))
