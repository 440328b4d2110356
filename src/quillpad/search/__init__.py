"""Quick-open file search."""

from .fuzzy import FuzzyCandidate, rank_candidates, score_candidate

__all__ = ["FuzzyCandidate", "rank_candidates", "score_candidate"]
