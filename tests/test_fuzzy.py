"""Tests for the quick-open fuzzy matcher."""

from __future__ import annotations

from quillpad.search.fuzzy import (
    EXACT_MATCH_SCORE,
    FuzzyCandidate,
    is_subsequence,
    rank_candidates,
    score_candidate,
)


def test_acronym_query_prefers_camel_case_name() -> None:
    camel = score_candidate("QuickOpenModal.tsx", "src/components/QuickOpenModal.tsx", "qo")
    plain = score_candidate("quote.ts", "src/components/quote.ts", "qo")

    assert camel > plain


def test_exact_name_short_circuits() -> None:
    assert score_candidate("App.tsx", "deep/nested/dir/App.tsx", "app.tsx") == EXACT_MATCH_SCORE


def test_prefix_bonus_applies() -> None:
    with_prefix = score_candidate("index.ts", "index.ts", "ind")
    without_prefix = score_candidate("find.ts", "find.ts", "ind")

    assert with_prefix - without_prefix == 500


def test_consecutive_runs_beat_scattered_matches() -> None:
    run = score_candidate("xabc.ts", "xabc.ts", "abc")
    scattered = score_candidate("xaxbxc.ts", "xaxbxc.ts", "abc")

    assert run > scattered


def test_run_scan_scores() -> None:
    # a(10) b(20), then mismatch resets run, c(10); subsequence bonus 100; one segment.
    assert score_candidate("abxc", "abxc", "abc") == 10 + 20 + 10 + 100 - 5


def test_deeper_paths_lose_ties() -> None:
    shallow = score_candidate("util.ts", "util.ts", "ut")
    deep = score_candidate("util.ts", "a/b/c/util.ts", "ut")

    assert shallow - deep == 15


def test_missing_characters_get_no_subsequence_bonus() -> None:
    assert score_candidate("readme.md", "readme.md", "zz") == -5


def test_recent_candidates_rank_before_higher_scores() -> None:
    ranked = rank_candidates(
        ["src/indexer.ts", "src/legacy/old_index.ts"],
        "index",
        recent=["src/legacy/old_index.ts"],
    )

    assert [c.path for c in ranked] == ["src/legacy/old_index.ts", "src/indexer.ts"]
    assert ranked[0].is_recently_used is True


def test_exact_match_ranks_first_even_when_not_recent() -> None:
    ranked = rank_candidates(
        ["lib/main.ts.bak", "lib/main.ts"],
        "main.ts",
        recent=["lib/main.ts.bak"],
    )

    assert ranked[0].path == "lib/main.ts"
    assert ranked[0].exact_match is True


def test_equal_scores_keep_input_order() -> None:
    ranked = rank_candidates(
        [("one/a.ts", "a.ts"), ("two/a.ts", "a.ts"), ("three/a.ts", "a.ts")],
        "a",
    )

    assert [c.path for c in ranked] == ["one/a.ts", "two/a.ts", "three/a.ts"]


def test_rank_accepts_candidate_objects() -> None:
    candidate = FuzzyCandidate(path="x/Button.tsx", name="Button.tsx", is_recently_used=True)

    ranked = rank_candidates([candidate], "btn")

    assert ranked[0].is_recently_used is True
    assert ranked[0].score > 0


def test_is_subsequence() -> None:
    assert is_subsequence("qom", "QuickOpenModal.tsx")
    assert not is_subsequence("mq", "QuickOpenModal.tsx")
