"""Tests for the Bradley-Terry solver.

Tests validate:
1. No comparisons yields uniform strength
2. Strengths renormalize to the item count every round
3. Consistent winners end up stronger
4. Degenerate inputs never raise
"""

import pytest

from earshot.core.bradley_terry import (
    FLOOR_STRENGTH,
    Comparison,
    solve,
    to_quality_scores,
)


class TestEmptyInput:
    """With no outcomes every item keeps strength 1.0."""

    def test_no_comparisons(self):
        """Empty comparisons should return 1.0 per item."""
        assert solve([], ["a", "b", "c"]) == {"a": 1.0, "b": 1.0, "c": 1.0}

    def test_no_items(self):
        """Empty universe should return an empty mapping."""
        assert solve([Comparison("a", "b")], []) == {}

    def test_duplicate_items_reported_once(self):
        """Items are deduplicated."""
        assert solve([], ["a", "a", "b"]) == {"a": 1.0, "b": 1.0}


class TestNormalization:
    """Strengths sum to len(items) after any number of rounds."""

    @pytest.mark.parametrize("iterations", [1, 2, 10, 50])
    def test_sum_equals_item_count(self, iterations):
        comparisons = [
            Comparison("a", "b"),
            Comparison("b", "c"),
            Comparison("c", "a"),
            Comparison("a", "c"),
        ]
        strengths = solve(comparisons, ["a", "b", "c"], iterations=iterations)
        assert sum(strengths.values()) == pytest.approx(3.0, abs=1e-5)

    def test_single_outcome_two_items(self):
        """a beats b once: strengths sum to exactly 2."""
        strengths = solve([Comparison("a", "b")], ["a", "b"])
        assert strengths["a"] + strengths["b"] == pytest.approx(2.0, abs=1e-5)
        assert strengths["a"] > strengths["b"]


class TestOrdering:
    """Items that always win end up stronger than items that never win."""

    def test_one_item_beats_both_others(self):
        strengths = solve([Comparison("a", "b"), Comparison("a", "c")], ["a", "b", "c"])
        assert strengths["a"] > strengths["b"]
        assert strengths["a"] > strengths["c"]

    def test_dominant_item_against_fixed_opponents(self):
        comparisons = [Comparison("x", opp) for opp in ("p", "q", "r")] * 3
        comparisons += [Comparison("p", "y"), Comparison("q", "y"), Comparison("r", "y")]
        strengths = solve(comparisons, ["x", "y", "p", "q", "r"])
        assert strengths["x"] > strengths["y"]

    def test_winless_item_is_floored_before_rescaling(self):
        """A winless item stays far below the winner."""
        strengths = solve([Comparison("a", "b")], ["a", "b"], iterations=1)
        # Floor is rescaled with everything else, so compare ratios
        assert strengths["b"] / strengths["a"] == pytest.approx(FLOOR_STRENGTH / 2.0)

    def test_unreported_opponent_still_counts(self):
        """Outcomes against items outside the universe use strength 1.0."""
        strengths = solve([Comparison("a", "ghost"), Comparison("b", "a")], ["a", "b"])
        assert set(strengths) == {"a", "b"}
        assert sum(strengths.values()) == pytest.approx(2.0, abs=1e-5)


class TestQualityScores:
    """Strength to 0-100 score mapping."""

    def test_top_item_scores_100(self):
        scores = to_quality_scores({"a": 1.5, "b": 0.5})
        assert scores == {"a": 100.0, "b": 33.3}

    def test_divisor_floored_at_one(self):
        """When every strength is below 1 nobody reaches 100."""
        assert to_quality_scores({"a": 0.5}) == {"a": 50.0}

    def test_empty(self):
        assert to_quality_scores({}) == {}
