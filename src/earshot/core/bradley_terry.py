"""Bradley-Terry preference model.

Estimates a positive strength per item from pairwise "i beat j" outcomes
using the classic iterative MLE update:

    s_i <- W_i / sum_j( n_ij / (s_i + s_j) )

where W_i is the number of wins of i and n_ij the number of comparisons
between i and j. Strengths are renormalized to sum to len(items) after
every round.

The solver runs a fixed number of rounds with no convergence check. That
keeps snapshot latency bounded; the result is an approximation, not a
guaranteed fixed point. Pure functions over plain floats, no I/O.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

DEFAULT_ITERATIONS = 50

# Strength assigned to items with no wins (or no usable opponents)
FLOOR_STRENGTH = 0.001


@dataclass(frozen=True)
class Comparison:
    """A decisive pairwise outcome."""

    winner: str
    loser: str


def solve(
    comparisons: Sequence[Comparison],
    items: Iterable[str],
    iterations: int = DEFAULT_ITERATIONS,
) -> dict[str, float]:
    """Compute Bradley-Terry strengths.

    Args:
        comparisons: Decisive outcomes. May be empty.
        items: Universe of items to report strengths for.
        iterations: Number of update rounds to run.

    Returns:
        Mapping item -> strength. Every item gets 1.0 when there are no
        comparisons. Otherwise strengths sum to len(items).
    """
    universe = list(dict.fromkeys(items))
    strength = {item: 1.0 for item in universe}

    if not comparisons or not universe:
        return strength

    wins: dict[str, int] = defaultdict(int)
    # pair_counts[i][j] == pair_counts[j][i] == games played between i and j
    pair_counts: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))

    for comparison in comparisons:
        wins[comparison.winner] += 1
        pair_counts[comparison.winner][comparison.loser] += 1
        pair_counts[comparison.loser][comparison.winner] += 1

    for _ in range(iterations):
        candidate: dict[str, float] = {}

        for item in universe:
            item_wins = wins.get(item, 0)
            if item_wins == 0:
                candidate[item] = FLOOR_STRENGTH
                continue

            s_i = strength[item]
            denominator = 0.0
            for opponent, games in pair_counts[item].items():
                s_j = strength.get(opponent, 1.0)
                denominator += games / (s_i + s_j)

            candidate[item] = item_wins / denominator if denominator > 0 else FLOOR_STRENGTH

        scale = len(universe) / sum(candidate.values())
        strength = {item: value * scale for item, value in candidate.items()}

    return strength


def to_quality_scores(strengths: Mapping[str, float]) -> dict[str, float]:
    """Map strengths onto a 0-100 quality score with one decimal.

    The strongest item scores 100. The divisor is floored at 1.0.
    """
    if not strengths:
        return {}
    top = max(max(strengths.values()), 1.0)
    return {key: round(value / top * 100, 1) for key, value in strengths.items()}
