"""Derived listening-test metrics.

Every function here is pure: it takes already-resolved answers (answer
plus both candidates, their genres and the listening device) and returns
plain dicts/numbers ready for JSON. Database access and the resolution
cache live in earshot.aggregation.snapshot.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from earshot.core.bradley_terry import Comparison, solve, to_quality_scores
from earshot.models.domain import (
    LOSSLESS_CODEC,
    AnswerEntity,
    CandidateEntity,
    DeviceEntity,
    split_item_key,
)

# Minimum cell size for the equivalence-ratio search
EQUIVALENCE_MIN_SAMPLES = 10

# Quality score at which an encoding is considered transparent
TRANSPARENCY_SCORE = 95.0

# Diminishing returns: less than 2 score points per 32 kbps
DIMINISHING_SLOPE = 2 / 32
DIMINISHING_MIN_STEP_KBPS = 32

BITRATE_GAP_BUCKETS = ("0-32", "32-64", "64-128", "128+")
BITRATE_TIERS = ("lossless", "high", "mid", "low")


@dataclass(frozen=True)
class ResolvedAnswer:
    """An answer whose candidate references resolved against the catalog."""

    answer: AnswerEntity
    candidate_a: CandidateEntity
    candidate_b: CandidateEntity
    genre_a: str | None = None
    genre_b: str | None = None
    device: DeviceEntity | None = None

    @property
    def selected(self) -> str:
        return self.answer.selected

    @property
    def is_neither(self) -> bool:
        return self.answer.selected == "neither"

    @property
    def sides(self) -> tuple[tuple[CandidateEntity, bool], tuple[CandidateEntity, bool]]:
        """Both candidates paired with whether that side was chosen."""
        return (
            (self.candidate_a, self.selected == "a"),
            (self.candidate_b, self.selected == "b"),
        )

    @property
    def bitrate_gap(self) -> int:
        return abs(self.candidate_a.bitrate - self.candidate_b.bitrate)

    def comparison(self) -> Comparison | None:
        """Winner/loser item keys, or None for "neither"."""
        if self.selected == "a":
            return Comparison(winner=self.candidate_a.key, loser=self.candidate_b.key)
        if self.selected == "b":
            return Comparison(winner=self.candidate_b.key, loser=self.candidate_a.key)
        return None


def _rate(wins: int, total: int) -> float:
    return wins / total if total > 0 else 0.0


def bitrate_gap_bucket(gap: int) -> str:
    """Bucket an absolute bitrate difference in kbps. Upper bounds inclusive."""
    if gap <= 32:
        return "0-32"
    if gap <= 64:
        return "32-64"
    if gap <= 128:
        return "64-128"
    return "128+"


def bitrate_tier(bitrate: int) -> str:
    """Classify a bitrate: 0 is lossless, then >=256 high, >=128 mid, else low."""
    if bitrate == 0:
        return "lossless"
    if bitrate >= 256:
        return "high"
    if bitrate >= 128:
        return "mid"
    return "low"


# ============================================================================
# Rates and counts
# ============================================================================


def neither_rate(resolved: Sequence[ResolvedAnswer]) -> float:
    """Fraction of answers with no winner."""
    return _rate(sum(1 for r in resolved if r.is_neither), len(resolved))


def codec_win_rates(resolved: Sequence[ResolvedAnswer]) -> tuple[dict[str, float], dict[str, int]]:
    """Win rate per codec over every answer where it appeared on either side.

    Returns:
        (codec -> win rate, codec -> appearances)
    """
    wins: dict[str, int] = defaultdict(int)
    totals: dict[str, int] = defaultdict(int)
    for r in resolved:
        for candidate, chosen in r.sides:
            totals[candidate.codec] += 1
            if chosen:
                wins[candidate.codec] += 1
    return {codec: _rate(wins[codec], total) for codec, total in totals.items()}, dict(totals)


def device_breakdown(resolved: Sequence[ResolvedAnswer]) -> tuple[dict[str, int], dict[str, int]]:
    """Answer counts by device type and by price tier."""
    by_type: dict[str, int] = defaultdict(int)
    by_tier: dict[str, int] = defaultdict(int)
    for r in resolved:
        if r.device is None:
            continue
        by_type[r.device.device_type] += 1
        by_tier[r.device.price_tier] += 1
    return dict(by_type), dict(by_tier)


def average_response_time(resolved: Sequence[ResolvedAnswer]) -> int | None:
    """Mean decision latency in ms, or None when none was recorded."""
    times = [r.answer.response_time_ms for r in resolved if r.answer.response_time_ms is not None]
    if not times:
        return None
    return round(sum(times) / len(times))


def comparison_type_counts(resolved: Sequence[ResolvedAnswer]) -> dict[str, int]:
    """Answer counts by (same/different source) x (gapless/gap). Placebo excluded."""
    counts = {"same_gapless": 0, "same_gap": 0, "different_gapless": 0, "different_gap": 0}
    for r in resolved:
        pairing = r.answer.pairing_type
        if pairing == "placebo":
            continue
        side = "same" if pairing == "same_source" else "different"
        gap = "gapless" if r.answer.transition_mode == "gapless" else "gap"
        counts[f"{side}_{gap}"] += 1
    return counts


def heatmap(resolved: Sequence[ResolvedAnswer]) -> list[dict[str, Any]]:
    """Codec x bitrate win-rate grid as a list of {row, col, value} cells."""
    wins: dict[tuple[str, int], int] = defaultdict(int)
    totals: dict[tuple[str, int], int] = defaultdict(int)
    for r in resolved:
        for candidate, chosen in r.sides:
            cell = (candidate.codec, candidate.bitrate)
            totals[cell] += 1
            if chosen:
                wins[cell] += 1

    return [
        {
            "row": codec,
            "col": "lossless" if bitrate == 0 else str(bitrate),
            "value": _rate(wins[(codec, bitrate)], total),
        }
        for (codec, bitrate), total in totals.items()
    ]


def lossless_vs_lossy(resolved: Sequence[ResolvedAnswer]) -> dict[str, dict[str, float]]:
    """Lossless win rate against each lossy (codec, bitrate).

    Only answers pairing exactly one lossless side with one lossy side count.
    """
    wins: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    totals: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for r in resolved:
        (first, first_chosen), (second, second_chosen) = r.sides
        if first.is_lossless == second.is_lossless:
            continue
        lossy = second if first.is_lossless else first
        lossless_chosen = first_chosen if first.is_lossless else second_chosen

        bitrate = str(lossy.bitrate)
        totals[lossy.codec][bitrate] += 1
        if lossless_chosen:
            wins[lossy.codec][bitrate] += 1

    return {
        codec: {br: _rate(wins[codec][br], total) for br, total in by_bitrate.items()}
        for codec, by_bitrate in totals.items()
    }


def neither_by_bitrate_gap(resolved: Sequence[ResolvedAnswer]) -> dict[str, dict[str, Any]]:
    """Neither-rate and sample size per bitrate-gap bucket."""
    neither: dict[str, int] = defaultdict(int)
    totals: dict[str, int] = defaultdict(int)
    for r in resolved:
        bucket = bitrate_gap_bucket(r.bitrate_gap)
        totals[bucket] += 1
        if r.is_neither:
            neither[bucket] += 1

    return {
        bucket: {"neither_rate": _rate(neither[bucket], totals[bucket]), "sample_size": totals[bucket]}
        for bucket in BITRATE_GAP_BUCKETS
        if totals[bucket]
    }


def tier_win_rates(resolved: Sequence[ResolvedAnswer]) -> dict[str, float | None]:
    """Win rate per bitrate tier across all sides. None for unseen tiers."""
    wins = dict.fromkeys(BITRATE_TIERS, 0)
    totals = dict.fromkeys(BITRATE_TIERS, 0)
    for r in resolved:
        for candidate, chosen in r.sides:
            tier = bitrate_tier(candidate.bitrate)
            totals[tier] += 1
            if chosen:
                wins[tier] += 1
    return {tier: (wins[tier] / totals[tier] if totals[tier] else None) for tier in BITRATE_TIERS}


# ============================================================================
# Codec matchups
# ============================================================================


def codec_matchup_matrix(
    resolved: Sequence[ResolvedAnswer],
) -> dict[str, dict[str, dict[str, int]]]:
    """Tally cross-codec answers by codec pair and bitrate pair.

    Pairs are canonicalized with the lexicographically smaller codec first:
    ``{"aac_vs_mp3": {"128_192": {"first_wins", "second_wins", "neither"}}}``.
    """
    matrix: dict[str, dict[str, dict[str, int]]] = {}
    for r in resolved:
        side_a, side_b = r.sides
        if side_a[0].codec == side_b[0].codec:
            continue

        if side_a[0].codec > side_b[0].codec:
            side_a, side_b = side_b, side_a
        (first, first_chosen), (second, _) = side_a, side_b
        cells = matrix.setdefault(f"{first.codec}_vs_{second.codec}", {})
        cell = cells.setdefault(
            f"{first.bitrate}_{second.bitrate}",
            {"first_wins": 0, "second_wins": 0, "neither": 0},
        )
        if r.is_neither:
            cell["neither"] += 1
        elif first_chosen:
            cell["first_wins"] += 1
        else:
            cell["second_wins"] += 1
    return matrix


def equivalence_ratios(
    matrix: Mapping[str, Mapping[str, Mapping[str, int]]],
    min_samples: int = EQUIVALENCE_MIN_SAMPLES,
) -> dict[str, dict[str, Any]]:
    """Perceptually-equivalent bitrate multiplier per codec pair.

    Picks the lossy bitrate-pair cell whose first-codec win rate is closest
    to 50% among cells with at least ``min_samples`` answers, and reports
    second_bitrate / first_bitrate. Sparse data can select a noisy cell, so
    the cell's sample size and win rate are reported alongside the ratio.
    Pairs with no qualifying cell are omitted.
    """
    ratios: dict[str, dict[str, Any]] = {}
    for pair, cells in matrix.items():
        best: dict[str, Any] | None = None
        for bitrates, cell in cells.items():
            total = cell["first_wins"] + cell["second_wins"] + cell["neither"]
            if total < min_samples:
                continue
            first_br, second_br = (int(b) for b in bitrates.split("_"))
            if first_br <= 0 or second_br <= 0:
                continue

            decisive = cell["first_wins"] + cell["second_wins"]
            win_rate = cell["first_wins"] / decisive if decisive else 0.0
            if best is None or abs(win_rate - 0.5) < abs(best["win_rate"] - 0.5):
                best = {
                    "ratio": second_br / first_br,
                    "bitrates": bitrates,
                    "win_rate": win_rate,
                    "sample_size": total,
                }
        if best is not None:
            ratios[pair] = best
    return ratios


@dataclass
class HeadlineMatchups:
    """Fixed headline comparisons, each with its own denominator."""

    lossless_wins: int = 0
    lossless_total: int = 0
    opus_vs_mp3_opus_wins: int = 0
    opus_vs_mp3_total: int = 0
    aac_vs_mp3_aac_wins: int = 0
    aac_vs_mp3_total: int = 0


def headline_matchups(resolved: Sequence[ResolvedAnswer]) -> HeadlineMatchups:
    """Lossless vs any lossy, opus vs mp3 and aac vs mp3 at equal bitrate."""
    result = HeadlineMatchups()
    for r in resolved:
        (a, a_chosen), (b, b_chosen) = r.sides
        codecs = {a.codec, b.codec}

        if a.is_lossless != b.is_lossless:
            result.lossless_total += 1
            if (a_chosen and a.is_lossless) or (b_chosen and b.is_lossless):
                result.lossless_wins += 1

        if a.bitrate != b.bitrate:
            continue
        if codecs == {"opus", "mp3"}:
            result.opus_vs_mp3_total += 1
            if (a_chosen and a.codec == "opus") or (b_chosen and b.codec == "opus"):
                result.opus_vs_mp3_opus_wins += 1
        elif codecs == {"aac", "mp3"}:
            result.aac_vs_mp3_total += 1
            if (a_chosen and a.codec == "aac") or (b_chosen and b.codec == "aac"):
                result.aac_vs_mp3_aac_wins += 1
    return result


# ============================================================================
# Strength-based scores
# ============================================================================


def quality_scores(resolved: Sequence[ResolvedAnswer]) -> tuple[dict[str, float], dict[str, float]]:
    """Bradley-Terry strengths and 0-100 quality scores per item key.

    The item universe is every key that appears in a decisive answer.

    Returns:
        (raw strengths, quality scores)
    """
    comparisons = [c for c in (r.comparison() for r in resolved) if c is not None]
    items = dict.fromkeys(key for c in comparisons for key in (c.winner, c.loser))
    strengths = solve(comparisons, items)
    return strengths, to_quality_scores(strengths)


def quality_scores_by_genre(resolved: Sequence[ResolvedAnswer]) -> dict[str, dict[str, float]]:
    """Quality scores solved independently per genre.

    A decisive answer counts toward every distinct genre of either side.
    Genres with fewer than two distinct items are skipped.

    Returns:
        ``{item_key: {genre: score}}``
    """
    by_genre: dict[str, list[Comparison]] = defaultdict(list)
    for r in resolved:
        comparison = r.comparison()
        if comparison is None:
            continue
        for genre in {g for g in (r.genre_a, r.genre_b) if g}:
            by_genre[genre].append(comparison)

    scores: dict[str, dict[str, float]] = defaultdict(dict)
    for genre, comparisons in by_genre.items():
        items = dict.fromkeys(key for c in comparisons for key in (c.winner, c.loser))
        if len(items) < 2:
            continue
        for key, score in to_quality_scores(solve(comparisons, items)).items():
            scores[key][genre] = score
    return dict(scores)


def _scores_by_codec(scores: Mapping[str, float]) -> dict[str, list[tuple[int, float]]]:
    """Group lossy item scores by codec, each list sorted by ascending bitrate."""
    grouped: dict[str, list[tuple[int, float]]] = defaultdict(list)
    for key, score in scores.items():
        codec, bitrate = split_item_key(key)
        if codec == LOSSLESS_CODEC:
            continue
        grouped[codec].append((bitrate, score))
    return {codec: sorted(points) for codec, points in grouped.items()}


def transparency_thresholds(scores: Mapping[str, float]) -> dict[str, int]:
    """Lowest bitrate per lossy codec whose score reaches the transparency bar."""
    thresholds: dict[str, int] = {}
    for codec, points in _scores_by_codec(scores).items():
        for bitrate, score in points:
            if score >= TRANSPARENCY_SCORE:
                thresholds[codec] = bitrate
                break
    return thresholds


def diminishing_returns_points(scores: Mapping[str, float]) -> dict[str, int]:
    """First bitrate per lossy codec where the score slope flattens.

    Walks ascending bitrates; once a step of at least 32 kbps from the
    previous point has a slope below 2 points per 32 kbps, that bitrate is
    the knee.
    """
    knees: dict[str, int] = {}
    for codec, points in _scores_by_codec(scores).items():
        last_bitrate, last_score = 0, 0.0
        for bitrate, score in points:
            if bitrate <= 0:
                continue
            step = bitrate - last_bitrate
            if last_bitrate > 0 and step >= DIMINISHING_MIN_STEP_KBPS:
                if (score - last_score) / step < DIMINISHING_SLOPE:
                    knees[codec] = bitrate
                    break
            last_bitrate, last_score = bitrate, score
    return knees


def quality_vs_content(
    resolved: Sequence[ResolvedAnswer],
    scores: Mapping[str, float],
) -> tuple[dict[str, int] | None, dict[str, dict[str, int]] | None]:
    """How often the higher-scored side won a different-source comparison.

    Ties in score count as a quality win for whichever side was chosen.

    Returns:
        (overall {quality_wins, content_wins}, same split per bitrate-gap
        bucket), both None when no decisive different-source answer exists.
    """
    overall = {"quality_wins": 0, "content_wins": 0}
    by_gap: dict[str, dict[str, int]] = {}
    for r in resolved:
        if r.answer.pairing_type != "different_source" or r.is_neither:
            continue

        score_a = scores.get(r.candidate_a.key, 0.0)
        score_b = scores.get(r.candidate_b.key, 0.0)
        quality_picked = (r.selected == "a" and score_a >= score_b) or (
            r.selected == "b" and score_b >= score_a
        )
        outcome = "quality_wins" if quality_picked else "content_wins"

        overall[outcome] += 1
        bucket = by_gap.setdefault(
            bitrate_gap_bucket(r.bitrate_gap), {"quality_wins": 0, "content_wins": 0}
        )
        bucket[outcome] += 1

    if not by_gap:
        return None, None
    return overall, by_gap
