"""Analytics snapshot generation.

Resolves every recorded answer against the catalog once, computes all
derived metrics over the resolved set, and persists one snapshot.
Domain logic is pure - database operations go through repo; metric
math lives in earshot.aggregation.metrics.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any

from earshot.aggregation import metrics
from earshot.aggregation.metrics import ResolvedAnswer
from earshot.db import repo
from earshot.db.repo import DbSession
from earshot.models.domain import (
    CODECS,
    AnswerEntity,
    CandidateEntity,
    DeviceEntity,
    SnapshotEntity,
    utcnow,
)

logger = logging.getLogger(__name__)

SNAPSHOT_TTL = timedelta(minutes=30)

# Expired snapshots kept for history; older ones are deleted
MAX_EXPIRED_SNAPSHOTS = 100

_MISSING = object()


class CandidateResolver:
    """Memoizing lookups for one aggregation run.

    Misses are cached too, so an answer pointing at a deleted candidate
    costs one query no matter how often it appears. Create one per run;
    there is no invalidation.
    """

    def __init__(self, session: DbSession):
        self._session = session
        self._candidates: dict[str, CandidateEntity | None] = {}
        self._genres: dict[str, str | None] = {}
        self._devices: dict[str, DeviceEntity | None] = {}

    def candidate(self, candidate_id: str) -> CandidateEntity | None:
        cached = self._candidates.get(candidate_id, _MISSING)
        if cached is _MISSING:
            cached = repo.get_candidate(self._session, candidate_id)
            self._candidates[candidate_id] = cached
        return cached

    def genre(self, source_id: str) -> str | None:
        """Normalized primary genre of a source (case-folded, stripped)."""
        cached = self._genres.get(source_id, _MISSING)
        if cached is _MISSING:
            source = repo.get_source(self._session, source_id)
            cached = normalize_genre(source.genre if source else None)
            self._genres[source_id] = cached
        return cached

    def device(self, device_id: str) -> DeviceEntity | None:
        cached = self._devices.get(device_id, _MISSING)
        if cached is _MISSING:
            cached = repo.get_device(self._session, device_id)
            self._devices[device_id] = cached
        return cached

    def resolve(self, answer: AnswerEntity) -> ResolvedAnswer | None:
        """Resolve both candidates of an answer, or None if either is gone."""
        candidate_a = self.candidate(answer.candidate_a_id)
        candidate_b = self.candidate(answer.candidate_b_id)
        if candidate_a is None or candidate_b is None:
            return None

        return ResolvedAnswer(
            answer=answer,
            candidate_a=candidate_a,
            candidate_b=candidate_b,
            genre_a=self.genre(candidate_a.source_id),
            genre_b=self.genre(candidate_b.source_id),
            device=self.device(answer.device_id),
        )


def normalize_genre(genre: str | None) -> str | None:
    if genre is None:
        return None
    genre = genre.strip().casefold()
    return genre or None


def generate_snapshot(
    session: DbSession,
    *,
    now: datetime | None = None,
) -> SnapshotEntity:
    """Aggregate the full answer history into a new snapshot.

    Every metric is computed before anything is written, so a failure
    leaves no partial snapshot. Answers whose candidates no longer
    resolve are excluded from every metric but still count toward
    ``total_responses``.

    Args:
        session: Database session.
        now: Clock override for creation/expiry timestamps.

    Returns:
        The persisted SnapshotEntity.
    """
    now = now or utcnow()
    answers = repo.get_all_answers(session)

    resolver = CandidateResolver(session)
    resolved = [r for r in (resolver.resolve(a) for a in answers) if r is not None]
    skipped = len(answers) - len(resolved)
    if skipped:
        logger.info(f"Skipping {skipped} answers with unresolvable candidates")

    snapshot = SnapshotEntity(
        snapshot_id=str(uuid.uuid4()),
        created_at=now,
        expires_at=now + SNAPSHOT_TTL,
        total_responses=len(answers),
    )
    if answers:
        _fill_metrics(snapshot, resolved)

    repo.create_snapshot(session, snapshot)
    repo.commit(session)
    logger.info(
        f"Snapshot {snapshot.snapshot_id} written: {len(answers)} answers "
        f"({len(resolved)} resolved)"
    )

    prune_expired_snapshots(session, now)
    return snapshot


def prune_expired_snapshots(
    session: DbSession,
    now: datetime,
    keep: int = MAX_EXPIRED_SNAPSHOTS,
) -> int:
    """Delete expired snapshots beyond the ``keep`` most recent.

    Returns:
        Number of snapshots deleted.
    """
    expired = repo.get_expired_snapshot_ids(session, now)
    if len(expired) <= keep:
        return 0

    deleted = 0
    for snapshot_id in expired[keep:]:
        if repo.delete_snapshot(session, snapshot_id):
            deleted += 1
    repo.commit(session)
    logger.info(f"Deleted {deleted} expired snapshots (kept {keep})")
    return deleted


def _fill_metrics(snapshot: SnapshotEntity, resolved: Sequence[ResolvedAnswer]) -> None:
    """Populate every metric field on ``snapshot``. Pure function - no database access."""
    neither_rate = metrics.neither_rate(resolved)
    win_rates, codec_totals = metrics.codec_win_rates(resolved)
    strengths, scores = metrics.quality_scores(resolved)
    by_device, by_tier = metrics.device_breakdown(resolved)
    heatmap = metrics.heatmap(resolved)
    lossless_vs_lossy = metrics.lossless_vs_lossy(resolved)
    gap_confidence = metrics.neither_by_bitrate_gap(resolved)
    matrix = metrics.codec_matchup_matrix(resolved)
    tiers = metrics.tier_win_rates(resolved)
    headline = metrics.headline_matchups(resolved)
    tradeoff, tradeoff_by_gap = metrics.quality_vs_content(resolved, scores)
    comparison_counts = metrics.comparison_type_counts(resolved)

    snapshot.neither_rate = neither_rate
    snapshot.avg_response_time_ms = metrics.average_response_time(resolved)

    for codec in CODECS:
        setattr(snapshot, f"{codec}_win_rate", win_rates.get(codec))
        setattr(snapshot, f"{codec}_comparisons", codec_totals.get(codec))

    snapshot.bitrate_lossless_win_rate = tiers["lossless"]
    snapshot.bitrate_high_win_rate = tiers["high"]
    snapshot.bitrate_mid_win_rate = tiers["mid"]
    snapshot.bitrate_low_win_rate = tiers["low"]

    if headline.lossless_total:
        snapshot.lossless_vs_lossy_lossless_wins = headline.lossless_wins
        snapshot.lossless_vs_lossy_total = headline.lossless_total
    if headline.opus_vs_mp3_total:
        snapshot.opus_vs_mp3_opus_wins = headline.opus_vs_mp3_opus_wins
        snapshot.opus_vs_mp3_total = headline.opus_vs_mp3_total
    if headline.aac_vs_mp3_total:
        snapshot.aac_vs_mp3_aac_wins = headline.aac_vs_mp3_aac_wins
        snapshot.aac_vs_mp3_total = headline.aac_vs_mp3_total

    snapshot.device_headphones_count = by_device.get("headphones")
    snapshot.device_speakers_count = by_device.get("speaker")
    snapshot.tier_budget_count = by_tier.get("budget")
    snapshot.tier_mid_count = by_tier.get("mid")
    snapshot.tier_premium_count = by_tier.get("premium")
    snapshot.tier_flagship_count = by_tier.get("flagship")

    snapshot.comparison_same_gapless_count = comparison_counts["same_gapless"]
    snapshot.comparison_same_gap_count = comparison_counts["same_gap"]
    snapshot.comparison_different_gapless_count = comparison_counts["different_gapless"]
    snapshot.comparison_different_gap_count = comparison_counts["different_gap"]

    snapshot.codec_matchup_matrix = _or_none(matrix)
    snapshot.bitrate_gap_confidence = _or_none(gap_confidence)
    snapshot.codec_equivalence_ratios = _or_none(metrics.equivalence_ratios(matrix))
    snapshot.flac_vs_lossy_win_rates = _or_none(lossless_vs_lossy)
    snapshot.codec_pq_scores = _or_none(scores)
    snapshot.transparency_thresholds = _or_none(metrics.transparency_thresholds(scores))
    snapshot.diminishing_returns_points = _or_none(metrics.diminishing_returns_points(scores))
    snapshot.codec_pq_scores_by_genre = _or_none(metrics.quality_scores_by_genre(resolved))
    snapshot.cross_genre_quality_tradeoff = tradeoff
    snapshot.quality_vs_content_by_gap = tradeoff_by_gap

    snapshot.insights = {
        "codec_win_rates": win_rates,
        "bradley_terry_scores": strengths,
        "device_breakdown": by_device,
        "tier_breakdown": by_tier,
        "heatmap": heatmap,
        "neither_rate": neither_rate,
        "flac_vs_lossy": lossless_vs_lossy,
        "neither_by_bitrate_diff": gap_confidence,
    }


def _or_none(value: dict[str, Any]) -> dict[str, Any] | None:
    return value or None
