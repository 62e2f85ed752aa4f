"""Tests for snapshot generation and retention."""

from datetime import timedelta

import pytest

from conftest import NOW, add_answer, add_device
from earshot.aggregation import snapshot as snapshot_module
from earshot.aggregation.snapshot import (
    MAX_EXPIRED_SNAPSHOTS,
    SNAPSHOT_TTL,
    CandidateResolver,
    generate_snapshot,
    normalize_genre,
    prune_expired_snapshots,
)
from earshot.db import repo
from earshot.db.schema import ResultSnapshot
from earshot.models.domain import SnapshotEntity


def seed_answers(session):
    """Four resolvable answers on s1/s2 and one pointing at a deleted candidate."""
    add_device(session, "dev-2", device_type="speaker", price_tier="budget")
    add_answer(session, "ans-1", "s1-flac_0", "s1-opus_128", "a", response_time_ms=1000)
    add_answer(session, "ans-2", "s1-opus_128", "s1-flac_0", "b", response_time_ms=3000)
    add_answer(session, "ans-3", "s1-mp3_128", "s1-opus_128", "neither", device_id="dev-2")
    add_answer(
        session,
        "ans-4",
        "s1-flac_0",
        "s2-mp3_128",
        "a",
        pairing_type="different_source",
        transition_mode="gap_pause_resume",
    )
    add_answer(session, "ans-5", "s1-flac_0", "deleted-candidate", "b")
    session.commit()


class TestEmptyHistory:
    """No answers still writes a snapshot."""

    def test_empty_snapshot(self, session):
        snapshot = generate_snapshot(session, now=NOW)

        assert snapshot.total_responses == 0
        assert snapshot.insights == {}
        assert snapshot.neither_rate is None
        assert snapshot.expires_at == NOW + SNAPSHOT_TTL

        stored = repo.get_latest_snapshot(session)
        assert stored.snapshot_id == snapshot.snapshot_id
        assert stored.insights == {}


class TestGenerateSnapshot:
    """Metrics over a seeded history."""

    def test_unresolved_answers_count_but_are_excluded(self, catalog):
        seed_answers(catalog)
        snapshot = generate_snapshot(catalog, now=NOW)

        assert snapshot.total_responses == 5
        # flac appears in ans-1, ans-2, ans-4 only
        assert snapshot.flac_comparisons == 3
        assert snapshot.neither_rate == 0.25

    def test_scalars(self, catalog):
        seed_answers(catalog)
        snapshot = generate_snapshot(catalog, now=NOW)

        assert snapshot.flac_win_rate == 1.0
        assert snapshot.avg_response_time_ms == 2000
        assert snapshot.device_headphones_count == 3
        assert snapshot.device_speakers_count == 1
        assert snapshot.tier_budget_count == 1
        assert snapshot.tier_mid_count == 3
        assert snapshot.tier_premium_count is None
        assert snapshot.lossless_vs_lossy_lossless_wins == 3
        assert snapshot.lossless_vs_lossy_total == 3
        assert snapshot.opus_vs_mp3_total == 1
        assert snapshot.opus_vs_mp3_opus_wins == 0
        assert snapshot.aac_vs_mp3_total is None
        assert snapshot.comparison_same_gapless_count == 3
        assert snapshot.comparison_different_gap_count == 1

    def test_scores_and_insights(self, catalog):
        seed_answers(catalog)
        snapshot = generate_snapshot(catalog, now=NOW)

        assert snapshot.codec_pq_scores["flac_0"] == 100.0
        assert set(snapshot.codec_pq_scores) == {"flac_0", "opus_128", "mp3_128"}
        assert set(snapshot.insights) == {
            "codec_win_rates",
            "bradley_terry_scores",
            "device_breakdown",
            "tier_breakdown",
            "heatmap",
            "neither_rate",
            "flac_vs_lossy",
            "neither_by_bitrate_diff",
        }
        assert snapshot.cross_genre_quality_tradeoff == {"quality_wins": 1, "content_wins": 0}

    def test_genres_normalized(self, catalog):
        """s1 is stored as "Rock" and s2 as "jazz"."""
        seed_answers(catalog)
        snapshot = generate_snapshot(catalog, now=NOW)

        assert set(snapshot.codec_pq_scores_by_genre["flac_0"]) == {"rock", "jazz"}

    def test_empty_maps_stored_as_null(self, catalog):
        seed_answers(catalog)
        snapshot = generate_snapshot(catalog, now=NOW)
        assert snapshot.codec_equivalence_ratios is None

    def test_roundtrip_through_store(self, catalog):
        seed_answers(catalog)
        snapshot = generate_snapshot(catalog, now=NOW)
        stored = repo.get_latest_snapshot(catalog)

        assert stored.codec_matchup_matrix == snapshot.codec_matchup_matrix
        assert stored.codec_pq_scores == snapshot.codec_pq_scores
        assert stored.insights["neither_rate"] == snapshot.neither_rate


class TestCandidateResolver:
    """Per-run memoization."""

    def test_each_candidate_loaded_once(self, catalog, monkeypatch):
        seed_answers(catalog)
        calls = []
        original = repo.get_candidate

        def counting(session, candidate_id):
            calls.append(candidate_id)
            return original(session, candidate_id)

        monkeypatch.setattr(snapshot_module.repo, "get_candidate", counting)
        generate_snapshot(catalog, now=NOW)

        assert len(calls) == len(set(calls))
        assert "deleted-candidate" in calls

    def test_resolve_missing(self, catalog):
        seed_answers(catalog)
        resolver = CandidateResolver(catalog)
        answers = {a.answer_id: a for a in repo.get_all_answers(catalog)}
        assert resolver.resolve(answers["ans-5"]) is None
        assert resolver.resolve(answers["ans-1"]).genre_a == "rock"

    @pytest.mark.parametrize(
        "raw, expected",
        [(" Rock ", "rock"), ("JAZZ", "jazz"), ("   ", None), ("", None), (None, None)],
    )
    def test_normalize_genre(self, raw, expected):
        assert normalize_genre(raw) == expected


class TestRetention:
    """Only the newest expired snapshots are kept."""

    def add_expired(self, session, count):
        for i in range(count):
            created = NOW - timedelta(hours=2, minutes=i)
            repo.create_snapshot(
                session,
                SnapshotEntity(
                    snapshot_id=f"old-{i:03d}",
                    created_at=created,
                    expires_at=created + SNAPSHOT_TTL,
                    total_responses=0,
                ),
            )
        session.commit()

    def test_prunes_beyond_limit(self, session):
        self.add_expired(session, MAX_EXPIRED_SNAPSHOTS + 5)
        generate_snapshot(session, now=NOW)

        remaining = {row.snapshot_id for row in session.query(ResultSnapshot).all()}
        # 100 expired plus the fresh one
        assert len(remaining) == MAX_EXPIRED_SNAPSHOTS + 1
        # Oldest (largest offset) are the ones removed
        assert "old-000" in remaining
        assert "old-104" not in remaining
        assert "old-099" in remaining
        assert "old-100" not in remaining

    def test_keeps_all_under_limit(self, session):
        self.add_expired(session, 3)
        assert prune_expired_snapshots(session, NOW) == 0
        assert session.query(ResultSnapshot).count() == 3

    def test_prune_is_idempotent(self, session):
        self.add_expired(session, 4)
        assert prune_expired_snapshots(session, NOW, keep=2) == 2
        assert prune_expired_snapshots(session, NOW, keep=2) == 0
