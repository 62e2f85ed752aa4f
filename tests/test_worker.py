"""Tests for the scheduled snapshot job."""

from datetime import timedelta

from conftest import NOW, add_answer, seed_catalog
from earshot.db.schema import ResultSnapshot, StreamToken
from earshot.db.session import get_db_session, init_db
from earshot.worker.snapshots import run_snapshot_job


class TestRunSnapshotJob:
    """run_snapshot_job opens its own session against a database file."""

    def test_creates_database_and_snapshot(self, tmp_path):
        db_path = tmp_path / "earshot.db"

        snapshot = run_snapshot_job(db_path)

        assert db_path.exists()
        assert snapshot.total_responses == 0
        with get_db_session(db_path) as session:
            assert session.query(ResultSnapshot).count() == 1

    def test_aggregates_history_and_purges_tokens(self, tmp_path):
        db_path = tmp_path / "earshot.db"
        init_db(db_path)
        with get_db_session(db_path) as session:
            seed_catalog(session)
            add_answer(session, "ans-1", "s1-flac_0", "s1-mp3_128", "a")
            session.add(
                StreamToken(
                    token="stale",
                    candidate_id="s1-flac_0",
                    expires_at=NOW - timedelta(days=1),
                )
            )

        snapshot = run_snapshot_job(db_path)

        assert snapshot.total_responses == 1
        assert snapshot.flac_win_rate == 1.0
        with get_db_session(db_path) as session:
            assert session.get(StreamToken, "stale") is None
