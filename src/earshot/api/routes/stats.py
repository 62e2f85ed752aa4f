"""Stats API endpoint.

GET /api/stats - Latest analytics snapshot
POST /api/snapshots - Aggregate now and store a new snapshot
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from earshot.aggregation.snapshot import generate_snapshot
from earshot.api.app import get_db_session
from earshot.db import repo
from earshot.db.repo import DbSession
from earshot.models.domain import SnapshotEntity
from earshot.models.types import SnapshotSummary, StatsResponse

router = APIRouter()


def _snapshot_to_summary(snapshot: SnapshotEntity) -> SnapshotSummary:
    """Convert SnapshotEntity to SnapshotSummary."""
    return SnapshotSummary(
        snapshot_id=snapshot.snapshot_id,
        created_at=snapshot.created_at,
        expires_at=snapshot.expires_at,
        total_responses=snapshot.total_responses,
        neither_rate=snapshot.neither_rate,
        avg_response_time_ms=snapshot.avg_response_time_ms,
        codec_pq_scores=snapshot.codec_pq_scores,
        codec_equivalence_ratios=snapshot.codec_equivalence_ratios,
        transparency_thresholds=snapshot.transparency_thresholds,
        diminishing_returns_points=snapshot.diminishing_returns_points,
        codec_pq_scores_by_genre=snapshot.codec_pq_scores_by_genre,
        insights=snapshot.insights,
    )


@router.get("/stats", response_model=StatsResponse)
def get_stats(session: DbSession = Depends(get_db_session)) -> StatsResponse:
    """Get the most recent snapshot.

    Returns:
        StatsResponse; ``snapshot`` is null before the first run.
    """
    snapshot = repo.get_latest_snapshot(session)
    return StatsResponse(snapshot=_snapshot_to_summary(snapshot) if snapshot else None)


@router.post("/snapshots", response_model=SnapshotSummary, status_code=201)
def create_snapshot(session: DbSession = Depends(get_db_session)) -> SnapshotSummary:
    """Aggregate all answers into a new snapshot."""
    return _snapshot_to_summary(generate_snapshot(session))
