"""Rounds API endpoint.

GET /api/rounds/next - Propose the next blind comparison
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from earshot.api.app import get_db_session
from earshot.db.repo import DbSession
from earshot.eval.rounds import Round, TrackLabel, next_round
from earshot.models.types import RoundDetail, TrackLabelDetail

router = APIRouter()


def _split_csv(value: str | None) -> list[str] | None:
    if not value:
        return None
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or None


def _label_to_detail(label: TrackLabel) -> TrackLabelDetail:
    return TrackLabelDetail(title=label.title, artist=label.artist, stream_url=label.stream_url)


def _round_to_detail(proposed: Round) -> RoundDetail:
    """Convert Round to RoundDetail, dropping server-side fields."""
    return RoundDetail(
        token_a=proposed.token_a,
        token_b=proposed.token_b,
        token_preview_a=proposed.token_preview_a,
        token_preview_b=proposed.token_preview_b,
        transition_mode=proposed.transition_mode,
        start_time_ms=proposed.start_time_ms,
        duration_ms=proposed.duration_ms,
        label_a=_label_to_detail(proposed.label_a),
        label_b=_label_to_detail(proposed.label_b),
    )


@router.get("/rounds/next", response_model=RoundDetail)
def get_next_round(
    modes: str | None = Query(default=None, description="Comma-separated transition modes"),
    pairing: str | None = Query(default=None, description="Comma-separated pairing types"),
    session: DbSession = Depends(get_db_session),
) -> RoundDetail:
    """Get the next comparison round.

    Args:
        modes: Allowed transition modes (all when omitted).
        pairing: Allowed pairing strategies (all when omitted).
        session: Database session (injected).

    Returns:
        RoundDetail with stream tokens for both sides.

    Raises:
        HTTPException: 404 if nothing can be sampled yet.
    """
    proposed = next_round(session, _split_csv(modes), _split_csv(pairing))

    if proposed is None:
        raise HTTPException(status_code=404, detail="No rounds available")

    return _round_to_detail(proposed)
