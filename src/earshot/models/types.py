"""Pydantic models for the Earshot API.

Request bodies are validated here; domain code receives plain
dataclasses built from them in the route handlers.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class TrackLabelDetail(BaseModel):
    """Track shown after a round ("you were listening to")."""

    title: str
    artist: str | None = None
    stream_url: str | None = None


class RoundDetail(BaseModel):
    """Next comparison round for API response.

    Carries only opaque tokens; pairing strategy and encodings stay
    server-side so the listener cannot tell which side is which.
    """

    token_a: str
    token_b: str
    token_preview_a: str | None
    token_preview_b: str | None
    transition_mode: Literal["gapless", "gap_continue", "gap_restart", "gap_pause_resume"]
    start_time_ms: int
    duration_ms: int
    label_a: TrackLabelDetail
    label_b: TrackLabelDetail


class AnswerSubmission(BaseModel):
    """Listener answer submission."""

    token_a: str
    token_b: str
    selected: Literal["a", "b", "neither"]
    transition_mode: Literal["gapless", "gap_continue", "gap_restart", "gap_pause_resume"]
    device_id: str
    start_time_ms: int = Field(default=0, ge=0)
    segment_duration_ms: int | None = Field(default=None, gt=0)
    response_time_ms: int | None = Field(default=None, ge=0)
    playback_position_ms: int | None = None
    session_id: str | None = None


class AnswerCreatedResponse(BaseModel):
    """Response for answer submission."""

    answer_id: str
    playback_token: str | None
    playback_position_ms: int


class SnapshotSummary(BaseModel):
    """Public view of an analytics snapshot."""

    snapshot_id: str
    created_at: datetime
    expires_at: datetime
    total_responses: int
    neither_rate: float | None
    avg_response_time_ms: int | None
    codec_pq_scores: dict[str, float] | None
    codec_equivalence_ratios: dict[str, Any] | None
    transparency_thresholds: dict[str, int] | None
    diminishing_returns_points: dict[str, int] | None
    codec_pq_scores_by_genre: dict[str, Any] | None
    insights: dict[str, Any]


class StatsResponse(BaseModel):
    """Latest snapshot, or null before the first aggregation run."""

    snapshot: SnapshotSummary | None


class SurveySettings(BaseModel):
    """Current survey configuration."""

    pairing_weights: dict[str, float]
    segment_duration_ms: int


class PairingWeightsUpdate(BaseModel):
    """Pairing weight update. Range checks happen in the domain layer."""

    weights: dict[str, float]


class SegmentDurationUpdate(BaseModel):
    """Segment length update in ms."""

    segment_duration_ms: int
