"""Database schema for Earshot.

Catalog tables (sources, candidates, quality options, devices), the
append-only answers log, ephemeral stream tokens, survey configuration
and result snapshots.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ListeningDevice(Base):
    """Listening device (headphones/speaker) registered by a listener."""

    __tablename__ = "listening_devices"

    device_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    device_type: Mapped[str] = mapped_column(String(16), nullable=False)
    connection_type: Mapped[str] = mapped_column(String(16), nullable=False)
    brand: Mapped[str] = mapped_column(String(128), nullable=False)
    model: Mapped[str] = mapped_column(String(128), nullable=False)
    price_tier: Mapped[str] = mapped_column(String(16), nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class SourceFile(Base):
    """Lossless source track. Only approved sources are sampled."""

    __tablename__ = "source_files"

    source_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    artist: Mapped[str | None] = mapped_column(String(256), nullable=True)
    stream_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    genre: Mapped[str | None] = mapped_column(String(64), nullable=True)
    genre_secondary: Mapped[str | None] = mapped_column(String(64), nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class QualityOption(Base):
    """Encoding configuration. Disabling one keeps its history."""

    __tablename__ = "quality_options"

    codec: Mapped[str] = mapped_column(String(16), primary_key=True)
    bitrate: Mapped[int] = mapped_column(Integer, primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CandidateFile(Base):
    """Encoded rendition of a source.

    Invariant: UNIQUE(source_id, codec, bitrate)
    One rendition per encoding per source.
    """

    __tablename__ = "candidate_files"

    candidate_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    source_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("source_files.source_id"), nullable=False
    )
    codec: Mapped[str] = mapped_column(String(16), nullable=False)
    bitrate: Mapped[int] = mapped_column(Integer, nullable=False)
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False, default="")

    __table_args__ = (
        UniqueConstraint("source_id", "codec", "bitrate", name="uq_candidate_encoding"),
    )


class StreamToken(Base):
    """Ephemeral access handle for one candidate. Deleted once consumed."""

    __tablename__ = "stream_tokens"

    token: Mapped[str] = mapped_column(String(64), primary_key=True)
    candidate_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("candidate_files.candidate_id"), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    # "round" tokens are submittable; "preview" tokens only stream
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="round")
    # Shared by every token issued for one round
    round_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)


class Answer(Base):
    """Comparison outcome (append-only)."""

    __tablename__ = "answers"

    answer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    device_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("listening_devices.device_id"), nullable=False
    )
    candidate_a_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("candidate_files.candidate_id"), nullable=False
    )
    candidate_b_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("candidate_files.candidate_id"), nullable=False
    )
    selected: Mapped[str] = mapped_column(String(8), nullable=False)
    pairing_type: Mapped[str] = mapped_column(String(16), nullable=False)
    transition_mode: Mapped[str] = mapped_column(String(32), nullable=False)
    start_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    segment_duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    response_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)


class SurveyConfig(Base):
    """Key/value survey settings (pairing weights, segment length)."""

    __tablename__ = "survey_config"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)


class ResultSnapshot(Base):
    """Immutable analytics snapshot over all answers at creation time."""

    __tablename__ = "result_snapshots"

    snapshot_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    # Overall
    total_responses: Mapped[int] = mapped_column(Integer, nullable=False)
    neither_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_response_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Codec win rates
    flac_win_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    flac_comparisons: Mapped[int | None] = mapped_column(Integer, nullable=True)
    opus_win_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    opus_comparisons: Mapped[int | None] = mapped_column(Integer, nullable=True)
    aac_win_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    aac_comparisons: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mp3_win_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    mp3_comparisons: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Bitrate tier win rates
    bitrate_lossless_win_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    bitrate_high_win_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    bitrate_mid_win_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    bitrate_low_win_rate: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Headline matchups
    lossless_vs_lossy_lossless_wins: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lossless_vs_lossy_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    opus_vs_mp3_opus_wins: Mapped[int | None] = mapped_column(Integer, nullable=True)
    opus_vs_mp3_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    aac_vs_mp3_aac_wins: Mapped[int | None] = mapped_column(Integer, nullable=True)
    aac_vs_mp3_total: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Device breakdown
    device_headphones_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    device_speakers_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tier_budget_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tier_mid_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tier_premium_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tier_flagship_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Comparison type distribution
    comparison_same_gapless_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    comparison_same_gap_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    comparison_different_gapless_count: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )
    comparison_different_gap_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Nested maps (JSON)
    codec_matchup_matrix: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    bitrate_gap_confidence: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    codec_equivalence_ratios: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    flac_vs_lossy_win_rates: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    codec_pq_scores: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    transparency_thresholds: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    diminishing_returns_points: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    codec_pq_scores_by_genre: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    cross_genre_quality_tradeoff: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    quality_vs_content_by_gap: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    insights: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
