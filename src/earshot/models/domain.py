"""Domain models for Earshot.

Pure Python dataclasses representing domain entities.
These models are independent of SQLAlchemy and used throughout
the application for clean separation from the database layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

# ============================================================================
# Enumerations
# ============================================================================

Selected = Literal["a", "b", "neither"]
PairingType = Literal["same_source", "different_source", "placebo"]
TransitionMode = Literal["gapless", "gap_continue", "gap_restart", "gap_pause_resume"]

CODECS: tuple[str, ...] = ("flac", "opus", "mp3", "aac")
SELECTED_OPTIONS: tuple[str, ...] = ("a", "b", "neither")
PAIRING_TYPES: tuple[str, ...] = ("same_source", "different_source", "placebo")
TRANSITION_MODES: tuple[str, ...] = (
    "gapless",
    "gap_continue",
    "gap_restart",
    "gap_pause_resume",
)
TOKEN_KINDS: tuple[str, ...] = ("round", "preview")

LOSSLESS_CODEC = "flac"


def item_key(codec: str, bitrate: int) -> str:
    """Build the ranked item key for an encoding, e.g. ``opus_128``."""
    return f"{codec}_{bitrate}"


def split_item_key(key: str) -> tuple[str, int]:
    """Split an item key back into (codec, bitrate)."""
    codec, _, bitrate = key.rpartition("_")
    return codec, int(bitrate or 0)


def utcnow() -> datetime:
    """Current time as naive UTC, matching what SQLite round-trips."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# Catalog Domain
# ============================================================================


@dataclass
class SourceEntity:
    """Domain model for an uploaded source track."""

    source_id: str
    title: str
    duration_ms: int
    storage_key: str = ""
    artist: str | None = None
    stream_url: str | None = None
    genre: str | None = None
    genre_secondary: str | None = None
    approved_at: datetime | None = None


@dataclass
class CandidateEntity:
    """Domain model for one encoded rendition of a source."""

    candidate_id: str
    source_id: str
    codec: str
    bitrate: int
    storage_key: str = ""

    @property
    def key(self) -> str:
        return item_key(self.codec, self.bitrate)

    @property
    def is_lossless(self) -> bool:
        return self.codec == LOSSLESS_CODEC


@dataclass
class QualityOptionEntity:
    """Domain model for an encoding configuration (codec, bitrate)."""

    codec: str
    bitrate: int
    enabled: bool = True

    @property
    def key(self) -> str:
        return item_key(self.codec, self.bitrate)


@dataclass
class DeviceEntity:
    """Domain model for a listening device."""

    device_id: str
    device_type: str
    connection_type: str
    brand: str
    model: str
    price_tier: str
    approved_at: datetime | None = None


# ============================================================================
# Survey Domain
# ============================================================================


@dataclass
class StreamTokenEntity:
    """Domain model for an ephemeral access handle."""

    token: str
    candidate_id: str
    expires_at: datetime
    kind: str = "round"
    round_id: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


@dataclass
class AnswerEntity:
    """Domain model for one recorded comparison outcome (append-only)."""

    answer_id: str
    device_id: str
    candidate_a_id: str
    candidate_b_id: str
    selected: Selected
    pairing_type: PairingType
    transition_mode: TransitionMode
    start_time_ms: int
    segment_duration_ms: int
    response_time_ms: int | None = None
    session_id: str | None = None
    created_at: datetime | None = None


# ============================================================================
# Snapshot Domain
# ============================================================================


@dataclass
class SnapshotEntity:
    """Domain model for a point-in-time analytics snapshot.

    Scalar columns hold headline numbers; the dict-valued fields hold
    the nested maps (matchup matrix, heatmap, genre scores, ...).
    ``None`` means the metric had no data.
    """

    snapshot_id: str
    created_at: datetime
    expires_at: datetime
    total_responses: int

    # Overall
    neither_rate: float | None = None
    avg_response_time_ms: int | None = None

    # Per-codec win rates
    flac_win_rate: float | None = None
    flac_comparisons: int | None = None
    opus_win_rate: float | None = None
    opus_comparisons: int | None = None
    aac_win_rate: float | None = None
    aac_comparisons: int | None = None
    mp3_win_rate: float | None = None
    mp3_comparisons: int | None = None

    # Bitrate tier win rates
    bitrate_lossless_win_rate: float | None = None
    bitrate_high_win_rate: float | None = None
    bitrate_mid_win_rate: float | None = None
    bitrate_low_win_rate: float | None = None

    # Headline matchups
    lossless_vs_lossy_lossless_wins: int | None = None
    lossless_vs_lossy_total: int | None = None
    opus_vs_mp3_opus_wins: int | None = None
    opus_vs_mp3_total: int | None = None
    aac_vs_mp3_aac_wins: int | None = None
    aac_vs_mp3_total: int | None = None

    # Device breakdown
    device_headphones_count: int | None = None
    device_speakers_count: int | None = None
    tier_budget_count: int | None = None
    tier_mid_count: int | None = None
    tier_premium_count: int | None = None
    tier_flagship_count: int | None = None

    # Comparison type distribution
    comparison_same_gapless_count: int | None = None
    comparison_same_gap_count: int | None = None
    comparison_different_gapless_count: int | None = None
    comparison_different_gap_count: int | None = None

    # Nested maps
    codec_matchup_matrix: dict[str, Any] | None = None
    bitrate_gap_confidence: dict[str, Any] | None = None
    codec_equivalence_ratios: dict[str, Any] | None = None
    flac_vs_lossy_win_rates: dict[str, Any] | None = None
    codec_pq_scores: dict[str, float] | None = None
    transparency_thresholds: dict[str, int] | None = None
    diminishing_returns_points: dict[str, int] | None = None
    codec_pq_scores_by_genre: dict[str, Any] | None = None
    cross_genre_quality_tradeoff: dict[str, int] | None = None
    quality_vs_content_by_gap: dict[str, Any] | None = None
    insights: dict[str, Any] = field(default_factory=dict)
