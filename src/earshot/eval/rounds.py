"""Round sampling for blind listening comparisons.

Decides what to present next: pairing strategy, transition behavior,
the two candidate renditions, the segment window, and the stream tokens
needed to play them. Left/right (A/B) assignment is randomized to keep
positional bias out of the aggregate statistics.

Every missing precondition (no approved sources, no enabled encodings,
too few candidates) returns None rather than raising.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, TypeVar

from earshot.db import repo
from earshot.db.repo import DbSession
from earshot.eval import survey_config, tokens
from earshot.models.domain import (
    PAIRING_TYPES,
    TRANSITION_MODES,
    CandidateEntity,
    SourceEntity,
    utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Cross-track switches cannot be gapless; each track resumes where it paused
DIFFERENT_SOURCE_TRANSITION = "gap_pause_resume"

# Rendition used for "what you just heard" previews
PREVIEW_CODEC = "opus"
PREVIEW_BITRATE = 256


class RandomSource(Protocol):
    """Subset of random.Random used by the sampler."""

    def random(self) -> float: ...

    def choice(self, seq: Sequence[T]) -> T: ...


_system_random = secrets.SystemRandom()


@dataclass
class TrackLabel:
    """Metadata shown after a round ("you were listening to")."""

    title: str
    artist: str | None = None
    stream_url: str | None = None


@dataclass
class Round:
    """A proposed comparison with its access tokens."""

    round_id: str
    token_a: str
    token_b: str
    token_preview_a: str | None
    token_preview_b: str | None
    pairing_type: str
    transition_mode: str
    start_time_ms: int
    duration_ms: int
    candidate_a: CandidateEntity
    candidate_b: CandidateEntity
    label_a: TrackLabel
    label_b: TrackLabel


def weighted_choice(weights: Mapping[str, float], rng: RandomSource) -> str:
    """Draw one key with probability proportional to its (normalized) weight.

    Walks the cumulative sum and returns the first key whose cumulative
    weight reaches the draw. Falls back to the first key when rounding
    leaves the walk short of the draw.
    """
    draw = rng.random()
    cumulative = 0.0
    for key, weight in weights.items():
        cumulative += weight
        if draw <= cumulative:
            return key
    return next(iter(weights))


def choose_pairing_type(
    configured: Mapping[str, float],
    enabled: Sequence[str] | None,
    rng: RandomSource,
) -> str:
    """Pick a pairing strategy from the allowed pool using configured weights."""
    pool = list(PAIRING_TYPES)
    if enabled:
        pool = [p for p in PAIRING_TYPES if p in enabled] or list(PAIRING_TYPES)

    raw = {p: configured.get(p, 1.0) for p in pool}
    total = sum(raw.values())
    if total <= 0:
        # The allowed subset carries no weight: draw uniformly within it
        raw = {p: 1.0 for p in pool}
        total = float(len(pool))

    return weighted_choice({p: w / total for p, w in raw.items()}, rng)


def choose_transition_mode(
    pairing_type: str,
    enabled: Sequence[str] | None,
    rng: RandomSource,
) -> str:
    """Pick a transition behavior compatible with the pairing strategy."""
    base = (
        (DIFFERENT_SOURCE_TRANSITION,)
        if pairing_type == "different_source"
        else TRANSITION_MODES
    )
    pool = list(base)
    if enabled:
        pool = [m for m in base if m in enabled] or list(base)
    return rng.choice(pool)


def next_round(
    session: DbSession,
    enabled_modes: Sequence[str] | None = None,
    enabled_pairing: Sequence[str] | None = None,
    *,
    rng: RandomSource | None = None,
    now: datetime | None = None,
) -> Round | None:
    """Propose the next comparison round.

    Args:
        session: Database session.
        enabled_modes: Transition modes the listener allows (None = all).
        enabled_pairing: Pairing strategies the listener allows (None = all).
        rng: Random source; defaults to the system CSPRNG.
        now: Clock override for token expiry.

    Returns:
        Round with freshly issued tokens, or None if nothing can be sampled.
    """
    rng = rng or _system_random
    now = now or utcnow()

    sources = repo.get_approved_sources(session)
    if not sources:
        logger.info("No approved sources; no round available")
        return None

    options = repo.get_enabled_quality_options(session)
    if not options:
        logger.info("No enabled quality options; no round available")
        return None
    enabled_keys = {o.key for o in options}

    pairing_type = choose_pairing_type(
        survey_config.get_pairing_weights(session), enabled_pairing, rng
    )
    transition_mode = choose_transition_mode(pairing_type, enabled_modes, rng)
    segment_ms = survey_config.get_segment_duration(session)
    logger.debug(f"Pairing type: {pairing_type}, transition: {transition_mode}")

    picked = _pick_candidates(session, pairing_type, sources, enabled_keys, rng)
    if picked is None:
        return None
    candidate_a, candidate_b, source_duration_ms = picked

    if candidate_a.candidate_id != candidate_b.candidate_id and rng.random() < 0.5:
        candidate_a, candidate_b = candidate_b, candidate_a

    max_start = max(0, source_duration_ms - segment_ms)
    start_time_ms = int(rng.random() * max_start)

    round_id = str(uuid.uuid4())
    token_a = tokens.issue_token(
        session, candidate_a.candidate_id, tokens.ROUND_TOKEN_TTL, round_id=round_id, now=now
    )
    token_b = tokens.issue_token(
        session, candidate_b.candidate_id, tokens.ROUND_TOKEN_TTL, round_id=round_id, now=now
    )
    token_preview_a = issue_preview_token(session, candidate_a.source_id, now, round_id=round_id)
    token_preview_b = issue_preview_token(session, candidate_b.source_id, now, round_id=round_id)
    repo.commit(session)

    sources_by_id = {s.source_id: s for s in sources}

    logger.info(
        f"Round created: {pairing_type} {candidate_a.key} vs {candidate_b.key}, "
        f"start={start_time_ms}ms duration={segment_ms}ms"
    )

    return Round(
        round_id=round_id,
        token_a=token_a,
        token_b=token_b,
        token_preview_a=token_preview_a,
        token_preview_b=token_preview_b,
        pairing_type=pairing_type,
        transition_mode=transition_mode,
        start_time_ms=start_time_ms,
        duration_ms=segment_ms,
        candidate_a=candidate_a,
        candidate_b=candidate_b,
        label_a=_label_for(sources_by_id.get(candidate_a.source_id)),
        label_b=_label_for(sources_by_id.get(candidate_b.source_id)),
    )


def _pick_candidates(
    session: DbSession,
    pairing_type: str,
    sources: list[SourceEntity],
    enabled_keys: set[str],
    rng: RandomSource,
) -> tuple[CandidateEntity, CandidateEntity, int] | None:
    """Choose the two candidates for a strategy.

    Returns:
        (candidate_a, candidate_b, usable source duration in ms), or None.
    """
    if pairing_type == "different_source":
        if len(sources) < 2:
            logger.debug("Fewer than two approved sources for different_source")
            return None

        source_a = rng.choice(sources)
        source_b = rng.choice([s for s in sources if s.source_id != source_a.source_id])

        # Independent reads; order does not matter
        candidates_a = _enabled_candidates(session, source_a.source_id, enabled_keys)
        candidates_b = _enabled_candidates(session, source_b.source_id, enabled_keys)
        if not candidates_a or not candidates_b:
            logger.debug("A different_source side has no enabled candidates")
            return None

        return (
            rng.choice(candidates_a),
            rng.choice(candidates_b),
            min(source_a.duration_ms, source_b.duration_ms),
        )

    source = rng.choice(sources)
    candidates = _enabled_candidates(session, source.source_id, enabled_keys)

    if pairing_type == "same_source":
        if len(candidates) < 2:
            logger.debug(f"Source {source.source_id} has fewer than two enabled candidates")
            return None
        first = rng.choice(candidates)
        second = rng.choice([c for c in candidates if c.candidate_id != first.candidate_id])
        return first, second, source.duration_ms

    # placebo: identical rendition on both sides
    if not candidates:
        logger.debug(f"Source {source.source_id} has no enabled candidates")
        return None
    picked = rng.choice(candidates)
    return picked, picked, source.duration_ms


def _enabled_candidates(
    session: DbSession, source_id: str, enabled_keys: set[str]
) -> list[CandidateEntity]:
    return [c for c in repo.get_candidates_for_source(session, source_id) if c.key in enabled_keys]


def issue_preview_token(
    session: DbSession,
    source_id: str,
    now: datetime,
    *,
    round_id: str | None = None,
) -> str | None:
    """Mint a short-lived preview token for a source's opus_256 rendition, if present."""
    preview = repo.find_candidate(session, source_id, PREVIEW_CODEC, PREVIEW_BITRATE)
    if preview is None:
        return None
    return tokens.issue_token(
        session,
        preview.candidate_id,
        tokens.PREVIEW_TOKEN_TTL,
        kind="preview",
        round_id=round_id,
        now=now,
    )


def _label_for(source: SourceEntity | None) -> TrackLabel:
    if source is None:
        return TrackLabel(title="Unknown")
    return TrackLabel(title=source.title, artist=source.artist, stream_url=source.stream_url)
