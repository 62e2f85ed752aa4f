"""Answer submission for listening rounds.

Records one comparison outcome against the two round tokens, then
invalidates every token of the round so the outcome is recorded at most
once. Domain logic is pure - database operations go through repo.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from earshot.db import repo
from earshot.db.repo import DbSession
from earshot.eval import tokens
from earshot.eval.rounds import issue_preview_token
from earshot.eval.survey_config import DEFAULT_SEGMENT_DURATION_MS
from earshot.eval.tokens import TokenInvalidError
from earshot.models.domain import (
    SELECTED_OPTIONS,
    TRANSITION_MODES,
    AnswerEntity,
    CandidateEntity,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass
class AnswerInput:
    """Input for answer submission."""

    token_a: str
    token_b: str
    selected: str
    transition_mode: str
    device_id: str
    start_time_ms: int = 0
    segment_duration_ms: int | None = None
    response_time_ms: int | None = None
    playback_position_ms: int | None = None
    session_id: str | None = None


@dataclass
class AnswerResult:
    """Result of answer submission."""

    answer_id: str
    pairing_type: str
    playback_token: str | None
    playback_position_ms: int


def infer_pairing_type(candidate_a: CandidateEntity, candidate_b: CandidateEntity) -> str:
    """Derive the pairing strategy from the two resolved candidates."""
    if candidate_a.candidate_id == candidate_b.candidate_id:
        return "placebo"
    if candidate_a.source_id == candidate_b.source_id:
        return "same_source"
    return "different_source"


def submit_answer(
    session: DbSession,
    answer_input: AnswerInput,
    *,
    now: datetime | None = None,
) -> AnswerResult:
    """Record an answer and consume the round's tokens.

    Args:
        session: Database session.
        answer_input: Answer data.
        now: Clock override for expiry checks.

    Returns:
        AnswerResult with the new answer ID and an optional playback token.

    Raises:
        ValueError: If selection, transition mode or device is invalid.
        TokenInvalidError: If a token is unknown, already consumed, a
            preview token, or the two tokens come from different rounds.
        TokenExpiredError: If a token is past expiry.
    """
    now = now or utcnow()

    if answer_input.selected not in SELECTED_OPTIONS:
        raise ValueError(f"Invalid selection: {answer_input.selected}")
    if answer_input.transition_mode not in TRANSITION_MODES:
        raise ValueError(f"Invalid transition mode: {answer_input.transition_mode}")
    if answer_input.token_a == answer_input.token_b:
        raise ValueError("Round tokens must be distinct")
    if repo.get_device(session, answer_input.device_id) is None:
        raise ValueError(f"Device not found: {answer_input.device_id}")

    round_id, candidate_a, candidate_b = tokens.resolve_round(
        session, answer_input.token_a, answer_input.token_b, now=now
    )

    answer = _create_answer_entity(answer_input, candidate_a, candidate_b, now)
    repo.create_answer(session, answer)

    consumed = tokens.consume_tokens(session, [answer_input.token_a, answer_input.token_b])
    if consumed != 2:
        # Another submission consumed the round first
        repo.rollback(session)
        raise TokenInvalidError("Stream tokens already consumed")
    tokens.consume_round(session, round_id)

    chosen = candidate_a if answer_input.selected == "a" else candidate_b
    playback_token = issue_preview_token(session, chosen.source_id, now)
    repo.commit(session)

    logger.info(
        f"Answer {answer.answer_id} saved: {candidate_a.key} vs {candidate_b.key} "
        f"-> {answer.selected} ({answer.pairing_type})"
    )

    position = answer_input.playback_position_ms
    return AnswerResult(
        answer_id=answer.answer_id,
        pairing_type=answer.pairing_type,
        playback_token=playback_token,
        playback_position_ms=position if position is not None and position >= 0 else 0,
    )


def _create_answer_entity(
    answer_input: AnswerInput,
    candidate_a: CandidateEntity,
    candidate_b: CandidateEntity,
    now: datetime,
) -> AnswerEntity:
    """Build the answer entity. Pure function - no database access."""
    segment_duration_ms = answer_input.segment_duration_ms
    if segment_duration_ms is None:
        segment_duration_ms = DEFAULT_SEGMENT_DURATION_MS

    return AnswerEntity(
        answer_id=str(uuid.uuid4()),
        device_id=answer_input.device_id,
        candidate_a_id=candidate_a.candidate_id,
        candidate_b_id=candidate_b.candidate_id,
        selected=answer_input.selected,
        pairing_type=infer_pairing_type(candidate_a, candidate_b),
        transition_mode=answer_input.transition_mode,
        start_time_ms=answer_input.start_time_ms,
        segment_duration_ms=segment_duration_ms,
        response_time_ms=answer_input.response_time_ms,
        session_id=answer_input.session_id,
        created_at=now,
    )
