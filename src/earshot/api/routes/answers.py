"""Answers API endpoint.

POST /api/answers - Record a listener's choice for a round
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from earshot.api.app import get_db_session
from earshot.db.repo import DbSession
from earshot.eval.answers import AnswerInput, submit_answer
from earshot.eval.tokens import StreamTokenError
from earshot.models.types import AnswerCreatedResponse, AnswerSubmission

router = APIRouter()


@router.post("/answers", response_model=AnswerCreatedResponse, status_code=201)
def create_answer(
    submission: AnswerSubmission,
    session: DbSession = Depends(get_db_session),
) -> AnswerCreatedResponse:
    """Submit an answer for a round.

    Args:
        submission: Answer submission data.
        session: Database session (injected).

    Returns:
        AnswerCreatedResponse with answer_id and playback token.

    Raises:
        HTTPException: 410 if a round token is invalid, consumed or
            expired; 400 for any other rejected input.
    """
    # Build typed input for domain layer
    answer_input = AnswerInput(
        token_a=submission.token_a,
        token_b=submission.token_b,
        selected=submission.selected,
        transition_mode=submission.transition_mode,
        device_id=submission.device_id,
        start_time_ms=submission.start_time_ms,
        segment_duration_ms=submission.segment_duration_ms,
        response_time_ms=submission.response_time_ms,
        playback_position_ms=submission.playback_position_ms,
        session_id=submission.session_id,
    )

    try:
        result = submit_answer(session=session, answer_input=answer_input)
    except StreamTokenError as e:
        raise HTTPException(status_code=410, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return AnswerCreatedResponse(
        answer_id=result.answer_id,
        playback_token=result.playback_token,
        playback_position_ms=result.playback_position_ms,
    )
