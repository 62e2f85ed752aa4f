"""Survey settings API endpoint.

GET /api/settings/survey - Current pairing weights and segment length
PUT /api/settings/pairing-weights - Replace pairing weights
PUT /api/settings/segment-duration - Replace segment length
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from earshot.api.app import get_db_session
from earshot.db.repo import DbSession
from earshot.eval import survey_config
from earshot.eval.survey_config import ConfigValidationError
from earshot.models.types import PairingWeightsUpdate, SegmentDurationUpdate, SurveySettings

router = APIRouter()


def _current_settings(session: DbSession) -> SurveySettings:
    return SurveySettings(
        pairing_weights=survey_config.get_pairing_weights(session),
        segment_duration_ms=survey_config.get_segment_duration(session),
    )


@router.get("/settings/survey", response_model=SurveySettings)
def get_survey_settings(session: DbSession = Depends(get_db_session)) -> SurveySettings:
    """Get survey settings as the sampler sees them (defaults applied)."""
    return _current_settings(session)


@router.put("/settings/pairing-weights", response_model=SurveySettings)
def update_pairing_weights(
    update: PairingWeightsUpdate,
    session: DbSession = Depends(get_db_session),
) -> SurveySettings:
    """Replace pairing weights.

    Raises:
        HTTPException: 400 if the weights are rejected.
    """
    try:
        survey_config.set_pairing_weights(session, update.weights)
    except ConfigValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return _current_settings(session)


@router.put("/settings/segment-duration", response_model=SurveySettings)
def update_segment_duration(
    update: SegmentDurationUpdate,
    session: DbSession = Depends(get_db_session),
) -> SurveySettings:
    """Replace segment length.

    Raises:
        HTTPException: 400 if out of range.
    """
    try:
        survey_config.set_segment_duration(session, update.segment_duration_ms)
    except ConfigValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return _current_settings(session)
