"""Tests for pydantic models and domain helpers.

Tests validate:
1. Model creation with valid data
2. Literal type constraints enforced
3. Optional fields handled correctly
4. Item key helpers
"""

import pytest
from pydantic import ValidationError

from earshot.models.domain import CandidateEntity, item_key, split_item_key
from earshot.models.types import AnswerSubmission, RoundDetail, SurveySettings, TrackLabelDetail


class TestItemKeys:
    """Encoding keys used throughout aggregation."""

    def test_item_key(self):
        assert item_key("opus", 128) == "opus_128"
        assert item_key("flac", 0) == "flac_0"

    def test_split_item_key(self):
        assert split_item_key("opus_128") == ("opus", 128)
        assert split_item_key("flac_0") == ("flac", 0)

    def test_candidate_key(self):
        candidate = CandidateEntity(candidate_id="c1", source_id="s1", codec="flac", bitrate=0)
        assert candidate.key == "flac_0"
        assert candidate.is_lossless


class TestAnswerSubmission:
    """Test AnswerSubmission model."""

    def test_minimal_submission(self):
        """Optional fields default."""
        submission = AnswerSubmission(
            token_a="t1",
            token_b="t2",
            selected="neither",
            transition_mode="gap_restart",
            device_id="dev-1",
        )
        assert submission.start_time_ms == 0
        assert submission.segment_duration_ms is None
        assert submission.playback_position_ms is None

    def test_invalid_selected_rejected(self):
        with pytest.raises(ValidationError):
            AnswerSubmission(
                token_a="t1",
                token_b="t2",
                selected="left",
                transition_mode="gapless",
                device_id="dev-1",
            )

    def test_invalid_transition_rejected(self):
        with pytest.raises(ValidationError):
            AnswerSubmission(
                token_a="t1",
                token_b="t2",
                selected="a",
                transition_mode="crossfade",
                device_id="dev-1",
            )

    def test_negative_response_time_rejected(self):
        with pytest.raises(ValidationError):
            AnswerSubmission(
                token_a="t1",
                token_b="t2",
                selected="a",
                transition_mode="gapless",
                device_id="dev-1",
                response_time_ms=-1,
            )


class TestRoundDetail:
    """Test RoundDetail model."""

    def test_valid_round(self):
        detail = RoundDetail(
            token_a="t1",
            token_b="t2",
            token_preview_a=None,
            token_preview_b="p2",
            transition_mode="gapless",
            start_time_ms=1000,
            duration_ms=12000,
            label_a=TrackLabelDetail(title="One"),
            label_b=TrackLabelDetail(title="Two", artist="Band"),
        )
        assert detail.label_a.artist is None
        assert "pairing_type" not in detail.model_dump()


class TestSurveySettings:
    def test_valid(self):
        settings = SurveySettings(
            pairing_weights={"same_source": 1.0}, segment_duration_ms=12000
        )
        assert settings.pairing_weights["same_source"] == 1.0
