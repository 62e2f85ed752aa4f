"""Survey configuration: pairing weights and segment length.

Reads never fail: missing, unparseable or out-of-range stored values fall
back to built-in defaults. Writes validate and raise
ConfigValidationError so invalid settings never reach the sampler.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping

from earshot.db import repo
from earshot.db.repo import DbSession
from earshot.models.domain import PAIRING_TYPES

logger = logging.getLogger(__name__)

PAIRING_WEIGHTS_KEY = "pairing_weights"
SEGMENT_DURATION_KEY = "segment_duration_ms"

DEFAULT_PAIRING_WEIGHTS: dict[str, float] = {
    "same_source": 0.7,
    "different_source": 0.2,
    "placebo": 0.1,
}

DEFAULT_SEGMENT_DURATION_MS = 12_000
MIN_SEGMENT_DURATION_MS = 1_000
MAX_SEGMENT_DURATION_MS = 120_000


class ConfigValidationError(ValueError):
    """Raised when a survey setting is rejected at write time."""


def get_pairing_weights(session: DbSession) -> dict[str, float]:
    """Read pairing weights, falling back to defaults per strategy.

    Weights that sum to zero fall back to the defaults entirely.
    """
    raw = repo.get_config_value(session, PAIRING_WEIGHTS_KEY)
    if not raw:
        return dict(DEFAULT_PAIRING_WEIGHTS)

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Stored pairing weights are not valid JSON; using defaults")
        return dict(DEFAULT_PAIRING_WEIGHTS)

    weights = dict(DEFAULT_PAIRING_WEIGHTS)
    if not isinstance(parsed, dict):
        return weights

    for pairing_type in PAIRING_TYPES:
        value = parsed.get(pairing_type)
        if _is_valid_weight(value):
            weights[pairing_type] = float(value)

    if sum(weights.values()) <= 0:
        logger.warning("Stored pairing weights are all zero; using defaults")
        return dict(DEFAULT_PAIRING_WEIGHTS)
    return weights


def set_pairing_weights(session: DbSession, weights: Mapping[str, float]) -> dict[str, float]:
    """Validate and store pairing weights.

    Every known strategy must be present with a finite, non-negative
    weight, and at least one weight must be positive.

    Raises:
        ConfigValidationError: If the weights are rejected.
    """
    unknown = set(weights) - set(PAIRING_TYPES)
    if unknown:
        raise ConfigValidationError(f"Unknown pairing types: {', '.join(sorted(unknown))}")

    validated: dict[str, float] = {}
    for pairing_type in PAIRING_TYPES:
        value = weights.get(pairing_type)
        if not _is_valid_weight(value):
            raise ConfigValidationError(f"Invalid weight for {pairing_type}")
        validated[pairing_type] = float(value)

    if sum(validated.values()) <= 0:
        raise ConfigValidationError("At least one weight must be positive")

    repo.set_config_value(session, PAIRING_WEIGHTS_KEY, json.dumps(validated))
    repo.commit(session)
    logger.info(f"Pairing weights updated: {validated}")
    return validated


def get_segment_duration(session: DbSession) -> int:
    """Read segment length in ms, falling back to the default."""
    raw = repo.get_config_value(session, SEGMENT_DURATION_KEY)
    if not raw:
        return DEFAULT_SEGMENT_DURATION_MS

    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_SEGMENT_DURATION_MS

    if not MIN_SEGMENT_DURATION_MS <= value <= MAX_SEGMENT_DURATION_MS:
        return DEFAULT_SEGMENT_DURATION_MS
    return value


def set_segment_duration(session: DbSession, duration_ms: int) -> int:
    """Validate and store segment length.

    Raises:
        ConfigValidationError: If outside 1000-120000 ms.
    """
    if isinstance(duration_ms, bool) or not isinstance(duration_ms, int):
        raise ConfigValidationError("Segment duration must be an integer number of ms")
    if not MIN_SEGMENT_DURATION_MS <= duration_ms <= MAX_SEGMENT_DURATION_MS:
        raise ConfigValidationError(
            f"Segment duration must be {MIN_SEGMENT_DURATION_MS}-{MAX_SEGMENT_DURATION_MS} ms"
        )

    repo.set_config_value(session, SEGMENT_DURATION_KEY, str(duration_ms))
    repo.commit(session)
    logger.info(f"Segment duration updated: {duration_ms} ms")
    return duration_ms


def _is_valid_weight(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value >= 0
