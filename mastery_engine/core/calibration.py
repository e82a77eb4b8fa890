"""
Calibration Normalization and Confidence Calibration.

Raw calibration measures how well stated confidence matched correctness:
-1.5 is severe overconfidence, 0 is perfectly calibrated, +1.5 is severe
underconfidence. Everything downstream (scheduling, prioritisation, status
display) consumes one of the transforms defined here.

Mapping (raw -> normalized):
    -1.5 -> 0.0
    -1.0 -> 0.167
     0.0 -> 0.5
    +1.0 -> 0.833
    +1.5 -> 1.0
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from .models import Response, RetrievalMethod

RAW_MIN = -1.5
RAW_MAX = 1.5
RAW_SPAN = RAW_MAX - RAW_MIN

# Enough precision to remove float drift ((0.9 + 1.5) / 3 = 0.7999999999999999)
# while keeping denormalize(normalize(x)) within 0.0015 of x.
NORMALIZED_PRECISION = 3

WELL_CALIBRATED_ERROR = 0.2
BIAS_BAND = 0.1


def _clamp_raw(raw: float | None) -> float:
    value = 0.0 if raw is None else raw
    return max(RAW_MIN, min(RAW_MAX, value))


def normalize_calibration(raw: float | None) -> float:
    """
    Normalize a raw calibration score from [-1.5, 1.5] to [0, 1].

    Missing scores are treated as perfectly calibrated (0.0).
    """
    return round((_clamp_raw(raw) - RAW_MIN) / RAW_SPAN, NORMALIZED_PRECISION)


def denormalize_calibration(normalized: float) -> float:
    """Inverse of normalize_calibration."""
    clamped = max(0.0, min(1.0, normalized))
    return clamped * RAW_SPAN + RAW_MIN


def calibration_priority(raw: float | None) -> float:
    """
    Practice priority derived from calibration.

    1.0 for severe overconfidence, 0.5 when calibrated, 0.0 for severe
    underconfidence.
    """
    return (RAW_MAX - _clamp_raw(raw)) / RAW_SPAN


# =============================================================================
# Qualitative status
# =============================================================================


@dataclass(frozen=True)
class CalibrationStatus:
    label: str
    description: str
    color: str


_STATUS_BUCKETS: tuple[tuple[float, CalibrationStatus], ...] = (
    (1.0, CalibrationStatus("Excellent", "Confidence matches performance very well", "green")),
    (0.5, CalibrationStatus("Good", "Confidence matches performance", "green")),
    (0.0, CalibrationStatus("Fair", "Slightly overconfident", "yellow")),
    (-0.5, CalibrationStatus("Developing", "Moderately overconfident", "yellow")),
    (-1.0, CalibrationStatus("Poor", "Significantly overconfident", "dark_orange")),
)

_CRITICAL = CalibrationStatus("Critical", "Severely overconfident - needs calibration work", "red")


def calibration_status(raw: float | None) -> CalibrationStatus:
    """Bucket a raw calibration score into one of six ordered statuses."""
    value = 0.0 if raw is None else raw
    for threshold, status in _STATUS_BUCKETS:
        if value >= threshold:
            return status
    return _CRITICAL


# =============================================================================
# 3-D calibration matrix
# =============================================================================


class ConfidenceBand(str, Enum):
    LOW = "low"  # 1-2
    MEDIUM = "medium"  # 3
    HIGH = "high"  # 4-5

    @classmethod
    def from_confidence(cls, confidence: int) -> ConfidenceBand:
        if confidence >= 4:
            return cls.HIGH
        if confidence == 3:
            return cls.MEDIUM
        return cls.LOW


_M = RetrievalMethod

CALIBRATION_MATRIX: dict[bool, dict[ConfidenceBand, dict[RetrievalMethod, float]]] = {
    True: {
        ConfidenceBand.HIGH: {_M.MEMORY: 1.5, _M.RECOGNITION: 1.2, _M.EDUCATED_GUESS: 0.8, _M.RANDOM_GUESS: 0.3},
        ConfidenceBand.MEDIUM: {_M.MEMORY: 1.2, _M.RECOGNITION: 1.0, _M.EDUCATED_GUESS: 0.9, _M.RANDOM_GUESS: 0.4},
        ConfidenceBand.LOW: {_M.MEMORY: 0.9, _M.RECOGNITION: 0.8, _M.EDUCATED_GUESS: 0.7, _M.RANDOM_GUESS: 0.5},
    },
    False: {
        ConfidenceBand.HIGH: {_M.MEMORY: -1.5, _M.RECOGNITION: -1.2, _M.EDUCATED_GUESS: -0.8, _M.RANDOM_GUESS: -0.5},
        ConfidenceBand.MEDIUM: {_M.MEMORY: -1.0, _M.RECOGNITION: -0.8, _M.EDUCATED_GUESS: -0.6, _M.RANDOM_GUESS: -0.4},
        ConfidenceBand.LOW: {_M.MEMORY: -0.6, _M.RECOGNITION: -0.4, _M.EDUCATED_GUESS: -0.3, _M.RANDOM_GUESS: -0.2},
    },
}


def calibration_score(
    is_correct: bool,
    confidence: int,
    retrieval_method: RetrievalMethod | str | None,
) -> float:
    """
    Look up the raw calibration score for a response.

    Args:
        is_correct: Whether the answer was correct
        confidence: Stated confidence (1-5)
        retrieval_method: How the learner arrived at the answer

    Returns:
        Raw calibration score in [-1.5, 1.5]
    """
    try:
        method = RetrievalMethod(retrieval_method)
    except ValueError:
        logger.warning(
            f"Unknown retrieval method {retrieval_method!r} "
            f"(correct={is_correct}, confidence={confidence}); using fallback score"
        )
        return 0.5 if is_correct else -0.5

    band = ConfidenceBand.from_confidence(confidence)
    return CALIBRATION_MATRIX[is_correct][band][method]


def raw_calibration_for(response: Response) -> float | None:
    """Stored calibration score, else the matrix value when the retrieval method is known."""
    if response.calibration_score is not None:
        return response.calibration_score
    if response.retrieval_method is not None:
        return calibration_score(response.is_correct, response.confidence, response.retrieval_method)
    return None


# =============================================================================
# Confidence calibration error
# =============================================================================


@dataclass(frozen=True)
class ConfidenceCalibration:
    """Calibration of a single response."""

    confidence: int
    was_correct: bool
    calibration_error: float

    @property
    def is_well_calibrated(self) -> bool:
        return self.calibration_error <= WELL_CALIBRATED_ERROR


def evaluate_confidence(confidence: int, was_correct: bool) -> ConfidenceCalibration:
    """
    Evaluate one response: |confidence/5 - correctness|.

    Raises:
        ValueError: If confidence is outside 1-5
    """
    if confidence < 1 or confidence > 5:
        raise ValueError("Confidence level must be between 1 and 5")
    error = abs(confidence / 5 - (1.0 if was_correct else 0.0))
    return ConfidenceCalibration(confidence=confidence, was_correct=was_correct, calibration_error=error)


def overall_calibration_error(pairs: Iterable[tuple[int, bool]]) -> float:
    """Mean calibration error over (confidence, was_correct) pairs; 0 when empty."""
    errors = [evaluate_confidence(c, ok).calibration_error for c, ok in pairs]
    if not errors:
        return 0.0
    return sum(errors) / len(errors)


def brier_score(pairs: Iterable[tuple[int, bool]]) -> float:
    """Brier score of stated confidence as a forecast. Lower is better."""
    scores = [(c / 5 - (1.0 if ok else 0.0)) ** 2 for c, ok in pairs]
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


class ConfidenceBias(str, Enum):
    OVERCONFIDENT = "overconfident"
    UNDERCONFIDENT = "underconfident"
    WELL_CALIBRATED = "well_calibrated"


def detect_confidence_bias(pairs: Iterable[tuple[int, bool]]) -> tuple[ConfidenceBias, float]:
    """
    Compare mean stated confidence with accuracy.

    Returns:
        (bias, magnitude) where magnitude is |mean confidence - accuracy|
    """
    items = list(pairs)
    if not items:
        return ConfidenceBias.WELL_CALIBRATED, 0.0

    mean_confidence = sum(c / 5 for c, _ in items) / len(items)
    accuracy = sum(1 for _, ok in items if ok) / len(items)
    difference = mean_confidence - accuracy
    magnitude = abs(difference)

    if magnitude < BIAS_BAND:
        return ConfidenceBias.WELL_CALIBRATED, magnitude
    if difference > 0:
        return ConfidenceBias.OVERCONFIDENT, magnitude
    return ConfidenceBias.UNDERCONFIDENT, magnitude
