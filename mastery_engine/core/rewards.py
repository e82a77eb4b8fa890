"""
Reward Calculation.

Two reward signals are produced from a graded response:

1. compute_reward: a bounded [-1, 1] quality signal built from correctness,
   stated confidence and answer latency.
2. calculate_reward_components: the multi-component learning reward
   (learning gain, calibration, engagement, spacing, recognition) whose
   calibration and recognition parts drive the mastery fold.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import RetrievalMethod, RewardDecomposition

# Latency bands (seconds)
SLOW_RESPONSE_SECONDS = 180.0
FAST_RESPONSE_SECONDS = 30.0

# Raw range of RewardComponents.total used by normalize_reward
REWARD_FLOOR = -15.0
REWARD_CEILING = 25.0

# Component scale used when projecting calibration/recognition into [-1, 1]
COMPONENT_SCALE = 5.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def compute_reward(is_correct: bool, confidence: int, latency_seconds: float) -> float:
    """
    Compute the scalar reward for a single response.

    Base: +1.0 correct, -0.5 incorrect.
    Confidence: +0.2 correct & >=4, -0.1 correct & <=2,
                -0.3 incorrect & >=4, +0.1 incorrect & <=2.
    Latency: -0.1 above 180s, +0.1 when correct under 30s.

    Args:
        is_correct: Whether the answer was correct
        confidence: Stated confidence (1-5)
        latency_seconds: Time taken to answer

    Returns:
        Reward clamped to [-1, 1]
    """
    reward = 1.0 if is_correct else -0.5

    if is_correct and confidence >= 4:
        reward += 0.2
    elif is_correct and confidence <= 2:
        reward -= 0.1
    elif not is_correct and confidence >= 4:
        reward -= 0.3
    elif not is_correct and confidence <= 2:
        reward += 0.1

    if latency_seconds > SLOW_RESPONSE_SECONDS:
        reward -= 0.1
    elif is_correct and latency_seconds < FAST_RESPONSE_SECONDS:
        reward += 0.1

    return _clamp(reward, -1.0, 1.0)


# =============================================================================
# Multi-component learning reward
# =============================================================================


@dataclass(frozen=True)
class RewardComponents:
    """Breakdown of the learning reward for one response."""

    learning_gain: float
    calibration: float
    engagement: float
    spacing: float
    recognition: float

    @property
    def total(self) -> float:
        return self.learning_gain + self.calibration + self.engagement + self.spacing + self.recognition

    def decomposition(self) -> RewardDecomposition:
        """Project calibration and recognition into the [-1, 1] mastery inputs."""
        return RewardDecomposition(
            calibration_component=_clamp(self.calibration / COMPONENT_SCALE, -1.0, 1.0),
            recognition_component=_clamp(self.recognition / COMPONENT_SCALE, -1.0, 1.0),
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "learning_gain": self.learning_gain,
            "calibration": self.calibration,
            "engagement": self.engagement,
            "spacing": self.spacing,
            "recognition": self.recognition,
            "total": self.total,
        }


def _learning_gain_reward(learning_gain: float) -> float:
    # Gain spans -100..100
    return _clamp(learning_gain / 10, -10.0, 10.0)


def _calibration_reward(is_correct: bool, confidence: int) -> float:
    if is_correct:
        if confidence >= 4:
            return 5.0
        if confidence == 3:
            return 2.0
        return -2.0
    if confidence <= 2:
        return 2.0
    if confidence == 3:
        return -2.0
    return -5.0


def _engagement_reward(current_mastery: float, is_correct: bool) -> float:
    if current_mastery > 90 and is_correct:
        return -3.0  # too easy
    if current_mastery < 20 and not is_correct:
        return -3.0  # too hard
    return 0.0


def _spacing_reward(days_since_last_practice: float, is_correct: bool) -> float:
    if not is_correct:
        return 0.0
    if days_since_last_practice >= 7:
        return 5.0
    if days_since_last_practice >= 3:
        return 3.0
    if days_since_last_practice >= 1:
        return 1.0
    return 0.0


_RECOGNITION_CORRECT = {
    RetrievalMethod.MEMORY: 5.0,
    RetrievalMethod.RECOGNITION: 3.0,
    RetrievalMethod.EDUCATED_GUESS: 1.0,
    RetrievalMethod.RANDOM_GUESS: -1.0,
}

_RECOGNITION_INCORRECT = {
    RetrievalMethod.MEMORY: -3.0,  # false memory
    RetrievalMethod.RECOGNITION: -2.0,
    RetrievalMethod.EDUCATED_GUESS: -1.0,
    RetrievalMethod.RANDOM_GUESS: 0.0,
}


def _recognition_reward(method: RetrievalMethod | None, is_correct: bool) -> float:
    if method is None:
        return 0.0
    table = _RECOGNITION_CORRECT if is_correct else _RECOGNITION_INCORRECT
    return table[method]


def calculate_reward_components(
    learning_gain: float,
    is_correct: bool,
    confidence: int,
    current_mastery: float,
    days_since_last_practice: float,
    retrieval_method: RetrievalMethod | None = None,
) -> RewardComponents:
    """
    Calculate the multi-component learning reward.

    Args:
        learning_gain: Change in mastery caused by the response
        is_correct: Whether the answer was correct
        confidence: Stated confidence (1-5)
        current_mastery: Mastery before the response (0-100)
        days_since_last_practice: Days since the topic was last practiced
        retrieval_method: How the learner arrived at the answer

    Returns:
        RewardComponents with every component and the total
    """
    return RewardComponents(
        learning_gain=_learning_gain_reward(learning_gain),
        calibration=_calibration_reward(is_correct, confidence),
        engagement=_engagement_reward(current_mastery, is_correct),
        spacing=_spacing_reward(days_since_last_practice, is_correct),
        recognition=_recognition_reward(retrieval_method, is_correct),
    )


def normalize_reward(reward: float) -> float:
    """Map a total reward from [-15, 25] onto [0, 1]."""
    normalized = (reward - REWARD_FLOOR) / (REWARD_CEILING - REWARD_FLOOR)
    return _clamp(normalized, 0.0, 1.0)


def describe_reward(components: RewardComponents) -> str:
    """Human-readable summary of the notable reward components."""
    parts: list[str] = []

    if components.learning_gain > 5:
        parts.append("Strong learning gain!")
    elif components.learning_gain > 0:
        parts.append("Learning gain")
    elif components.learning_gain < -5:
        parts.append("Mastery decreased")

    if components.calibration > 3:
        parts.append("Excellent calibration")
    elif components.calibration < -3:
        parts.append("Calibration needs work")

    if components.recognition == 5:
        parts.append("Strong retrieval from memory!")
    elif components.recognition == 3:
        parts.append("Good recognition")
    elif components.recognition < -2:
        parts.append("False memory - review this topic")

    if components.engagement < -2:
        parts.append("Difficulty mismatch")

    if components.spacing > 3:
        parts.append("Great retention!")

    return " | ".join(parts) if parts else "Moderate progress"
