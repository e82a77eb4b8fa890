"""
Empirical IRT Parameter Calibration.

Estimates 3PL item parameters (discrimination a, difficulty b, guessing c)
for a question from its accumulated responses.

This is a lightweight classical-test-theory approximation, not marginal
maximum likelihood estimation:
- b is a logit transform of the proportion correct (p-value), scaled by 1.7
- a peaks at p = 0.5 where the item separates learners best
- c is bounded by p and the usual 0.25 ceiling

It ignores learner ability entirely, so items answered mostly by strong
learners look easier than they are. Items below the sample or user-diversity
thresholds are reported as insufficient_data; substituting defaults is the
caller's job (see irt.defaults).
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from mastery_engine.core.models import Response

MIN_SAMPLE_SIZE = 30
MIN_UNIQUE_USERS = 10

A_MIN, A_MAX = 0.5, 2.5
B_MIN, B_MAX = -3.0, 3.0
C_MAX = 0.25
LOGISTIC_SCALE = 1.7


class CalibrationMethod(str, Enum):
    EMPIRICAL = "empirical"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class QuestionIRTParameters:
    """Calibrated (or skipped) parameters for one question."""

    question_id: str | None
    sample_size: int
    unique_user_count: int
    calibration_method: CalibrationMethod
    discrimination: float | None = None
    difficulty: float | None = None
    guessing: float | None = None
    p_value: float | None = None

    @property
    def is_empirical(self) -> bool:
        return self.calibration_method == CalibrationMethod.EMPIRICAL

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "discrimination": self.discrimination,
            "difficulty": self.difficulty,
            "guessing": self.guessing,
            "p_value": self.p_value,
            "sample_size": self.sample_size,
            "unique_user_count": self.unique_user_count,
            "calibration_method": self.calibration_method.value,
        }


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def difficulty_from_p(p: float) -> float:
    """b = -1.7 * logit(p), pinned at the extremes."""
    if p >= 0.99:
        return B_MIN
    if p <= 0.01:
        return B_MAX
    return _clamp(-LOGISTIC_SCALE * math.log(p / (1 - p)), B_MIN, B_MAX)


def discrimination_from_p(p: float) -> float:
    """Peaks at 2.5 when p = 0.5, falls to 0.5 at the extremes."""
    return _clamp(0.5 + (p * (1 - p) / 0.25) * 2.0, A_MIN, A_MAX)


def guessing_from_p(p: float) -> float:
    return min(p, C_MAX)


def calibrate_question(
    responses: Iterable[Response],
    question_id: str | None = None,
    min_sample_size: int = MIN_SAMPLE_SIZE,
    min_unique_users: int = MIN_UNIQUE_USERS,
) -> QuestionIRTParameters:
    """
    Calibrate a single question from its responses.

    Args:
        responses: Every graded response to the question
        question_id: Identifier to stamp on the result (defaults to the responses')
        min_sample_size: Responses required for empirical calibration
        min_unique_users: Distinct users required for empirical calibration

    Returns:
        QuestionIRTParameters; parameters are None when data is insufficient
    """
    items = list(responses)
    if question_id is None and items:
        question_id = items[0].question_id

    n = len(items)
    users = {r.user_id for r in items}

    if n < min_sample_size or len(users) < min_unique_users:
        logger.debug(
            f"Question {question_id}: insufficient data "
            f"({n}/{min_sample_size} responses, {len(users)}/{min_unique_users} users)"
        )
        return QuestionIRTParameters(
            question_id=question_id,
            sample_size=n,
            unique_user_count=len(users),
            calibration_method=CalibrationMethod.INSUFFICIENT_DATA,
        )

    p = sum(1 for r in items if r.is_correct) / n

    return QuestionIRTParameters(
        question_id=question_id,
        sample_size=n,
        unique_user_count=len(users),
        calibration_method=CalibrationMethod.EMPIRICAL,
        discrimination=discrimination_from_p(p),
        difficulty=difficulty_from_p(p),
        guessing=guessing_from_p(p),
        p_value=p,
    )


def calibrate_questions(
    responses: Iterable[Response],
    min_sample_size: int = MIN_SAMPLE_SIZE,
    min_unique_users: int = MIN_UNIQUE_USERS,
) -> dict[str, QuestionIRTParameters]:
    """Group responses by question and calibrate each. Responses without a question id are ignored."""
    by_question: dict[str, list[Response]] = defaultdict(list)
    for response in responses:
        if response.question_id is not None:
            by_question[response.question_id].append(response)

    return {
        question_id: calibrate_question(items, question_id, min_sample_size, min_unique_users)
        for question_id, items in by_question.items()
    }
