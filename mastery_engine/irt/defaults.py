"""
Default IRT parameters by Bloom level.

Used whenever a question has no empirical calibration yet. Higher Bloom
levels are harder (b) and discriminate more sharply (a).
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from mastery_engine.irt.calibration import QuestionIRTParameters


@dataclass(frozen=True)
class IRTParameters:
    discrimination: float
    difficulty: float
    guessing: float
    source: str = "bloom_default"


DEFAULT_IRT_BY_BLOOM: dict[int, IRTParameters] = {
    1: IRTParameters(1.0, -1.5, 0.20),  # Remember
    2: IRTParameters(1.2, -0.8, 0.20),  # Understand
    3: IRTParameters(1.5, 0.0, 0.20),  # Apply
    4: IRTParameters(1.8, 0.8, 0.20),  # Analyze
    5: IRTParameters(2.0, 1.2, 0.20),  # Evaluate
    6: IRTParameters(2.2, 1.8, 0.20),  # Create
}

FALLBACK_BLOOM_LEVEL = 3

# Chance of a correct blind guess by question type
GUESSING_BY_QUESTION_TYPE: dict[str, float] = {
    "true_false": 0.50,
    "mcq_single": 0.25,
    "mcq_multi": 0.15,
    "code_trace": 0.05,
    "code_debug": 0.05,
    "code_writing": 0.05,
    "fill_blank": 0.05,
    "open_ended": 0.01,
}


def get_default_parameters(bloom_level: int) -> IRTParameters:
    """Bloom-level defaults; unknown levels fall back to Apply."""
    params = DEFAULT_IRT_BY_BLOOM.get(bloom_level)
    if params is None:
        logger.warning(f"Invalid Bloom level {bloom_level}, using level {FALLBACK_BLOOM_LEVEL} IRT defaults")
        return DEFAULT_IRT_BY_BLOOM[FALLBACK_BLOOM_LEVEL]
    return params


def adjust_for_question_type(params: IRTParameters, question_type: str | None) -> IRTParameters:
    if question_type is None or question_type not in GUESSING_BY_QUESTION_TYPE:
        return params
    return IRTParameters(
        discrimination=params.discrimination,
        difficulty=params.difficulty,
        guessing=GUESSING_BY_QUESTION_TYPE[question_type],
        source=params.source,
    )


def resolve_parameters(
    calibrated: QuestionIRTParameters | None,
    bloom_level: int,
    question_type: str | None = None,
) -> IRTParameters:
    """
    Pick the parameters to use for a question.

    Empirical calibration wins; otherwise Bloom defaults adjusted for the
    question type.
    """
    if calibrated is not None and calibrated.is_empirical:
        return IRTParameters(
            discrimination=calibrated.discrimination,
            difficulty=calibrated.difficulty,
            guessing=calibrated.guessing,
            source="empirical",
        )
    return adjust_for_question_type(get_default_parameters(bloom_level), question_type)
