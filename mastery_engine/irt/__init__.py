"""
IRT Module - item parameter calibration and Bloom-level defaults.
"""

from mastery_engine.irt.calibration import (
    CalibrationMethod,
    QuestionIRTParameters,
    calibrate_question,
    calibrate_questions,
)
from mastery_engine.irt.defaults import (
    DEFAULT_IRT_BY_BLOOM,
    IRTParameters,
    get_default_parameters,
    resolve_parameters,
)

__all__ = [
    "DEFAULT_IRT_BY_BLOOM",
    "CalibrationMethod",
    "IRTParameters",
    "QuestionIRTParameters",
    "calibrate_question",
    "calibrate_questions",
    "get_default_parameters",
    "resolve_parameters",
]
