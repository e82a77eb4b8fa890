"""
Jobs Module - batch mastery recalculation and IRT calibration.
"""

from mastery_engine.jobs.irt_calibration import IRTCalibrationJob, IRTCalibrationSummary
from mastery_engine.jobs.mastery_recalculation import (
    MasteryRecalculationJob,
    RecalculationScope,
    RecalculationSummary,
)

__all__ = [
    "IRTCalibrationJob",
    "IRTCalibrationSummary",
    "MasteryRecalculationJob",
    "RecalculationScope",
    "RecalculationSummary",
]
