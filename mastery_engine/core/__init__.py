"""
Core engine: response model, rewards, calibration and the mastery fold.
"""

from mastery_engine.core.calibration import (
    CalibrationStatus,
    calibration_priority,
    calibration_score,
    calibration_status,
    denormalize_calibration,
    normalize_calibration,
    raw_calibration_for,
)
from mastery_engine.core.exceptions import (
    BatchInProgressError,
    GraphUnavailableError,
    InvalidResponseError,
    MasteryEngineError,
    OrderingViolationError,
    RecordStoreError,
)
from mastery_engine.core.mastery import (
    MasteryKey,
    MasteryLevel,
    TopicMastery,
    fold_responses,
    has_met_mastery_requirements,
    update_mastery,
)
from mastery_engine.core.models import Response, RetrievalMethod, RewardDecomposition
from mastery_engine.core.rewards import calculate_reward_components, compute_reward

__all__ = [
    "BatchInProgressError",
    "CalibrationStatus",
    "GraphUnavailableError",
    "InvalidResponseError",
    "MasteryEngineError",
    "MasteryKey",
    "MasteryLevel",
    "OrderingViolationError",
    "RecordStoreError",
    "Response",
    "RetrievalMethod",
    "RewardDecomposition",
    "TopicMastery",
    "calculate_reward_components",
    "calibration_priority",
    "calibration_score",
    "calibration_status",
    "compute_reward",
    "denormalize_calibration",
    "fold_responses",
    "has_met_mastery_requirements",
    "normalize_calibration",
    "raw_calibration_for",
    "update_mastery",
]
