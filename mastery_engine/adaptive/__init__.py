"""
Adaptive Module - Bloom level progression decisions.
"""

from mastery_engine.adaptive.progression import (
    LevelReadiness,
    ProgressionAction,
    ProgressionDecision,
    ProgressionEvaluator,
    ProgressionRules,
    UserProgress,
    calculate_level_mastery,
    load_progress,
)

__all__ = [
    "LevelReadiness",
    "ProgressionAction",
    "ProgressionDecision",
    "ProgressionEvaluator",
    "ProgressionRules",
    "UserProgress",
    "calculate_level_mastery",
    "load_progress",
]
