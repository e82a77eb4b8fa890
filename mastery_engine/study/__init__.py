"""
Study Module - spaced repetition scheduling.
"""

from mastery_engine.study.spaced_repetition import (
    INTERVAL_TABLE_VERSION,
    INTERVAL_TIERS,
    ReviewSchedule,
    interval_hours,
    record_review,
    schedule_next_review,
)

__all__ = [
    "INTERVAL_TABLE_VERSION",
    "INTERVAL_TIERS",
    "ReviewSchedule",
    "interval_hours",
    "record_review",
    "schedule_next_review",
]
