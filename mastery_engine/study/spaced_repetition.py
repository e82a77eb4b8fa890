"""
Calibration-Driven Spaced Repetition.

The next review of a question is a pure function of the moment it was
answered and the normalized calibration score of that answer. Intervals come
from a versioned, ordered tier table; the selected tier is the one with the
highest threshold not exceeding the (snapped) normalized score.

Well calibrated correct answers are pushed out to two weeks; confident wrong
answers come back within hours.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from mastery_engine.core.calibration import normalize_calibration

INTERVAL_TABLE_VERSION = "2024.1-24"

# Normalized scores are compared on this grid so that matrix cells such as
# raw 0.9 land on their own tier regardless of float drift.
LOOKUP_PRECISION = 2


@dataclass(frozen=True)
class IntervalTier:
    threshold: float
    hours: int
    label: str


# Ordered ascending; thresholds and hours are both non-decreasing.
INTERVAL_TIERS: tuple[IntervalTier, ...] = (
    IntervalTier(0.00, 4, "Incorrect, high confidence, from memory"),
    IntervalTier(0.10, 6, "Incorrect, high confidence, recognition"),
    IntervalTier(0.17, 8, "Incorrect, medium confidence, from memory"),
    IntervalTier(0.23, 12, "Incorrect, high confidence, educated guess"),
    IntervalTier(0.30, 16, "Incorrect, medium confidence, educated guess"),
    IntervalTier(0.33, 20, "Incorrect, high confidence, random guess"),
    IntervalTier(0.37, 24, "Incorrect, low confidence, recognition"),
    IntervalTier(0.40, 36, "Incorrect, low confidence, educated guess"),
    IntervalTier(0.43, 48, "Incorrect, low confidence, random guess"),
    IntervalTier(0.47, 54, "Near calibrated, slightly overconfident"),
    IntervalTier(0.50, 60, "Calibrated"),
    IntervalTier(0.53, 64, "Near calibrated, slightly underconfident"),
    IntervalTier(0.57, 68, "Correct, low-signal guess"),
    IntervalTier(0.60, 72, "Correct, high confidence, random guess"),
    IntervalTier(0.63, 96, "Correct, medium confidence, random guess"),
    IntervalTier(0.67, 120, "Correct, low confidence, random guess"),
    IntervalTier(0.73, 144, "Correct, low confidence, educated guess"),
    IntervalTier(0.77, 168, "Correct, high confidence, educated guess"),
    IntervalTier(0.80, 192, "Correct, low confidence, from memory"),
    IntervalTier(0.83, 240, "Correct, medium confidence, recognition"),
    IntervalTier(0.87, 264, "Correct, high confidence, strong recognition"),
    IntervalTier(0.90, 288, "Correct, high confidence, recognition"),
    IntervalTier(0.95, 312, "Correct, strong recall"),
    IntervalTier(1.00, 336, "Correct, high confidence, from memory"),
)


def select_tier(normalized_score: float) -> IntervalTier:
    """Return the highest tier whose threshold is <= the snapped score."""
    score = round(max(0.0, min(1.0, normalized_score)), LOOKUP_PRECISION)
    selected = INTERVAL_TIERS[0]
    for tier in INTERVAL_TIERS:
        if tier.threshold <= score:
            selected = tier
        else:
            break
    return selected


def interval_hours(normalized_score: float) -> int:
    """Review interval in hours for a normalized calibration score."""
    return select_tier(normalized_score).hours


def schedule_next_review(normalized_score: float, last_reviewed_at: datetime) -> datetime:
    """
    Compute the next review date.

    Args:
        normalized_score: Normalized calibration (0-1) of the answer just graded
        last_reviewed_at: When that answer was given

    Returns:
        last_reviewed_at + interval
    """
    return last_reviewed_at + timedelta(hours=interval_hours(normalized_score))


def next_review_from_raw(raw_calibration: float | None, last_reviewed_at: datetime) -> datetime:
    """Same as schedule_next_review but from a raw calibration score."""
    return schedule_next_review(normalize_calibration(raw_calibration), last_reviewed_at)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def is_due(next_review_date: datetime | None, now: datetime | None = None) -> bool:
    if next_review_date is None:
        return True  # Never reviewed = due
    return (now or _now()) >= next_review_date


def describe_interval(hours: float) -> str:
    """Human-readable interval, e.g. '4 hours', '1.5 days', '1 week'."""
    if hours < 24:
        return "1 hour" if hours == 1 else f"{hours:g} hours"

    days = hours / 24
    if days == 7:
        return "1 week"
    if days == 14:
        return "2 weeks"
    if days == 1:
        return "1 day"
    if days == int(days):
        return f"{int(days)} days"
    return f"{days:.1f} days"


def format_time_until_review(next_review_date: datetime | None, now: datetime | None = None) -> str:
    """Short countdown string for display."""
    if next_review_date is None:
        return "Due now"

    diff = next_review_date - (now or _now())
    if diff <= timedelta(0):
        return "Due now"

    hours = int(diff.total_seconds() // 3600)
    if hours < 1:
        return "In less than an hour"
    if hours < 24:
        return "In 1 hour" if hours == 1 else f"In {hours} hours"

    days = hours // 24
    return "In 1 day" if days == 1 else f"In {days} days"


# =============================================================================
# Review schedule records
# =============================================================================


@dataclass(frozen=True)
class ReviewSchedule:
    """Review state for one (user, question)."""

    user_id: str
    question_id: str
    last_reviewed_at: datetime
    next_review_date: datetime
    normalized_calibration: float
    interval_hours: int
    table_version: str = INTERVAL_TABLE_VERSION

    @property
    def is_due(self) -> bool:
        return is_due(self.next_review_date)


def record_review(
    user_id: str,
    question_id: str,
    raw_calibration: float | None,
    reviewed_at: datetime,
) -> ReviewSchedule:
    """Build the schedule that results from answering a question."""
    normalized = normalize_calibration(raw_calibration)
    hours = interval_hours(normalized)
    return ReviewSchedule(
        user_id=user_id,
        question_id=question_id,
        last_reviewed_at=reviewed_at,
        next_review_date=reviewed_at + timedelta(hours=hours),
        normalized_calibration=normalized,
        interval_hours=hours,
    )
