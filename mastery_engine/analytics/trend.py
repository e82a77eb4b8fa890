"""
Calibration Trend Analysis.

Closed-form statistics over a chronological score sequence: mean,
population standard deviation, least-squares slope/intercept against the
response index, and R². Metrics are always recomputed from history,
never updated incrementally.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from enum import Enum

from config import Settings, get_settings
from mastery_engine.core.calibration import raw_calibration_for
from mastery_engine.core.models import Response, sort_chronologically


@dataclass(frozen=True)
class CalibrationMetrics:
    """Derived statistics for a score sequence."""

    mean: float
    std_dev: float
    slope: float
    intercept: float
    r_squared: float
    count: int

    def to_dict(self) -> dict:
        return asdict(self)


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    INSUFFICIENT = "insufficient"


def calculate_metrics(scores: Sequence[float]) -> CalibrationMetrics:
    """
    Compute trend metrics.

    With fewer than two scores every statistic is zero, except that a single
    score is reported as the mean. A constant series has no spread, so its
    slope and R² are exactly zero. R² is kept within [0, 1].
    """
    n = len(scores)
    if n < 2:
        mean = float(scores[0]) if n == 1 else 0.0
        return CalibrationMetrics(mean=mean, std_dev=0.0, slope=0.0, intercept=0.0, r_squared=0.0, count=n)

    if max(scores) == min(scores):
        # Summing equal floats leaves residue, so test the values directly
        value = float(scores[0])
        return CalibrationMetrics(mean=value, std_dev=0.0, slope=0.0, intercept=value, r_squared=0.0, count=n)

    mean = sum(scores) / n
    variance = sum((y - mean) ** 2 for y in scores) / n
    std_dev = math.sqrt(variance)

    sum_x = n * (n - 1) / 2
    sum_y = sum(scores)
    sum_xy = sum(i * y for i, y in enumerate(scores))
    sum_xx = sum(i * i for i in range(n))

    # denominator is n^2 (n^2 - 1) / 12 > 0 for n >= 2
    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x**2)
    intercept = (sum_y - slope * sum_x) / n

    ss_tot = sum((y - mean) ** 2 for y in scores)
    ss_res = sum((y - (slope * i + intercept)) ** 2 for i, y in enumerate(scores))
    r_squared = max(0.0, min(1.0, 1 - ss_res / ss_tot))

    return CalibrationMetrics(
        mean=mean,
        std_dev=std_dev,
        slope=slope,
        intercept=intercept,
        r_squared=r_squared,
        count=n,
    )


def classify_trend(
    metrics: CalibrationMetrics,
    min_points: int = 3,
    min_r_squared: float = 0.3,
    slope_epsilon: float = 0.01,
) -> TrendDirection:
    """
    Turn metrics into a direction.

    A slope only counts when there are enough points and the fit explains
    enough variance; otherwise the series is stable (or insufficient).
    """
    if metrics.count < max(2, min_points):
        return TrendDirection.INSUFFICIENT
    if metrics.r_squared < min_r_squared or abs(metrics.slope) < slope_epsilon:
        return TrendDirection.STABLE
    return TrendDirection.IMPROVING if metrics.slope > 0 else TrendDirection.DECLINING


def scores_from_responses(responses: Iterable[Response], limit: int | None = None) -> list[float]:
    """
    Chronological per-response scores.

    Each response is scored with the same raw calibration the scheduler
    sees: the stored score, else the calibration-matrix value for its
    retrieval method. Only when neither is known does correctness stand in
    as +1.0 / -1.0. With a limit, only the most recent scores are kept.
    """
    ordered = sort_chronologically(list(responses))
    if limit is not None:
        ordered = ordered[-limit:] if limit > 0 else []

    scores = []
    for r in ordered:
        raw = raw_calibration_for(r)
        scores.append(raw if raw is not None else (1.0 if r.is_correct else -1.0))
    return scores


class TrendAnalyzer:
    """Metrics plus direction for a response history."""

    def __init__(
        self,
        min_points: int = 3,
        min_r_squared: float = 0.3,
        slope_epsilon: float = 0.01,
        history_limit: int | None = 50,
    ):
        self.min_points = min_points
        self.min_r_squared = min_r_squared
        self.slope_epsilon = slope_epsilon
        self.history_limit = history_limit

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> TrendAnalyzer:
        settings = settings or get_settings()
        return cls(
            min_points=settings.trend_min_points,
            min_r_squared=settings.trend_min_r_squared,
            slope_epsilon=settings.trend_slope_epsilon,
            history_limit=settings.calibration_history_limit,
        )

    def analyze_scores(self, scores: Sequence[float]) -> tuple[CalibrationMetrics, TrendDirection]:
        metrics = calculate_metrics(scores)
        direction = classify_trend(metrics, self.min_points, self.min_r_squared, self.slope_epsilon)
        return metrics, direction

    def analyze(self, responses: Iterable[Response]) -> tuple[CalibrationMetrics, TrendDirection]:
        return self.analyze_scores(scores_from_responses(responses, self.history_limit))
