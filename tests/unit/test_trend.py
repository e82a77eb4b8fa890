"""
Unit tests for calibration trend metrics.
"""

import math

import pytest

from mastery_engine.analytics.trend import (
    TrendAnalyzer,
    TrendDirection,
    calculate_metrics,
    classify_trend,
    scores_from_responses,
)
from mastery_engine.core.models import RetrievalMethod


class TestCalculateMetrics:
    def test_empty(self):
        metrics = calculate_metrics([])
        assert metrics.count == 0
        assert metrics.mean == 0.0
        assert metrics.slope == 0.0

    def test_single_point_reports_mean_only(self):
        metrics = calculate_metrics([0.7])
        assert metrics.count == 1
        assert metrics.mean == 0.7
        assert metrics.std_dev == 0.0
        assert metrics.slope == 0.0
        assert metrics.r_squared == 0.0

    def test_perfect_line(self):
        metrics = calculate_metrics([0.0, 1.0, 2.0, 3.0])

        assert metrics.slope == pytest.approx(1.0)
        assert metrics.intercept == pytest.approx(0.0)
        assert metrics.r_squared == pytest.approx(1.0)
        assert metrics.mean == pytest.approx(1.5)
        assert metrics.std_dev == pytest.approx(math.sqrt(1.25))

    def test_constant_series_has_zero_r_squared(self):
        metrics = calculate_metrics([0.4, 0.4, 0.4])
        assert metrics.slope == 0.0
        assert metrics.r_squared == 0.0
        assert metrics.std_dev == 0.0

    def test_noisy_decline(self):
        metrics = calculate_metrics([1.0, 0.8, 0.9, 0.3, 0.2])
        assert metrics.slope < 0
        assert 0 < metrics.r_squared < 1

    @pytest.mark.parametrize("scores", [[0.2] * 10, [1.1] * 7, [0.3] * 4, [-0.6] * 12])
    def test_repeated_value_has_no_fit(self, scores):
        """Equal scores never yield a slope or a nonzero R², whatever their float residue."""
        metrics = calculate_metrics(scores)

        assert metrics.r_squared == 0.0
        assert metrics.slope == 0.0
        assert metrics.std_dev == 0.0
        assert metrics.mean == scores[0]
        assert classify_trend(metrics) == TrendDirection.STABLE

    def test_r_squared_within_unit_interval(self):
        for scores in ([0.2, 0.2, 0.2, 0.2000001], [1.1, -1.1, 1.1, -1.1, 1.1], [0.3, 0.1, 0.3, 0.1]):
            assert 0.0 <= calculate_metrics(scores).r_squared <= 1.0


class TestClassifyTrend:
    def test_improving(self):
        assert classify_trend(calculate_metrics([-1.0, -0.5, 0.0, 0.5])) == TrendDirection.IMPROVING

    def test_declining(self):
        assert classify_trend(calculate_metrics([1.0, 0.5, 0.0, -0.5])) == TrendDirection.DECLINING

    def test_single_point_is_insufficient(self):
        assert classify_trend(calculate_metrics([1.0])) == TrendDirection.INSUFFICIENT

    def test_below_minimum_points(self):
        assert classify_trend(calculate_metrics([0.0, 1.0]), min_points=3) == TrendDirection.INSUFFICIENT

    def test_weak_fit_is_stable(self):
        metrics = calculate_metrics([1.0, -1.0, 1.0, -1.0, 1.0, -0.9])
        assert classify_trend(metrics) == TrendDirection.STABLE

    def test_flat_slope_is_stable(self):
        metrics = calculate_metrics([0.5, 0.501, 0.502, 0.503])
        assert classify_trend(metrics) == TrendDirection.STABLE


class TestScoresFromResponses:
    def test_uses_calibration_score_or_correctness(self, make_response):
        responses = [
            make_response(2, is_correct=False),
            make_response(0, calibration_score=1.2),
            make_response(1, is_correct=True),
        ]
        assert scores_from_responses(responses) == [1.2, 1.0, -1.0]

    def test_retrieval_method_scored_from_matrix(self, make_response):
        """A lucky guess counts as weak calibration, not as a plain correct answer."""
        responses = [
            make_response(0, is_correct=True, confidence=5, retrieval_method=RetrievalMethod.RANDOM_GUESS),
            make_response(1, is_correct=False, confidence=5, retrieval_method=RetrievalMethod.MEMORY),
            make_response(2, is_correct=True, confidence=1, retrieval_method=RetrievalMethod.EDUCATED_GUESS),
        ]
        assert scores_from_responses(responses) == [0.3, -1.5, 0.7]

    def test_limit_keeps_most_recent(self, make_response):
        responses = [make_response(i, calibration_score=float(i)) for i in range(10)]
        assert scores_from_responses(responses, limit=3) == [7.0, 8.0, 9.0]

    def test_analyzer(self, make_response, settings):
        analyzer = TrendAnalyzer.from_settings(settings)
        responses = [make_response(i, calibration_score=-1.0 + 0.5 * i) for i in range(5)]

        metrics, direction = analyzer.analyze(responses)

        assert metrics.count == 5
        assert metrics.slope == pytest.approx(0.5)
        assert direction == TrendDirection.IMPROVING
