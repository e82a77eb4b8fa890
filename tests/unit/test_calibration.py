"""
Unit tests for calibration normalization, status and the calibration matrix.
"""

import pytest

from mastery_engine.core.calibration import (
    ConfidenceBias,
    brier_score,
    calibration_priority,
    calibration_score,
    calibration_status,
    denormalize_calibration,
    detect_confidence_bias,
    evaluate_confidence,
    normalize_calibration,
    raw_calibration_for,
    overall_calibration_error,
)
from mastery_engine.core.models import RetrievalMethod


class TestNormalize:
    @pytest.mark.parametrize(
        "raw, expected",
        [(-1.5, 0.0), (-1.0, 0.167), (0.0, 0.5), (1.0, 0.833), (1.5, 1.0)],
    )
    def test_reference_points(self, raw, expected):
        assert normalize_calibration(raw) == pytest.approx(expected)

    def test_out_of_range_is_clamped(self):
        assert normalize_calibration(-7) == 0.0
        assert normalize_calibration(9) == 1.0

    def test_missing_score_is_calibrated(self):
        assert normalize_calibration(None) == 0.5

    def test_removes_float_drift(self):
        # (0.9 + 1.5) / 3 is 0.7999999999999999 before rounding
        assert normalize_calibration(0.9) == 0.8

    def test_round_trip(self):
        steps = 3000
        for i in range(steps + 1):
            raw = -1.5 + 3.0 * i / steps
            assert denormalize_calibration(normalize_calibration(raw)) == pytest.approx(raw, abs=0.01)

    def test_normalized_always_in_unit_interval(self):
        for raw in [-100, -1.5001, -0.3, 0.7, 1.5001, 100]:
            assert 0.0 <= normalize_calibration(raw) <= 1.0


class TestPriority:
    def test_overconfidence_is_highest_priority(self):
        assert calibration_priority(-1.5) == pytest.approx(1.0)
        assert calibration_priority(0.0) == pytest.approx(0.5)
        assert calibration_priority(1.5) == pytest.approx(0.0)

    def test_clamped(self):
        assert calibration_priority(-4) == pytest.approx(1.0)


class TestStatus:
    @pytest.mark.parametrize(
        "raw, label",
        [
            (1.5, "Excellent"),
            (1.0, "Excellent"),
            (0.99, "Good"),
            (0.5, "Good"),
            (0.0, "Fair"),
            (-0.5, "Developing"),
            (-1.0, "Poor"),
            (-1.01, "Critical"),
            (-1.5, "Critical"),
        ],
    )
    def test_buckets(self, raw, label):
        assert calibration_status(raw).label == label

    def test_descriptions(self):
        assert calibration_status(0.0).description == "Slightly overconfident"
        assert "needs calibration work" in calibration_status(-1.4).description


class TestCalibrationMatrix:
    @pytest.mark.parametrize(
        "correct, confidence, method, expected",
        [
            (True, 5, RetrievalMethod.MEMORY, 1.5),
            (True, 4, RetrievalMethod.RANDOM_GUESS, 0.3),
            (True, 3, RetrievalMethod.RECOGNITION, 1.0),
            (True, 1, RetrievalMethod.EDUCATED_GUESS, 0.7),
            (False, 5, RetrievalMethod.MEMORY, -1.5),
            (False, 3, RetrievalMethod.MEMORY, -1.0),
            (False, 2, RetrievalMethod.RANDOM_GUESS, -0.2),
        ],
    )
    def test_cells(self, correct, confidence, method, expected):
        assert calibration_score(correct, confidence, method) == expected

    def test_accepts_string_method(self):
        assert calibration_score(True, 5, "recognition") == 1.2

    def test_unknown_method_falls_back(self):
        assert calibration_score(True, 5, "telepathy") == 0.5
        assert calibration_score(False, 5, None) == -0.5


class TestRawCalibrationFor:
    def test_stored_score_wins(self, make_response):
        response = make_response(calibration_score=-1.25, retrieval_method=RetrievalMethod.MEMORY)
        assert raw_calibration_for(response) == -1.25

    def test_matrix_value(self, make_response):
        response = make_response(is_correct=False, confidence=5, retrieval_method=RetrievalMethod.MEMORY)
        assert raw_calibration_for(response) == -1.5

    def test_unknown(self, make_response):
        assert raw_calibration_for(make_response()) is None


class TestConfidenceCalibration:
    def test_perfect_confidence(self):
        result = evaluate_confidence(5, True)
        assert result.calibration_error == 0.0
        assert result.is_well_calibrated

    def test_confident_and_wrong(self):
        result = evaluate_confidence(5, False)
        assert result.calibration_error == 1.0
        assert not result.is_well_calibrated

    def test_invalid_confidence(self):
        with pytest.raises(ValueError):
            evaluate_confidence(0, True)

    def test_overall_error(self):
        assert overall_calibration_error([(5, True), (5, False)]) == pytest.approx(0.5)
        assert overall_calibration_error([]) == 0.0

    def test_brier_score(self):
        assert brier_score([(5, True), (1, False)]) == pytest.approx(0.02)

    def test_bias(self):
        assert detect_confidence_bias([(5, False)] * 4) == (ConfidenceBias.OVERCONFIDENT, pytest.approx(1.0))
        assert detect_confidence_bias([(1, True)] * 4)[0] == ConfidenceBias.UNDERCONFIDENT
        assert detect_confidence_bias([(4, True), (1, False)])[0] == ConfidenceBias.WELL_CALIBRATED
