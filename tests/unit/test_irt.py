"""
Unit tests for empirical IRT calibration and Bloom-level defaults.
"""

import math

import pytest

from mastery_engine.irt.calibration import CalibrationMethod, calibrate_question, calibrate_questions
from mastery_engine.irt.defaults import (
    DEFAULT_IRT_BY_BLOOM,
    adjust_for_question_type,
    get_default_parameters,
    resolve_parameters,
)


def item_responses(make_response, n, correct, users, question_id="q1"):
    return [
        make_response(i, user_id=f"user-{i % users}", question_id=question_id, is_correct=i < correct)
        for i in range(n)
    ]


class TestCalibrateQuestion:
    def test_eighty_percent_correct(self, make_response):
        params = calibrate_question(item_responses(make_response, 40, 32, 15))

        assert params.calibration_method == CalibrationMethod.EMPIRICAL
        assert params.question_id == "q1"
        assert params.p_value == pytest.approx(0.8)
        assert params.difficulty == pytest.approx(-1.7 * math.log(4))
        assert params.difficulty == pytest.approx(-2.356, abs=1e-3)
        assert params.discrimination == pytest.approx(1.78)
        assert params.guessing == 0.25
        assert params.sample_size == 40
        assert params.unique_user_count == 15

    def test_too_few_responses(self, make_response):
        params = calibrate_question(item_responses(make_response, 29, 20, 15))

        assert params.calibration_method == CalibrationMethod.INSUFFICIENT_DATA
        assert params.difficulty is None
        assert params.discrimination is None
        assert params.sample_size == 29

    def test_too_few_users(self, make_response):
        params = calibrate_question(item_responses(make_response, 50, 25, 9))
        assert params.calibration_method == CalibrationMethod.INSUFFICIENT_DATA
        assert params.unique_user_count == 9

    def test_everyone_correct(self, make_response):
        params = calibrate_question(item_responses(make_response, 30, 30, 10))
        assert params.difficulty == -3.0
        assert params.discrimination == 0.5
        assert params.guessing == 0.25

    def test_nobody_correct(self, make_response):
        params = calibrate_question(item_responses(make_response, 30, 0, 10))
        assert params.difficulty == 3.0
        assert params.guessing == 0.0

    def test_discrimination_peaks_at_half(self, make_response):
        params = calibrate_question(item_responses(make_response, 30, 15, 10))
        assert params.discrimination == pytest.approx(2.5)
        assert params.difficulty == pytest.approx(0.0)

    def test_parameters_stay_in_range(self, make_response):
        for correct in range(0, 61, 3):
            params = calibrate_question(item_responses(make_response, 60, correct, 12))
            assert 0.5 <= params.discrimination <= 2.5
            assert -3.0 <= params.difficulty <= 3.0
            assert 0.0 <= params.guessing <= 0.25

    def test_thresholds_are_configurable(self, make_response):
        params = calibrate_question(item_responses(make_response, 10, 5, 5), min_sample_size=10, min_unique_users=5)
        assert params.is_empirical

    def test_calibrate_questions_groups_by_question(self, make_response):
        responses = (
            item_responses(make_response, 40, 32, 15, "q1")
            + item_responses(make_response, 5, 2, 5, "q2")
            + [make_response(99, question_id=None)]
        )

        results = calibrate_questions(responses)

        assert set(results) == {"q1", "q2"}
        assert results["q1"].is_empirical
        assert not results["q2"].is_empirical


class TestDefaults:
    def test_bloom_table(self):
        assert DEFAULT_IRT_BY_BLOOM[1].difficulty == -1.5
        assert DEFAULT_IRT_BY_BLOOM[6].discrimination == 2.2
        assert all(p.guessing == 0.20 for p in DEFAULT_IRT_BY_BLOOM.values())

    def test_difficulty_rises_with_level(self):
        difficulties = [DEFAULT_IRT_BY_BLOOM[level].difficulty for level in range(1, 7)]
        assert difficulties == sorted(difficulties)

    def test_invalid_level_falls_back_to_apply(self):
        assert get_default_parameters(9) == DEFAULT_IRT_BY_BLOOM[3]

    def test_question_type_adjusts_guessing(self):
        params = adjust_for_question_type(get_default_parameters(2), "true_false")
        assert params.guessing == 0.5
        assert params.difficulty == -0.8

    def test_unknown_question_type_is_ignored(self):
        assert adjust_for_question_type(get_default_parameters(2), "essay") == get_default_parameters(2)

    def test_resolve_prefers_empirical(self, make_response):
        calibrated = calibrate_question(item_responses(make_response, 40, 32, 15))
        params = resolve_parameters(calibrated, bloom_level=4)

        assert params.source == "empirical"
        assert params.difficulty == pytest.approx(calibrated.difficulty)

    def test_resolve_falls_back_to_defaults(self, make_response):
        skipped = calibrate_question(item_responses(make_response, 5, 3, 5))
        params = resolve_parameters(skipped, bloom_level=4, question_type="mcq_single")

        assert params.source == "bloom_default"
        assert params.discrimination == 1.8
        assert params.guessing == 0.25
        assert resolve_parameters(None, bloom_level=1).difficulty == -1.5
