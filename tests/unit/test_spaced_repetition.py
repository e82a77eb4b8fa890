"""
Unit tests for the calibration-driven review interval table.
"""

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from mastery_engine.core.calibration import calibration_score, normalize_calibration
from mastery_engine.core.models import RetrievalMethod
from mastery_engine.study.spaced_repetition import (
    INTERVAL_TIERS,
    describe_interval,
    format_time_until_review,
    interval_hours,
    is_due,
    next_review_from_raw,
    record_review,
    schedule_next_review,
    select_tier,
)

BASE_TIME = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


class TestIntervalTable:
    def test_has_twenty_four_tiers(self):
        assert len(INTERVAL_TIERS) == 24

    def test_spans_four_hours_to_two_weeks(self):
        assert INTERVAL_TIERS[0].threshold == 0.0
        assert INTERVAL_TIERS[0].hours == 4
        assert INTERVAL_TIERS[-1].threshold == 1.0
        assert INTERVAL_TIERS[-1].hours == 336

    def test_table_is_ordered(self):
        for lower, upper in zip(INTERVAL_TIERS, INTERVAL_TIERS[1:]):
            assert lower.threshold < upper.threshold
            assert lower.hours <= upper.hours

    def test_monotonic_over_normalized_range(self):
        previous = 0
        for i in range(1001):
            hours = interval_hours(i / 1000)
            assert hours >= previous
            previous = hours

    def test_exact_threshold_selects_its_tier(self):
        assert interval_hours(0.60) == 72
        assert interval_hours(0.59) == 68

    def test_severe_overconfidence(self):
        assert normalize_calibration(-1.5) == 0.0
        assert interval_hours(normalize_calibration(-1.5)) == 4

    def test_out_of_range_scores_are_clamped(self):
        assert interval_hours(-0.5) == 4
        assert interval_hours(1.7) == 336


class TestMatrixDeterminism:
    EXPECTED_HOURS = {
        (True, RetrievalMethod.MEMORY): {"high": 336, "medium": 288, "low": 192},
        (True, RetrievalMethod.RECOGNITION): {"high": 288, "medium": 240, "low": 168},
        (True, RetrievalMethod.EDUCATED_GUESS): {"high": 168, "medium": 192, "low": 144},
        (True, RetrievalMethod.RANDOM_GUESS): {"high": 72, "medium": 96, "low": 120},
        (False, RetrievalMethod.MEMORY): {"high": 4, "medium": 8, "low": 16},
        (False, RetrievalMethod.RECOGNITION): {"high": 6, "medium": 12, "low": 24},
        (False, RetrievalMethod.EDUCATED_GUESS): {"high": 12, "medium": 16, "low": 36},
        (False, RetrievalMethod.RANDOM_GUESS): {"high": 20, "medium": 24, "low": 48},
    }
    BANDS = {"high": [4, 5], "medium": [3], "low": [1, 2]}

    def test_every_matrix_cell_maps_to_a_fixed_tier(self):
        for (correct, method), bands in self.EXPECTED_HOURS.items():
            for band, expected in bands.items():
                for confidence in self.BANDS[band]:
                    raw = calibration_score(correct, confidence, method)
                    assert interval_hours(normalize_calibration(raw)) == expected, (correct, method, confidence)

    def test_repeated_lookups_agree(self):
        for correct, confidence, method in itertools.product([True, False], range(1, 6), RetrievalMethod):
            raw = calibration_score(correct, confidence, method)
            first = select_tier(normalize_calibration(raw))
            assert all(select_tier(normalize_calibration(raw)) == first for _ in range(3))


class TestScheduling:
    def test_schedule_next_review(self):
        assert schedule_next_review(0.6, BASE_TIME) == BASE_TIME + timedelta(hours=72)

    def test_from_raw(self):
        assert next_review_from_raw(1.5, BASE_TIME) == BASE_TIME + timedelta(days=14)
        assert next_review_from_raw(None, BASE_TIME) == BASE_TIME + timedelta(hours=60)

    def test_record_review(self):
        schedule = record_review("u1", "q1", -1.5, BASE_TIME)

        assert schedule.interval_hours == 4
        assert schedule.normalized_calibration == 0.0
        assert schedule.next_review_date == BASE_TIME + timedelta(hours=4)

    def test_is_due(self):
        assert is_due(None)
        assert is_due(BASE_TIME, now=BASE_TIME)
        assert not is_due(BASE_TIME + timedelta(hours=1), now=BASE_TIME)


class TestDisplay:
    @pytest.mark.parametrize(
        "hours, text",
        [
            (1, "1 hour"),
            (4, "4 hours"),
            (24, "1 day"),
            (36, "1.5 days"),
            (72, "3 days"),
            (168, "1 week"),
            (288, "12 days"),
            (336, "2 weeks"),
        ],
    )
    def test_describe_interval(self, hours, text):
        assert describe_interval(hours) == text

    def test_time_until_review(self):
        assert format_time_until_review(None) == "Due now"
        assert format_time_until_review(BASE_TIME - timedelta(hours=1), now=BASE_TIME) == "Due now"
        assert format_time_until_review(BASE_TIME + timedelta(hours=3), now=BASE_TIME) == "In 3 hours"
        assert format_time_until_review(BASE_TIME + timedelta(hours=49), now=BASE_TIME) == "In 2 days"
