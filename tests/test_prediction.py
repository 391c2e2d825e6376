"""
Unit tests for exhaustion prediction.
"""

from datetime import datetime, timedelta, timezone

import pytest

from usage_monitor.core.prediction import (
    PredictionState,
    format_minutes,
    predict_time_remaining,
    will_exceed_before_reset,
)


NOW = datetime(2025, 4, 1, 12, 0, tzinfo=timezone.utc)


class TestPredictTimeRemaining:
    """Test the time-remaining forecast."""

    def test_over_limit_is_exceeded(self):
        """Test that usage above the limit is Exceeded whatever the rate."""
        for rate in (0.0, 10.0, 5000.0):
            prediction = predict_time_remaining(50_000, 44_000, rate, NOW + timedelta(hours=2), NOW)
            assert prediction.state == PredictionState.EXCEEDED
            assert prediction.label == "Exceeded"

    def test_at_limit_is_exceeded(self):
        """Test that reaching the limit exactly counts as exceeded."""
        prediction = predict_time_remaining(44_000, 44_000, 100.0, NOW + timedelta(hours=2), NOW)
        assert prediction.state == PredictionState.EXCEEDED

    def test_zero_rate_is_unbounded(self):
        """Test that no consumption gives no forecast."""
        prediction = predict_time_remaining(1_000, 44_000, 0.0, NOW + timedelta(hours=2), NOW)
        assert prediction.state == PredictionState.UNBOUNDED
        assert prediction.label == "Unbounded"

    def test_negative_rate_is_unbounded(self):
        """Test that a negative rate is treated like zero."""
        prediction = predict_time_remaining(1_000, 44_000, -5.0, NOW + timedelta(hours=2), NOW)
        assert prediction.state == PredictionState.UNBOUNDED

    def test_exhaustion_before_reset(self):
        """Test that the earlier exhaustion time is shown."""
        # 44,000 tokens at 1,000/min -> 44 minutes, reset in 2h
        prediction = predict_time_remaining(0, 44_000, 1_000.0, NOW + timedelta(hours=2), NOW)

        assert prediction.state == PredictionState.REMAINING
        assert prediction.label == "0h 44m"
        assert prediction.minutes_to_exhaustion == pytest.approx(44.0)
        assert prediction.minutes_to_reset == pytest.approx(120.0)

    def test_reset_before_exhaustion(self):
        """Test that the reset caps the forecast."""
        # 440 minutes to exhaustion, reset in 100 minutes
        prediction = predict_time_remaining(0, 44_000, 100.0, NOW + timedelta(minutes=100), NOW)
        assert prediction.label == "1h 40m"

    def test_beyond_window(self):
        """Test that forecasts over 300 minutes collapse to 5h+."""
        prediction = predict_time_remaining(0, 44_000, 10.0, NOW + timedelta(minutes=400), NOW)
        assert prediction.state == PredictionState.BEYOND_WINDOW
        assert prediction.label == "5h+"

    def test_exactly_300_minutes_is_formatted(self):
        """Test that the 5h+ bucket starts strictly above 300 minutes."""
        prediction = predict_time_remaining(0, 30_000, 100.0, NOW + timedelta(hours=6), NOW)
        assert prediction.label == "5h 0m"

    def test_reset_in_the_past_is_exceeded(self):
        """Test that a negative effective time reports Exceeded."""
        prediction = predict_time_remaining(0, 44_000, 100.0, NOW - timedelta(minutes=1), NOW)
        assert prediction.state == PredictionState.EXCEEDED


class TestWillExceedBeforeReset:
    """Test the limit-before-reset warning."""

    def test_true_when_exhaustion_first(self):
        """Test that a fast burn warns."""
        assert will_exceed_before_reset(0, 44_000, 1_000.0, NOW + timedelta(hours=2), NOW)

    def test_false_when_reset_first(self):
        """Test that a slow burn does not warn."""
        assert not will_exceed_before_reset(0, 44_000, 10.0, NOW + timedelta(hours=2), NOW)

    def test_false_without_burn(self):
        """Test that a zero rate never warns."""
        assert not will_exceed_before_reset(50_000, 44_000, 0.0, NOW + timedelta(hours=2), NOW)

    def test_true_when_already_over_limit(self):
        """Test that usage past the limit with a positive rate warns."""
        assert will_exceed_before_reset(50_000, 44_000, 1.0, NOW + timedelta(hours=2), NOW)


class TestFormatMinutes:
    """Test hour and minute formatting."""

    def test_truncates_to_whole_minutes(self):
        """Test that fractional minutes are dropped."""
        assert format_minutes(95.9) == "1h 35m"
        assert format_minutes(0.5) == "0h 0m"
