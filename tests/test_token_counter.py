"""
Unit tests for weighted token accounting.
"""

from datetime import datetime, timedelta, timezone

from usage_monitor.core.segmenter import segment_events
from usage_monitor.core.token_counter import (
    ModelStats,
    display_tokens,
    is_counted_model,
    model_breakdown,
    raw_tokens,
    weighted_tokens,
)
from usage_monitor.storage.models import UsageEvent


T0 = datetime(2025, 3, 1, 9, 15, tzinfo=timezone.utc)


def _window(*rows):
    """Build one window from (model, input, output) tuples, one minute apart."""
    events = [
        UsageEvent(
            timestamp=T0 + timedelta(minutes=i),
            input_tokens=inp,
            output_tokens=out,
            cache_creation_tokens=11,
            cache_read_tokens=22,
            model=model,
        )
        for i, (model, inp, out) in enumerate(rows)
    ]
    windows = segment_events(events)
    assert len(windows) == 1
    return windows[0]


class TestWeighting:
    """Test the per-model weighting rule."""

    def test_opus_weighted_five_times(self):
        """Test that opus models count 5x input plus output."""
        stats = ModelStats(input_tokens=200, output_tokens=100)
        assert weighted_tokens("claude-opus-4-20250514", stats) == 1500

    def test_sonnet_weighted_once(self):
        """Test that sonnet models count input plus output."""
        stats = ModelStats(input_tokens=1000, output_tokens=500)
        assert weighted_tokens("claude-sonnet-4-20250514", stats) == 1500

    def test_match_is_case_insensitive(self):
        """Test that model names match regardless of case."""
        stats = ModelStats(input_tokens=1, output_tokens=1)
        assert weighted_tokens("Claude-3-OPUS", stats) == 10
        assert weighted_tokens("SONNET", stats) == 2

    def test_opus_takes_precedence_over_sonnet(self):
        """Test that a name containing both substrings uses the opus rule."""
        stats = ModelStats(input_tokens=10, output_tokens=10)
        assert weighted_tokens("opus-sonnet-hybrid", stats) == 100
        assert weighted_tokens("sonnet-opus-hybrid", stats) == 100

    def test_other_models_excluded(self):
        """Test that unmatched models have no weighted value at all."""
        stats = ModelStats(input_tokens=10, output_tokens=10)
        assert weighted_tokens("claude-3-5-haiku", stats) is None
        assert weighted_tokens("unknown", stats) is None
        assert not is_counted_model("claude-3-5-haiku")
        assert is_counted_model("claude-3-opus")

    def test_zero_token_sonnet_still_counted(self):
        """Test that excluded differs from zero."""
        assert weighted_tokens("claude-sonnet-4", ModelStats()) == 0


class TestWindowTotals:
    """Test display and raw totals over a window."""

    def test_mixed_sonnet_and_opus_window(self):
        """Test a sonnet and an opus request in one window."""
        events = [
            UsageEvent(timestamp=T0, input_tokens=1000, output_tokens=500, model="claude-sonnet-4"),
            UsageEvent(timestamp=T0 + timedelta(hours=1), input_tokens=200, output_tokens=100,
                       model="claude-opus-4"),
        ]
        window = segment_events(events)[0]

        assert display_tokens(window) == 3000
        assert window.display_tokens == 3000

    def test_excluded_models_only_in_raw_total(self):
        """Test that haiku usage appears in raw but not display tokens."""
        window = _window(("claude-sonnet-4", 100, 50), ("claude-3-5-haiku", 1000, 1000))

        assert display_tokens(window) == 150
        assert raw_tokens(window) == 2150

    def test_cache_tokens_never_counted(self):
        """Test that cache counters stay out of both totals."""
        window = _window(("claude-sonnet-4", 10, 10))
        assert display_tokens(window) == 20
        assert raw_tokens(window) == 20

    def test_stats_add_accumulates(self):
        """Test that folding in an event increases every counter."""
        event = UsageEvent(timestamp=T0, input_tokens=3, output_tokens=4,
                           cache_creation_tokens=5, cache_read_tokens=6)
        stats = ModelStats().add(event).add(event)

        assert stats == ModelStats(6, 8, 10, 12, 2)
        assert stats.raw_tokens == 14


class TestModelBreakdown:
    """Test the per-model breakdown list."""

    def test_sorted_by_weighted_tokens_descending(self):
        """Test that the heaviest model comes first."""
        window = _window(
            ("claude-sonnet-4", 5000, 0),
            ("claude-opus-4", 2000, 0),
        )
        breakdown = model_breakdown(window)

        assert [b.model for b in breakdown] == ["claude-opus-4", "claude-sonnet-4"]
        assert breakdown[0].weighted_tokens == 10000
        assert breakdown[0].raw_tokens == 2000
        assert breakdown[1].weighted_tokens == 5000

    def test_excluded_models_dropped(self):
        """Test that only opus and sonnet models are listed."""
        window = _window(("claude-3-5-haiku", 100, 100), ("claude-sonnet-4", 1, 1))
        assert [b.model for b in model_breakdown(window)] == ["claude-sonnet-4"]

    def test_ties_keep_first_seen_order(self):
        """Test that equal weights keep insertion order."""
        window = _window(
            ("claude-sonnet-4-b", 100, 0),
            ("claude-sonnet-4-a", 100, 0),
        )
        assert [b.model for b in model_breakdown(window)] == ["claude-sonnet-4-b", "claude-sonnet-4-a"]

    def test_cache_counters_reported(self):
        """Test that cache counters are carried for display."""
        window = _window(("claude-opus-4", 1, 1), ("claude-opus-4", 1, 1))
        entry = model_breakdown(window)[0]

        assert entry.cache_creation_tokens == 22
        assert entry.cache_read_tokens == 44
        assert entry.input_tokens == 2
        assert entry.output_tokens == 2
