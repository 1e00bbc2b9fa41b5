"""
Tests for walk-forward period generation.

Verifies window boundaries, minimum-size filtering and the
insufficient-data path (zero periods, never an exception).
"""

import pytest
from datetime import timedelta

import numpy as np

from conftest import make_bars
from wf_backtester.config import BacktestConfig, WalkForwardConfig
from wf_backtester.walk_forward import MIN_TRAINING_BARS, generate_periods


def _config(bars, training, testing, step):
    return BacktestConfig(
        symbol="TEST",
        walk_forward=WalkForwardConfig(
            training_period_days=training,
            testing_period_days=testing,
            step_days=step,
        ),
    ).resolve(bars)


class TestPeriodGeneration:
    """Tests for generate_periods."""

    def test_rolling_periods_count_and_sizes(self):
        """Ten days of hourly bars with 3d/1d/1d windows yield six periods."""
        bars = make_bars(np.full(24 * 10, 100.0))
        periods = generate_periods(bars, _config(bars, 3, 1, 1))

        assert len(periods) == 6
        for i, period in enumerate(periods):
            assert period.index == i
            assert len(period.training_bars) == 72
            assert len(period.testing_bars) == 24

    def test_windows_never_overlap_within_period(self):
        """Test bars always come strictly after training bars."""
        bars = make_bars(np.full(24 * 10, 100.0))
        periods = generate_periods(bars, _config(bars, 3, 1, 1))

        for period in periods:
            assert period.training_bars["timestamp"].max() < period.testing_bars["timestamp"].min()

    def test_training_window_is_half_open(self):
        """Bar at start + training belongs to testing, not training."""
        bars = make_bars(np.full(24 * 10, 100.0))
        period = generate_periods(bars, _config(bars, 3, 1, 1))[0]

        boundary = bars["timestamp"].iloc[0] + timedelta(days=3)
        assert boundary not in set(period.training_bars["timestamp"])
        assert period.testing_bars["timestamp"].iloc[0] == boundary

    def test_periods_advance_by_step(self):
        """Consecutive periods start one step apart."""
        bars = make_bars(np.full(24 * 10, 100.0))
        periods = generate_periods(bars, _config(bars, 3, 1, 2))

        starts = [p.start_time for p in periods]
        assert all(b - a == timedelta(days=2) for a, b in zip(starts, starts[1:]))
        assert periods[0].end_time - periods[0].start_time == timedelta(days=4)

    def test_windows_longer_than_span_yield_no_periods(self):
        """Windows exceeding the data span produce an empty list."""
        bars = make_bars(np.full(24 * 3, 100.0))
        periods = generate_periods(bars, _config(bars, 3, 1, 1))

        assert periods == []

    def test_daily_bars_with_short_training_window_are_dropped(self):
        """120 daily bars with a 30-day training window never reach the minimum size."""
        bars = make_bars(np.full(120, 100.0), freq="D")
        periods = generate_periods(bars, _config(bars, 30, 7, 7))

        assert periods == []

    def test_minimum_training_bars_is_strict(self):
        """Exactly MIN_TRAINING_BARS training bars is not enough."""
        hours = MIN_TRAINING_BARS
        bars = make_bars(np.full(hours + 30, 100.0))
        periods = generate_periods(bars, _config(bars, hours / 24, 1, 1))
        assert periods == []

        bars = make_bars(np.full(hours + 31, 100.0))
        periods = generate_periods(bars, _config(bars, (hours + 1) / 24, 1 / 24, 2))
        assert len(periods) == 1
        assert len(periods[0].training_bars) == hours + 1

    def test_generation_has_no_side_effects(self):
        """Input bars are not modified."""
        bars = make_bars(np.full(24 * 10, 100.0))
        before = bars.copy()
        generate_periods(bars, _config(bars, 3, 1, 1))

        assert bars.equals(before)


class TestWalkForwardConfigValidation:
    """Window lengths must be positive."""

    @pytest.mark.parametrize("field", ["training_period_days", "testing_period_days", "step_days"])
    def test_non_positive_window_rejected(self, field):
        from wf_backtester.errors import ConfigurationError

        wf = WalkForwardConfig(**{field: 0})
        with pytest.raises(ConfigurationError):
            wf.validate()
