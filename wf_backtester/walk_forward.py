"""
Walk-forward period generation.

Walk-forward protocol:
- Train on [start, start + train)
- Test on [start + train, start + train + test) (NEVER seen in training)
- Slide start forward by step and repeat
- Periods with too little data are dropped, not padded
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import structlog

import pandas as pd

from wf_backtester.config import BacktestConfig

logger = structlog.get_logger(__name__)

# A period needs strictly more training bars than this
MIN_TRAINING_BARS = 50


@dataclass
class Period:
    """A single walk-forward period."""
    index: int
    training_bars: pd.DataFrame
    testing_bars: pd.DataFrame
    start_time: datetime
    end_time: datetime


def generate_periods(bars: pd.DataFrame, config: BacktestConfig) -> list[Period]:
    """
    Slice a bar series into rolling train/test periods.

    Produces an empty list (not an error) when the configured windows
    do not fit in the available span; callers treat that as
    insufficient data.

    Args:
        bars: Time-ordered bar frame with a datetime64 timestamp column
        config: Resolved config (start_time/end_time set)

    Returns:
        Ordered list of valid periods
    """
    wf = config.walk_forward
    training = timedelta(days=wf.training_period_days)
    testing = timedelta(days=wf.testing_period_days)
    step = timedelta(days=wf.step_days)

    start = pd.Timestamp(config.start_time)
    end = pd.Timestamp(config.end_time)

    if start + training + testing > end:
        logger.warning(
            "insufficient_data_for_walk_forward",
            span_days=config.span_days,
            required_days=wf.training_period_days + wf.testing_period_days,
        )
        return []

    timestamps = bars["timestamp"]
    periods: list[Period] = []

    while start + training + testing <= end:
        training_end = start + training
        testing_end = training_end + testing

        training_bars = bars[(timestamps >= start) & (timestamps < training_end)]
        testing_bars = bars[(timestamps >= training_end) & (timestamps < testing_end)]

        if len(training_bars) > MIN_TRAINING_BARS and len(testing_bars) > 0:
            periods.append(Period(
                index=len(periods),
                training_bars=training_bars.reset_index(drop=True),
                testing_bars=testing_bars.reset_index(drop=True),
                start_time=start.to_pydatetime(),
                end_time=testing_end.to_pydatetime(),
            ))
        else:
            logger.debug(
                "period_skipped_insufficient_data",
                start=start.isoformat(),
                training_bars=len(training_bars),
                testing_bars=len(testing_bars),
            )

        start += step

    logger.info("periods_generated", count=len(periods))
    return periods
