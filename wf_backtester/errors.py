"""
Backtester error taxonomy.

Only configuration and unsupported-operation errors reach the caller.
Model failures are raised per period / per bar and handled by the
orchestrator loop, which logs them and moves on.
"""

from datetime import datetime
from typing import Optional


class BacktestError(Exception):
    """Base class for all backtester errors."""


class ConfigurationError(BacktestError, ValueError):
    """Invalid backtest configuration. The run never starts."""


class ModelTrainingError(BacktestError):
    """Model training failed for a walk-forward period."""

    def __init__(self, period_index: int, cause: BaseException):
        self.period_index = period_index
        self.cause = cause
        super().__init__(f"Training failed for period {period_index}: {cause}")


class ModelPredictionError(BacktestError):
    """Model prediction failed for a single bar."""

    def __init__(
        self,
        bar_timestamp: datetime,
        cause: BaseException,
        period_index: Optional[int] = None,
    ):
        self.bar_timestamp = bar_timestamp
        self.period_index = period_index
        self.cause = cause
        super().__init__(f"Prediction failed for bar {bar_timestamp}: {cause}")


class UnsupportedExportFormatError(BacktestError, ValueError):
    """Requested export format is not available."""
