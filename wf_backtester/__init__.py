"""
Walk-forward strategy backtester.

Evaluates a trading-decision model against historical bars:
- Rolling train/test periods (walk-forward, never full-dataset)
- Single-position simulation with stop-loss / take-profit / max-holding exits
- Return, risk and calibration statistics
- Acceptance gate before any model is trusted

Backtests lie. This one tries to lie consistently.
"""

from wf_backtester.config import BacktestConfig, WalkForwardConfig, load_config
from wf_backtester.engine import BacktestResult, WalkForwardBacktester, run_backtest
from wf_backtester.errors import (
    BacktestError,
    ConfigurationError,
    ModelPredictionError,
    ModelTrainingError,
    UnsupportedExportFormatError,
)
from wf_backtester.model import MomentumModel, TradingModel
from wf_backtester.report import export_results, generate_report
from wf_backtester.types import Action, Decision, Direction, Side

__version__ = "0.1.0"

__all__ = [
    "Action",
    "BacktestConfig",
    "BacktestError",
    "BacktestResult",
    "ConfigurationError",
    "Decision",
    "Direction",
    "ModelPredictionError",
    "ModelTrainingError",
    "MomentumModel",
    "Side",
    "TradingModel",
    "UnsupportedExportFormatError",
    "WalkForwardBacktester",
    "WalkForwardConfig",
    "export_results",
    "generate_report",
    "load_config",
    "run_backtest",
]
