#!/usr/bin/env python3
"""
Run a walk-forward backtest.

Usage:
    python scripts/run_backtest.py --bars data/BTCUSDT_1h.csv --symbol BTCUSDT --timeframe 1h

    # With a config file and a CSV trade export
    python scripts/run_backtest.py --bars data/BTCUSDT_1h.csv --config config/backtest.yaml --export trades.csv

Exits with status 1 when the result does not pass the acceptance gate.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import structlog
from dotenv import load_dotenv

import pandas as pd

from wf_backtester.config import load_config
from wf_backtester.engine import run_backtest
from wf_backtester.errors import BacktestError
from wf_backtester.model import MomentumModel
from wf_backtester.report import export_results, generate_report

logger = structlog.get_logger(__name__)


def setup_logging(level: str = "INFO"):
    """Configure logging."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def main():
    parser = argparse.ArgumentParser(description="Run walk-forward backtest")
    parser.add_argument("--bars", required=True, help="CSV with timestamp,open,high,low,close,volume")
    parser.add_argument("--config", default="config/backtest.yaml", help="YAML config file")
    parser.add_argument("--symbol", help="Override config symbol")
    parser.add_argument("--timeframe", help="Override config timeframe")
    parser.add_argument("--lookback", type=int, default=5, help="Momentum model lookback (bars)")
    parser.add_argument("--export", help="Write trades to this CSV file")
    parser.add_argument("--report", help="Write the Markdown report to this file")
    parser.add_argument("--log-level", default="INFO")

    args = parser.parse_args()

    setup_logging(args.log_level)
    load_dotenv()

    try:
        config = load_config(args.config, symbol=args.symbol, timeframe=args.timeframe)
    except BacktestError as e:
        logger.error("invalid_config", error=str(e))
        sys.exit(2)

    bars_path = Path(args.bars)
    if not bars_path.exists():
        logger.error("bars_file_not_found", path=str(bars_path))
        sys.exit(2)

    bars = pd.read_csv(bars_path, parse_dates=["timestamp"])
    logger.info("bars_loaded", path=str(bars_path), bars_count=len(bars))

    model = MomentumModel(lookback_periods=args.lookback)

    try:
        result = run_backtest(model, bars, config)
    except BacktestError as e:
        logger.error("backtest_failed", error=str(e))
        sys.exit(2)

    report = generate_report(result)
    print(report)

    if args.report:
        Path(args.report).write_text(report, encoding="utf-8")
        logger.info("report_written", path=args.report)

    if args.export:
        Path(args.export).write_bytes(export_results(result, "csv"))
        logger.info("trades_exported", path=args.export, trades=len(result.trades))

    if not result.accepted:
        logger.warning("model_failed_acceptance_criteria", run_id=result.run_id)
        sys.exit(1)

    logger.info("model_accepted", run_id=result.run_id)


if __name__ == "__main__":
    main()
