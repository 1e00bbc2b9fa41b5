"""
Backtest reporting.

Renders a human-readable summary and exports the trade list as a flat
delimited table. Only CSV export exists; other formats fail loudly
rather than producing a mislabeled file.
"""

import csv
from datetime import datetime
from typing import Optional
import structlog

import pandas as pd

from wf_backtester.engine import BacktestResult
from wf_backtester.errors import UnsupportedExportFormatError

logger = structlog.get_logger(__name__)

EXPORT_COLUMNS = [
    "Trade ID",
    "Symbol",
    "Side",
    "Entry Time",
    "Exit Time",
    "Entry Price",
    "Exit Price",
    "PnL",
    "Confidence",
    "Predicted Direction",
]

# Formats callers may ask for but that have no exporter
UNIMPLEMENTED_FORMATS = ("excel", "pdf")


def _pct(value: float) -> str:
    return f"{value * 100:.2f}%"


def _verdict(passed: bool) -> str:
    return "✅ PASS" if passed else "❌ FAIL"


def generate_report(result: BacktestResult, generated_at: Optional[datetime] = None) -> str:
    """
    Render a Markdown summary of a backtest result.

    Args:
        result: Completed backtest result
        generated_at: Timestamp stamped on the report (defaults to now)

    Returns:
        Report text
    """
    stats = result.statistics
    generated_at = generated_at or datetime.now()

    lines = [
        "# Backtest Report",
        "",
        "## Summary",
        f"- **Run ID**: {result.run_id}",
        f"- **Symbol**: {result.symbol}",
        f"- **Timeframe**: {result.timeframe}",
        f"- **Period**: {result.start_time.isoformat()} to {result.end_time.isoformat()}",
        f"- **Walk-Forward Periods**: {result.periods_total} ({result.periods_failed} failed)",
        f"- **Total Trades**: {stats.total_trades}",
        f"- **Win Rate**: {_pct(stats.win_rate)}",
        f"- **Directional Accuracy**: {_pct(stats.directional_accuracy)}",
        "",
        "## Performance Metrics",
        f"- **Total Return**: {_pct(stats.total_return)}",
        f"- **Annualized Return**: {_pct(stats.annualized_return)}",
        f"- **Volatility**: {_pct(stats.volatility)}",
        f"- **Sharpe Ratio**: {stats.sharpe_ratio:.3f}",
        f"- **Sortino Ratio**: {stats.sortino_ratio:.3f}",
        f"- **Calmar Ratio**: {stats.calmar_ratio:.3f}",
        f"- **Maximum Drawdown**: {_pct(stats.max_drawdown)}",
        f"- **Profit Factor**: {stats.profit_factor:.3f}",
        f"- **VaR (95%)**: {_pct(stats.var_95)}",
        f"- **CVaR (95%)**: {_pct(stats.cvar_95)}",
        "",
        "## Calibration",
        f"- **Precision (Bull / Bear)**: {_pct(stats.precision_bull)} / {_pct(stats.precision_bear)}",
        f"- **Recall (Bull / Bear)**: {_pct(stats.recall_bull)} / {_pct(stats.recall_bear)}",
        f"- **F1 (Bull / Bear)**: {stats.f1_score_bull:.3f} / {stats.f1_score_bear:.3f}",
        f"- **Expected Calibration Error**: {stats.expected_calibration_error:.4f}",
        f"- **Brier Score**: {stats.brier_score:.4f}",
        "",
        "## Acceptance Criteria",
    ]

    for criterion in result.acceptance.criteria:
        value = (
            f"{criterion.value:.3f}"
            if criterion.name == "sharpe_ratio"
            else _pct(criterion.value)
        )
        lines.append(f"- **{criterion.label}**: {_verdict(criterion.passed)} ({value})")

    status = f"{result.acceptance.status} {'✅' if result.accepted else '❌'}"
    lines += [
        "",
        "## Overall Status",
        f"**{status}**",
    ]
    if result.cancelled:
        lines.append("")
        lines.append("_Run was cancelled before all periods were processed._")

    lines += ["", f"Generated on: {generated_at.isoformat()}"]
    return "\n".join(lines)


def trades_frame(result: BacktestResult) -> pd.DataFrame:
    """Trades as export rows, already formatted as text."""
    rows = [
        [
            trade.id,
            trade.symbol,
            trade.side.value,
            trade.entry_time.isoformat(),
            trade.exit_time.isoformat(),
            f"{trade.entry_price:.6f}",
            f"{trade.exit_price:.6f}",
            f"{trade.pnl:.2f}",
            _pct(trade.confidence),
            trade.predicted_direction.value,
        ]
        for trade in result.trades
    ]
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def export_results(result: BacktestResult, fmt: str) -> bytes:
    """
    Export the trade list.

    Args:
        result: Completed backtest result
        fmt: Export format ("csv")

    Returns:
        Encoded file contents

    Raises:
        UnsupportedExportFormatError: For any format other than csv
    """
    fmt = fmt.lower()

    if fmt == "csv":
        content = trades_frame(result).to_csv(
            index=False,
            quoting=csv.QUOTE_ALL,
            lineterminator="\n",
        )
        logger.info("results_exported", format=fmt, trades=len(result.trades))
        return content.encode("utf-8")

    if fmt in UNIMPLEMENTED_FORMATS:
        logger.error("export_format_not_implemented", format=fmt)
        raise UnsupportedExportFormatError(f"{fmt.capitalize()} export not implemented")

    logger.error("export_format_unsupported", format=fmt)
    raise UnsupportedExportFormatError(f"Unsupported export format: {fmt}")
