"""
Tests for the acceptance gate, the text report and trade export.
"""

import pytest
from datetime import datetime, timedelta

from wf_backtester.acceptance import AcceptanceCriteria, validate_acceptance
from wf_backtester.engine import BacktestResult
from wf_backtester.errors import UnsupportedExportFormatError
from wf_backtester.ledger import EquityPoint
from wf_backtester.position import ExitReason, Trade
from wf_backtester.report import EXPORT_COLUMNS, export_results, generate_report
from wf_backtester.statistics import BacktestStatistics
from wf_backtester.types import Direction, Side

T0 = datetime(2024, 1, 1)


def _stats(accuracy=0.75, drawdown=0.1, sharpe=1.5, **kwargs):
    return BacktestStatistics(
        total_trades=kwargs.pop("total_trades", 10),
        directional_accuracy=accuracy,
        max_drawdown=drawdown,
        sharpe_ratio=sharpe,
        **kwargs,
    )


def _trade():
    return Trade(
        id="trade_abc123",
        symbol="BTCUSDT",
        side=Side.LONG,
        entry_time=T0,
        exit_time=T0 + timedelta(hours=5),
        entry_price=42000.123456789,
        exit_price=43000.5,
        quantity=0.01,
        pnl=9.87654,
        pnl_percent=0.0235,
        commission=0.85,
        slippage=0.02,
        confidence=0.9,
        predicted_direction=Direction.BULL,
        actual_direction=Direction.BULL,
        holding_period_hours=5.0,
        exit_reason=ExitReason.TAKE_PROFIT,
    )


def _result(stats=None, trades=None):
    stats = stats or _stats()
    return BacktestResult(
        run_id="backtest_1_abc",
        symbol="BTCUSDT",
        timeframe="1h",
        start_time=T0,
        end_time=T0 + timedelta(days=30),
        statistics=stats,
        trades=trades if trades is not None else [_trade()],
        equity_curve=[
            EquityPoint(T0, 10000.0, 0.0),
            EquityPoint(T0 + timedelta(hours=5), 10009.87654, 0.0),
        ],
        acceptance=validate_acceptance(stats),
        periods_total=3,
    )


class TestAcceptance:
    """Tests for the acceptance gate."""

    def test_all_criteria_pass(self):
        report = validate_acceptance(_stats())
        assert report.accepted
        assert report.status == "ACCEPTED"
        assert report.failed() == []

    def test_thresholds_are_inclusive(self):
        report = validate_acceptance(_stats(accuracy=0.70, drawdown=0.20, sharpe=1.0))
        assert report.accepted

    @pytest.mark.parametrize(
        "kwargs,failed",
        [
            ({"accuracy": 0.69}, "directional_accuracy"),
            ({"drawdown": 0.21}, "max_drawdown"),
            ({"sharpe": 0.99}, "sharpe_ratio"),
        ],
    )
    def test_single_failure_rejects(self, kwargs, failed):
        report = validate_acceptance(_stats(**kwargs))
        assert not report.accepted
        assert report.status == "NEEDS IMPROVEMENT"
        assert [c.name for c in report.failed()] == [failed]

    def test_empty_statistics_rejected(self):
        assert not validate_acceptance(BacktestStatistics.empty()).accepted

    def test_custom_criteria(self):
        criteria = AcceptanceCriteria(min_directional_accuracy=0.5, max_drawdown=0.3, min_sharpe_ratio=0.5)
        assert validate_acceptance(_stats(accuracy=0.55, drawdown=0.25, sharpe=0.6), criteria).accepted


class TestReport:
    """Tests for the Markdown report."""

    def test_accepted_report(self):
        text = generate_report(_result(), generated_at=datetime(2024, 2, 1, 12, 0))

        assert text.startswith("# Backtest Report")
        assert "- **Symbol**: BTCUSDT" in text
        assert "- **Directional Accuracy**: 75.00%" in text
        assert "- **Directional Accuracy ≥ 70%**: ✅ PASS (75.00%)" in text
        assert "- **Max Drawdown ≤ 20%**: ✅ PASS (10.00%)" in text
        assert "- **Sharpe Ratio ≥ 1.0**: ✅ PASS (1.500)" in text
        assert "**ACCEPTED ✅**" in text
        assert text.endswith("Generated on: 2024-02-01T12:00:00")

    def test_rejected_report_marks_failures(self):
        text = generate_report(_result(_stats(sharpe=0.2)))

        assert "- **Sharpe Ratio ≥ 1.0**: ❌ FAIL (0.200)" in text
        assert "**NEEDS IMPROVEMENT ❌**" in text

    def test_infinite_profit_factor_renders(self):
        text = generate_report(_result(_stats(profit_factor=float("inf"))))
        assert "- **Profit Factor**: inf" in text


class TestExport:
    """Tests for trade export."""

    def test_csv_layout(self):
        content = export_results(_result(), "csv").decode("utf-8")
        lines = content.strip().split("\n")

        assert lines[0] == ",".join(f'"{c}"' for c in EXPORT_COLUMNS)
        assert lines[1] == (
            '"trade_abc123","BTCUSDT","LONG",'
            '"2024-01-01T00:00:00","2024-01-01T05:00:00",'
            '"42000.123457","43000.500000","9.88","90.00%","BULL"'
        )

    def test_csv_with_no_trades_has_header_only(self):
        content = export_results(_result(trades=[]), "csv").decode("utf-8")
        assert content.strip().split("\n") == [",".join(f'"{c}"' for c in EXPORT_COLUMNS)]

    def test_format_is_case_insensitive(self):
        assert export_results(_result(), "CSV").startswith(b'"Trade ID"')

    @pytest.mark.parametrize("fmt", ["excel", "pdf"])
    def test_unimplemented_formats_fail_loudly(self, fmt):
        with pytest.raises(UnsupportedExportFormatError, match="not implemented"):
            export_results(_result(), fmt)

    def test_unknown_format_fails(self):
        with pytest.raises(UnsupportedExportFormatError, match="Unsupported export format"):
            export_results(_result(), "xml")


class TestResult:
    """Tests for BacktestResult helpers."""

    def test_result_properties(self):
        result = _result()

        assert result.accepted
        assert result.total_trades == 10
        assert result.initial_equity == 10000.0
        assert result.final_equity == pytest.approx(10009.87654)

    def test_to_dict_includes_trade_drawdown(self):
        data = _result().to_dict()

        assert data["run_id"] == "backtest_1_abc"
        assert data["accepted"] is True
        assert data["trades"][0]["drawdown"] == 0.0
        assert data["statistics"]["sharpe_ratio"] == 1.5
