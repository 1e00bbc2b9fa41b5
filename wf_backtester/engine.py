"""
Walk-forward backtest orchestrator.

For each walk-forward period:
1. Train the model on the training window (once)
2. Predict bar-by-bar over the testing window, strictly in order
3. Feed each decision to the position simulator
4. Record equity after every processed bar

Failure isolation:
- Training failure → period skipped, run continues
- Prediction failure → no decision for that bar, run continues
- Invalid config → ConfigurationError before anything runs
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
import inspect
import time
from typing import Callable, Optional
import structlog
import uuid

import pandas as pd

from wf_backtester.acceptance import AcceptanceReport, validate_acceptance
from wf_backtester.config import BacktestConfig
from wf_backtester.errors import ModelPredictionError, ModelTrainingError
from wf_backtester.ledger import EquityPoint, EquityTracker, TradeLedger
from wf_backtester.model import TradingModel, describe_model
from wf_backtester.position import ExitReason, PositionSimulator, Trade
from wf_backtester.statistics import BacktestStatistics, compute_statistics
from wf_backtester.types import Decision, normalize_bars
from wf_backtester.walk_forward import Period, generate_periods

logger = structlog.get_logger(__name__)

# Bars handed to predict(): last TRAINING_CONTEXT training bars plus the
# testing bars seen so far, cut to the last PREDICTION_WINDOW bars.
TRAINING_CONTEXT = 100
PREDICTION_WINDOW = 50


@dataclass
class BacktestResult:
    """Terminal artifact of one backtest run."""
    run_id: str
    symbol: str
    timeframe: str
    start_time: datetime
    end_time: datetime
    statistics: BacktestStatistics
    trades: list[Trade]
    equity_curve: list[EquityPoint]
    acceptance: AcceptanceReport
    periods_total: int = 0
    periods_failed: int = 0
    cancelled: bool = False

    @property
    def accepted(self) -> bool:
        return self.acceptance.accepted

    @property
    def total_trades(self) -> int:
        return self.statistics.total_trades

    @property
    def initial_equity(self) -> float:
        return self.equity_curve[0].equity if self.equity_curve else 0.0

    @property
    def final_equity(self) -> float:
        """Get final equity from equity curve."""
        return self.equity_curve[-1].equity if self.equity_curve else 0.0

    def drawdown_at_exit(self, trade: Trade) -> float:
        """Drawdown in force when the trade closed."""
        for point in self.equity_curve:
            if point.timestamp >= trade.exit_time:
                return point.drawdown
        return 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "run_id": self.run_id,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "statistics": self.statistics.to_dict(),
            "accepted": self.accepted,
            "periods_total": self.periods_total,
            "periods_failed": self.periods_failed,
            "cancelled": self.cancelled,
            "trades": [
                {**t.to_dict(), "drawdown": self.drawdown_at_exit(t)}
                for t in self.trades
            ],
        }


def _new_run_id() -> str:
    return f"backtest_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


class WalkForwardBacktester:
    """
    Walk-forward backtester for a single symbol.

    One instance per run: the model and config are explicit inputs,
    and all mutable run state (balance, position, trades, equity) is
    created fresh inside run().
    """

    def __init__(
        self,
        model: TradingModel,
        config: BacktestConfig,
        should_stop: Optional[Callable[[], bool]] = None,
    ):
        """
        Initialize backtester.

        Args:
            model: Object exposing train(bars) and predict(bars)
            config: Backtest configuration
            should_stop: Optional cooperative cancellation check, polled
                between periods and bars

        Raises:
            ConfigurationError: If config is invalid
        """
        config.validate()
        self.model = model
        self.config = config
        self.should_stop = should_stop

        logger.info(
            "backtester_initialized",
            model=describe_model(model),
            **config.to_dict(),
        )

    async def run(self, bars: pd.DataFrame) -> BacktestResult:
        """
        Run the walk-forward backtest.

        Args:
            bars: Bar series for config.symbol (timestamp, open, high, low, close, volume)

        Returns:
            BacktestResult (with empty statistics when data is insufficient)

        Raises:
            ConfigurationError: If config cannot be resolved against the bars
        """
        bars = normalize_bars(bars)
        config = self.config.resolve(bars)

        logger.info(
            "backtest_starting",
            symbol=config.symbol,
            timeframe=config.timeframe,
            bars=len(bars),
            start=config.start_time.isoformat(),
            end=config.end_time.isoformat(),
        )

        simulator = PositionSimulator(config)
        ledger = TradeLedger()
        equity = EquityTracker()
        equity.record(config.start_time, simulator.balance)

        periods = generate_periods(bars, config)
        if not periods:
            logger.warning("no_valid_periods_insufficient_data", bars=len(bars))

        last_bar_time = (
            pd.Timestamp(bars["timestamp"].iloc[-1]).to_pydatetime() if len(bars) else None
        )
        last_processed: Optional[datetime] = None
        last_close: Optional[float] = None
        periods_failed = 0
        cancelled = False

        for period in periods:
            # A position opened on the last processed bar cannot close on
            # that same bar; the stop is picked up after the next bar instead.
            position = simulator.position
            if self._stop_requested() and (
                position is None or position.entry_time < last_processed
            ):
                cancelled = True
                break

            logger.info(
                "processing_period",
                period_index=period.index,
                total_periods=len(periods),
                training_bars=len(period.training_bars),
                testing_bars=len(period.testing_bars),
                start=period.start_time.isoformat(),
                end=period.end_time.isoformat(),
            )

            try:
                await self._train(period)
            except ModelTrainingError as e:
                periods_failed += 1
                logger.error(
                    "period_training_failed",
                    period_index=e.period_index,
                    error=str(e.cause),
                    action="skipping_period",
                )
                continue

            context = period.training_bars.tail(TRAINING_CONTEXT)

            for j in range(len(period.testing_bars)):
                bar = period.testing_bars.iloc[j]
                timestamp = pd.Timestamp(bar["timestamp"]).to_pydatetime()

                # Overlapping test windows (step < testing) revisit bars
                if last_processed is not None and timestamp <= last_processed:
                    continue
                last_processed = timestamp
                last_close = float(bar["close"])

                window = pd.concat(
                    [context, period.testing_bars.iloc[: j + 1]],
                    ignore_index=True,
                ).tail(PREDICTION_WINDOW)

                try:
                    decision: Optional[Decision] = await self._predict(
                        window, timestamp, period.index
                    )
                except ModelPredictionError as e:
                    logger.error(
                        "bar_prediction_failed",
                        period_index=e.period_index,
                        bar_timestamp=e.bar_timestamp.isoformat(),
                        error=str(e.cause),
                    )
                    decision = None

                # Polled before entry so a stopping run never opens a
                # position it would have to close on the same bar
                stopping = self._stop_requested()

                if decision is not None:
                    trade = simulator.step(
                        timestamp=timestamp,
                        close=last_close,
                        decision=decision,
                        allow_entry=timestamp < last_bar_time and not stopping,
                    )
                    if trade is not None:
                        ledger.record(trade)

                equity.record(timestamp, simulator.balance)

                if stopping:
                    cancelled = True
                    break

            if cancelled:
                break

        if simulator.is_open:
            # Cancelled runs close at the last bar they saw
            if cancelled:
                close_time, close_price = last_processed, last_close
            else:
                close_time, close_price = last_bar_time, float(bars["close"].iloc[-1])
            trade = simulator.close(
                timestamp=close_time,
                close=close_price,
                reason=ExitReason.END_OF_RUN,
            )
            ledger.record(trade)
            equity.record(close_time, simulator.balance)

        if cancelled:
            logger.warning("backtest_cancelled", processed_until=str(last_processed))

        statistics = compute_statistics(ledger.trades, equity.points, config)
        acceptance = validate_acceptance(statistics)

        result = BacktestResult(
            run_id=_new_run_id(),
            symbol=config.symbol,
            timeframe=config.timeframe,
            start_time=config.start_time,
            end_time=config.end_time,
            statistics=statistics,
            trades=list(ledger.trades),
            equity_curve=list(equity.points),
            acceptance=acceptance,
            periods_total=len(periods),
            periods_failed=periods_failed,
            cancelled=cancelled,
        )

        logger.info(
            "backtest_complete",
            run_id=result.run_id,
            total_trades=statistics.total_trades,
            win_rate=statistics.win_rate,
            directional_accuracy=statistics.directional_accuracy,
            max_drawdown=statistics.max_drawdown,
            sharpe_ratio=statistics.sharpe_ratio,
            realized_pnl=ledger.realized_pnl,
            final_equity=result.final_equity,
            failed_criteria=[c.name for c in acceptance.failed()],
            accepted=result.accepted,
        )
        return result

    def _stop_requested(self) -> bool:
        return bool(self.should_stop and self.should_stop())

    async def _train(self, period: Period) -> None:
        """
        Train the model on a period's training window.

        Raises:
            ModelTrainingError: If the model raises while training
        """
        try:
            await _maybe_await(self.model.train(period.training_bars))
        except Exception as e:
            raise ModelTrainingError(period.index, e) from e

        logger.info(
            "model_trained",
            period_index=period.index,
            training_bars=len(period.training_bars),
        )

    async def _predict(
        self,
        window: pd.DataFrame,
        timestamp: datetime,
        period_index: int,
    ) -> Decision:
        """
        Get the model's decision for the latest bar in window.

        Raises:
            ModelPredictionError: If the model raises or returns a non-Decision
        """
        try:
            decision = await _maybe_await(self.model.predict(window))
        except Exception as e:
            raise ModelPredictionError(timestamp, e, period_index=period_index) from e

        if not isinstance(decision, Decision):
            raise ModelPredictionError(
                timestamp,
                TypeError(f"predict() returned {type(decision).__name__}, expected Decision"),
                period_index=period_index,
            )
        return decision


def run_backtest(
    model: TradingModel,
    bars: pd.DataFrame,
    config: BacktestConfig,
    should_stop: Optional[Callable[[], bool]] = None,
) -> BacktestResult:
    """
    Run a walk-forward backtest synchronously.

    Must not be called from inside a running event loop; use
    `await WalkForwardBacktester(...).run(bars)` there instead.
    """
    backtester = WalkForwardBacktester(model, config, should_stop=should_stop)
    return asyncio.run(backtester.run(bars))
