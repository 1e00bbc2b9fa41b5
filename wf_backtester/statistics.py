"""
Backtest statistics.

Computes return, risk and calibration metrics from the closed trades
and the equity curve of one run:
- Returns: total, annualized, volatility
- Risk-adjusted: Sharpe, Sortino, Calmar
- Tail risk: VaR / CVaR (95%, historical)
- Direction: accuracy, BULL/BEAR precision, recall, F1
- Calibration: expected calibration error, Brier score

Annualization uses 365 periods (crypto markets trade every day).
"""

from dataclasses import asdict, dataclass
import math
import structlog

import numpy as np

from wf_backtester.config import BacktestConfig
from wf_backtester.ledger import EquityPoint
from wf_backtester.position import Trade
from wf_backtester.types import Direction

logger = structlog.get_logger(__name__)

ANNUALIZATION_DAYS = 365
VAR_PERCENTILE = 0.05
CALIBRATION_BINS = 10


@dataclass(frozen=True)
class BacktestStatistics:
    """Aggregate metrics for a run. All zero when no trades were made."""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    profit_factor: float = 0.0

    total_return: float = 0.0
    annualized_return: float = 0.0
    volatility: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    calmar_ratio: float = 0.0
    max_drawdown: float = 0.0
    var_95: float = 0.0
    cvar_95: float = 0.0

    directional_accuracy: float = 0.0
    precision_bull: float = 0.0
    precision_bear: float = 0.0
    recall_bull: float = 0.0
    recall_bear: float = 0.0
    f1_score_bull: float = 0.0
    f1_score_bear: float = 0.0
    expected_calibration_error: float = 0.0
    brier_score: float = 0.0

    @classmethod
    def empty(cls) -> "BacktestStatistics":
        return cls()

    def to_dict(self) -> dict:
        return asdict(self)


def compute_statistics(
    trades: list[Trade],
    equity: list[EquityPoint],
    config: BacktestConfig,
) -> BacktestStatistics:
    """
    Compute all run statistics.

    Args:
        trades: Closed trades in exit order
        equity: Equity curve (first point is the initial balance)
        config: Resolved run config (start/end define the annualization span)

    Returns:
        BacktestStatistics (empty when there are no trades)
    """
    if not trades:
        return BacktestStatistics.empty()

    pnls = np.array([t.pnl for t in trades], dtype=float)
    total_trades = len(trades)
    winning_trades = int((pnls > 0).sum())
    losing_trades = int((pnls < 0).sum())

    gross_profit = float(pnls[pnls > 0].sum())
    gross_loss = float(abs(pnls[pnls < 0].sum()))
    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    else:
        profit_factor = float("inf") if gross_profit > 0 else 0.0

    initial_equity = equity[0].equity if equity else config.initial_balance
    final_equity = equity[-1].equity if equity else config.initial_balance
    total_return = (final_equity - initial_equity) / initial_equity
    annualized_return = _annualize(total_return, config.span_days)

    returns = equity_returns(equity)
    volatility = (
        float(np.std(returns) * math.sqrt(ANNUALIZATION_DAYS)) if len(returns) else 0.0
    )
    sharpe_ratio = annualized_return / volatility if volatility > 0 else 0.0

    negative = returns[returns < 0]
    downside_deviation = (
        math.sqrt(float(np.mean(negative ** 2)) * ANNUALIZATION_DAYS)
        if len(negative)
        else 0.0
    )
    sortino_ratio = (
        annualized_return / downside_deviation if downside_deviation > 0 else 0.0
    )

    max_drawdown = max((p.drawdown for p in equity), default=0.0)
    calmar_ratio = annualized_return / max_drawdown if max_drawdown > 0 else 0.0

    var_95, cvar_95 = value_at_risk(returns)

    predicted = [t.predicted_direction for t in trades]
    actual = [t.actual_direction for t in trades]
    directional_accuracy = sum(t.direction_correct for t in trades) / total_trades
    precision_bull, recall_bull, f1_bull = classification_scores(predicted, actual, Direction.BULL)
    precision_bear, recall_bear, f1_bear = classification_scores(predicted, actual, Direction.BEAR)

    stats = BacktestStatistics(
        total_trades=total_trades,
        winning_trades=winning_trades,
        losing_trades=losing_trades,
        win_rate=winning_trades / total_trades,
        profit_factor=profit_factor,
        total_return=total_return,
        annualized_return=annualized_return,
        volatility=volatility,
        sharpe_ratio=sharpe_ratio,
        sortino_ratio=sortino_ratio,
        calmar_ratio=calmar_ratio,
        max_drawdown=max_drawdown,
        var_95=var_95,
        cvar_95=cvar_95,
        directional_accuracy=directional_accuracy,
        precision_bull=precision_bull,
        precision_bear=precision_bear,
        recall_bull=recall_bull,
        recall_bear=recall_bear,
        f1_score_bull=f1_bull,
        f1_score_bear=f1_bear,
        expected_calibration_error=expected_calibration_error(trades),
        brier_score=brier_score(trades),
    )

    logger.debug("statistics_computed", **stats.to_dict())
    return stats


def _annualize(total_return: float, span_days: float) -> float:
    """Compound a total return over span_days to a yearly rate."""
    if span_days <= 0:
        return 0.0
    if total_return <= -1:
        return -1.0
    with np.errstate(over="ignore"):
        growth = np.power(1.0 + total_return, ANNUALIZATION_DAYS / span_days)
    return float(growth) - 1.0


def equity_returns(equity: list[EquityPoint]) -> np.ndarray:
    """Per-step simple returns of the equity curve, finite values only."""
    if len(equity) < 2:
        return np.array([], dtype=float)

    values = np.array([p.equity for p in equity], dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.diff(values) / values[:-1]
    return returns[np.isfinite(returns)]


def value_at_risk(returns: np.ndarray) -> tuple[float, float]:
    """
    Historical VaR and CVaR at 95%, as positive magnitudes.

    VaR is the return at index floor(5% * n) of the ascending sort;
    CVaR is the mean of all returns up to and including that index.
    """
    if len(returns) == 0:
        return 0.0, 0.0

    ordered = np.sort(returns)
    index = int(math.floor(len(ordered) * VAR_PERCENTILE))
    var = abs(float(ordered[index]))
    cvar = abs(float(np.mean(ordered[: index + 1])))
    return var, cvar


def classification_scores(
    predicted: list[Direction],
    actual: list[Direction],
    label: Direction,
) -> tuple[float, float, float]:
    """Precision, recall and F1 for one direction label."""
    true_positive = sum(p == label and a == label for p, a in zip(predicted, actual))
    predicted_count = sum(p == label for p in predicted)
    actual_count = sum(a == label for a in actual)

    precision = true_positive / predicted_count if predicted_count else 0.0
    recall = true_positive / actual_count if actual_count else 0.0
    f1 = (
        2 * precision * recall / (precision + recall)
        if (precision + recall) > 0
        else 0.0
    )
    return precision, recall, f1


def expected_calibration_error(trades: list[Trade], bins: int = CALIBRATION_BINS) -> float:
    """
    Expected calibration error of trade confidence vs. win outcome.

    Trades fall into equal-width bins [i/bins, (i+1)/bins); a confidence
    of exactly 1.0 belongs to the top bin.
    """
    if not trades:
        return 0.0

    binned: dict[int, list[Trade]] = {}
    for trade in trades:
        # Confidence 1.0 joins the top bin instead of being dropped
        index = min(int(math.floor(trade.confidence * bins)), bins - 1)
        binned.setdefault(max(index, 0), []).append(trade)

    ece = 0.0
    for members in binned.values():
        mean_confidence = sum(t.confidence for t in members) / len(members)
        win_rate = sum(1 for t in members if t.is_winner) / len(members)
        ece += (len(members) / len(trades)) * abs(mean_confidence - win_rate)
    return ece


def brier_score(trades: list[Trade]) -> float:
    """Mean squared error between confidence and the 0/1 win outcome."""
    if not trades:
        return 0.0
    return sum(
        (t.confidence - (1.0 if t.is_winner else 0.0)) ** 2 for t in trades
    ) / len(trades)
