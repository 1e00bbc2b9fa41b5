"""
Trade ledger and equity tracking.

Equity is the account balance, which only changes on trade events
(entry commission, realized PnL). Drawdown is therefore measured at
trade-event granularity, not mark-to-market while a position is
open. This understates intra-trade drawdown; it is kept as-is so
results stay comparable across runs.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import structlog

from wf_backtester.position import Trade

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EquityPoint:
    """Account equity after one processed bar."""
    timestamp: datetime
    equity: float
    drawdown: float     # (peak - equity) / peak, >= 0

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "equity": self.equity,
            "drawdown": self.drawdown,
        }


class EquityTracker:
    """Appends equity points and tracks the running peak."""

    def __init__(self):
        self.points: list[EquityPoint] = []
        self.peak_equity: Optional[float] = None

    def record(self, timestamp: datetime, equity: float) -> EquityPoint:
        """Append an equity point, updating the peak first."""
        if self.peak_equity is None or equity > self.peak_equity:
            self.peak_equity = equity

        drawdown = (
            (self.peak_equity - equity) / self.peak_equity
            if self.peak_equity > 0
            else 0.0
        )
        point = EquityPoint(timestamp=timestamp, equity=equity, drawdown=drawdown)
        self.points.append(point)
        return point


class TradeLedger:
    """Append-only record of closed trades for one run."""

    def __init__(self):
        self.trades: list[Trade] = []

    def record(self, trade: Trade) -> None:
        if trade.exit_time < trade.entry_time:
            logger.error(
                "trade_exit_before_entry",
                trade_id=trade.id,
                entry_time=trade.entry_time.isoformat(),
                exit_time=trade.exit_time.isoformat(),
            )
            raise ValueError(f"Trade {trade.id} exits before it enters")
        self.trades.append(trade)

    @property
    def realized_pnl(self) -> float:
        return sum(t.pnl for t in self.trades)
