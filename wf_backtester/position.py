"""
Single-position simulator.

Position lifecycle:
FLAT → OPEN → FLAT

Exit rules are checked once per bar in a fixed order; the first
match closes the position:
1. REVERSAL     confident signal against the held side
2. STOP_LOSS    unrealized loss beyond limit
3. TAKE_PROFIT  unrealized profit beyond target
4. MAX_HOLDING  position held too long

Swapping this order changes backtest outcomes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union
import structlog
import uuid

from wf_backtester.config import BacktestConfig
from wf_backtester.types import Decision, Direction, Side, actual_direction

logger = structlog.get_logger(__name__)

MIN_ENTRY_CONFIDENCE = 0.6
MIN_REVERSAL_CONFIDENCE = 0.7
STOP_LOSS_PCT = 0.03
TAKE_PROFIT_PCT = 0.05
MAX_HOLDING_TIME = timedelta(hours=24)


class ExitReason(Enum):
    """Why a position was closed."""
    REVERSAL = "reversal"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    MAX_HOLDING = "max_holding"
    END_OF_RUN = "end_of_run"


@dataclass(frozen=True)
class Position:
    """An open position."""
    symbol: str
    side: Side
    quantity: float
    entry_price: float
    entry_time: datetime
    confidence: float
    predicted_direction: Direction
    entry_commission: float

    @property
    def notional(self) -> float:
        return self.entry_price * self.quantity

    def unrealized_return(self, price: float) -> float:
        """Unrealized return fraction at price (positive = profit)."""
        change = (price - self.entry_price) / self.entry_price
        return change if self.side is Side.LONG else -change


@dataclass(frozen=True)
class Flat:
    """No position held."""


@dataclass(frozen=True)
class Open:
    """A position is held."""
    position: Position


PositionState = Union[Flat, Open]


@dataclass(frozen=True)
class Trade:
    """Completed round-trip trade."""
    id: str
    symbol: str
    side: Side
    entry_time: datetime
    exit_time: datetime
    entry_price: float
    exit_price: float
    quantity: float
    pnl: float                     # Net of exit commission
    pnl_percent: float
    commission: float              # Entry + exit
    slippage: float                # Per-unit slippage paid on exit
    confidence: float
    predicted_direction: Direction
    actual_direction: Direction
    holding_period_hours: float
    exit_reason: ExitReason

    @property
    def is_winner(self) -> bool:
        return self.pnl > 0

    @property
    def direction_correct(self) -> bool:
        return self.predicted_direction == self.actual_direction

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "side": self.side.value,
            "entry_time": self.entry_time.isoformat(),
            "exit_time": self.exit_time.isoformat(),
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "quantity": self.quantity,
            "pnl": self.pnl,
            "pnl_percent": self.pnl_percent,
            "commission": self.commission,
            "slippage": self.slippage,
            "confidence": self.confidence,
            "predicted_direction": self.predicted_direction.value,
            "actual_direction": self.actual_direction.value,
            "holding_period_hours": self.holding_period_hours,
            "exit_reason": self.exit_reason.value,
        }


class PositionSimulator:
    """
    Owns the single position and the account balance for one run.

    Balance moves only on trade events:
    - open:  minus entry commission
    - close: plus net PnL (gross PnL minus exit commission)
    """

    def __init__(self, config: BacktestConfig):
        self.config = config
        self.balance: float = config.initial_balance
        self.state: PositionState = Flat()

    @property
    def position(self) -> Optional[Position]:
        """Currently open position, if any."""
        if isinstance(self.state, Open):
            return self.state.position
        return None

    @property
    def is_open(self) -> bool:
        return isinstance(self.state, Open)

    def step(
        self,
        timestamp: datetime,
        close: float,
        decision: Decision,
        allow_entry: bool = True,
    ) -> Optional[Trade]:
        """
        Apply one bar's decision: check exits, then check entry.

        A position closed on this bar may be replaced by a new one
        on the same bar.

        Args:
            timestamp: Bar timestamp
            close: Bar close price
            decision: Model decision for the bar
            allow_entry: Whether a new position may be opened

        Returns:
            Trade if a position was closed on this bar
        """
        trade = None

        reason = self.exit_reason(timestamp, close, decision)
        if reason is not None:
            trade = self.close(timestamp, close, reason)

        if allow_entry and self.should_open(decision):
            self.open(timestamp, close, decision)

        return trade

    def should_open(self, decision: Decision) -> bool:
        """Entry gate: flat, directional action, risk gate on, confident."""
        return (
            isinstance(self.state, Flat)
            and decision.side is not None
            and decision.risk_gate
            and decision.confidence >= MIN_ENTRY_CONFIDENCE
        )

    def exit_reason(
        self,
        timestamp: datetime,
        close: float,
        decision: Decision,
    ) -> Optional[ExitReason]:
        """First exit rule that fires for the open position, if any."""
        if not isinstance(self.state, Open):
            return None
        position = self.state.position

        if (
            decision.confidence > MIN_REVERSAL_CONFIDENCE
            and decision.side is position.side.opposite
        ):
            return ExitReason.REVERSAL

        unrealized = position.unrealized_return(close)
        if -unrealized > STOP_LOSS_PCT:
            return ExitReason.STOP_LOSS
        if unrealized > TAKE_PROFIT_PCT:
            return ExitReason.TAKE_PROFIT

        if timestamp - position.entry_time > MAX_HOLDING_TIME:
            return ExitReason.MAX_HOLDING

        return None

    def open(self, timestamp: datetime, close: float, decision: Decision) -> Position:
        """
        Open a position at the bar close plus slippage.

        Raises:
            RuntimeError: If a position is already open or the decision is FLAT
        """
        if isinstance(self.state, Open):
            raise RuntimeError("Cannot open a position while one is already open")
        side = decision.side
        if side is None:
            raise RuntimeError("Cannot open a position on a FLAT decision")

        slippage = self.config.slippage_rate
        entry_price = close * (1 + slippage if side is Side.LONG else 1 - slippage)
        position_value = self.balance * self.config.position_size
        quantity = position_value / entry_price
        commission = position_value * self.config.commission_rate

        position = Position(
            symbol=self.config.symbol,
            side=side,
            quantity=quantity,
            entry_price=entry_price,
            entry_time=timestamp,
            confidence=decision.confidence,
            predicted_direction=decision.predicted_direction,
            entry_commission=commission,
        )
        self.balance -= commission
        self.state = Open(position)

        logger.info(
            "position_opened",
            side=side.value,
            quantity=round(quantity, 6),
            entry_price=round(entry_price, 6),
            confidence=decision.confidence,
            timestamp=timestamp.isoformat(),
        )
        return position

    def close(self, timestamp: datetime, close: float, reason: ExitReason) -> Trade:
        """
        Close the open position at the bar close minus slippage.

        Raises:
            RuntimeError: If no position is open
        """
        if not isinstance(self.state, Open):
            raise RuntimeError("No open position to close")
        position = self.state.position

        slippage = self.config.slippage_rate
        if position.side is Side.LONG:
            exit_price = close * (1 - slippage)
            gross_pnl = (exit_price - position.entry_price) * position.quantity
        else:
            exit_price = close * (1 + slippage)
            gross_pnl = (position.entry_price - exit_price) * position.quantity

        exit_commission = exit_price * position.quantity * self.config.commission_rate
        net_pnl = gross_pnl - exit_commission

        trade = Trade(
            id=f"trade_{uuid.uuid4().hex[:12]}",
            symbol=position.symbol,
            side=position.side,
            entry_time=position.entry_time,
            exit_time=timestamp,
            entry_price=position.entry_price,
            exit_price=exit_price,
            quantity=position.quantity,
            pnl=net_pnl,
            pnl_percent=net_pnl / position.notional,
            commission=position.entry_commission + exit_commission,
            slippage=abs(exit_price - close),
            confidence=position.confidence,
            predicted_direction=position.predicted_direction,
            actual_direction=actual_direction(position.entry_price, exit_price),
            holding_period_hours=(timestamp - position.entry_time).total_seconds() / 3600.0,
            exit_reason=reason,
        )

        self.balance += net_pnl
        self.state = Flat()

        logger.info(
            "position_closed",
            side=position.side.value,
            reason=reason.value,
            pnl=round(net_pnl, 2),
            pnl_percent=round(trade.pnl_percent * 100, 2),
            timestamp=timestamp.isoformat(),
        )
        return trade
