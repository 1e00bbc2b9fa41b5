"""
Core domain types shared by the backtester.

Bars are carried as pandas DataFrames (one row per OHLCV observation);
everything else is a small dataclass or enum.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import pandas as pd


class Action(Enum):
    """Action requested by the model for a bar."""
    LONG = "LONG"
    SHORT = "SHORT"
    FLAT = "FLAT"


class Side(Enum):
    """Side of an open position."""
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def opposite(self) -> "Side":
        return Side.SHORT if self is Side.LONG else Side.LONG


class Direction(Enum):
    """Directional label used for accuracy/precision/recall."""
    BULL = "BULL"
    BEAR = "BEAR"
    NEUTRAL = "NEUTRAL"


# Realized move needed to call a trade BULL or BEAR
DIRECTION_THRESHOLD = 0.01


@dataclass(frozen=True)
class Decision:
    """
    Trading decision returned by a model for one bar.

    Probabilities are the model's own view of the next move; only
    their ordering matters here (it sets the predicted direction).
    """
    action: Action
    confidence: float
    bull_probability: float = 0.0
    bear_probability: float = 0.0
    risk_gate: bool = False

    @property
    def predicted_direction(self) -> Direction:
        """Direction implied by the bull/bear probabilities."""
        if self.bull_probability > self.bear_probability:
            return Direction.BULL
        if self.bear_probability > self.bull_probability:
            return Direction.BEAR
        return Direction.NEUTRAL

    @property
    def side(self) -> Optional[Side]:
        """Position side this decision asks for (None when FLAT)."""
        if self.action is Action.LONG:
            return Side.LONG
        if self.action is Action.SHORT:
            return Side.SHORT
        return None

    @classmethod
    def flat(cls) -> "Decision":
        return cls(action=Action.FLAT, confidence=0.0)


def actual_direction(entry_price: float, exit_price: float) -> Direction:
    """Classify a realized price move as BULL, BEAR or NEUTRAL."""
    change = (exit_price - entry_price) / entry_price
    if change > DIRECTION_THRESHOLD:
        return Direction.BULL
    if change < -DIRECTION_THRESHOLD:
        return Direction.BEAR
    return Direction.NEUTRAL


def normalize_bars(bars: pd.DataFrame) -> pd.DataFrame:
    """
    Validate and time-order a bar frame.

    Args:
        bars: DataFrame with columns timestamp, open, high, low, close, volume

    Returns:
        Copy sorted by timestamp with a datetime64 timestamp column
    """
    missing = [col for col in ("timestamp", "close") if col not in bars.columns]
    if missing:
        raise ValueError(f"Bars missing required columns: {missing}")

    frame = bars.copy()
    frame["timestamp"] = pd.to_datetime(frame["timestamp"])
    return frame.sort_values("timestamp", kind="stable").reset_index(drop=True)
