"""
Model contract consumed by the backtester, plus a baseline model.

Any object with train(bars) and predict(bars) works. Either method may
be a coroutine function; the backtester awaits results as needed.
"""

from typing import Any, Awaitable, Optional, Protocol, Union, runtime_checkable
import structlog

import numpy as np
import pandas as pd

from wf_backtester.types import Action, Decision

logger = structlog.get_logger(__name__)


@runtime_checkable
class TradingModel(Protocol):
    """Predictive model interface."""

    def train(self, training_bars: pd.DataFrame) -> Union[None, Awaitable[None]]:
        ...

    def predict(self, recent_bars: pd.DataFrame) -> Union[Decision, Awaitable[Decision]]:
        ...


class MomentumModel:
    """
    Baseline price-momentum model.

    Training measures the typical bar-to-bar move; prediction compares
    momentum over the lookback window against a multiple of that move.
    Deterministic for a given window, which makes it usable in tests.
    """

    def __init__(
        self,
        lookback_periods: int = 5,
        threshold_multiplier: float = 1.0,
        max_volatility: float = 0.05,   # Risk gate closes above 5% per-bar vol
    ):
        """
        Initialize momentum model.

        Args:
            lookback_periods: Number of bars to measure momentum over
            threshold_multiplier: Momentum threshold as a multiple of trained volatility
            max_volatility: Recent per-bar volatility above which the risk gate closes
        """
        self.lookback_periods = lookback_periods
        self.threshold_multiplier = threshold_multiplier
        self.max_volatility = max_volatility
        self.bar_volatility: Optional[float] = None

        logger.info(
            "momentum_model_initialized",
            lookback_periods=lookback_periods,
            threshold_multiplier=threshold_multiplier,
        )

    def train(self, training_bars: pd.DataFrame) -> None:
        returns = training_bars["close"].pct_change().dropna()
        if returns.empty:
            raise ValueError("Need at least two bars to train")
        self.bar_volatility = float(returns.std(ddof=0))
        logger.debug(
            "momentum_model_trained",
            bars=len(training_bars),
            bar_volatility=self.bar_volatility,
        )

    def predict(self, recent_bars: pd.DataFrame) -> Decision:
        if self.bar_volatility is None:
            raise RuntimeError("Model must be trained before predicting")

        closes = recent_bars["close"]
        if len(closes) < self.lookback_periods + 1:
            return Decision.flat()

        current_price = float(closes.iloc[-1])
        past_price = float(closes.iloc[-self.lookback_periods - 1])
        momentum = (current_price - past_price) / past_price

        # Scale threshold with the lookback horizon (random-walk sqrt(n))
        threshold = (
            self.threshold_multiplier
            * self.bar_volatility
            * np.sqrt(self.lookback_periods)
        )
        recent_vol = float(closes.pct_change().dropna().std(ddof=0))

        strength = abs(momentum) / threshold if threshold > 0 else (1.0 if momentum else 0.0)
        confidence = float(min(0.5 + 0.25 * strength, 1.0))
        bull = float(min(max(0.5 + momentum * 10, 0.0), 1.0))

        if momentum > threshold:
            action = Action.LONG
        elif momentum < -threshold:
            action = Action.SHORT
        else:
            action = Action.FLAT

        return Decision(
            action=action,
            confidence=confidence,
            bull_probability=bull,
            bear_probability=1.0 - bull,
            risk_gate=recent_vol <= self.max_volatility,
        )


def describe_model(model: Any) -> str:
    """Short name of a model for logs."""
    return getattr(model, "name", type(model).__name__)
