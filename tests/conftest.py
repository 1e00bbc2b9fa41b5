"""
Pytest configuration and fixtures.

Shared fixtures for all tests.
"""

import pytest
from datetime import datetime, timedelta
from pathlib import Path
import tempfile
import shutil

import numpy as np
import pandas as pd

from wf_backtester.types import Action, Decision

START = datetime(2024, 1, 1)


def make_bars(prices, start: datetime = START, freq: str = "h") -> pd.DataFrame:
    """Build a bar frame where open/high/low/close all equal the given prices."""
    prices = np.asarray(prices, dtype=float)
    timestamps = pd.date_range(start=start, periods=len(prices), freq=freq)
    return pd.DataFrame({
        "timestamp": timestamps,
        "open": prices,
        "high": prices,
        "low": prices,
        "close": prices,
        "volume": np.full(len(prices), 1000.0),
    })


class ScriptedModel:
    """Model whose decision is a function of the prediction window."""

    def __init__(self, decide=None, fail_training_periods=(), fail_predict_at=()):
        self.decide = decide or (lambda window: Decision.flat())
        self.fail_training_periods = set(fail_training_periods)
        self.fail_predict_at = {pd.Timestamp(t) for t in fail_predict_at}
        self.train_calls = 0
        self.predict_calls = 0
        self.windows = []

    def train(self, training_bars):
        index = self.train_calls
        self.train_calls += 1
        if index in self.fail_training_periods:
            raise RuntimeError(f"training blew up on call {index}")

    def predict(self, recent_bars):
        self.predict_calls += 1
        self.windows.append(recent_bars)
        if pd.Timestamp(recent_bars["timestamp"].iloc[-1]) in self.fail_predict_at:
            raise RuntimeError("prediction blew up")
        return self.decide(recent_bars)


def always(action: Action, confidence: float = 0.9, bull: float = 0.8, bear: float = 0.2):
    """Decision function returning the same decision for every bar."""
    decision = Decision(
        action=action,
        confidence=confidence,
        bull_probability=bull,
        bear_probability=bear,
        risk_gate=True,
    )
    return lambda window: decision


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path)


@pytest.fixture
def sample_bars():
    """Create sample hourly bar data (seeded random walk, 30 days)."""
    np.random.seed(42)
    periods = 24 * 30
    prices = 100 * np.exp(np.cumsum(np.random.randn(periods) * 0.01))
    return make_bars(prices)


@pytest.fixture
def flat_bars():
    """Ten days of hourly bars at a constant price."""
    return make_bars(np.full(24 * 10, 100.0))


@pytest.fixture
def start_time():
    return START


@pytest.fixture
def one_hour():
    return timedelta(hours=1)
