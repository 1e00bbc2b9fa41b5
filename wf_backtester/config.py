"""
Backtest configuration.

Config can be built directly, from a dict, or from a YAML file.
String values may reference environment variables as ${VAR}.
"""

import os
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
import structlog
import yaml

import pandas as pd

from wf_backtester.errors import ConfigurationError

logger = structlog.get_logger(__name__)

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


@dataclass(frozen=True)
class WalkForwardConfig:
    """Rolling window lengths, in days."""
    training_period_days: float = 30
    testing_period_days: float = 7
    step_days: float = 7

    def validate(self) -> None:
        if self.training_period_days <= 0:
            raise ConfigurationError("training_period_days must be positive")
        if self.testing_period_days <= 0:
            raise ConfigurationError("testing_period_days must be positive")
        if self.step_days <= 0:
            raise ConfigurationError("step_days must be positive")


@dataclass(frozen=True)
class BacktestConfig:
    """
    Configuration for one walk-forward backtest run.

    start_time / end_time default to the first / last bar of the
    series when left unset (see resolve()).
    """
    symbol: str
    timeframe: str = "1d"
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    initial_balance: float = 10000.0
    position_size: float = 0.1        # Fraction of balance per trade
    commission_rate: float = 0.001
    slippage_rate: float = 0.0005
    walk_forward: WalkForwardConfig = field(default_factory=WalkForwardConfig)

    def validate(self) -> None:
        """Raise ConfigurationError if the config cannot produce a valid run."""
        if not self.symbol:
            raise ConfigurationError("symbol is required")
        if self.start_time is not None and self.end_time is not None:
            if self.start_time >= self.end_time:
                raise ConfigurationError(
                    f"start_time ({self.start_time}) must be before end_time ({self.end_time})"
                )
        if self.initial_balance <= 0:
            raise ConfigurationError("initial_balance must be positive")
        if not 0 < self.position_size <= 1:
            raise ConfigurationError("position_size must be in (0, 1]")
        if self.commission_rate < 0:
            raise ConfigurationError("commission_rate cannot be negative")
        if not 0 <= self.slippage_rate < 1:
            raise ConfigurationError("slippage_rate must be in [0, 1)")
        self.walk_forward.validate()

    def resolve(self, bars: pd.DataFrame) -> "BacktestConfig":
        """
        Fill unset start/end times from the bar series and validate.

        Args:
            bars: Time-ordered bar frame

        Returns:
            Fully-specified config
        """
        start_time = self.start_time
        end_time = self.end_time
        if len(bars) > 0:
            if start_time is None:
                start_time = pd.Timestamp(bars["timestamp"].iloc[0]).to_pydatetime()
            if end_time is None:
                end_time = pd.Timestamp(bars["timestamp"].iloc[-1]).to_pydatetime()

        if start_time is None or end_time is None:
            raise ConfigurationError(
                "start_time and end_time are required when no bars are given"
            )

        resolved = replace(self, start_time=start_time, end_time=end_time)
        resolved.validate()
        return resolved

    @property
    def span_days(self) -> float:
        """Length of the backtest window in fractional days."""
        if self.start_time is None or self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds() / 86400.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BacktestConfig":
        """Build a config from a (possibly nested) dict, e.g. parsed YAML."""
        data = {k: _expand_env_vars(v) for k, v in data.items()}
        wf_data = data.pop("walk_forward", None) or {}
        wf_data = {k: _expand_env_vars(v) for k, v in wf_data.items()}

        known = set(cls.__dataclass_fields__) - {"walk_forward"}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {sorted(unknown)}")

        try:
            walk_forward = WalkForwardConfig(
                **{k: float(v) for k, v in wf_data.items()}
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid walk_forward section: {e}") from e

        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            try:
                if key in ("start_time", "end_time"):
                    kwargs[key] = pd.Timestamp(value).to_pydatetime()
                elif key in ("initial_balance", "position_size", "commission_rate", "slippage_rate"):
                    kwargs[key] = float(value)
                else:
                    kwargs[key] = str(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid value for {key}: {value!r}") from e

        if "symbol" not in kwargs:
            raise ConfigurationError("symbol is required")
        if "${" in kwargs["symbol"]:
            raise ConfigurationError(
                f"symbol references an unset environment variable: {kwargs['symbol']}"
            )

        return cls(walk_forward=walk_forward, **kwargs)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging / storage."""
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "initial_balance": self.initial_balance,
            "position_size": self.position_size,
            "commission_rate": self.commission_rate,
            "slippage_rate": self.slippage_rate,
            "walk_forward": {
                "training_period_days": self.walk_forward.training_period_days,
                "testing_period_days": self.walk_forward.testing_period_days,
                "step_days": self.walk_forward.step_days,
            },
        }


def _expand_env_vars(value: Any) -> Any:
    """Expand ${VAR} references in string config values."""
    if isinstance(value, str) and "${" in value:
        def replace_env(match):
            return os.environ.get(match.group(1), match.group(0))
        return _ENV_PATTERN.sub(replace_env, value)
    return value


def load_config(path: str, **overrides: Any) -> BacktestConfig:
    """
    Load a backtest config from a YAML file.

    The file may hold the config at top level or under a "backtest" key.
    Missing files fall back to defaults (overrides must then supply symbol).

    Args:
        path: Path to YAML file
        **overrides: Values that take precedence over the file (None is ignored)

    Returns:
        BacktestConfig (not yet resolved against bars)
    """
    config_path = Path(path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        data = dict(raw.get("backtest", raw))
        logger.info("config_loaded", path=str(config_path))
    else:
        logger.warning("config_not_found_using_defaults", path=str(config_path))
        data = {}

    for key, value in overrides.items():
        if value is not None:
            data[key] = value

    return BacktestConfig.from_dict(data)
