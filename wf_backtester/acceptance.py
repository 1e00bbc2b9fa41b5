"""
Acceptance gate for backtest results.

A model is ACCEPTED only if ALL criteria pass (not just on average):
- Directional accuracy >= 70%
- Max drawdown <= 20%
- Sharpe ratio >= 1.0
"""

from dataclasses import dataclass
import structlog

from wf_backtester.statistics import BacktestStatistics

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AcceptanceCriteria:
    """Thresholds a run must meet."""
    min_directional_accuracy: float = 0.70
    max_drawdown: float = 0.20
    min_sharpe_ratio: float = 1.0


@dataclass(frozen=True)
class CriterionResult:
    """Outcome of one acceptance check."""
    name: str
    label: str          # e.g. "Directional Accuracy ≥ 70%"
    value: float
    threshold: float
    passed: bool


@dataclass(frozen=True)
class AcceptanceReport:
    """Outcome of all acceptance checks."""
    criteria: tuple[CriterionResult, ...]

    @property
    def accepted(self) -> bool:
        return all(c.passed for c in self.criteria)

    @property
    def status(self) -> str:
        return "ACCEPTED" if self.accepted else "NEEDS IMPROVEMENT"

    def failed(self) -> list[CriterionResult]:
        return [c for c in self.criteria if not c.passed]


DEFAULT_CRITERIA = AcceptanceCriteria()


def validate_acceptance(
    statistics: BacktestStatistics,
    criteria: AcceptanceCriteria = DEFAULT_CRITERIA,
) -> AcceptanceReport:
    """
    Check run statistics against the acceptance thresholds.

    Args:
        statistics: Run statistics
        criteria: Thresholds (defaults to the standard gate)

    Returns:
        AcceptanceReport with per-criterion outcomes
    """
    results = (
        CriterionResult(
            name="directional_accuracy",
            label=f"Directional Accuracy ≥ {criteria.min_directional_accuracy:.0%}",
            value=statistics.directional_accuracy,
            threshold=criteria.min_directional_accuracy,
            passed=statistics.directional_accuracy >= criteria.min_directional_accuracy,
        ),
        CriterionResult(
            name="max_drawdown",
            label=f"Max Drawdown ≤ {criteria.max_drawdown:.0%}",
            value=statistics.max_drawdown,
            threshold=criteria.max_drawdown,
            passed=statistics.max_drawdown <= criteria.max_drawdown,
        ),
        CriterionResult(
            name="sharpe_ratio",
            label=f"Sharpe Ratio ≥ {criteria.min_sharpe_ratio:.1f}",
            value=statistics.sharpe_ratio,
            threshold=criteria.min_sharpe_ratio,
            passed=statistics.sharpe_ratio >= criteria.min_sharpe_ratio,
        ),
    )

    report = AcceptanceReport(criteria=results)
    logger.info(
        "acceptance_checked",
        accepted=report.accepted,
        failed=[c.name for c in report.failed()],
    )
    return report
