"""Household retirement drawdown projections.

``run_projection`` walks a :class:`Plan` year by year; ``run_monte_carlo``
repeats it over sampled market returns.
"""

from .calculators.monte_carlo import run_monte_carlo
from .calculators.projection import run_projection
from .models import (
    CalculationResult,
    MonteCarloSummary,
    Plan,
    PlanValidationError,
    YearlyProjection,
)

__all__ = [
    "run_projection",
    "run_monte_carlo",
    "Plan",
    "PlanValidationError",
    "CalculationResult",
    "YearlyProjection",
    "MonteCarloSummary",
]
