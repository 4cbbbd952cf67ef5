"""Engine defaults and plan validation.

Every tunable the projection engine and the Monte Carlo layer rely on lives
here so callers can see (and tests can reference) the assumptions in one place.
Percentages are expressed in percent, matching the plan input contract.

Validation helpers never block a run.  They return a list of human readable
issues which the engine logs as warnings; the caller decides whether to surface
them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .models import Plan

# Asset class assumptions (percent)
DEFAULT_STOCK_MEAN = 8.0
DEFAULT_STOCK_STD = 15.0
DEFAULT_BOND_MEAN = 3.0
DEFAULT_BOND_STD = 6.0
DEFAULT_PERCENT_STOCKS = 60.0
DEFAULT_PERCENT_BONDS = 40.0
DEFAULT_FAT_TAIL_DF = 4.0

# Withdrawal solver
GROSS_UP_MAX_ITERATIONS = 20
GROSS_UP_TOLERANCE = 1.0
MARGINAL_STEP = 1000.0
FIXED_RATE_MARGINAL_FLOOR = 0.15
FIXED_RATE_MARGINAL_CEILING = 0.90
# die-with-zero marginal rates are only kept strictly below 1
DIE_WITH_ZERO_MARGINAL_CEILING = 0.99

# Die-with-zero back-solve
BISECTION_MAX_ITERATIONS = 20
BISECTION_WIDTH_TOLERANCE = 1e-4

# Real rates closer to zero than this use the even split instead of the annuity
REAL_RATE_EPSILON = 1e-9

# Monte Carlo
DEFAULT_SIMULATIONS = 1000
DEFAULT_VOLATILITY = 15.0
PERCENTILES = (10, 50, 90)
PROGRESS_STEPS = 10


def validate_asset_assumptions(
    stock_mean: Optional[float],
    stock_std: Optional[float],
    bond_mean: Optional[float],
    bond_std: Optional[float],
) -> List[str]:
    """Return issues found in a set of asset class assumptions (percent)."""
    issues: List[str] = []
    if not _is_number(stock_mean) or not _is_number(bond_mean):
        issues.append("Stock or bond mean is not a number")
    elif stock_mean < bond_mean:
        issues.append("Stock mean is lower than bond mean (unusual assumption)")

    if not _is_number(stock_std) or not _is_number(bond_std):
        issues.append("Stock or bond volatility (std) is not a number")
    else:
        if stock_std < 0 or bond_std < 0:
            issues.append("Volatility cannot be negative")
        if stock_std > 100 or bond_std > 100:
            issues.append("Volatility values look unreasonably large")

    if _is_number(stock_mean) and not -20 <= stock_mean <= 50:
        issues.append("Stock mean is outside reasonable bounds")
    if _is_number(bond_mean) and not -10 <= bond_mean <= 30:
        issues.append("Bond mean is outside reasonable bounds")
    return issues


def validate_plan(plan: "Plan") -> List[str]:
    """Collect soft configuration issues for ``plan``.

    Covers the asset class assumptions, the jurisdiction code and the age
    ordering of each person.  An unknown jurisdiction is taxed at a zero state
    rate by the engine, which is almost never what the user meant, so it is
    reported here rather than silently accepted.
    """
    from .calculators import taxes

    issues = validate_asset_assumptions(
        plan.stock_mean, plan.stock_std, plan.bond_mean, plan.bond_std
    )
    if taxes.normalize_jurisdiction(plan.state) is None:
        issues.append(f"Unknown jurisdiction {plan.state!r}; state tax will be zero")

    people = [("person1", plan.person1)]
    if plan.is_couple:
        people.append(("person2", plan.person2))
    for label, person in people:
        if person.current_age > person.life_expectancy:
            issues.append(f"{label} current age is past life expectancy")
        if person.retirement_age > person.life_expectancy:
            issues.append(f"{label} retires after life expectancy")

    if plan.use_fat_tails and plan.fat_tail_df <= 2:
        issues.append("Fat-tail degrees of freedom must exceed 2; normal sampling is used")
    return issues


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == value


__all__ = [
    "DEFAULT_STOCK_MEAN",
    "DEFAULT_STOCK_STD",
    "DEFAULT_BOND_MEAN",
    "DEFAULT_BOND_STD",
    "DEFAULT_PERCENT_STOCKS",
    "DEFAULT_PERCENT_BONDS",
    "DEFAULT_FAT_TAIL_DF",
    "GROSS_UP_MAX_ITERATIONS",
    "GROSS_UP_TOLERANCE",
    "MARGINAL_STEP",
    "FIXED_RATE_MARGINAL_FLOOR",
    "FIXED_RATE_MARGINAL_CEILING",
    "DIE_WITH_ZERO_MARGINAL_CEILING",
    "BISECTION_MAX_ITERATIONS",
    "BISECTION_WIDTH_TOLERANCE",
    "REAL_RATE_EPSILON",
    "DEFAULT_SIMULATIONS",
    "DEFAULT_VOLATILITY",
    "PERCENTILES",
    "PROGRESS_STEPS",
    "validate_asset_assumptions",
    "validate_plan",
]
