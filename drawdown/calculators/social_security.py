"""Simplified Social Security benefit estimator.

The planner does not model a full earnings history.  Instead the current
monthly salary stands in for the Average Indexed Monthly Earnings (AIME) and
the 2024 bend points convert it to a Primary Insurance Amount (PIA):

* 90 % of AIME up to the first bend point ($1 174),
* 32 % of AIME between the bend points ($1 174 - $7 078),
* 15 % of AIME above the second bend point.

The PIA is then scaled by a claiming-age factor (70 % at 62 rising to 124 % at
70, full retirement age 67) and capped at an age-scaled maximum benefit.

Survivor benefits are simplified: once one spouse has died, the survivor
receives the larger of the two benefits from their own claiming age onward.

Example
-------

>>> # $60 000 salary claimed at full retirement age
>>> round(estimate_monthly_benefit(60000, 67), 2)
2280.92

>>> # The same earnings claimed at 62
>>> round(estimate_monthly_benefit(60000, 62), 2)
1596.64
"""

from __future__ import annotations

from typing import Dict, Optional

FULL_RETIREMENT_AGE = 67
BEND_POINTS = (1174.0, 7078.0)
BEND_FACTORS = (0.90, 0.32, 0.15)
MAX_BENEFIT_AT_FRA = 3822.0
EARLIEST_CLAIMING_AGE = 62
LATEST_CLAIMING_AGE = 70

AGE_ADJUSTMENT_FACTORS: Dict[int, float] = {
    62: 0.70,
    63: 0.75,
    64: 0.80,
    65: 0.867,
    66: 0.933,
    67: 1.00,
    68: 1.08,
    69: 1.16,
    70: 1.24,
}


def primary_insurance_amount(aime: float) -> float:
    """Apply the three-tier bend point formula to a monthly AIME."""
    first, second = BEND_POINTS
    f1, f2, f3 = BEND_FACTORS
    if aime <= 0:
        return 0.0
    if aime <= first:
        return f1 * aime
    if aime <= second:
        return f1 * first + f2 * (aime - first)
    return f1 * first + f2 * (second - first) + f3 * (aime - second)


def age_adjustment_factor(claiming_age: int) -> float:
    # clamp ages to [62, 70]
    age = max(EARLIEST_CLAIMING_AGE, min(LATEST_CLAIMING_AGE, int(claiming_age)))
    return AGE_ADJUSTMENT_FACTORS[age]


def estimate_monthly_benefit(annual_salary: float, claiming_age: Optional[int]) -> float:
    """Estimate the monthly benefit at ``claiming_age`` in today's dollars.

    Parameters
    ----------
    annual_salary : float
        Current gross salary.  Its monthly value is used as the AIME proxy.
    claiming_age : int
        Age benefits begin.  Clamped to the 62-70 window.

    Returns
    -------
    float
        Estimated monthly benefit, or zero when the salary is not positive or
        no claiming age is set.
    """
    if annual_salary <= 0 or not claiming_age:
        return 0.0
    pia = primary_insurance_amount(annual_salary / 12.0)
    factor = age_adjustment_factor(claiming_age)
    adjusted_max = MAX_BENEFIT_AT_FRA * factor / AGE_ADJUSTMENT_FACTORS[FULL_RETIREMENT_AGE]
    return min(pia * factor, adjusted_max)


def household_benefit(
    person1_benefit: float,
    person2_benefit: float,
    person1_alive: bool,
    person2_alive: bool,
    person1_claiming: bool,
    person2_claiming: bool,
    is_couple: bool = True,
) -> float:
    """Household Social Security income for one year.

    ``*_benefit`` are the annual benefits each person earned, ``*_claiming``
    whether that person has reached their own claiming age.

    ============  ============  ===========================================
    person1       person2       household receives
    ============  ============  ===========================================
    alive         alive         each own benefit once claiming
    alive         dead          max(both) once person1 is claiming
    dead          alive         max(both) once person2 is claiming
    dead          dead          nothing
    ============  ============  ===========================================

    Individuals only ever receive person1's own benefit.
    """
    if not is_couple:
        return person1_benefit if person1_alive and person1_claiming else 0.0
    if person1_alive and person2_alive:
        total = 0.0
        if person1_claiming:
            total += person1_benefit
        if person2_claiming:
            total += person2_benefit
        return total
    if person1_alive:
        return max(person1_benefit, person2_benefit) if person1_claiming else 0.0
    if person2_alive:
        return max(person1_benefit, person2_benefit) if person2_claiming else 0.0
    return 0.0


__all__ = [
    "FULL_RETIREMENT_AGE",
    "BEND_POINTS",
    "BEND_FACTORS",
    "MAX_BENEFIT_AT_FRA",
    "AGE_ADJUSTMENT_FACTORS",
    "primary_insurance_amount",
    "age_adjustment_factor",
    "estimate_monthly_benefit",
    "household_benefit",
]
