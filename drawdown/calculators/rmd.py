"""Required Minimum Distribution (RMD) calculator.

RMDs apply to every non-Roth retirement account once the owner reaches the
start age.  The annual amount is the prior year-end balance divided by the
distribution period from the IRS Uniform Lifetime Table.  The planner uses a
single start age of 73 (SECURE Act 2.0 for owners born 1951-1959) rather than
deriving it from a birth year.

The table below is the 2022 update effective for distributions after
January 1 2022, from age 73 onward.  Ages missing from the table fall back to a
divisor of 1, i.e. the whole balance is distributed; callers are expected to
consult the table only from :data:`RMD_START_AGE` onward.

Example
-------

>>> # A 73-year-old with $100k in a traditional IRA at the end of the prior year
>>> round(compute_rmd(balance=100000, age=73), 2)
3773.58
"""

from __future__ import annotations

from typing import Dict

RMD_START_AGE = 73

UNIFORM_LIFETIME_TABLE: Dict[int, float] = {
    73: 26.5, 74: 25.5, 75: 24.6, 76: 23.7, 77: 22.9, 78: 22.0, 79: 21.1,
    80: 20.2, 81: 19.4, 82: 18.5, 83: 17.7, 84: 16.8, 85: 16.0, 86: 15.2,
    87: 14.4, 88: 13.7, 89: 12.9, 90: 12.2, 91: 11.5, 92: 10.8, 93: 10.1,
    94: 9.5, 95: 8.9, 96: 8.4, 97: 7.8, 98: 7.3, 99: 6.8, 100: 6.4,
    101: 6.0, 102: 5.6, 103: 5.2, 104: 4.9, 105: 4.6, 106: 4.3, 107: 4.1,
    108: 3.9, 109: 3.7, 110: 3.5, 111: 3.4, 112: 3.3, 113: 3.1, 114: 3.0,
    115: 2.9, 116: 2.8, 117: 2.7, 118: 2.5, 119: 2.3, 120: 2.0,
}


def rmd_divisor(age: int) -> float:
    """Distribution period for ``age``; 1.0 when the table has no entry."""
    return UNIFORM_LIFETIME_TABLE.get(int(age), 1.0)


def is_rmd_age(age: int, start_age: int = RMD_START_AGE) -> bool:
    return age >= start_age


def compute_rmd(balance: float, age: int) -> float:
    """Compute the Required Minimum Distribution for a given age and balance.

    Parameters
    ----------
    balance : float
        The non-Roth retirement balance on December 31 of the prior year.
    age : int
        Age of the account owner in the distribution year.

    Returns
    -------
    float
        The RMD amount.  Zero for a non-positive (or NaN) balance.
    """
    if not balance > 0:
        return 0.0
    return balance / rmd_divisor(age)


__all__ = ["RMD_START_AGE", "UNIFORM_LIFETIME_TABLE", "rmd_divisor", "is_rmd_age", "compute_rmd"]
