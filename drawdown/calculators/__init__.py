"""Calculators behind the retirement projection.

The `calculators` package holds small, focused modules, each implementing one
piece of the drawdown logic:

* ``taxes`` - progressive federal and state income tax from static bracket tables.
* ``rmd`` - Required Minimum Distribution rules and the Uniform Lifetime table.
* ``social_security`` - simplified benefit estimate and the household survivor rule.
* ``returns`` - normal and fat-tailed return sampling and per-run return paths.
* ``withdrawal`` - withdrawal policies, the tax gross-up solver and the die-with-zero back-solve.
* ``projection`` - the year-by-year projection engine.
* ``monte_carlo`` - many projections over sampled returns, with percentile and runout aggregation.

Each module exposes a few public functions with clear parameters and returns.  See
individual docstrings for details.
"""

from . import taxes, rmd, social_security, returns, withdrawal, projection, monte_carlo  # noqa: F401

__all__ = ["taxes", "rmd", "social_security", "returns", "withdrawal", "projection", "monte_carlo"]
