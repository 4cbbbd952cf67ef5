"""Withdrawal policies and the tax-aware withdrawal solver.

Each retirement year the engine asks the active policy for a *planned*
withdrawal, then :func:`solve_withdrawal` turns it into the gross amount taken
from the accounts:

1. floor the plan at the required minimum distribution,
2. cap it at the assets available,
3. gross it up until the after-tax income covers expenses (at most 20 rounds,
   stopping once the shortfall is under one dollar).  Each round measures the
   local marginal tax rate and adds ``shortfall / (1 - marginal_rate)``,
4. for die-with-zero plans, re-cap it so the present value of the legacy
   target stays invested.

Two policies exist:

* :class:`FixedRatePolicy` - withdraw a fixed share of assets, or more when
  expenses demand it.
* :class:`DieWithZeroPolicy` - amortise the spendable assets (assets minus the
  discounted legacy target) over the remaining horizon as an equal real
  payment, scaled by ``scale``.  The engine back-solves ``scale`` with
  :func:`solve_die_with_zero_scale` so the terminal estate lands on the target.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Tuple, TypeVar, Union

from .. import config
from . import taxes

logger = logging.getLogger(__name__)

TaxFunction = Callable[[float], "taxes.TaxResult"]
T = TypeVar("T")


@dataclass(frozen=True)
class WithdrawalContext:
    """Everything the solver needs to know about one simulated year."""

    total_assets: float
    expenses: float
    fixed_income: float
    taxable_fixed_income: float
    rmd: float = 0.0
    years_remaining: int = 1
    nominal_return: float = 0.0
    inflation: float = 0.0
    jurisdiction: Optional[str] = None
    filing_status: str = "single"

    def tax(self, taxable_income: float) -> "taxes.TaxResult":
        return taxes.calculate_taxes(taxable_income, self.jurisdiction, self.filing_status)


class WithdrawalPolicy(Protocol):
    marginal_bounds: Tuple[float, float]

    def planned_withdrawal(self, ctx: WithdrawalContext, shortfall: float) -> float: ...

    def legacy_reserve(self, ctx: WithdrawalContext) -> float: ...

    def clamp_marginal_rate(self, rate: float) -> float: ...


@dataclass(frozen=True)
class FixedRatePolicy:
    rate: float
    marginal_bounds: Tuple[float, float] = (
        config.FIXED_RATE_MARGINAL_FLOOR,
        config.FIXED_RATE_MARGINAL_CEILING,
    )

    def planned_withdrawal(self, ctx: WithdrawalContext, shortfall: float) -> float:
        return max(shortfall, ctx.total_assets * self.rate)

    def clamp_marginal_rate(self, rate: float) -> float:
        return _clamp(rate, self.marginal_bounds)

    def legacy_reserve(self, ctx: WithdrawalContext) -> float:
        return 0.0


@dataclass(frozen=True)
class DieWithZeroPolicy:
    legacy_target: float = 0.0
    scale: float = 1.0
    marginal_bounds: Tuple[float, float] = (0.0, config.DIE_WITH_ZERO_MARGINAL_CEILING)

    def legacy_reserve(self, ctx: WithdrawalContext) -> float:
        """Present value of the legacy target at the nominal return."""
        if self.legacy_target <= 0:
            return 0.0
        growth = 1.0 + ctx.nominal_return
        if growth <= 0:
            return self.legacy_target
        return self.legacy_target / growth ** max(1, ctx.years_remaining)

    def annuity_withdrawal(self, ctx: WithdrawalContext) -> float:
        """Equal real payment that spends the spendable assets over the horizon."""
        n = max(1, ctx.years_remaining)
        spendable = max(0.0, ctx.total_assets - self.legacy_reserve(ctx))
        if spendable <= 0:
            return 0.0
        real = (1.0 + ctx.nominal_return) / (1.0 + ctx.inflation) - 1.0 if ctx.inflation > -1 else 0.0
        if abs(real) <= config.REAL_RATE_EPSILON:
            return spendable / n
        growth = (1.0 + real) ** n
        payment = spendable * (real * growth) / (growth - 1.0)
        return _finite(payment, spendable / n)

    def planned_withdrawal(self, ctx: WithdrawalContext, shortfall: float) -> float:
        return max(shortfall, self.annuity_withdrawal(ctx) * self.scale)

    def clamp_marginal_rate(self, rate: float) -> float:
        return _clamp(rate, self.marginal_bounds)


def policy_for(plan, scale: float = 1.0) -> Union[FixedRatePolicy, DieWithZeroPolicy]:
    """The single dispatch point from plan settings to a policy."""
    if plan.die_with_zero:
        return DieWithZeroPolicy(legacy_target=max(0.0, plan.legacy_amount), scale=scale)
    return FixedRatePolicy(rate=max(0.0, plan.annual_withdrawal_rate) / 100.0)


@dataclass(frozen=True)
class WithdrawalDecision:
    withdrawal: float
    planned: float
    iterations: int
    legacy_reserve: float


def expense_shortfall(ctx: WithdrawalContext, tax_fn: Optional[TaxFunction] = None) -> float:
    """After-tax gap between expenses and fixed income, before any gross-up."""
    tax_fn = tax_fn or ctx.tax
    net_fixed = ctx.fixed_income - tax_fn(ctx.taxable_fixed_income).total
    return max(0.0, ctx.expenses - net_fixed)


def solve_withdrawal(
    ctx: WithdrawalContext,
    policy: WithdrawalPolicy,
    tax_fn: Optional[TaxFunction] = None,
) -> WithdrawalDecision:
    tax_fn = tax_fn or ctx.tax
    cap = max(0.0, ctx.total_assets)
    planned = _finite(policy.planned_withdrawal(ctx, expense_shortfall(ctx, tax_fn)), 0.0)
    withdrawal = min(max(planned, ctx.rmd), cap)

    iterations = 0
    for iterations in range(1, config.GROSS_UP_MAX_ITERATIONS + 1):
        taxable = ctx.taxable_fixed_income + withdrawal
        net = ctx.fixed_income + withdrawal - tax_fn(taxable).total
        shortfall = ctx.expenses - net
        if shortfall < config.GROSS_UP_TOLERANCE or withdrawal >= cap:
            break
        rate = policy.clamp_marginal_rate(taxes.marginal_rate(taxable, tax_fn=tax_fn))
        withdrawal = min(withdrawal + shortfall / (1.0 - rate), cap)

    reserve = policy.legacy_reserve(ctx)
    if reserve > 0:
        # the mandated distribution still comes out even if it dips into the reserve
        withdrawal = min(withdrawal, max(min(ctx.rmd, cap), cap - reserve))
    return WithdrawalDecision(_finite(withdrawal, 0.0), planned, iterations, reserve)


def solve_die_with_zero_scale(
    evaluate: Callable[[float], T],
    legacy_target: float,
    terminal: Callable[[T], float] = lambda result: result.terminal_estate,
    max_iterations: int = config.BISECTION_MAX_ITERATIONS,
    tolerance: float = config.BISECTION_WIDTH_TOLERANCE,
) -> Tuple[float, T]:
    """Largest ``scale`` in [0, 1] whose run still leaves ``legacy_target``.

    Bisection assumes the terminal estate falls monotonically as ``scale``
    grows.  If no scale keeps the estate at the target, the most conservative
    run (``scale = 0``) is returned; the caller sees a terminal estate below
    target rather than an error.
    """
    result = evaluate(1.0)
    if terminal(result) >= legacy_target:
        return 1.0, result

    low, high = 0.0, 1.0
    best: Optional[Tuple[float, T]] = None
    for step in range(max_iterations):
        if high - low < tolerance:
            break
        mid = (low + high) / 2.0
        result = evaluate(mid)
        estate = terminal(result)
        logger.debug("bisection step %d: scale=%.6f estate=%.2f target=%.2f", step, mid, estate, legacy_target)
        if estate >= legacy_target:
            low, best = mid, (mid, result)
        else:
            high = mid

    if best is None:
        logger.info("legacy target %.2f is not reachable; using the most conservative withdrawals", legacy_target)
        return 0.0, evaluate(0.0)
    return best


def _clamp(value: float, bounds: Tuple[float, float]) -> float:
    low, high = bounds
    return min(max(value, low), high)


def _finite(value: float, fallback: float) -> float:
    return value if isinstance(value, (int, float)) and math.isfinite(value) else fallback


__all__ = [
    "WithdrawalContext",
    "WithdrawalPolicy",
    "FixedRatePolicy",
    "DieWithZeroPolicy",
    "WithdrawalDecision",
    "policy_for",
    "expense_shortfall",
    "solve_withdrawal",
    "solve_die_with_zero_scale",
]
