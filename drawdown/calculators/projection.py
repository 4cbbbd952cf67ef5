"""Year-by-year projection of a household plan.

:func:`run_projection` walks the plan from the youngest person's current age
to the oldest life expectancy, one simulated year at a time.  Each year it

1. ages both people and works out who is alive and the filing status,
2. accrues the RMD due on last year's non-Roth retirement balances,
3. credits pre-retirement contributions and compounds every account,
4. once retirement has begun, totals Social Security, pensions, other income
   and inflated expenses,
5. pays scheduled gifts,
6. solves the tax-aware withdrawal (see :mod:`.withdrawal`),
7. debits the withdrawal from investment accounts first, then retirement
   accounts, pro rata by balance,
8. records a :class:`~drawdown.models.YearlyProjection`,
9. carries each living owner's non-Roth balance forward as next year's RMD
   basis.

Legacy disbursements are split from the final estate after the loop.  When a
die-with-zero plan also names a legacy target, the whole run is repeated inside
a bisection search over the withdrawal scale.

The plan itself is never modified; every run works on its own deep copy of the
account lists.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
import math
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .. import config
from ..models import (
    COUPLE,
    MARRIED_JOINT,
    PERSON1,
    PERSON2,
    SINGLE,
    CalculationResult,
    LegacyDistribution,
    Plan,
    YearlyProjection,
)
from . import rmd, social_security, taxes
from .returns import ReturnPath, deterministic_path, draw_asset_class_path, scalar_path
from .withdrawal import WithdrawalContext, policy_for, solve_die_with_zero_scale, solve_withdrawal

logger = logging.getLogger(__name__)


def horizon(plan: Plan) -> Tuple[int, int]:
    """Return ``(start_age, years)``; the run covers ``years + 1`` records."""
    couple = plan.is_couple
    start_age = min(plan.person1.current_age, plan.person2.current_age if couple else math.inf)
    end_age = max(plan.person1.life_expectancy, plan.person2.life_expectancy if couple else -math.inf)
    return int(start_age), max(0, int(end_age - start_age))


def run_projection(
    plan: Plan,
    sampled_return: Optional[Union[float, Sequence[float]]] = None,
    *,
    rng: Optional[np.random.Generator] = None,
    returns: Optional[ReturnPath] = None,
) -> CalculationResult:
    """Project ``plan`` through the end of life.

    Parameters
    ----------
    plan : Plan
        Household configuration.  Not modified.
    sampled_return : float or sequence of float, optional
        Decimal return applied to every account, either one value for all
        years or one per year.  Omitted means the deterministic average-return
        mode.
    rng : numpy.random.Generator, optional
        When given (and no ``sampled_return``), stock and bond returns are
        sampled per year using the plan's asset class and fat-tail settings.
    returns : ReturnPath, optional
        A fully prepared return path; overrides both of the above.

    Returns
    -------
    CalculationResult
        Yearly records plus retirement-period summary figures.
    """
    for issue in config.validate_plan(plan):
        logger.warning("plan issue: %s", issue)
    return project(plan, _return_path(plan, sampled_return, rng, returns))


def project(plan: Plan, path: ReturnPath, scale: Optional[float] = None) -> CalculationResult:
    """Run the engine on a prepared return path without re-validating the plan.

    Die-with-zero plans with a legacy target evaluate every bisection step on
    the same ``path`` so only the withdrawal scale differs between runs.  An
    explicit ``scale`` skips the search and runs once at that scale.
    """
    jurisdiction = taxes.normalize_jurisdiction(plan.state)
    if scale is not None:
        return _simulate(plan, path, jurisdiction, scale)
    if plan.die_with_zero and plan.legacy_amount > 0:
        scale, result = solve_die_with_zero_scale(
            lambda s: _simulate(plan, path, jurisdiction, s), plan.legacy_amount
        )
        logger.debug("die-with-zero scale %.6f leaves %.2f", scale, result.terminal_estate)
        return result
    return _simulate(plan, path, jurisdiction, 1.0)


def _return_path(plan, sampled_return, rng, returns) -> ReturnPath:
    if returns is not None:
        return returns
    years = horizon(plan)[1] + 1
    if sampled_return is not None:
        return scalar_path(sampled_return, years)
    if rng is not None:
        return draw_asset_class_path(plan, years, rng)
    return deterministic_path(plan, years)


def _simulate(plan: Plan, path: ReturnPath, jurisdiction: Optional[str], scale: float) -> CalculationResult:
    couple = plan.plan_type == COUPLE
    p1, p2 = plan.person1, plan.person2
    start_age, years = horizon(plan)
    inflation = plan.inflation_rate / 100.0
    nominal_return = plan.avg_return / 100.0
    policy = policy_for(plan, scale)
    first_calendar_year = plan.start_year or date.today().year
    people = (PERSON1, PERSON2) if couple else (PERSON1,)

    retirement_accounts = copy.deepcopy(plan.retirement_accounts)
    investment_accounts = copy.deepcopy(plan.investment_accounts)

    ss_monthly = _social_security_estimates(plan)

    projections: List[YearlyProjection] = []
    # (year, gross, net, federal, state) for every retirement year
    retirement_rows: List[Tuple[int, float, float, float, float]] = []

    def _balance(accounts) -> float:
        return sum(a.balance for a in accounts)

    def _debit(amount: float) -> float:
        """Take ``amount`` from investments first, then retirement, pro rata."""
        remaining = max(0.0, amount)
        taken = 0.0
        for group in (investment_accounts, retirement_accounts):
            if remaining <= 0:
                break
            available = _balance(group)
            if available <= 0:
                continue
            take = min(remaining, available)
            fraction = take / available
            for acct in group:
                acct.balance = max(0.0, acct.balance * (1.0 - fraction))
            remaining -= take
            taken += take
        return taken

    def _rmd_basis(owner: str) -> float:
        return sum(a.balance for a in retirement_accounts if a.owner == owner and not a.is_roth)

    # the starting balances stand in for last year-end
    prev_rmd_basis = {ref: _rmd_basis(ref) for ref in (PERSON1, PERSON2)}

    for year in range(years + 1):
        ages = {PERSON1: p1.current_age + year, PERSON2: p2.current_age + year if couple else 0}
        alive = {
            PERSON1: p1.alive_at(ages[PERSON1]),
            PERSON2: couple and p2.alive_at(ages[PERSON2]),
        }
        anyone_alive = alive[PERSON1] or alive[PERSON2]
        filing_status = MARRIED_JOINT if couple and alive[PERSON1] and alive[PERSON2] else SINGLE

        # --- survivor takes over the deceased spouse's accounts ---
        if couple and plan.use_balances_for_survivor_income and alive[PERSON1] != alive[PERSON2]:
            survivor = PERSON1 if alive[PERSON1] else PERSON2
            deceased = PERSON2 if survivor == PERSON1 else PERSON1
            for acct in [*retirement_accounts, *investment_accounts]:
                if acct.owner == deceased:
                    acct.owner = survivor
            prev_rmd_basis[survivor] += prev_rmd_basis[deceased]
            prev_rmd_basis[deceased] = 0.0

        # --- RMD from last year's ending balances ---
        total_rmd = 0.0
        for ref in people:
            if alive[ref] and rmd.is_rmd_age(ages[ref]):
                total_rmd += _nan_to_zero(rmd.compute_rmd(prev_rmd_basis[ref], ages[ref]))

        # --- contributions and growth ---
        for acct in retirement_accounts:
            owner = plan.person(acct.owner)
            if alive.get(acct.owner) and ages[acct.owner] < owner.retirement_age:
                match = owner.current_salary * (acct.match / 100.0)
                acct.balance += acct.annual_contribution + match
            acct.balance = max(0.0, acct.balance * (1.0 + float(path.retirement[year])))
        for acct in investment_accounts:
            owner = plan.person(acct.owner)
            if alive.get(acct.owner) and ages[acct.owner] < owner.retirement_age:
                acct.balance += acct.annual_contribution
            growth = path.investment_return(year, acct.percent_stocks, acct.percent_bonds)
            acct.balance = max(0.0, acct.balance * (1.0 + growth))

        retired = ages[PERSON1] >= p1.retirement_age or (couple and ages[PERSON2] >= p2.retirement_age)
        inflation_factor = (1.0 + inflation) ** year

        ss_income = pension_income = other_income = 0.0
        taxable_fixed = 0.0
        expenses = 0.0
        if retired and anyone_alive:
            # --- Social Security with survivor benefit ---
            ss_income = social_security.household_benefit(
                ss_monthly[PERSON1] * 12.0 * inflation_factor,
                ss_monthly[PERSON2] * 12.0 * inflation_factor,
                alive[PERSON1],
                alive[PERSON2],
                ages[PERSON1] >= p1.claiming_age,
                couple and ages[PERSON2] >= p2.claiming_age,
                is_couple=couple,
            )
            taxable_fixed += ss_income

            # --- pensions, survivor share once the spouse reaches the start age ---
            for pension in plan.pensions:
                owner_age = ages.get(pension.owner, 0)
                spouse = _spouse_of(pension.owner)
                benefit = (
                    pension.monthly_benefit
                    * (1.0 + pension.cola / 100.0) ** max(0, owner_age - pension.start_age)
                    * 12.0
                )
                if alive.get(pension.owner):
                    amount = benefit if owner_age >= pension.start_age else 0.0
                elif couple and alive[spouse] and ages[spouse] >= pension.start_age:
                    amount = benefit * (pension.survivor_benefit / 100.0)
                else:
                    amount = 0.0
                pension_income += amount
                if pension.taxable:
                    taxable_fixed += amount

            for stream in plan.other_incomes:
                owner_age = ages.get(stream.owner, 0)
                if alive.get(stream.owner) and stream.start_age <= owner_age <= stream.end_age:
                    amount = stream.monthly_amount * (1.0 + stream.cola / 100.0) ** (owner_age - stream.start_age) * 12.0
                    other_income += amount
                    if stream.taxable:
                        taxable_fixed += amount

            # --- expenses in today's dollars, then inflated ---
            annual_expenses = 0.0
            for period in plan.expense_periods:
                if ages.get(period.start_age_ref, 0) >= period.start_age and ages.get(period.end_age_ref, 0) <= period.end_age:
                    annual_expenses += period.monthly_amount * 12.0
            for outlay in plan.one_time_expenses:
                if ages.get(outlay.owner, 0) == outlay.age:
                    annual_expenses += outlay.amount
            expenses = annual_expenses * inflation_factor

        # --- gifts while the giver is alive ---
        gifts_paid = 0.0
        for gift in plan.gifts:
            giver = gift.owner if gift.owner in (PERSON1, PERSON2) else PERSON1
            if alive.get(giver):
                amount = gift.amount_at(ages[giver])
                if amount > 0:
                    gifts_paid += _debit(amount)

        # --- withdrawal ---
        total_assets = _balance(investment_accounts) + _balance(retirement_accounts)
        fixed_income = ss_income + pension_income + other_income
        withdrawal = 0.0
        if retired and anyone_alive:
            years_remaining = max(
                [1] + [plan.person(ref).life_expectancy - ages[ref] for ref in people if alive[ref]]
            )
            ctx = WithdrawalContext(
                total_assets=total_assets,
                expenses=expenses,
                fixed_income=fixed_income,
                taxable_fixed_income=taxable_fixed,
                rmd=total_rmd,
                years_remaining=years_remaining,
                nominal_return=nominal_return,
                inflation=inflation,
                jurisdiction=jurisdiction,
                filing_status=filing_status,
            )
            withdrawal = _debit(solve_withdrawal(ctx, policy).withdrawal)
        elif total_rmd > 0 and anyone_alive:
            # still working past the RMD age: only the mandated distribution
            withdrawal = _debit(min(total_rmd, total_assets))

        taxable_income = taxable_fixed + withdrawal
        gross_income = fixed_income + withdrawal
        federal_tax = state_tax = 0.0
        if gross_income > 0:
            federal_tax, state_tax = taxes.calculate_taxes(taxable_income, jurisdiction, filing_status)
        net_income = gross_income - federal_tax - state_tax

        if retired and anyone_alive:
            retirement_rows.append((year, gross_income, net_income, federal_tax, state_tax))

        investment_balance = _balance(investment_accounts)
        retirement_balance = _balance(retirement_accounts)
        projections.append(
            YearlyProjection(
                year=first_calendar_year + year,
                age1=ages[PERSON1],
                age2=ages[PERSON2] if couple else None,
                investment_balance=investment_balance,
                retirement_balance=retirement_balance,
                pension_income=pension_income,
                social_security_income=ss_income,
                other_income=other_income,
                taxable_income=taxable_income,
                gross_income=gross_income,
                withdrawal=withdrawal,
                rmd=total_rmd,
                gifts=gifts_paid,
                expenses=expenses,
                federal_tax=federal_tax,
                state_tax=state_tax,
                net_income=net_income,
                surplus=net_income - expenses,
                net_worth=max(0.0, investment_balance + retirement_balance),
            )
        )

        # --- next year's RMD basis ---
        prev_rmd_basis = {ref: (_rmd_basis(ref) if alive[ref] else 0.0) for ref in (PERSON1, PERSON2)}

    terminal_estate = projections[-1].net_worth if projections else 0.0
    legacy_summary: List[LegacyDistribution] = []
    if plan.legacy_disbursements and projections:
        legacy_summary = [
            LegacyDistribution(
                beneficiary=d.beneficiary,
                beneficiary_type=d.beneficiary_type,
                percentage=d.percentage,
                amount=_round_half_up(terminal_estate * d.percentage / 100.0),
            )
            for d in plan.legacy_disbursements
        ]
        outflow = sum(d.amount for d in legacy_summary)
        projections[-1] = dataclasses.replace(
            projections[-1],
            net_worth=max(0.0, terminal_estate - outflow),
            legacy_outflow=outflow,
            legacy_distributions=legacy_summary,
        )

    return _summarize(plan, projections, retirement_rows, start_age, years, inflation, terminal_estate, scale, legacy_summary)


def _summarize(
    plan: Plan,
    projections: List[YearlyProjection],
    retirement_rows: List[Tuple[int, float, float, float, float]],
    start_age: int,
    years: int,
    inflation: float,
    terminal_estate: float,
    scale: float,
    legacy_summary: List[LegacyDistribution],
) -> CalculationResult:
    retire_age = min(plan.person1.retirement_age, plan.person2.retirement_age if plan.is_couple else math.inf)
    retirement_start_year = max(0, int(retire_age - start_age))
    final_net_worth = projections[-1].net_worth if projections else 0.0

    count = len(retirement_rows)
    avg_net_future = sum(r[2] for r in retirement_rows) / count if count else 0.0
    avg_net_today = sum(r[2] / (1.0 + inflation) ** r[0] for r in retirement_rows) / count if count else 0.0
    avg_gross = sum(r[1] for r in retirement_rows) / count if count else 0.0
    avg_federal = sum(r[3] for r in retirement_rows) / count if count else 0.0
    avg_state = sum(r[4] for r in retirement_rows) / count if count else 0.0

    return CalculationResult(
        yearly_projections=projections,
        avg_monthly_net_income_future=avg_net_future / 12.0,
        avg_monthly_net_income_today=avg_net_today / 12.0,
        net_worth_at_end=final_net_worth / (1.0 + inflation) ** years,
        net_worth_at_end_future=final_net_worth,
        terminal_estate=terminal_estate,
        federal_tax_rate=(avg_federal / avg_gross) * 100.0 if avg_gross > 0 else 0.0,
        state_tax_rate=(avg_state / avg_gross) * 100.0 if avg_gross > 0 else 0.0,
        years_in_retirement=max(0, years - retirement_start_year),
        withdrawal_scale=scale,
        legacy_summary=legacy_summary,
    )


def _social_security_estimates(plan: Plan) -> Dict[str, float]:
    """Monthly benefits, estimated from salary unless the plan supplies them."""
    supplied = plan.social_security
    estimates = {}
    for ref, person, given in (
        (PERSON1, plan.person1, supplied.person1_estimated_benefit),
        (PERSON2, plan.person2, supplied.person2_estimated_benefit),
    ):
        if ref == PERSON2 and not plan.is_couple:
            estimates[ref] = 0.0
        elif given is not None:
            estimates[ref] = max(0.0, float(given))
        else:
            estimates[ref] = social_security.estimate_monthly_benefit(person.current_salary, person.claiming_age)
    return estimates


def _spouse_of(ref: str) -> str:
    return PERSON2 if ref == PERSON1 else PERSON1


def _nan_to_zero(value: float) -> float:
    return 0.0 if value != value else value


def _round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


__all__ = ["horizon", "run_projection", "project"]
