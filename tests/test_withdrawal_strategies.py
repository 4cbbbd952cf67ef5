from types import SimpleNamespace

import numpy as np
import pytest

from drawdown.calculators.taxes import TaxResult
from drawdown.calculators.withdrawal import (
    DieWithZeroPolicy,
    FixedRatePolicy,
    WithdrawalContext,
    expense_shortfall,
    policy_for,
    solve_die_with_zero_scale,
    solve_withdrawal,
)


def flat_tax(rate):
    return lambda income: TaxResult(max(0.0, income) * rate, 0.0)


def _ctx(**overrides):
    values = dict(
        total_assets=1_000_000.0,
        expenses=0.0,
        fixed_income=0.0,
        taxable_fixed_income=0.0,
        rmd=0.0,
        years_remaining=20,
        nominal_return=0.0,
        inflation=0.0,
    )
    values.update(overrides)
    return WithdrawalContext(**values)


def test_fixed_rate_withdraws_share_of_assets():
    decision = solve_withdrawal(_ctx(), FixedRatePolicy(0.04), flat_tax(0.2))
    assert decision.withdrawal == pytest.approx(40000.0)


def test_gross_up_covers_expenses_after_tax():
    decision = solve_withdrawal(_ctx(expenses=50000.0), FixedRatePolicy(0.04), flat_tax(0.2))
    assert decision.withdrawal == pytest.approx(62500.0)
    assert decision.planned == pytest.approx(50000.0)
    assert decision.iterations == 2
    assert decision.withdrawal * 0.8 >= 50000.0 - 1.0


def test_fixed_income_reduces_shortfall():
    ctx = _ctx(expenses=30000.0, fixed_income=20000.0, taxable_fixed_income=20000.0)
    assert expense_shortfall(ctx, flat_tax(0.1)) == pytest.approx(12000.0)


def test_rmd_floor():
    decision = solve_withdrawal(_ctx(rmd=30000.0), FixedRatePolicy(0.0), flat_tax(0.0))
    assert decision.withdrawal == pytest.approx(30000.0)


def test_withdrawal_capped_at_assets():
    decision = solve_withdrawal(_ctx(total_assets=10000.0, expenses=50000.0), FixedRatePolicy(0.04), flat_tax(0.2))
    assert decision.withdrawal == pytest.approx(10000.0)


def test_die_with_zero_keeps_legacy_reserve():
    policy = DieWithZeroPolicy(legacy_target=100000.0)
    ctx = _ctx(total_assets=200000.0, expenses=150000.0, years_remaining=1)
    decision = solve_withdrawal(ctx, policy, flat_tax(0.0))
    assert decision.legacy_reserve == pytest.approx(100000.0)
    assert decision.withdrawal == pytest.approx(100000.0)


def test_rmd_may_dip_into_legacy_reserve():
    policy = DieWithZeroPolicy(legacy_target=100000.0)
    ctx = _ctx(total_assets=200000.0, rmd=120000.0, years_remaining=1)
    decision = solve_withdrawal(ctx, policy, flat_tax(0.0))
    assert decision.withdrawal == pytest.approx(120000.0)


def test_annuity_spends_assets_over_horizon():
    policy = DieWithZeroPolicy()
    ctx = _ctx(total_assets=100000.0, years_remaining=10, nominal_return=0.05, inflation=0.02)
    payment = policy.annuity_withdrawal(ctx)
    real = 1.05 / 1.02 - 1.0
    present_value = sum(payment / (1 + real) ** k for k in range(1, 11))
    assert present_value == pytest.approx(100000.0)


def test_annuity_even_split_at_zero_real_rate():
    ctx = _ctx(total_assets=100000.0, years_remaining=4, nominal_return=0.03, inflation=0.03)
    assert DieWithZeroPolicy().annuity_withdrawal(ctx) == pytest.approx(25000.0)


def test_scale_shrinks_planned_withdrawal():
    ctx = _ctx(total_assets=100000.0, years_remaining=4)
    full = DieWithZeroPolicy(scale=1.0).planned_withdrawal(ctx, 0.0)
    half = DieWithZeroPolicy(scale=0.5).planned_withdrawal(ctx, 0.0)
    assert half == pytest.approx(full / 2)


def test_marginal_rate_clamps():
    assert FixedRatePolicy(0.04).clamp_marginal_rate(0.05) == 0.15
    assert FixedRatePolicy(0.04).clamp_marginal_rate(0.95) == 0.90
    assert DieWithZeroPolicy().clamp_marginal_rate(-0.1) == 0.0
    assert DieWithZeroPolicy().clamp_marginal_rate(1.5) == pytest.approx(0.99)


def test_policy_for_dispatch():
    plan = SimpleNamespace(die_with_zero=False, annual_withdrawal_rate=4.0, legacy_amount=0.0)
    assert policy_for(plan) == FixedRatePolicy(0.04)
    plan.die_with_zero, plan.legacy_amount = True, 50000.0
    assert policy_for(plan, 0.5) == DieWithZeroPolicy(legacy_target=50000.0, scale=0.5)


def _estate_run(scale):
    return SimpleNamespace(terminal_estate=1000.0 * (1.0 - scale))


def test_bisection_finds_largest_feasible_scale():
    scale, result = solve_die_with_zero_scale(_estate_run, 400.0)
    assert result.terminal_estate >= 400.0
    assert scale == pytest.approx(0.6, abs=1e-3)


def test_bisection_is_monotonic_in_target():
    scales = [solve_die_with_zero_scale(_estate_run, target)[0] for target in (100.0, 400.0, 800.0)]
    assert scales == sorted(scales, reverse=True)


def test_full_scale_when_target_already_met():
    scale, _ = solve_die_with_zero_scale(_estate_run, 0.0)
    assert scale == 1.0


def test_unreachable_target_falls_back_to_zero_scale():
    scale, result = solve_die_with_zero_scale(lambda s: SimpleNamespace(terminal_estate=0.0), 10.0)
    assert scale == 0.0
    assert result.terminal_estate == 0.0


def test_withdrawal_never_exceeds_assets():
    rng = np.random.default_rng(17)
    for _ in range(200):
        assets = float(rng.uniform(0, 2_000_000))
        fixed = float(rng.uniform(0, 60_000))
        ctx = _ctx(
            total_assets=assets,
            expenses=float(rng.uniform(0, 250_000)),
            fixed_income=fixed,
            taxable_fixed_income=fixed * float(rng.uniform(0, 1)),
            rmd=float(rng.uniform(0, 1.5)) * assets / 10,
            years_remaining=int(rng.integers(1, 40)),
            nominal_return=float(rng.uniform(-0.02, 0.1)),
            inflation=float(rng.uniform(0, 0.05)),
            jurisdiction="CA",
            filing_status=str(rng.choice(["single", "married_joint"])),
        )
        policies = (
            FixedRatePolicy(float(rng.uniform(0, 0.1))),
            DieWithZeroPolicy(legacy_target=float(rng.uniform(0, 1_000_000)), scale=float(rng.uniform(0, 1))),
        )
        for policy in policies:
            decision = solve_withdrawal(ctx, policy)
            assert 0.0 <= decision.withdrawal <= ctx.total_assets + 1e-9
