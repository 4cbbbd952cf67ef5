"""Tests for the Monte Carlo simulation engine."""

import threading

import numpy as np
import pytest

from drawdown import run_monte_carlo, run_projection
from drawdown.calculators import monte_carlo
from drawdown.models import ExpensePeriod, Person, Plan, RetirementAccount


def _build_simple_plan(**kwargs) -> Plan:
    values = dict(
        person1=Person(current_age=65, retirement_age=65, life_expectancy=85),
        retirement_accounts=[RetirementAccount(balance=600_000)],
        expense_periods=[ExpensePeriod(monthly_amount=3_000, start_age=65, end_age=85)],
        state="MI",
        inflation_rate=2.5,
        avg_return=6.0,
        start_year=2025,
    )
    values.update(kwargs)
    return Plan(**values)


def test_repeatability_with_seed():
    """Simulations should be repeatable when the same seed is provided."""
    plan = _build_simple_plan()
    result1 = run_monte_carlo(plan, 20, 15, seed=12345)
    result2 = run_monte_carlo(plan, 20, 15, seed=12345)
    assert result1.success_rate == result2.success_rate
    assert result1.outcomes == result2.outcomes
    assert result1.percentile_series == result2.percentile_series


def test_different_seeds_differ():
    plan = _build_simple_plan()
    assert run_monte_carlo(plan, 10, 15, seed=1).outcomes != run_monte_carlo(plan, 10, 15, seed=2).outcomes


def test_summary_shape_and_bounds():
    plan = _build_simple_plan()
    summary = run_monte_carlo(plan, 40, 18, seed=7)
    assert 0.0 <= summary.success_rate <= 100.0
    assert summary.completed == 40 and summary.failed == 0 and not summary.cancelled
    assert len(summary.outcomes) == 40
    assert summary.years == list(range(2025, 2046))
    for label in ("p10", "p50", "p90"):
        assert len(summary.percentile_series[label]) == 21
    assert len(summary.runout_prob_by_year) == 21


def test_percentiles_are_ordered():
    summary = run_monte_carlo(_build_simple_plan(), 50, 20, seed=3)
    p10, p50, p90 = (np.array(summary.percentile_series[k]) for k in ("p10", "p50", "p90"))
    assert np.all(p10 <= p50 + 1e-9)
    assert np.all(p50 <= p90 + 1e-9)


def test_runout_probability_never_decreases():
    plan = _build_simple_plan(retirement_accounts=[RetirementAccount(balance=300_000)])
    summary = run_monte_carlo(plan, 60, 25, seed=11)
    runout = summary.runout_prob_by_year
    assert all(0.0 <= r <= 1.0 for r in runout)
    assert all(b >= a for a, b in zip(runout, runout[1:]))
    assert runout[-1] > 0


def test_zero_volatility_matches_deterministic_projection():
    plan = _build_simple_plan()
    summary = run_monte_carlo(plan, 5, 0.0, seed=0)
    expected = run_projection(plan).terminal_estate
    assert summary.outcomes == pytest.approx([expected] * 5)
    assert summary.success_rate in (0.0, 100.0)


def test_success_requires_legacy_target():
    """A legacy target no trial can reach makes every trial a failure."""
    plan = _build_simple_plan(legacy_amount=1e12)
    summary = run_monte_carlo(plan, 10, 10, seed=5)
    assert summary.success_rate == 0.0


def test_no_assets_runs_out_immediately():
    plan = _build_simple_plan(retirement_accounts=[])
    summary = run_monte_carlo(plan, 5, 10, seed=1)
    assert summary.runout_prob_by_year[0] == 1.0
    # terminal estate of zero still meets a zero legacy target
    assert summary.success_rate == 100.0


def test_fat_tails_and_asset_classes():
    plan = _build_simple_plan(use_fat_tails=True, fat_tail_df=5)
    summary = run_monte_carlo(plan, 15, 15, seed=9, use_asset_classes=True)
    assert summary.completed == 15
    assert all(o >= 0 for o in summary.outcomes)


def test_progress_reported_every_tenth():
    calls = []
    run_monte_carlo(_build_simple_plan(), 20, 15, progress_callback=lambda d, t: calls.append((d, t)), seed=1)
    assert calls == [(i, 20) for i in range(2, 21, 2)]


def test_cancel_before_start():
    event = threading.Event()
    event.set()
    summary = run_monte_carlo(_build_simple_plan(), 10, 15, seed=1, cancel_event=event)
    assert summary.cancelled
    assert summary.completed == 0
    assert summary.success_rate == 0.0
    assert summary.runout_prob_by_year == [0.0] * 21


def test_cancel_midway_keeps_finished_trials():
    event = threading.Event()

    def progress(done, total):
        if done >= 10:
            event.set()

    summary = run_monte_carlo(_build_simple_plan(), 50, 15, progress, seed=4, cancel_event=event)
    assert summary.cancelled
    assert summary.completed == 10
    assert len(summary.outcomes) == 10
    full = run_monte_carlo(_build_simple_plan(), 50, 15, seed=4)
    assert summary.outcomes == full.outcomes[:10]


def test_failed_trials_are_isolated(monkeypatch):
    real_project = monte_carlo.project
    counter = {"n": 0}

    def flaky(plan, path):
        counter["n"] += 1
        if counter["n"] % 3 == 0:
            raise RuntimeError("boom")
        return real_project(plan, path)

    monkeypatch.setattr(monte_carlo, "project", flaky)
    summary = run_monte_carlo(_build_simple_plan(), 9, 15, seed=2)
    assert summary.failed == 3
    assert summary.completed == 6
    assert len(summary.outcomes) == 6
    assert not summary.cancelled


def test_process_pool_matches_sequential():
    plan = _build_simple_plan()
    pooled = run_monte_carlo(plan, 6, 15, seed=21, max_workers=2)
    sequential = run_monte_carlo(plan, 6, 15, seed=21)
    assert pooled.outcomes == sequential.outcomes
    assert pooled.completed == 6


def test_rejects_non_positive_trial_count():
    with pytest.raises(ValueError):
        run_monte_carlo(_build_simple_plan(), 0, 15)


def test_percentile_frame():
    frame = run_monte_carlo(_build_simple_plan(), 10, 15, seed=1).percentile_frame()
    assert list(frame.columns) == ["p10", "p50", "p90", "runout_probability"]
    assert frame.index.name == "year"


def test_success_rate_stable_across_seeds():
    plan = _build_simple_plan()
    a = run_monte_carlo(plan, 2000, 15, seed=1)
    b = run_monte_carlo(plan, 2000, 15, seed=2)
    assert abs(a.success_rate - b.success_rate) <= 6.0
