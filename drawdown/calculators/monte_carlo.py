"""Monte Carlo orchestration over the projection engine.

Each trial draws its own market path and runs :func:`.projection.project` on
it.  Every trial gets an independent generator spawned from one
:class:`numpy.random.SeedSequence`, so a seeded run gives the same answer with
one worker or many.

Per-trial results are collected first and only aggregated once at the end:

* ``success_rate`` - percent of completed trials whose terminal estate meets
  the plan's legacy target (zero when unset),
* ``percentile_series`` - per-year 10th/50th/90th percentile net worth,
* ``runout_prob_by_year`` - per-year fraction of trials with net worth at or
  below zero.

Example
-------

>>> from drawdown.models import Person, Plan, RetirementAccount
>>> plan = Plan(person1=Person(65, 65, 90), retirement_accounts=[RetirementAccount(balance=800000)])
>>> summary = run_monte_carlo(plan, num_simulations=200, volatility_percent=12, seed=42)
>>> 0.0 <= summary.success_rate <= 100.0
True
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from .. import config
from ..models import MonteCarloSummary, Plan
from .projection import horizon, project
from .returns import draw_return_path

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
TrialResult = Tuple[float, List[float]]


def run_trial(
    plan: Plan,
    seed: np.random.SeedSequence,
    volatility_percent: Optional[float],
    years: int,
) -> TrialResult:
    """Run one trial and return ``(terminal_estate, net_worth_path)``.

    ``volatility_percent`` of ``None`` samples stock and bond classes
    separately instead of a single scalar return.
    """
    rng = np.random.default_rng(seed)
    result = project(plan, draw_return_path(plan, years, rng, volatility_percent))
    return result.terminal_estate, result.net_worth_path


def run_monte_carlo(
    plan: Plan,
    num_simulations: int = config.DEFAULT_SIMULATIONS,
    volatility_percent: float = config.DEFAULT_VOLATILITY,
    progress_callback: Optional[ProgressCallback] = None,
    *,
    seed: Optional[int] = None,
    use_asset_classes: bool = False,
    max_workers: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> MonteCarloSummary:
    """Run ``num_simulations`` independent projections of ``plan``.

    Parameters
    ----------
    plan : Plan
        Household plan.  Never modified; each trial works on its own copy.
    num_simulations : int
        Number of trials to run.
    volatility_percent : float
        Yearly standard deviation of the scalar return, in percent.  Ignored
        when ``use_asset_classes`` is set.
    progress_callback : callable, optional
        Called as ``progress_callback(done, total)`` about every tenth of the
        trials and once more at the end.
    seed : int, optional
        Root seed; the same seed reproduces the same summary.
    use_asset_classes : bool
        Sample stock and bond returns from the plan's class assumptions.
    max_workers : int, optional
        Above one, trials run in a process pool of that size.
    cancel_event : threading.Event, optional
        Once set, no further trials start and only finished ones are
        aggregated.

    Returns
    -------
    MonteCarloSummary
    """
    if num_simulations <= 0:
        raise ValueError("num_simulations must be positive")
    for issue in config.validate_plan(plan):
        logger.warning("plan issue: %s", issue)

    years = horizon(plan)[1] + 1
    seeds = np.random.SeedSequence(seed).spawn(num_simulations)
    volatility = None if use_asset_classes else volatility_percent
    report_every = max(1, min(100, num_simulations // config.PROGRESS_STEPS))

    results: Dict[int, TrialResult] = {}
    state = {"done": 0, "failed": 0}

    def _record(index: int, outcome: Optional[TrialResult]) -> None:
        state["done"] += 1
        if outcome is None:
            state["failed"] += 1
        else:
            results[index] = outcome
        if progress_callback and (state["done"] % report_every == 0 or state["done"] == num_simulations):
            progress_callback(state["done"], num_simulations)

    def _cancelled() -> bool:
        return cancel_event is not None and cancel_event.is_set()

    logger.debug("running %d trials over %d years (workers=%s)", num_simulations, years, max_workers)
    if max_workers is None or max_workers <= 1:
        for i, trial_seed in enumerate(seeds):
            if _cancelled():
                break
            try:
                outcome = run_trial(plan, trial_seed, volatility, years)
            except Exception:
                logger.exception("trial %d failed", i)
                outcome = None
            _record(i, outcome)
    else:
        _run_pool(plan, seeds, volatility, years, max_workers, _record, _cancelled)

    cancelled = _cancelled() and state["done"] < num_simulations
    if cancelled:
        logger.info("monte carlo cancelled after %d of %d trials", state["done"], num_simulations)
    if state["failed"]:
        logger.warning("%d of %d trials failed", state["failed"], state["done"])

    return _aggregate(plan, results, horizon_years(plan, years), state["failed"], cancelled)


def _run_pool(plan, seeds, volatility, years, max_workers, record, cancelled) -> None:
    """Dispatch trials to a process pool, keeping at most ``2 * max_workers`` in flight."""
    executor = ProcessPoolExecutor(max_workers=max_workers)
    pending = {}
    next_index = 0
    try:
        while next_index < len(seeds) or pending:
            while next_index < len(seeds) and len(pending) < 2 * max_workers and not cancelled():
                future = executor.submit(run_trial, plan, seeds[next_index], volatility, years)
                pending[future] = next_index
                next_index += 1
            if cancelled():
                break
            if not pending:
                break
            done, _ = wait(pending, timeout=0.25, return_when=FIRST_COMPLETED)
            for future in done:
                index = pending.pop(future)
                try:
                    outcome = future.result()
                except Exception:
                    logger.exception("trial %d failed", index)
                    outcome = None
                record(index, outcome)
    finally:
        # in-flight trials are discarded on cancellation
        executor.shutdown(wait=True, cancel_futures=True)


def horizon_years(plan: Plan, years: int) -> List[int]:
    """Calendar years covered by a run, matching ``YearlyProjection.year``."""
    first = plan.start_year or date.today().year
    return list(range(first, first + years))


def _aggregate(
    plan: Plan,
    results: Dict[int, TrialResult],
    years: List[int],
    failed: int,
    cancelled: bool,
) -> MonteCarloSummary:
    ordered = [results[i] for i in sorted(results)]
    completed = len(ordered)
    labels = [f"p{p}" for p in config.PERCENTILES]
    if not completed:
        return MonteCarloSummary(
            success_rate=0.0,
            outcomes=[],
            years=years,
            percentile_series={label: [0.0] * len(years) for label in labels},
            runout_prob_by_year=[0.0] * len(years),
            completed=0,
            failed=failed,
            cancelled=cancelled,
        )

    terminal = np.array([r[0] for r in ordered], dtype=float)
    paths = np.vstack([np.asarray(r[1], dtype=float) for r in ordered])  # trials x years
    bands = np.percentile(paths, config.PERCENTILES, axis=0)
    target = max(0.0, plan.legacy_amount)

    return MonteCarloSummary(
        success_rate=float(np.mean(terminal >= target) * 100.0),
        outcomes=terminal.tolist(),
        years=years,
        percentile_series={label: band.tolist() for label, band in zip(labels, bands)},
        runout_prob_by_year=np.mean(paths <= 0.0, axis=0).tolist(),
        completed=completed,
        failed=failed,
        cancelled=cancelled,
    )


__all__ = ["run_trial", "run_monte_carlo", "horizon_years"]
