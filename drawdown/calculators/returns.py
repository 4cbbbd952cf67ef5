"""Market return assumptions and sampling.

A plan carries one headline ``avg_return`` plus stock and bond assumptions.
The class means are recentered by a constant offset so that the balance-
weighted portfolio mean equals the headline number while the configured
volatilities are left alone::

    delta = avg_return - weighted_base_mean
    stock_mean' = stock_mean + delta
    bond_mean'  = bond_mean + delta

Returns can be drawn from a normal distribution or, to represent the higher
frequency of extreme years, from a Student's t distribution rescaled so the
variance still equals the requested volatility.

Every sampler takes an explicit :class:`numpy.random.Generator`; nothing in
this module touches global random state.

Example
-------

>>> rng = np.random.default_rng(7)
>>> draws = sample_student_t(0.0, 0.15, df=5, rng=rng, size=100_000)
>>> round(float(draws.std()), 2)
0.15
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence, Tuple, Union

import numpy as np

from .. import config

if TYPE_CHECKING:  # pragma: no cover
    from ..models import Plan


def sample_normal(mean: float, stdev: float, rng: np.random.Generator, size=None):
    return rng.normal(loc=mean, scale=stdev, size=size)


def sample_student_t(mean: float, stdev: float, df: float, rng: np.random.Generator, size=None):
    """Draw Student's t returns whose standard deviation is ``stdev``.

    ``t = z / sqrt(chi2 / df)`` with the chi-square variate built from summed
    squared standard normals; a fractional ``df`` adds one more squared normal
    weighted by the fractional part.  The draw is rescaled by
    ``stdev / sqrt(df / (df - 2))`` so the variance matches the request.
    Degrees of freedom of 2 or less have no finite variance and fall back to
    the normal sampler.
    """
    if df <= 2:
        return sample_normal(mean, stdev, rng, size)
    shape: Tuple[int, ...] = () if size is None else tuple(np.atleast_1d(size))
    z = rng.standard_normal(shape)
    whole = int(math.floor(df))
    frac = df - whole
    chi2 = np.sum(rng.standard_normal((whole,) + shape) ** 2, axis=0)
    if frac > 0:
        chi2 = chi2 + frac * rng.standard_normal(shape) ** 2
    t = z / np.sqrt(chi2 / df)
    draws = mean + t * (stdev / math.sqrt(df / (df - 2.0)))
    return float(draws) if size is None else draws


def sample_return(
    mean: float,
    stdev: float,
    rng: np.random.Generator,
    fat_tails: bool = False,
    df: float = config.DEFAULT_FAT_TAIL_DF,
    size=None,
):
    if fat_tails:
        return sample_student_t(mean, stdev, df, rng, size)
    return sample_normal(mean, stdev, rng, size)


def allocation_weights(percent_stocks: float, percent_bonds: float) -> Tuple[float, float]:
    """Stock/bond weights summing to one; 60/40 when both are zero."""
    total = percent_stocks + percent_bonds
    if total <= 0:
        total = config.DEFAULT_PERCENT_STOCKS + config.DEFAULT_PERCENT_BONDS
        return config.DEFAULT_PERCENT_STOCKS / total, config.DEFAULT_PERCENT_BONDS / total
    return percent_stocks / total, percent_bonds / total


@dataclass(frozen=True)
class AssetClassAssumptions:
    """Stock and bond means and volatilities as decimals."""

    stock_mean: float
    stock_std: float
    bond_mean: float
    bond_std: float

    def blend(self, percent_stocks: float, percent_bonds: float) -> float:
        ws, wb = allocation_weights(percent_stocks, percent_bonds)
        return ws * self.stock_mean + wb * self.bond_mean

    @classmethod
    def from_plan(cls, plan: "Plan") -> "AssetClassAssumptions":
        """Class assumptions recentered on ``plan.avg_return``.

        The weighting uses the investment accounts' starting balances and
        allocations; without any investment balance the default 60/40 split
        is used.
        """
        base = cls(
            plan.stock_mean / 100.0,
            plan.stock_std / 100.0,
            plan.bond_mean / 100.0,
            plan.bond_std / 100.0,
        )
        total = sum(max(0.0, a.balance) for a in plan.investment_accounts)
        if total > 0:
            base_avg = sum(
                max(0.0, a.balance) * base.blend(a.percent_stocks, a.percent_bonds)
                for a in plan.investment_accounts
            ) / total
        else:
            base_avg = base.blend(config.DEFAULT_PERCENT_STOCKS, config.DEFAULT_PERCENT_BONDS)
        delta = plan.avg_return / 100.0 - base_avg
        return cls(base.stock_mean + delta, base.stock_std, base.bond_mean + delta, base.bond_std)


@dataclass(frozen=True)
class ReturnPath:
    """Per-year returns for one projection run.

    ``retirement`` applies to every retirement account; investment accounts
    blend ``stock`` and ``bond`` by their own allocation.  Arrays have one
    entry per simulated year.
    """

    stock: np.ndarray
    bond: np.ndarray
    retirement: np.ndarray

    def __len__(self) -> int:
        return len(self.retirement)

    def investment_return(self, year: int, percent_stocks: float, percent_bonds: float) -> float:
        ws, wb = allocation_weights(percent_stocks, percent_bonds)
        return ws * float(self.stock[year]) + wb * float(self.bond[year])


def deterministic_path(plan: "Plan", years: int) -> ReturnPath:
    assets = AssetClassAssumptions.from_plan(plan)
    return ReturnPath(
        stock=np.full(years, assets.stock_mean),
        bond=np.full(years, assets.bond_mean),
        retirement=np.full(years, plan.avg_return / 100.0),
    )


def scalar_path(sampled_return: Union[float, Sequence[float]], years: int) -> ReturnPath:
    """Apply one return (or one per year) to every account."""
    values = np.broadcast_to(np.asarray(sampled_return, dtype=float), (years,)).copy()
    return ReturnPath(stock=values, bond=values, retirement=values)


def draw_scalar_path(
    mean: float,
    stdev: float,
    years: int,
    rng: np.random.Generator,
    fat_tails: bool = False,
    df: float = config.DEFAULT_FAT_TAIL_DF,
) -> ReturnPath:
    draws = np.asarray(sample_return(mean, stdev, rng, fat_tails, df, size=years), dtype=float)
    return scalar_path(draws, years)


def draw_asset_class_path(
    plan: "Plan",
    years: int,
    rng: np.random.Generator,
    assets: Optional[AssetClassAssumptions] = None,
) -> ReturnPath:
    """Sample stock and bond returns for every year of a run.

    Retirement accounts carry no allocation of their own, so they follow the
    default 60/40 blend of the sampled classes.
    """
    assets = assets or AssetClassAssumptions.from_plan(plan)
    fat, df = plan.use_fat_tails, plan.fat_tail_df
    stock = np.asarray(sample_return(assets.stock_mean, assets.stock_std, rng, fat, df, size=years), dtype=float)
    bond = np.asarray(sample_return(assets.bond_mean, assets.bond_std, rng, fat, df, size=years), dtype=float)
    ws, wb = allocation_weights(config.DEFAULT_PERCENT_STOCKS, config.DEFAULT_PERCENT_BONDS)
    return ReturnPath(stock=stock, bond=bond, retirement=ws * stock + wb * bond)


def draw_return_path(
    plan: "Plan",
    years: int,
    rng: np.random.Generator,
    volatility_percent: Optional[float] = None,
) -> ReturnPath:
    """One trial's market path.

    With ``volatility_percent`` every account shares a single yearly draw
    around ``plan.avg_return``; without it stock and bond classes are sampled
    separately.
    """
    if volatility_percent is None:
        return draw_asset_class_path(plan, years, rng)
    return draw_scalar_path(
        plan.avg_return / 100.0,
        max(0.0, volatility_percent) / 100.0,
        years,
        rng,
        fat_tails=plan.use_fat_tails,
        df=plan.fat_tail_df,
    )


__all__ = [
    "sample_normal",
    "sample_student_t",
    "sample_return",
    "allocation_weights",
    "AssetClassAssumptions",
    "ReturnPath",
    "deterministic_path",
    "scalar_path",
    "draw_scalar_path",
    "draw_asset_class_path",
    "draw_return_path",
]
