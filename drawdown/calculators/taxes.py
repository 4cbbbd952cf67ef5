"""Tax calculation utilities.

This module implements simplified U.S. federal and state income tax
calculations.  The defaults embed 2024 data for the two filing statuses the
planner models (single and married filing jointly) and every state.  A standard
deduction is subtracted first and the marginal bracket schedule is applied to
what remains; itemised deductions, credits and exemptions are not modelled.

The withdrawal solver calls :func:`calculate_taxes` many times per simulated
year, so the tables are parsed once and cached.

Example
-------

>>> # Federal tax on $60 000 of gross income for a single filer in 2024
>>> round(compute_federal_tax(60000), 2)
5215.88

>>> # Unknown jurisdictions are taxed at a zero state rate
>>> calculate_taxes(60000, "ZZ", "single").state_tax
0.0

The underlying brackets can be customised by passing a dictionary matching the
schema in ``data/tax_tables.json``.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional

from .. import config

_DEFAULT_TAX_TABLE_PATH = Path(__file__).resolve().parent.parent / "data" / "tax_tables.json"
DEFAULT_YEAR = 2024

_FILING_STATUS_ALIASES = {
    "single": "single",
    "married_joint": "married_joint",
    "married_filing_jointly": "married_joint",
    "mfj": "married_joint",
}


class TaxResult(NamedTuple):
    federal_tax: float
    state_tax: float

    @property
    def total(self) -> float:
        return self.federal_tax + self.state_tax


@lru_cache(maxsize=None)
def _default_tables() -> Dict[str, Dict]:
    with open(_DEFAULT_TAX_TABLE_PATH, "r", encoding="utf-8") as f:
        return json.load(f)


def _load_tax_tables(path: Optional[Path] = None) -> Dict[str, Dict]:
    """Load tax tables from JSON.  If ``path`` is not provided, return the
    (cached) default file shipped with the package.

    Parameters
    ----------
    path : Path, optional
        Path to a JSON file containing the tax tables.

    Returns
    -------
    dict
        The parsed tax tables.
    """
    if path is None:
        return _default_tables()
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _filing_key(filing_status: str) -> str:
    return _FILING_STATUS_ALIASES.get(str(filing_status).lower(), "single")


def _bracket_tax(taxable_income: float, brackets: List[Dict]) -> float:
    """Sum ``rate * amount-within-bracket`` over every bracket reached."""
    tax = 0.0
    for bracket in brackets:
        low = bracket["min"]
        high = bracket["max"] if bracket["max"] is not None else float("inf")
        if taxable_income > low:
            tax += (min(taxable_income, high) - low) * bracket["rate"]
    return tax


def compute_federal_tax(
    income: float,
    filing_status: str = "single",
    year: int = DEFAULT_YEAR,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Compute federal income tax due on gross taxable income.

    Income is reduced by the standard deduction (never below zero) before the
    progressive rates are applied.
    """
    tables = tax_tables or _load_tax_tables()
    status_info = tables[str(year)]["federal"][_filing_key(filing_status)]
    taxable = max(0.0, income - status_info.get("standard_deduction", 0.0))
    return _bracket_tax(taxable, status_info["brackets"])


def compute_state_tax(
    income: float,
    state: Optional[str] = "CA",
    filing_status: str = "single",
    year: int = DEFAULT_YEAR,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Compute state income tax on gross taxable income.

    Returns zero when the jurisdiction has no table (unknown code) or the table
    for the filing status is empty (states without an income tax).
    """
    tables = tax_tables or _load_tax_tables()
    code = normalize_jurisdiction(state, tables)
    if code is None:
        return 0.0
    state_info = tables[str(year)].get("state", {}).get(code)
    if not state_info:
        return 0.0
    status_info = state_info.get(_filing_key(filing_status)) or {}
    brackets = status_info.get("brackets") or []
    if not brackets:
        return 0.0
    taxable = max(0.0, income - status_info.get("standard_deduction", 0.0))
    return _bracket_tax(taxable, brackets)


def calculate_taxes(
    gross_income: float,
    jurisdiction: Optional[str],
    filing_status: str,
    year: int = DEFAULT_YEAR,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> TaxResult:
    """Return federal and state tax on ``gross_income``."""
    income = max(0.0, gross_income)
    return TaxResult(
        compute_federal_tax(income, filing_status, year, tax_tables),
        compute_state_tax(income, jurisdiction, filing_status, year, tax_tables),
    )


def marginal_rate(
    income: float,
    jurisdiction: Optional[str] = None,
    filing_status: str = "single",
    step: float = config.MARGINAL_STEP,
    year: int = DEFAULT_YEAR,
    tax_tables: Optional[Dict[str, Dict]] = None,
    tax_fn: Optional[Callable[[float], TaxResult]] = None,
) -> float:
    """Combined marginal rate at ``income``, measured over ``income + step``.

    This is a local linearisation of the bracket schedule; it is exact unless a
    bracket boundary falls inside that step.  The withdrawal solver
    passes its own ``tax_fn``; otherwise the bracket tables are used.
    """
    if tax_fn is None:
        def tax_fn(amount: float) -> TaxResult:
            return calculate_taxes(amount, jurisdiction, filing_status, year, tax_tables)

    base = tax_fn(income).total
    higher = tax_fn(income + step).total
    return (higher - base) / step


def normalize_jurisdiction(
    value: Optional[str],
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> Optional[str]:
    """Map a two-letter code or a full state name to the table code.

    >>> normalize_jurisdiction("California"), normalize_jurisdiction("tx")
    ('CA', 'TX')
    """
    if not value:
        return None
    tables = tax_tables or _load_tax_tables()
    names = tables.get("jurisdictions", {})
    text = str(value).strip()
    if text.upper() in names:
        return text.upper()
    for code, name in names.items():
        if name.lower() == text.lower():
            return code
    # custom tables may ship bracket data without a name index
    for section in tables.values():
        if isinstance(section, dict) and text.upper() in section.get("state", {}):
            return text.upper()
    return None


def is_known_jurisdiction(value: Optional[str], tax_tables: Optional[Dict[str, Dict]] = None) -> bool:
    return normalize_jurisdiction(value, tax_tables) is not None


__all__ = [
    "TaxResult",
    "compute_federal_tax",
    "compute_state_tax",
    "calculate_taxes",
    "marginal_rate",
    "normalize_jurisdiction",
    "is_known_jurisdiction",
]
