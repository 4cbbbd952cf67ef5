"""Plan inputs and projection outputs.

The plan mirrors the household form a user fills in: up to two people, their
accounts, income streams, spending bands, gifts and legacy wishes, plus the
economic assumptions.  All percentages are in percent (``6`` means 6 %).

Plans usually arrive as dictionaries from a UI or a saved scenario, so
:meth:`Plan.from_dict` accepts either camelCase or snake_case keys:

>>> plan = Plan.from_dict({
...     "planType": "Individual",
...     "person1": {"currentAge": 60, "retirementAge": 65, "lifeExpectancy": 90},
...     "retirementAccounts": [{"owner": "person1", "balance": 500000}],
... })
>>> plan.is_couple, plan.retirement_accounts[0].balance
(False, 500000.0)
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from . import config

INDIVIDUAL = "individual"
COUPLE = "couple"
SINGLE = "single"
MARRIED_JOINT = "married_joint"
PERSON1 = "person1"
PERSON2 = "person2"


class PlanValidationError(ValueError):
    """Raised when a plan mapping cannot be turned into a :class:`Plan`."""


@dataclass
class Person:
    current_age: int = 0
    retirement_age: int = 0
    life_expectancy: int = 0
    current_salary: float = 0.0
    claiming_age: int = 67
    name: str = ""

    def alive_at(self, age: int) -> bool:
        return age <= self.life_expectancy


@dataclass
class RetirementAccount:
    owner: str = PERSON1
    balance: float = 0.0
    annual_contribution: float = 0.0
    match: float = 0.0
    account_type: str = "401k"
    name: str = ""
    id: str = ""

    @property
    def is_roth(self) -> bool:
        return self.account_type.strip().lower().startswith("roth")


@dataclass
class InvestmentAccount:
    owner: str = PERSON1
    balance: float = 0.0
    annual_contribution: float = 0.0
    percent_stocks: float = config.DEFAULT_PERCENT_STOCKS
    percent_bonds: float = config.DEFAULT_PERCENT_BONDS
    name: str = ""
    id: str = ""


@dataclass
class Pension:
    owner: str = PERSON1
    monthly_benefit: float = 0.0
    start_age: int = 0
    cola: float = 0.0
    survivor_benefit: float = 0.0
    taxable: bool = True
    name: str = ""
    id: str = ""


@dataclass
class OtherIncome:
    owner: str = PERSON1
    monthly_amount: float = 0.0
    start_age: int = 0
    end_age: int = 0
    cola: float = 0.0
    taxable: bool = True
    name: str = ""
    id: str = ""


@dataclass
class ExpensePeriod:
    monthly_amount: float = 0.0
    start_age: int = 0
    start_age_ref: str = PERSON1
    end_age: int = 0
    end_age_ref: str = PERSON1
    name: str = ""
    id: str = ""


@dataclass
class OneTimeExpense:
    """A single outlay (today's dollars) in the year ``owner`` reaches ``age``."""

    amount: float = 0.0
    age: int = 0
    owner: str = PERSON1
    name: str = ""
    description: str = ""
    id: str = ""


@dataclass
class Gift:
    """A lifetime transfer, either once at ``age`` or yearly between two ages."""

    beneficiary: str = ""
    owner: str = PERSON1
    is_annual: bool = False
    amount: float = 0.0
    annual_amount: float = 0.0
    start_age: Optional[int] = None
    end_age: Optional[int] = None
    age: Optional[int] = None
    id: str = ""

    def amount_at(self, owner_age: int) -> float:
        if self.is_annual:
            start = self.start_age if self.start_age is not None else owner_age
            end = self.end_age if self.end_age is not None else owner_age
            return self.annual_amount if start <= owner_age <= end else 0.0
        if self.age is not None and owner_age == self.age:
            return self.amount
        return 0.0


@dataclass
class LegacyDisbursement:
    beneficiary: str = ""
    percentage: float = 0.0
    beneficiary_type: str = "person"
    id: str = ""


@dataclass
class SocialSecurityEstimates:
    """Monthly benefits at each person's claiming age, in today's dollars."""

    person1_estimated_benefit: Optional[float] = None
    person2_estimated_benefit: Optional[float] = None


@dataclass
class Plan:
    person1: Person
    plan_type: str = INDIVIDUAL
    person2: Person = field(default_factory=Person)
    retirement_accounts: List[RetirementAccount] = field(default_factory=list)
    investment_accounts: List[InvestmentAccount] = field(default_factory=list)
    pensions: List[Pension] = field(default_factory=list)
    other_incomes: List[OtherIncome] = field(default_factory=list)
    expense_periods: List[ExpensePeriod] = field(default_factory=list)
    one_time_expenses: List[OneTimeExpense] = field(default_factory=list)
    gifts: List[Gift] = field(default_factory=list)
    legacy_disbursements: List[LegacyDisbursement] = field(default_factory=list)
    social_security: SocialSecurityEstimates = field(default_factory=SocialSecurityEstimates)
    state: str = "CA"
    inflation_rate: float = 2.5
    avg_return: float = 7.0
    annual_withdrawal_rate: float = 4.0
    die_with_zero: bool = False
    legacy_amount: float = 0.0
    stock_mean: float = config.DEFAULT_STOCK_MEAN
    stock_std: float = config.DEFAULT_STOCK_STD
    bond_mean: float = config.DEFAULT_BOND_MEAN
    bond_std: float = config.DEFAULT_BOND_STD
    use_fat_tails: bool = False
    fat_tail_df: float = config.DEFAULT_FAT_TAIL_DF
    use_balances_for_survivor_income: bool = False
    start_year: Optional[int] = None

    def __post_init__(self) -> None:
        self.plan_type = _normalize_plan_type(self.plan_type)

    @property
    def is_couple(self) -> bool:
        return self.plan_type == COUPLE

    def person(self, ref: str) -> Person:
        return self.person2 if ref == PERSON2 else self.person1

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Plan":
        if not isinstance(data, Mapping):
            raise PlanValidationError("plan must be a mapping")
        values = {_snake(k): v for k, v in data.items()}
        if "person1" not in values:
            raise PlanValidationError("plan is missing person1")
        nested = {
            "person1": (Person, False),
            "person2": (Person, False),
            "social_security": (SocialSecurityEstimates, False),
            "retirement_accounts": (RetirementAccount, True),
            "investment_accounts": (InvestmentAccount, True),
            "pensions": (Pension, True),
            "other_incomes": (OtherIncome, True),
            "expense_periods": (ExpensePeriod, True),
            "one_time_expenses": (OneTimeExpense, True),
            "gifts": (Gift, True),
            "legacy_disbursements": (LegacyDisbursement, True),
        }
        for key, (item_cls, many) in nested.items():
            raw = values.get(key)
            if raw is None:
                values.pop(key, None)
                continue
            if many:
                values[key] = [_build(item_cls, item, f"{key}[{i}]") for i, item in enumerate(raw)]
            else:
                values[key] = _build(item_cls, raw, key)
        return _build(cls, values, "plan", prebuilt=set(nested))

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class LegacyDistribution:
    beneficiary: str
    beneficiary_type: str
    percentage: float
    amount: float


@dataclass
class YearlyProjection:
    year: int
    age1: int
    age2: Optional[int]
    investment_balance: float
    retirement_balance: float
    pension_income: float
    social_security_income: float
    other_income: float
    taxable_income: float
    gross_income: float
    withdrawal: float
    rmd: float
    gifts: float
    expenses: float
    federal_tax: float
    state_tax: float
    net_income: float
    surplus: float
    net_worth: float
    legacy_outflow: float = 0.0
    legacy_distributions: List[LegacyDistribution] = field(default_factory=list)


@dataclass
class CalculationResult:
    yearly_projections: List[YearlyProjection]
    avg_monthly_net_income_future: float
    avg_monthly_net_income_today: float
    net_worth_at_end: float
    net_worth_at_end_future: float
    terminal_estate: float
    federal_tax_rate: float
    state_tax_rate: float
    years_in_retirement: int
    withdrawal_scale: float = 1.0
    legacy_summary: List[LegacyDistribution] = field(default_factory=list)

    @property
    def net_worth_path(self) -> List[float]:
        return [p.net_worth for p in self.yearly_projections]

    def to_frame(self) -> pd.DataFrame:
        """One row per simulated year, legacy breakdown left out."""
        rows = []
        for p in self.yearly_projections:
            row = dataclasses.asdict(p)
            row.pop("legacy_distributions")
            rows.append(row)
        return pd.DataFrame(rows)


@dataclass
class MonteCarloSummary:
    success_rate: float
    outcomes: List[float]
    years: List[int]
    percentile_series: Dict[str, List[float]]
    runout_prob_by_year: List[float]
    completed: int
    failed: int = 0
    cancelled: bool = False

    def percentile_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame(self.percentile_series, index=pd.Index(self.years, name="year"))
        frame["runout_probability"] = self.runout_prob_by_year
        return frame


def _snake(key: str) -> str:
    key = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", str(key)).lower()
    aliases = {
        "type": "account_type",
        "annual_withdrawal_rate_percent": "annual_withdrawal_rate",
    }
    return aliases.get(key, key)


def _normalize_plan_type(value: Any) -> str:
    text = str(value or "").strip().lower()
    if text in ("couple", "married", "joint"):
        return COUPLE
    if text in ("individual", "single", ""):
        return INDIVIDUAL
    raise PlanValidationError(f"unknown plan type {value!r}")


def _opt(convert):
    def inner(value):
        return None if value is None or value == "" else convert(value)
    return inner


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _to_int(value: Any) -> int:
    return int(round(float(value)))


_CONVERTERS = {
    "float": float,
    "int": _to_int,
    "bool": _to_bool,
    "str": str,
    "Optional[int]": _opt(_to_int),
    "Optional[float]": _opt(float),
}


def _build(cls, raw: Any, where: str, prebuilt=frozenset()):
    if isinstance(raw, cls):
        return raw
    if not isinstance(raw, Mapping):
        raise PlanValidationError(f"{where} must be a mapping")
    values = {_snake(k): v for k, v in raw.items()}
    kwargs = {}
    for f in dataclasses.fields(cls):
        if f.name not in values:
            continue
        value = values[f.name]
        convert = _CONVERTERS.get(f.type)
        if f.name in prebuilt or convert is None:
            kwargs[f.name] = value
            continue
        try:
            kwargs[f.name] = convert(value)
        except (TypeError, ValueError) as exc:
            raise PlanValidationError(f"{where}.{f.name}: {value!r} is not a valid {f.type}") from exc
    try:
        return cls(**kwargs)
    except TypeError as exc:
        raise PlanValidationError(f"{where}: {exc}") from exc


__all__ = [
    "INDIVIDUAL",
    "COUPLE",
    "SINGLE",
    "MARRIED_JOINT",
    "PERSON1",
    "PERSON2",
    "PlanValidationError",
    "Person",
    "RetirementAccount",
    "InvestmentAccount",
    "Pension",
    "OtherIncome",
    "ExpensePeriod",
    "OneTimeExpense",
    "Gift",
    "LegacyDisbursement",
    "SocialSecurityEstimates",
    "Plan",
    "LegacyDistribution",
    "YearlyProjection",
    "CalculationResult",
    "MonteCarloSummary",
]
