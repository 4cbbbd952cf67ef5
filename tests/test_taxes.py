"""Unit tests for the taxes module.

Values use the 2024 IRS brackets after the standard deduction and a mix of
flat, progressive and no-income-tax states.
"""

import math

import pytest

from drawdown.calculators import taxes as tax_calc


def test_federal_tax_example():
    """Federal tax on $60k of gross income for a single filer (2024)."""
    tax = tax_calc.compute_federal_tax(60000, year=2024)
    assert math.isclose(tax, 5215.88, rel_tol=1e-6)


def test_federal_married_joint():
    """Married filing jointly uses the wider brackets and larger deduction."""
    tax = tax_calc.compute_federal_tax(60000, filing_status="married_joint", year=2024)
    assert math.isclose(tax, 3231.88, rel_tol=1e-6)


def test_filing_status_aliases():
    assert tax_calc.compute_federal_tax(80000, "married_filing_jointly") == tax_calc.compute_federal_tax(
        80000, "married_joint"
    )


def test_income_below_deduction_is_untaxed():
    assert tax_calc.compute_federal_tax(10000) == 0.0
    assert tax_calc.compute_federal_tax(-500) == 0.0


def test_state_tax_flat_rate():
    """Michigan applies a flat 4.25% with no deduction."""
    tax = tax_calc.compute_state_tax(100000, state="MI", year=2024)
    assert math.isclose(tax, 4250.0, rel_tol=1e-9)


def test_state_tax_progressive():
    """California uses progressive brackets after its standard deduction."""
    tax = tax_calc.compute_state_tax(100000, state="CA", filing_status="single", year=2024)
    assert math.isclose(tax, 5453.798, rel_tol=1e-6)


@pytest.mark.parametrize("state", ["TX", "FL", "WA"])
def test_no_income_tax_states(state):
    assert tax_calc.compute_state_tax(250000, state=state) == 0.0


def test_unknown_jurisdiction_has_zero_state_tax():
    result = tax_calc.calculate_taxes(100000, "ZZ", "single")
    assert result.state_tax == 0.0
    assert result.federal_tax > 0
    assert not tax_calc.is_known_jurisdiction("ZZ")


def test_normalize_jurisdiction():
    assert tax_calc.normalize_jurisdiction("California") == "CA"
    assert tax_calc.normalize_jurisdiction(" mi ") == "MI"
    assert tax_calc.normalize_jurisdiction("") is None
    assert tax_calc.normalize_jurisdiction("Atlantis") is None


def test_calculate_taxes_total():
    result = tax_calc.calculate_taxes(60000, "MI", "single")
    assert result.total == pytest.approx(5215.88 + 60000 * 0.0425)


def test_marginal_rate_inside_bracket():
    """$80k single sits in the 22% federal bracket plus Michigan's 4.25%."""
    rate = tax_calc.marginal_rate(80000, "MI", "single")
    assert rate == pytest.approx(0.22 + 0.0425, abs=1e-9)


def test_custom_tax_tables():
    tables = {
        "2024": {
            "federal": {
                "single": {"standard_deduction": 0, "brackets": [{"rate": 0.1, "min": 0, "max": None}]},
                "married_joint": {"standard_deduction": 0, "brackets": [{"rate": 0.05, "min": 0, "max": None}]},
            },
            "state": {"XX": {"single": {"standard_deduction": 0, "brackets": [{"rate": 0.02, "min": 0, "max": None}]}}},
        }
    }
    result = tax_calc.calculate_taxes(1000, "XX", "single", tax_tables=tables)
    assert result.federal_tax == pytest.approx(100.0)
    assert result.state_tax == pytest.approx(20.0)


def test_marginal_rate_with_custom_tax_function():
    rate = tax_calc.marginal_rate(50000, tax_fn=lambda income: tax_calc.TaxResult(income * 0.3, 0.0))
    assert rate == pytest.approx(0.3)


def test_public_names():
    assert "calculate_taxes" in tax_calc.__all__
    assert not any(name.startswith("_") for name in tax_calc.__all__)
