"""
Paystream - Tax Calculator Tests

Unit tests for PAYE withholding, UIF, SDL and payroll figure derivation.
"""

import pytest
from decimal import Decimal

from paystream.config import TaxBracketSetting
from paystream.services.tax_calculators import (
    PayrollInputs,
    SDLCalculator,
    UIFCalculator,
    WithholdingCalculator,
    build_brackets,
    calculate_paye,
    calculate_payroll_figures,
    calculate_sdl,
    calculate_uif,
)


def _row(upper, base, rate):
    return TaxBracketSetting(
        upper_bound=Decimal(upper) if upper is not None else None,
        base_amount=Decimal(base),
        marginal_rate=Decimal(rate),
    )


SIMPLE_TABLE = [
    _row("100000", "0", "0.10"),
    _row(None, "10000", "0.20"),
]


class TestPAYEWithholding:
    """PAYE withholding on the default 2024 table."""

    def test_monthly_withholding_second_bracket(self):
        """R20,000 a month = R240,000 a year, in the 26% bracket."""
        # 42,678 + (240,000 - 237,100) x 26% = 43,432 / 12 = 3,619.333...
        assert calculate_paye(Decimal("20000.00")) == Decimal("3619.33")

    def test_bracket_boundary_belongs_to_lower_bracket(self):
        calculator = WithholdingCalculator()
        bracket = calculator.bracket_for(Decimal("237100"))

        assert bracket.upper_bound == Decimal("237100")
        assert bracket.marginal_rate == Decimal("0.18")
        assert calculator.annual_tax(Decimal("237100")) == Decimal("42678.00")

    def test_just_above_boundary_uses_next_bracket(self):
        calculator = WithholdingCalculator()
        bracket = calculator.bracket_for(Decimal("237100.01"))

        assert bracket.lower_bound == Decimal("237100")
        assert bracket.marginal_rate == Decimal("0.26")

    def test_top_bracket_is_unbounded(self):
        calculator = WithholdingCalculator()
        bracket = calculator.bracket_for(Decimal("5000000"))

        assert bracket.upper_bound is None
        assert bracket.marginal_rate == Decimal("0.45")

    def test_zero_and_negative_gross_withhold_nothing(self):
        calculator = WithholdingCalculator()

        assert calculator.compute_withholding(Decimal("0")) == Decimal("0.00")
        assert calculator.compute_withholding(Decimal("-500")) == Decimal("0.00")

    def test_rounding_half_up_to_cents(self):
        calculator = WithholdingCalculator(brackets=SIMPLE_TABLE, periods_per_year=12)
        # annual 120,000: 10,000 + 20,000 x 20% = 14,000 / 12 = 1,166.666...
        assert calculator.compute_withholding(Decimal("10000")) == Decimal("1166.67")

    def test_periods_per_year_is_configurable(self):
        weekly = WithholdingCalculator(brackets=SIMPLE_TABLE, periods_per_year=52)
        # 1,000 x 52 = 52,000 at 10% = 5,200 / 52 = 100
        assert weekly.compute_withholding(Decimal("1000")) == Decimal("100.00")

    def test_effective_rate(self):
        calculator = WithholdingCalculator(brackets=SIMPLE_TABLE, periods_per_year=12)

        assert calculator.effective_rate(Decimal("5000")) == Decimal("10.00")
        assert calculator.effective_rate(Decimal("0")) == Decimal("0.00")


class TestTaxOverride:
    """Employee flat-rate override."""

    def test_override_replaces_bracket_table(self):
        assert calculate_paye(Decimal("30000"), custom_tax_rate=Decimal("25")) == Decimal("7500.00")

    def test_override_rounds_half_up(self):
        tax = WithholdingCalculator.compute_with_override(Decimal("12345.67"), Decimal("17.5"))
        # 2,160.49225
        assert tax == Decimal("2160.49")

    def test_zero_override_rate_means_no_tax(self):
        calculator = WithholdingCalculator()

        assert calculator.compute_for_employee(Decimal("20000"), Decimal("0")) == Decimal("0.00")


class TestBracketValidation:
    """Misconfigured tables fail on construction."""

    def test_empty_table(self):
        with pytest.raises(ValueError):
            build_brackets([])

    def test_top_bracket_must_be_unbounded(self):
        with pytest.raises(ValueError):
            WithholdingCalculator(brackets=[_row("100000", "0", "0.1")])

    def test_unbounded_bracket_must_be_last(self):
        with pytest.raises(ValueError):
            WithholdingCalculator(brackets=[_row(None, "0", "0.1"), _row("100000", "0", "0.2")])

    def test_bounds_must_ascend(self):
        with pytest.raises(ValueError):
            WithholdingCalculator(brackets=[
                _row("200000", "0", "0.1"),
                _row("150000", "20000", "0.2"),
                _row(None, "30000", "0.3"),
            ])

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            WithholdingCalculator(brackets=[_row("100000", "0", "-0.1"), _row(None, "0", "0.2")])

    def test_periods_per_year_must_be_positive(self):
        with pytest.raises(ValueError):
            WithholdingCalculator(brackets=SIMPLE_TABLE, periods_per_year=0)


class TestUIFAndSDL:
    """UIF contributions and the Skills Development Levy."""

    def test_uif_one_percent_each_share(self):
        assert calculate_uif(Decimal("10000"))["employee"] == Decimal("100.00")
        assert UIFCalculator().employee_contribution(Decimal("50000")) == Decimal("500.00")

    def test_uif_capped_at_configured_ceiling(self):
        calculator = UIFCalculator(monthly_ceiling=Decimal("17712"))

        assert calculator.employee_contribution(Decimal("10000")) == Decimal("100.00")
        assert calculator.employee_contribution(Decimal("17712")) == Decimal("177.12")
        assert calculator.employee_contribution(Decimal("50000")) == Decimal("177.12")
        assert calculator.employer_contribution(Decimal("50000")) == Decimal("177.12")

    def test_uif_total_is_both_shares(self):
        result = calculate_uif(Decimal("20000"))

        assert result == {
            "employee": Decimal("200.00"),
            "employer": Decimal("200.00"),
            "total": Decimal("400.00"),
        }

    def test_ceiling_can_be_bypassed(self):
        calculator = UIFCalculator(monthly_ceiling=Decimal("17712"), apply_ceiling=False)

        assert calculator.employee_contribution(Decimal("50000")) == Decimal("500.00")

    def test_sdl_one_percent(self):
        assert calculate_sdl(Decimal("20000")) == Decimal("200.00")
        assert SDLCalculator().levy(Decimal("0")) == Decimal("0.00")
        assert SDLCalculator(rate=Decimal("0.005")).levy(Decimal("1000")) == Decimal("5.00")


class TestPayrollFigures:
    """Gross, deductions and net derived together."""

    def test_reference_scenario(self):
        figures = calculate_payroll_figures(PayrollInputs(basic_salary=Decimal("20000.00")))

        assert figures.gross_pay == Decimal("20000.00")
        assert figures.tax == Decimal("3619.33")
        assert figures.uif_employee == Decimal("200.00")
        assert figures.pension == Decimal("0.00")
        assert figures.total_deductions == Decimal("3819.33")
        assert figures.net_pay == Decimal("16180.67")

    def test_override_and_pension(self):
        figures = calculate_payroll_figures(
            PayrollInputs(basic_salary=Decimal("30000.00")),
            custom_tax_rate=Decimal("25"),
            pension_rate=Decimal("7.5"),
        )

        assert figures.tax == Decimal("7500.00")
        assert figures.pension == Decimal("2250.00")
        assert figures.uif_employee == Decimal("300.00")
        assert figures.total_deductions == Decimal("10050.00")
        assert figures.net_pay == Decimal("19950.00")

    def test_all_inputs_flow_into_gross_and_deductions(self):
        inputs = PayrollInputs(
            basic_salary=Decimal("15000"),
            allowances=Decimal("1000"),
            bonuses=Decimal("500"),
            overtime=Decimal("250.50"),
            medical_aid=Decimal("1200"),
            other_deductions=Decimal("300"),
        )
        figures = calculate_payroll_figures(inputs)

        assert figures.gross_pay == Decimal("16750.50")
        assert figures.total_deductions == (
            figures.tax + figures.uif_employee + figures.pension + Decimal("1200") + Decimal("300")
        )
        assert figures.net_pay == figures.gross_pay - figures.total_deductions

    def test_zero_salary_is_all_zero(self):
        figures = calculate_payroll_figures(PayrollInputs())

        assert all(value == Decimal("0") for value in figures.as_dict().values())
