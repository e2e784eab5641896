"""
Paystream - Tax Calculators Package

Pure statutory calculators (no database access).

Modules:
- paye_service: PAYE withholding from the annualized bracket table
- uif_service: UIF (employee/employer, capped) and SDL
- payroll_figures: full derived figure set of a payroll record
"""

from decimal import Decimal
from typing import Optional

from paystream.services.tax_calculators.paye_service import (
    PAYETaxBracket,
    WithholdingCalculator,
    build_brackets,
    to_money,
)
from paystream.services.tax_calculators.uif_service import UIFCalculator, SDLCalculator
from paystream.services.tax_calculators.payroll_figures import (
    PayrollInputs,
    PayrollFigures,
    calculate_payroll_figures,
)


# ===========================================
# CONVENIENCE FUNCTIONS
# ===========================================

def calculate_paye(period_gross: Decimal, custom_tax_rate: Optional[Decimal] = None) -> Decimal:
    """
    Calculate PAYE withholding for one monthly period.

    Args:
        period_gross: Gross pay for the period
        custom_tax_rate: Optional flat override percentage

    Returns:
        Withholding rounded to cents
    """
    return WithholdingCalculator().compute_for_employee(period_gross, custom_tax_rate)


def calculate_uif(period_gross: Decimal) -> dict:
    """
    Calculate UIF contributions.

    Returns:
        Dict with employee, employer and total shares
    """
    calculator = UIFCalculator()
    employee = calculator.employee_contribution(period_gross)
    employer = calculator.employer_contribution(period_gross)
    return {"employee": employee, "employer": employer, "total": employee + employer}


def calculate_sdl(period_gross: Decimal) -> Decimal:
    """Calculate the Skills Development Levy (employer only)."""
    return SDLCalculator().levy(period_gross)


__all__ = [
    # Calculators
    "PAYETaxBracket",
    "WithholdingCalculator",
    "UIFCalculator",
    "SDLCalculator",
    "build_brackets",
    "to_money",
    # Figures
    "PayrollInputs",
    "PayrollFigures",
    "calculate_payroll_figures",
    # Convenience functions
    "calculate_paye",
    "calculate_uif",
    "calculate_sdl",
]
