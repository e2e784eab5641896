"""
Paystream - Payroll Figure Derivation

Derives every computed column of a payroll record from its inputs in one
place, so gross, deductions and net are always recomputed together.
"""

from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Dict, Optional

from paystream.services.tax_calculators.paye_service import WithholdingCalculator, ZERO, to_money
from paystream.services.tax_calculators.uif_service import UIFCalculator


@dataclass(frozen=True)
class PayrollInputs:
    """Earnings and voluntary deductions of one record."""
    basic_salary: Decimal = ZERO
    allowances: Decimal = ZERO
    bonuses: Decimal = ZERO
    overtime: Decimal = ZERO
    medical_aid: Decimal = ZERO
    other_deductions: Decimal = ZERO


@dataclass(frozen=True)
class PayrollFigures:
    """Derived figures; field names match PayrollRecord columns."""
    gross_pay: Decimal
    tax: Decimal
    uif_employee: Decimal
    pension: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    def as_dict(self) -> Dict[str, Decimal]:
        return asdict(self)


def calculate_payroll_figures(
    inputs: PayrollInputs,
    custom_tax_rate: Optional[Decimal] = None,
    pension_rate: Optional[Decimal] = None,
    withholding: Optional[WithholdingCalculator] = None,
    uif: Optional[UIFCalculator] = None,
) -> PayrollFigures:
    """
    Compute gross, statutory deductions, totals and net pay.

    Args:
        inputs: Record inputs; None-valued salaries must be coerced to zero
            by the caller.
        custom_tax_rate: Employee override percentage replacing the bracket table.
        pension_rate: Employee pension percentage of gross.
    """
    withholding = withholding or WithholdingCalculator()
    uif = uif or UIFCalculator()

    gross = to_money(inputs.basic_salary + inputs.allowances + inputs.bonuses + inputs.overtime)
    tax = withholding.compute_for_employee(gross, custom_tax_rate)
    uif_employee = uif.employee_contribution(gross)
    pension = to_money(gross * Decimal(pension_rate) / 100) if pension_rate else ZERO

    total_deductions = to_money(
        tax + uif_employee + pension + inputs.medical_aid + inputs.other_deductions
    )
    return PayrollFigures(
        gross_pay=gross,
        tax=tax,
        uif_employee=uif_employee,
        pension=pension,
        total_deductions=total_deductions,
        net_pay=gross - total_deductions,
    )
