"""
Paystream - UIF and SDL Calculator Service

Unemployment Insurance Fund contributions and the Skills Development Levy.

- UIF: 1% employee + 1% employer of remuneration, optionally capped at a
  configured monthly remuneration ceiling
- SDL: 1% of remuneration, employer only
"""

from decimal import Decimal
from typing import Optional

from paystream.config import settings
from paystream.services.tax_calculators.paye_service import ZERO, to_money


class UIFCalculator:
    """UIF contribution calculator."""

    def __init__(
        self,
        employee_rate: Optional[Decimal] = None,
        employer_rate: Optional[Decimal] = None,
        monthly_ceiling: Optional[Decimal] = None,
        apply_ceiling: bool = True,
    ):
        self.employee_rate = settings.uif_employee_rate if employee_rate is None else employee_rate
        self.employer_rate = settings.uif_employer_rate if employer_rate is None else employer_rate
        self.monthly_ceiling = None
        if apply_ceiling:
            self.monthly_ceiling = monthly_ceiling if monthly_ceiling is not None else settings.uif_monthly_ceiling

    def contributable(self, gross: Decimal) -> Decimal:
        """Remuneration subject to UIF after the ceiling."""
        gross = max(Decimal("0"), Decimal(gross))
        if self.monthly_ceiling is None:
            return gross
        return min(gross, self.monthly_ceiling)

    def employee_contribution(self, gross: Decimal) -> Decimal:
        return to_money(self.contributable(gross) * self.employee_rate)

    def employer_contribution(self, gross: Decimal) -> Decimal:
        return to_money(self.contributable(gross) * self.employer_rate)

    def total_contribution(self, gross: Decimal) -> Decimal:
        return self.employee_contribution(gross) + self.employer_contribution(gross)


class SDLCalculator:
    """Skills Development Levy calculator."""

    def __init__(self, rate: Optional[Decimal] = None):
        self.rate = settings.sdl_rate if rate is None else rate

    def levy(self, gross: Decimal) -> Decimal:
        gross = Decimal(gross)
        if gross <= 0:
            return ZERO
        return to_money(gross * self.rate)
