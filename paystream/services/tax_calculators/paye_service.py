"""
Paystream - PAYE Calculator Service

Employees' tax (PAYE) withholding using an annualized progressive bracket
table. The default table is the South African 2024 schedule:

- R0 - R237,100: 18%
- R237,101 - R370,500: R42,678 + 26% above R237,100
- R370,501 - R512,800: R77,362 + 31% above R370,500
- R512,801 - R673,000: R121,475 + 36% above R512,800
- R673,001 - R857,900: R179,147 + 39% above R673,000
- R857,901 - R1,817,000: R251,258 + 41% above R857,900
- Above R1,817,000: R644,489 + 45% above R1,817,000

The table is configuration (see Settings.paye_brackets); nothing below
depends on its values.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from paystream.config import settings, TaxBracketSetting


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PAYETaxBracket:
    """
    One bracket of the annual table.

    Covers annual income in (lower_bound, upper_bound]; an amount exactly on
    upper_bound belongs to this bracket, not the next one.
    """
    lower_bound: Decimal
    upper_bound: Optional[Decimal]
    base_amount: Decimal
    marginal_rate: Decimal

    def contains(self, annual_gross: Decimal) -> bool:
        return self.upper_bound is None or annual_gross <= self.upper_bound

    def annual_tax(self, annual_gross: Decimal) -> Decimal:
        return self.base_amount + (annual_gross - self.lower_bound) * self.marginal_rate


def build_brackets(rows: Iterable[TaxBracketSetting]) -> List[PAYETaxBracket]:
    """
    Validate configured rows and attach lower bounds.

    Raises:
        ValueError: bounds not strictly ascending, missing or misplaced
            unbounded top bracket, or negative rate/base.
    """
    rows = list(rows)
    if not rows:
        raise ValueError("PAYE bracket table is empty")

    brackets: List[PAYETaxBracket] = []
    lower = Decimal("0")
    for index, row in enumerate(rows):
        is_last = index == len(rows) - 1
        if row.marginal_rate < 0 or row.base_amount < 0:
            raise ValueError(f"Bracket {index} has a negative rate or base amount")
        if row.upper_bound is None and not is_last:
            raise ValueError(f"Bracket {index} is unbounded but is not the top bracket")
        if row.upper_bound is not None:
            if is_last:
                raise ValueError("Top bracket must be unbounded")
            if row.upper_bound <= lower:
                raise ValueError(
                    f"Bracket {index} upper bound {row.upper_bound} is not above {lower}"
                )
        brackets.append(
            PAYETaxBracket(
                lower_bound=lower,
                upper_bound=row.upper_bound,
                base_amount=row.base_amount,
                marginal_rate=row.marginal_rate,
            )
        )
        if row.upper_bound is not None:
            lower = row.upper_bound
    return brackets


class WithholdingCalculator:
    """
    PAYE withholding calculator.

    Pure and deterministic: Decimal in, Decimal out, no I/O.
    """

    def __init__(
        self,
        brackets: Optional[Iterable[TaxBracketSetting]] = None,
        periods_per_year: Optional[int] = None,
    ):
        self.brackets = build_brackets(brackets if brackets is not None else settings.paye_brackets)
        self.periods_per_year = settings.periods_per_year if periods_per_year is None else periods_per_year
        if self.periods_per_year <= 0:
            raise ValueError("periods_per_year must be positive")

    def bracket_for(self, annual_gross: Decimal) -> PAYETaxBracket:
        """First bracket whose upper bound is at or above the annual amount."""
        for bracket in self.brackets:
            if bracket.contains(annual_gross):
                return bracket
        # build_brackets guarantees an unbounded top bracket
        return self.brackets[-1]

    def annual_tax(self, annual_gross: Decimal) -> Decimal:
        """Unrounded annual liability, floored at zero."""
        annual_gross = Decimal(annual_gross)
        if annual_gross <= 0:
            return Decimal("0")
        tax = self.bracket_for(annual_gross).annual_tax(annual_gross)
        return max(Decimal("0"), tax)

    def compute_withholding(self, period_gross: Decimal) -> Decimal:
        """
        Withholding for one pay period.

        Annualize, apply the bracket table, de-annualize, round half-up to
        cents. Never negative.
        """
        period_gross = Decimal(period_gross)
        annual_gross = period_gross * self.periods_per_year
        period_tax = self.annual_tax(annual_gross) / self.periods_per_year
        return max(ZERO, to_money(period_tax))

    @staticmethod
    def compute_with_override(period_gross: Decimal, custom_rate_percent: Decimal) -> Decimal:
        """Flat employee override: gross x rate / 100."""
        tax = Decimal(period_gross) * Decimal(custom_rate_percent) / 100
        return max(ZERO, to_money(tax))

    def compute_for_employee(
        self,
        period_gross: Decimal,
        custom_rate_percent: Optional[Decimal] = None,
    ) -> Decimal:
        """Override rate when the employee has one, bracket table otherwise."""
        if custom_rate_percent is not None:
            return self.compute_with_override(period_gross, custom_rate_percent)
        return self.compute_withholding(period_gross)

    def effective_rate(self, period_gross: Decimal) -> Decimal:
        """Withholding as a percentage of gross, two decimals."""
        period_gross = Decimal(period_gross)
        if period_gross <= 0:
            return ZERO
        return to_money(self.compute_withholding(period_gross) / period_gross * 100)
