"""
Paystream - Period Helpers

Monthly payroll periods and South African tax years.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple, Union

from paystream.config import settings
from paystream.utils.error_handling import InvalidPeriodException


@dataclass(frozen=True, order=True)
class PayrollPeriod:
    """A (year, month) payroll cycle."""
    year: int
    month: int

    def __post_init__(self):
        validate_period(self.month, self.year)

    @classmethod
    def parse(cls, value: Union[str, "PayrollPeriod"]) -> "PayrollPeriod":
        """Parse 'YYYY-MM'."""
        if isinstance(value, PayrollPeriod):
            return value
        try:
            year_str, month_str = str(value).strip().split("-")
            year, month = int(year_str), int(month_str)
        except (ValueError, AttributeError):
            raise InvalidPeriodException(
                f"Invalid period '{value}'. Expected YYYY-MM.",
                details={"provided": str(value)},
            )
        return cls(year=year, month=month)

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def start_date(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end_date(self) -> date:
        return date(self.year, self.month, self.days_in_month)

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def tax_year(self) -> int:
        """Tax year containing this month (March 2024 belongs to 2025)."""
        return self.year + 1 if self.month >= settings.tax_year_start_month else self.year

    def following_month(self) -> Tuple[int, int]:
        """(year, month) after this one; may fall outside the accepted range."""
        if self.month == 12:
            return self.year + 1, 1
        return self.year, self.month + 1

    def due_date(self, day: Optional[int] = None) -> date:
        """Statutory due date: the configured day of the following month."""
        year, month = self.following_month()
        day = min(day or settings.withholding_due_day, calendar.monthrange(year, month)[1])
        return date(year, month, day)

    def __str__(self) -> str:
        return self.label


def validate_period(month: int, year: int) -> None:
    """
    Reject malformed periods before any store access.

    Raises:
        InvalidPeriodException: month outside 1-12 or year outside the
            accepted range.
    """
    if not isinstance(month, int) or isinstance(month, bool) or not 1 <= month <= 12:
        raise InvalidPeriodException(
            f"Invalid month: {month}. Must be between 1 and 12.",
            field="month",
            details={"provided": month},
        )
    max_year = date.today().year + 1
    if not isinstance(year, int) or isinstance(year, bool) or not settings.min_period_year <= year <= max_year:
        raise InvalidPeriodException(
            f"Invalid year: {year}. Must be between {settings.min_period_year} and {max_year}.",
            field="year",
            details={"provided": year},
        )


def validate_tax_year(tax_year: int) -> None:
    """Tax year N must have a valid first month (March N-1)."""
    if not isinstance(tax_year, int) or isinstance(tax_year, bool):
        raise InvalidPeriodException(f"Invalid tax year: {tax_year}", field="tax_year")
    first_year = tax_year - 1 if settings.tax_year_start_month > 1 else tax_year
    if not settings.min_period_year <= first_year <= date.today().year + 1:
        raise InvalidPeriodException(
            f"Invalid tax year: {tax_year}",
            field="tax_year",
            details={"provided": tax_year},
        )


def tax_year_periods(tax_year: int) -> List[Tuple[int, int]]:
    """
    (year, month) pairs of a tax year, in order.

    Tax year N runs from the start month of N-1 to the month before it in N.
    """
    start_month = settings.tax_year_start_month
    year = tax_year - 1 if start_month > 1 else tax_year
    month = start_month
    periods = []
    for _ in range(12):
        periods.append((year, month))
        month += 1
        if month > 12:
            month = 1
            year += 1
    return periods

