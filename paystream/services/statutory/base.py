"""
Paystream - Statutory Generator Base

Shared plumbing for the EMP201, UI-19 and IRP5 generators:
- finalized payroll records (processed or paid) for a set of periods
- employer header and employee identity lookups
- reconciliation of declaration totals against their line items
"""

import uuid
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from paystream.models.payroll import PayrollRecord, PayrollStatus
from paystream.services.directory import (
    CompanyDirectory,
    EmployeeDirectory,
    EmployeeProfile,
    SqlCompanyDirectory,
    SqlEmployeeDirectory,
)
from paystream.services.tax_calculators import SDLCalculator, UIFCalculator
from paystream.services.tenant_scope import TenantScope
from paystream.utils.error_handling import ReconciliationException


ZERO = Decimal("0.00")

FINALIZED_STATUSES = (PayrollStatus.PROCESSED, PayrollStatus.PAID)


def column_sum(items: Iterable[Any], attribute: str) -> Decimal:
    """Exact Decimal sum of one line-item column."""
    return sum((getattr(item, attribute) for item in items), ZERO)


def assert_reconciled(
    document_type: str,
    document: Any,
    line_items: Sequence[Any],
    column_map: Mapping[str, str],
    derived: Optional[Mapping[str, Decimal]] = None,
    employee_count_field: Optional[str] = "employee_count",
) -> None:
    """
    Check every total against the column sum of its line items.

    Args:
        document_type: Label used in the error
        document: Declaration or certificate carrying the totals
        line_items: Rows the totals were derived from
        column_map: total attribute -> line item attribute
        derived: total attribute -> expected value for formula fields
            (e.g. total liability)
        employee_count_field: attribute that must equal len(line_items)

    Raises:
        ReconciliationException: any difference, however small.
    """
    discrepancies: List[Dict[str, str]] = []
    for total_name, column in column_map.items():
        expected = column_sum(line_items, column)
        actual = getattr(document, total_name)
        if actual != expected:
            discrepancies.append(
                {"field": total_name, "expected": str(expected), "actual": str(actual)}
            )
    for total_name, expected in (derived or {}).items():
        actual = getattr(document, total_name)
        if actual != expected:
            discrepancies.append(
                {"field": total_name, "expected": str(expected), "actual": str(actual)}
            )
    if employee_count_field:
        count = getattr(document, employee_count_field)
        if count != len(line_items):
            discrepancies.append(
                {"field": employee_count_field, "expected": str(len(line_items)), "actual": str(count)}
            )
    if discrepancies:
        raise ReconciliationException(document_type, discrepancies)


class StatutoryGeneratorBase:
    """Collaborators and record access shared by the generators."""

    def __init__(
        self,
        db: AsyncSession,
        employees: Optional[EmployeeDirectory] = None,
        companies: Optional[CompanyDirectory] = None,
        uif: Optional[UIFCalculator] = None,
        sdl: Optional[SDLCalculator] = None,
    ):
        self.db = db
        self.employees = employees or SqlEmployeeDirectory(db)
        self.companies = companies or SqlCompanyDirectory(db)
        self.uif = uif or UIFCalculator()
        self.sdl = sdl or SDLCalculator()

    async def _finalized_records(
        self,
        scope: TenantScope,
        periods: Sequence[Tuple[int, int]],
        employee_id: Optional[uuid.UUID] = None,
    ) -> List[PayrollRecord]:
        """Processed or paid records of the given (year, month) periods."""
        period_filter = or_(
            *[and_(PayrollRecord.year == year, PayrollRecord.month == month) for year, month in periods]
        )
        criteria = [period_filter, PayrollRecord.status.in_(FINALIZED_STATUSES)]
        if employee_id is not None:
            criteria.append(PayrollRecord.employee_id == employee_id)
        result = await self.db.execute(
            scope.select(PayrollRecord, *criteria).order_by(
                PayrollRecord.employee_id, PayrollRecord.year, PayrollRecord.month
            )
        )
        return list(result.scalars().all())

    async def _profiles(
        self,
        tenant_id: uuid.UUID,
        records: Iterable[PayrollRecord],
    ) -> Dict[uuid.UUID, EmployeeProfile]:
        return await self.employees.get_employees(tenant_id, [r.employee_id for r in records])

    @staticmethod
    def _employee_name(profile: Optional[EmployeeProfile], employee_id: uuid.UUID) -> str:
        return profile.full_name if profile else f"Employee {employee_id}"
