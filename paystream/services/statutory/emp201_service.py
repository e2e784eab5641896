"""
Paystream - EMP201 Service

Monthly employer declaration (EMP201) derived from finalized payroll records.

Per employee line: gross remuneration, PAYE withheld, SDL, UIF employee and
employer shares. Declaration totals are the column sums of the lines and

    total_liability = PAYE + SDL + UIF total - ETI

The declaration is due on the 7th of the following month. Regenerating a
draft replaces its lines; a submitted declaration is frozen.
"""

import calendar
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from paystream.models.base import utcnow
from paystream.models.declaration import (
    DeclarationPaymentStatus,
    SubmissionStatus,
    WithholdingDeclaration,
    WithholdingLineItem,
)
from paystream.services.statutory.base import (
    ZERO,
    StatutoryGeneratorBase,
    assert_reconciled,
)
from paystream.services.tax_calculators import to_money
from paystream.services.tenant_scope import TenantScope, require_tenant
from paystream.services.transactions import run_in_transaction
from paystream.utils.error_handling import (
    ConflictException,
    ErrorCode,
    InvalidAmountException,
    ValidationException,
)
from paystream.utils.periods import PayrollPeriod


logger = logging.getLogger(__name__)

DOCUMENT_TYPE = "EMP201"

# declaration total -> line item column
TOTAL_COLUMNS = {
    "total_remuneration": "gross_remuneration",
    "paye_amount": "paye",
    "sdl_amount": "sdl",
    "uif_employee_amount": "uif_employee",
    "uif_employer_amount": "uif_employer",
    "uif_total_amount": "uif_total",
}


def withholding_liability(declaration: WithholdingDeclaration) -> Decimal:
    return (
        declaration.paye_amount
        + declaration.sdl_amount
        + declaration.uif_total_amount
        - declaration.eti_amount
    )


@dataclass
class WithholdingDashboard:
    """Year-to-date compliance figures."""
    year: int
    total_declarations: int
    submitted_count: int
    paid_count: int
    overdue_count: int
    total_liability_ytd: Decimal
    total_paid_ytd: Decimal
    total_outstanding: Decimal


class WithholdingDeclarationService(StatutoryGeneratorBase):
    """
    Service for EMP201 declarations.
    """

    # ===========================================
    # GENERATION
    # ===========================================

    async def generate(
        self,
        tenant_id: uuid.UUID,
        period: Union[str, PayrollPeriod],
    ) -> WithholdingDeclaration:
        """
        Create or regenerate the EMP201 for a period.

        Raises:
            NotFoundException: tenant company unknown
            ConflictException: declaration already submitted
            ReconciliationException: totals disagree with lines (a bug)
        """
        period = PayrollPeriod.parse(period)
        tenant_id = require_tenant(tenant_id)
        scope = TenantScope(self.db, tenant_id)

        async def build() -> WithholdingDeclaration:
            company = await self.companies.get_company(tenant_id)
            result = await self.db.execute(
                scope.select(
                    WithholdingDeclaration,
                    WithholdingDeclaration.month == period.month,
                    WithholdingDeclaration.year == period.year,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            declaration = result.scalar_one_or_none()
            if declaration is not None and declaration.is_submitted:
                raise ConflictException(
                    f"EMP201 for {period} has been submitted and cannot be regenerated",
                    resource_type=DOCUMENT_TYPE,
                    code=ErrorCode.ALREADY_PROCESSED,
                    details={"declaration_id": str(declaration.id)},
                )

            records = await self._finalized_records(scope, [(period.year, period.month)])
            profiles = await self._profiles(tenant_id, records)

            line_items = []
            for record in records:
                profile = profiles.get(record.employee_id)
                gross = record.gross_pay
                uif_employee = record.uif_employee
                uif_employer = self.uif.employer_contribution(gross)
                line_items.append(
                    WithholdingLineItem(
                        tenant_id=tenant_id,
                        employee_id=record.employee_id,
                        payroll_record_id=record.id,
                        employee_name=self._employee_name(profile, record.employee_id),
                        id_number=profile.id_number if profile else None,
                        tax_number=profile.tax_number if profile else None,
                        gross_remuneration=gross,
                        paye=record.tax,
                        sdl=self.sdl.levy(gross),
                        uif_employee=uif_employee,
                        uif_employer=uif_employer,
                        uif_total=uif_employee + uif_employer,
                    )
                )

            if declaration is None:
                declaration = WithholdingDeclaration(
                    tenant_id=tenant_id,
                    month=period.month,
                    year=period.year,
                    eti_amount=ZERO,
                    submission_status=SubmissionStatus.DRAFT,
                    payment_status=DeclarationPaymentStatus.PENDING,
                )
                self.db.add(declaration)

            declaration.period_start_date = period.start_date
            declaration.period_end_date = period.end_date
            declaration.due_date = period.due_date()
            declaration.employer_name = company.name
            declaration.employer_reference = company.paye_reference
            declaration.currency_code = company.currency_code
            declaration.generated_at = utcnow()

            # Replacing the collection deletes the previous lines (delete-orphan)
            declaration.line_items = line_items
            declaration.employee_count = len(line_items)
            for total_name, column in TOTAL_COLUMNS.items():
                setattr(declaration, total_name, sum((getattr(i, column) for i in line_items), ZERO))
            declaration.total_liability = withholding_liability(declaration)

            await self.db.flush()
            self.verify_totals(declaration)
            return declaration

        declaration = await run_in_transaction(
            self.db,
            build,
            f"EMP201 generation for {period}",
            retry_on=(StaleDataError, IntegrityError),
        )
        logger.info(
            f"Generated EMP201 {declaration.id} for tenant {tenant_id}, period {period}: "
            f"{declaration.employee_count} employees, liability {declaration.total_liability}"
        )
        return declaration

    @staticmethod
    def verify_totals(declaration: WithholdingDeclaration) -> None:
        """Raise ReconciliationException unless totals match the lines exactly."""
        assert_reconciled(
            DOCUMENT_TYPE,
            declaration,
            declaration.line_items,
            TOTAL_COLUMNS,
            derived={"total_liability": withholding_liability(declaration)},
        )

    # ===========================================
    # RETRIEVAL
    # ===========================================

    async def get(self, tenant_id: uuid.UUID, declaration_id: uuid.UUID) -> WithholdingDeclaration:
        """Get a declaration with its line items."""
        return await TenantScope(self.db, tenant_id).get(
            WithholdingDeclaration, declaration_id, resource_type="Declaration"
        )

    async def list(
        self,
        tenant_id: uuid.UUID,
        year: int,
        submission_status: Optional[Union[SubmissionStatus, str]] = None,
    ) -> List[WithholdingDeclaration]:
        """Declarations of a calendar year, latest month first."""
        scope = TenantScope(self.db, tenant_id)
        query = scope.select(WithholdingDeclaration, WithholdingDeclaration.year == year)
        if submission_status:
            try:
                status = SubmissionStatus(submission_status)
            except ValueError:
                raise ValidationException(
                    f"Invalid submission status: {submission_status}", field="submission_status"
                )
            query = query.where(WithholdingDeclaration.submission_status == status)
        result = await self.db.execute(query.order_by(WithholdingDeclaration.month.desc()))
        return list(result.scalars().all())

    async def verify(self, tenant_id: uuid.UUID, declaration_id: uuid.UUID) -> bool:
        """Re-check a stored declaration against its stored lines."""
        declaration = await self.get(tenant_id, declaration_id)
        self.verify_totals(declaration)
        return True

    # ===========================================
    # ADJUSTMENTS / SUBMISSION / PAYMENT
    # ===========================================

    async def update_adjustments(
        self,
        tenant_id: uuid.UUID,
        declaration_id: uuid.UUID,
        eti_amount: Optional[Decimal] = None,
        notes: Optional[str] = None,
    ) -> WithholdingDeclaration:
        """Set the ETI credit and/or notes and recompute total liability."""
        if eti_amount is None and notes is None:
            raise ValidationException(
                "Provide eti_amount or notes",
                code=ErrorCode.MISSING_FIELD,
            )
        if eti_amount is not None:
            eti_amount = Decimal(str(eti_amount))
            if not eti_amount.is_finite() or eti_amount < 0:
                raise InvalidAmountException(eti_amount, field="eti_amount")
            eti_amount = to_money(eti_amount)
        scope = TenantScope(self.db, tenant_id)

        async def apply() -> WithholdingDeclaration:
            declaration = await scope.get(
                WithholdingDeclaration, declaration_id, for_update=True, resource_type="Declaration"
            )
            if declaration.is_submitted:
                raise ConflictException(
                    "Submitted EMP201 declarations cannot be adjusted",
                    resource_type=DOCUMENT_TYPE,
                    code=ErrorCode.CANNOT_MODIFY,
                )
            if eti_amount is not None:
                declaration.eti_amount = eti_amount
                declaration.total_liability = withholding_liability(declaration)
            if notes is not None:
                declaration.notes = notes
            await self.db.flush()
            return declaration

        declaration = await run_in_transaction(self.db, apply, f"EMP201 adjustment {declaration_id}")
        logger.info(
            f"Adjusted EMP201 {declaration.id}: eti={declaration.eti_amount} "
            f"liability={declaration.total_liability}"
        )
        return declaration

    async def submit(
        self,
        tenant_id: uuid.UUID,
        declaration_id: uuid.UUID,
        submission_reference: Optional[str] = None,
        acknowledgement: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> WithholdingDeclaration:
        """Mark a draft declaration as submitted; it is frozen afterwards."""
        scope = TenantScope(self.db, tenant_id)

        async def apply() -> WithholdingDeclaration:
            declaration = await scope.get(
                WithholdingDeclaration, declaration_id, for_update=True, resource_type="Declaration"
            )
            if declaration.is_submitted:
                raise ConflictException(
                    "EMP201 declaration is already submitted",
                    resource_type=DOCUMENT_TYPE,
                    code=ErrorCode.ALREADY_PROCESSED,
                )
            self.verify_totals(declaration)
            declaration.submission_status = SubmissionStatus.SUBMITTED
            declaration.submission_date = utcnow()
            declaration.submission_reference = submission_reference
            declaration.acknowledgement = acknowledgement
            declaration.submitted_by = actor_id
            await self.db.flush()
            return declaration

        declaration = await run_in_transaction(self.db, apply, f"EMP201 submission {declaration_id}")
        logger.info(f"Submitted EMP201 {declaration.id} for tenant {declaration.tenant_id}")
        return declaration

    async def record_payment(
        self,
        tenant_id: uuid.UUID,
        declaration_id: uuid.UUID,
        payment_date: date,
        payment_reference: str,
        payment_amount: Optional[Decimal] = None,
    ) -> WithholdingDeclaration:
        """Record payment to the revenue service; amount defaults to the liability."""
        if not payment_date or not payment_reference:
            raise ValidationException(
                "Payment date and reference are required",
                code=ErrorCode.MISSING_FIELD,
            )
        if payment_amount is not None:
            payment_amount = Decimal(str(payment_amount))
            if not payment_amount.is_finite() or payment_amount < 0:
                raise InvalidAmountException(payment_amount, field="payment_amount")
            payment_amount = to_money(payment_amount)
        scope = TenantScope(self.db, tenant_id)

        async def apply() -> WithholdingDeclaration:
            declaration = await scope.get(
                WithholdingDeclaration, declaration_id, for_update=True, resource_type="Declaration"
            )
            if declaration.payment_status == DeclarationPaymentStatus.PAID:
                raise ConflictException(
                    "Payment already recorded for this EMP201",
                    resource_type=DOCUMENT_TYPE,
                    code=ErrorCode.ALREADY_PROCESSED,
                )
            declaration.payment_status = DeclarationPaymentStatus.PAID
            declaration.payment_date = payment_date
            declaration.payment_reference = payment_reference
            declaration.payment_amount = (
                payment_amount if payment_amount is not None else declaration.total_liability
            )
            await self.db.flush()
            return declaration

        declaration = await run_in_transaction(self.db, apply, f"EMP201 payment {declaration_id}")
        logger.info(
            f"Recorded EMP201 payment for {declaration.id}: {declaration.payment_amount} "
            f"ref {payment_reference}"
        )
        return declaration

    # ===========================================
    # DASHBOARD / SCHEDULE
    # ===========================================

    async def dashboard(
        self,
        tenant_id: uuid.UUID,
        year: int,
        today: Optional[date] = None,
    ) -> WithholdingDashboard:
        """Year-to-date counts and amounts; overdue is derived from due dates."""
        today = today or date.today()
        declarations = await self.list(tenant_id, year)
        statuses = [d.computed_payment_status(today) for d in declarations]
        paid = [d for d, s in zip(declarations, statuses) if s == DeclarationPaymentStatus.PAID]
        unpaid = [d for d, s in zip(declarations, statuses) if s != DeclarationPaymentStatus.PAID]
        return WithholdingDashboard(
            year=year,
            total_declarations=len(declarations),
            submitted_count=sum(1 for d in declarations if d.is_submitted),
            paid_count=len(paid),
            overdue_count=sum(1 for s in statuses if s == DeclarationPaymentStatus.OVERDUE),
            total_liability_ytd=sum((d.total_liability for d in declarations), ZERO),
            total_paid_ytd=sum((d.payment_amount or ZERO for d in paid), ZERO),
            total_outstanding=sum((d.total_liability for d in unpaid), ZERO),
        )

    @staticmethod
    def payment_schedule(year: int) -> List[Dict[str, Any]]:
        """Filing periods of a calendar year with their due dates."""
        schedule = []
        for month in range(1, 13):
            period = PayrollPeriod(year=year, month=month)
            schedule.append({
                "month": month,
                "year": year,
                "period_name": f"{calendar.month_name[month]} {year}",
                "period_start_date": period.start_date,
                "period_end_date": period.end_date,
                "due_date": period.due_date(),
            })
        return schedule
