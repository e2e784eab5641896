"""
Paystream - UI-19 Service

Monthly UIF contributor declaration (UI-19). One line per employee with
remuneration, employee and employer UIF shares, days worked and the
contributor's reason code. Totals mirror the UIF columns of the EMP201 for
the same period.
"""

import logging
import uuid
from typing import List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from paystream.models.base import utcnow
from paystream.models.declaration import (
    DeclarationPaymentStatus,
    SubmissionStatus,
    UIFDeclaration,
    UIFLineItem,
    UIFReasonCode,
)
from paystream.services.statutory.base import ZERO, StatutoryGeneratorBase, assert_reconciled
from paystream.services.tenant_scope import TenantScope, require_tenant
from paystream.services.transactions import run_in_transaction
from paystream.utils.error_handling import ConflictException, ErrorCode, ValidationException
from paystream.utils.periods import PayrollPeriod


logger = logging.getLogger(__name__)

DOCUMENT_TYPE = "UI-19"

TOTAL_COLUMNS = {
    "total_remuneration": "gross_remuneration",
    "total_uif_employee": "uif_employee",
    "total_uif_employer": "uif_employer",
    "total_uif": "total_uif",
}

REASON_CODES = {code.value for code in UIFReasonCode}


class UIFDeclarationService(StatutoryGeneratorBase):
    """Service for UI-19 declarations."""

    async def generate(
        self,
        tenant_id: uuid.UUID,
        period: Union[str, PayrollPeriod],
    ) -> UIFDeclaration:
        """
        Create or regenerate the UI-19 for a period.

        Days worked, reason code and UIF number edited on the previous draft
        are carried over for employees that are still on the declaration.
        """
        period = PayrollPeriod.parse(period)
        tenant_id = require_tenant(tenant_id)
        scope = TenantScope(self.db, tenant_id)

        async def build() -> UIFDeclaration:
            company = await self.companies.get_company(tenant_id)
            result = await self.db.execute(
                scope.select(
                    UIFDeclaration,
                    UIFDeclaration.month == period.month,
                    UIFDeclaration.year == period.year,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            declaration = result.scalar_one_or_none()
            if declaration is not None and declaration.is_submitted:
                raise ConflictException(
                    f"UI-19 for {period} has been submitted and cannot be regenerated",
                    resource_type=DOCUMENT_TYPE,
                    code=ErrorCode.ALREADY_PROCESSED,
                    details={"declaration_id": str(declaration.id)},
                )
            previous = {}
            if declaration is not None:
                previous = {item.employee_id: item for item in declaration.line_items}

            records = await self._finalized_records(scope, [(period.year, period.month)])
            profiles = await self._profiles(tenant_id, records)

            line_items = []
            for record in records:
                profile = profiles.get(record.employee_id)
                earlier = previous.get(record.employee_id)
                gross = record.gross_pay
                uif_employee = record.uif_employee
                uif_employer = self.uif.employer_contribution(gross)
                line_items.append(
                    UIFLineItem(
                        tenant_id=tenant_id,
                        employee_id=record.employee_id,
                        payroll_record_id=record.id,
                        employee_name=self._employee_name(profile, record.employee_id),
                        id_number=profile.id_number if profile else None,
                        uif_number=(
                            earlier.uif_number if earlier and earlier.uif_number
                            else (profile.uif_number if profile else None)
                        ),
                        gross_remuneration=gross,
                        uif_employee=uif_employee,
                        uif_employer=uif_employer,
                        total_uif=uif_employee + uif_employer,
                        days_worked=earlier.days_worked if earlier else period.days_in_month,
                        reason_code=earlier.reason_code if earlier else UIFReasonCode.STILL_EMPLOYED.value,
                    )
                )

            if declaration is None:
                declaration = UIFDeclaration(
                    tenant_id=tenant_id,
                    month=period.month,
                    year=period.year,
                    submission_status=SubmissionStatus.DRAFT,
                    payment_status=DeclarationPaymentStatus.PENDING,
                )
                self.db.add(declaration)

            declaration.period_start_date = period.start_date
            declaration.period_end_date = period.end_date
            declaration.due_date = period.due_date()
            declaration.employer_name = company.name
            declaration.employer_reference = company.uif_reference
            declaration.currency_code = company.currency_code
            declaration.generated_at = utcnow()

            declaration.line_items = line_items
            declaration.employee_count = len(line_items)
            for total_name, column in TOTAL_COLUMNS.items():
                setattr(declaration, total_name, sum((getattr(i, column) for i in line_items), ZERO))

            await self.db.flush()
            self.verify_totals(declaration)
            return declaration

        declaration = await run_in_transaction(
            self.db,
            build,
            f"UI-19 generation for {period}",
            retry_on=(StaleDataError, IntegrityError),
        )
        logger.info(
            f"Generated UI-19 {declaration.id} for tenant {tenant_id}, period {period}: "
            f"{declaration.employee_count} contributors, total UIF {declaration.total_uif}"
        )
        return declaration

    @staticmethod
    def verify_totals(declaration: UIFDeclaration) -> None:
        """Raise ReconciliationException unless totals match the lines exactly."""
        assert_reconciled(DOCUMENT_TYPE, declaration, declaration.line_items, TOTAL_COLUMNS)

    async def get(self, tenant_id: uuid.UUID, declaration_id: uuid.UUID) -> UIFDeclaration:
        """Get a declaration with its line items."""
        return await TenantScope(self.db, tenant_id).get(
            UIFDeclaration, declaration_id, resource_type="Declaration"
        )

    async def list(self, tenant_id: uuid.UUID, year: int) -> List[UIFDeclaration]:
        """Declarations of a calendar year, latest month first."""
        scope = TenantScope(self.db, tenant_id)
        result = await self.db.execute(
            scope.select(UIFDeclaration, UIFDeclaration.year == year).order_by(
                UIFDeclaration.month.desc()
            )
        )
        return list(result.scalars().all())

    async def verify(self, tenant_id: uuid.UUID, declaration_id: uuid.UUID) -> bool:
        declaration = await self.get(tenant_id, declaration_id)
        self.verify_totals(declaration)
        return True

    async def submit(
        self,
        tenant_id: uuid.UUID,
        declaration_id: uuid.UUID,
        submission_reference: Optional[str] = None,
        acknowledgement: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> UIFDeclaration:
        """Mark a draft UI-19 as submitted to the UIF."""
        scope = TenantScope(self.db, tenant_id)

        async def apply() -> UIFDeclaration:
            declaration = await scope.get(
                UIFDeclaration, declaration_id, for_update=True, resource_type="Declaration"
            )
            if declaration.is_submitted:
                raise ConflictException(
                    "UI-19 declaration is already submitted",
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

        declaration = await run_in_transaction(self.db, apply, f"UI-19 submission {declaration_id}")
        logger.info(f"Submitted UI-19 {declaration.id} for tenant {declaration.tenant_id}")
        return declaration

    async def update_line_item(
        self,
        tenant_id: uuid.UUID,
        line_item_id: uuid.UUID,
        uif_number: Optional[str] = None,
        days_worked: Optional[int] = None,
        reason_code: Optional[str] = None,
    ) -> UIFLineItem:
        """
        Correct the non-monetary fields of a draft line.

        Amounts are never edited here; they come from payroll records and
        change only through regeneration.
        """
        if uif_number is None and days_worked is None and reason_code is None:
            raise ValidationException(
                "Provide uif_number, days_worked or reason_code",
                code=ErrorCode.MISSING_FIELD,
            )
        if reason_code is not None and reason_code not in REASON_CODES:
            raise ValidationException(
                f"Invalid UI-19 reason code: {reason_code}",
                field="reason_code",
                details={"allowed": sorted(REASON_CODES)},
            )
        scope = TenantScope(self.db, tenant_id)

        async def apply() -> UIFLineItem:
            item = await scope.get(UIFLineItem, line_item_id, for_update=True, resource_type="UIFLineItem")
            declaration = await scope.get(
                UIFDeclaration, item.declaration_id, for_update=True, resource_type="Declaration"
            )
            if declaration.is_submitted:
                raise ConflictException(
                    "Lines of a submitted UI-19 cannot be changed",
                    resource_type=DOCUMENT_TYPE,
                    code=ErrorCode.CANNOT_MODIFY,
                )
            if days_worked is not None:
                max_days = PayrollPeriod(year=declaration.year, month=declaration.month).days_in_month
                if not 0 <= days_worked <= max_days:
                    raise ValidationException(
                        f"days_worked must be between 0 and {max_days}",
                        field="days_worked",
                    )
                item.days_worked = days_worked
            if uif_number is not None:
                item.uif_number = uif_number
            if reason_code is not None:
                item.reason_code = reason_code
            # Bumps the declaration version so a racing submit or regeneration conflicts
            declaration.updated_at = utcnow()
            await self.db.flush()
            return item

        item = await run_in_transaction(self.db, apply, f"UI-19 line update {line_item_id}")
        logger.info(f"Updated UI-19 line {item.id} on declaration {item.declaration_id}")
        return item
