"""
Paystream - Payroll Service

Payroll record store and lifecycle processor.

Record lifecycle (strictly monotonic):
    draft -> processed -> paid

- initialize_period: insert-if-absent draft records for every active employee
- amend: change inputs on a draft/processed record and recompute everything
- process: draft -> processed for a set of employees in one period
- mark_paid: processed -> paid with payment details

Every mutation appends one audit entry in the same transaction. Writes to the
same record are serialized by a row lock (PostgreSQL) and an optimistic
version counter; a stale write rolls back and re-runs from a fresh read.
"""

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from paystream.models.audit import PayrollAuditAction, PayrollAuditLog
from paystream.models.base import utcnow
from paystream.models.payroll import PayrollRecord, PayrollStatus, PaymentMethod
from paystream.services.audit_service import PayrollAuditService, snapshot_record
from paystream.services.directory import EmployeeDirectory, EmployeeProfile, SqlEmployeeDirectory
from paystream.services.tax_calculators import (
    PayrollInputs,
    UIFCalculator,
    WithholdingCalculator,
    calculate_payroll_figures,
    to_money,
)
from paystream.services.tenant_scope import TenantScope, require_tenant
from paystream.services.transactions import run_in_transaction
from paystream.utils.error_handling import (
    ConflictException,
    ErrorCode,
    InvalidAmountException,
    InvalidStateException,
    ValidationException,
)
from paystream.utils.periods import PayrollPeriod, validate_period


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

PeriodLike = Union[str, PayrollPeriod]


# ===========================================
# VALUE OBJECTS
# ===========================================

@dataclass
class PayrollAmendment:
    """Fields an amendment may change; None means unchanged."""
    allowances: Optional[Decimal] = None
    bonuses: Optional[Decimal] = None
    overtime: Optional[Decimal] = None
    medical_aid: Optional[Decimal] = None
    other_deductions: Optional[Decimal] = None
    notes: Optional[str] = None

    AMOUNT_FIELDS = ("allowances", "bonuses", "overtime", "medical_aid", "other_deductions")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PayrollAmendment":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValidationException(
                f"Unknown amendment fields: {', '.join(sorted(unknown))}",
                details={"unknown_fields": sorted(unknown)},
            )
        return cls(**dict(data))

    def changes(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def validate(self) -> Dict[str, Any]:
        """
        Normalize and check the amendment.

        Returns:
            The non-empty change set with amounts as cent-rounded Decimals

        Raises:
            ValidationException: nothing to change
            InvalidAmountException: negative or non-numeric amount
        """
        changes = self.changes()
        if not changes:
            raise ValidationException(
                "Amendment must change at least one field",
                code=ErrorCode.MISSING_FIELD,
                details={"allowed_fields": list(self.AMOUNT_FIELDS) + ["notes"]},
            )
        for name in self.AMOUNT_FIELDS:
            if name not in changes:
                continue
            try:
                amount = Decimal(str(changes[name]))
            except (InvalidOperation, ValueError):
                raise InvalidAmountException(changes[name], field=name)
            if not amount.is_finite() or amount < 0:
                raise InvalidAmountException(changes[name], field=name)
            changes[name] = to_money(amount)
        return changes


@dataclass
class ProcessResult:
    """Outcome of a process() call; skipped records are not listed."""
    count: int
    record_ids: List[uuid.UUID] = field(default_factory=list)
    employee_ids: List[uuid.UUID] = field(default_factory=list)


@dataclass
class PeriodSummary:
    """Per-period totals across a tenant's records."""
    period: str
    record_count: int
    status_counts: Dict[str, int]
    total_gross: Decimal
    total_tax: Decimal
    total_uif_employee: Decimal
    total_deductions: Decimal
    total_net: Decimal


# ===========================================
# SERVICE
# ===========================================

class PayrollService:
    """
    Payroll record store and lifecycle processor.
    """

    def __init__(
        self,
        db: AsyncSession,
        employees: Optional[EmployeeDirectory] = None,
        withholding: Optional[WithholdingCalculator] = None,
        uif: Optional[UIFCalculator] = None,
    ):
        self.db = db
        self.employees = employees or SqlEmployeeDirectory(db)
        self.withholding = withholding or WithholdingCalculator()
        self.uif = uif or UIFCalculator()
        self.audit = PayrollAuditService(db)

    def _figures(
        self,
        inputs: PayrollInputs,
        profile: Optional[EmployeeProfile],
    ) -> Dict[str, Decimal]:
        return calculate_payroll_figures(
            inputs,
            custom_tax_rate=profile.custom_tax_rate if profile else None,
            pension_rate=profile.pension_rate if profile else None,
            withholding=self.withholding,
            uif=self.uif,
        ).as_dict()

    # ===========================================
    # PERIOD INITIALIZATION
    # ===========================================

    async def initialize_period(self, tenant_id: uuid.UUID, month: int, year: int) -> int:
        """
        Create draft records for active employees that have none for the period.

        Existing records are never touched, so the call is safe to repeat.
        Employees with a zero or missing salary still get a (zero) record.

        Returns:
            Number of records created by this call
        """
        validate_period(month, year)
        tenant_id = require_tenant(tenant_id)
        scope = TenantScope(self.db, tenant_id)

        async def create_missing() -> int:
            result = await self.db.execute(
                scope.filter(
                    select(PayrollRecord.employee_id).where(
                        PayrollRecord.month == month,
                        PayrollRecord.year == year,
                    ),
                    PayrollRecord,
                )
            )
            existing = set(result.scalars().all())

            created = 0
            for profile in await self.employees.list_active_employees(tenant_id):
                if profile.id in existing:
                    continue
                salary = to_money(profile.basic_salary or ZERO)
                figures = self._figures(PayrollInputs(basic_salary=salary), profile)
                self.db.add(
                    PayrollRecord(
                        tenant_id=tenant_id,
                        employee_id=profile.id,
                        month=month,
                        year=year,
                        basic_salary=salary,
                        allowances=ZERO,
                        bonuses=ZERO,
                        overtime=ZERO,
                        medical_aid=ZERO,
                        other_deductions=ZERO,
                        status=PayrollStatus.DRAFT,
                        **figures,
                    )
                )
                created += 1
            await self.db.flush()
            return created

        # A concurrent initializer may insert the same keys first
        created = await run_in_transaction(
            self.db,
            create_missing,
            f"initialize_period {year:04d}-{month:02d}",
            retry_on=(IntegrityError,),
        )
        logger.info(
            f"Initialized payroll period {year:04d}-{month:02d} for tenant {tenant_id}: "
            f"{created} records created"
        )
        return created

    # ===========================================
    # AMENDMENT
    # ===========================================

    async def amend(
        self,
        tenant_id: uuid.UUID,
        record_id: uuid.UUID,
        amendment: Union[PayrollAmendment, Mapping[str, Any]],
        actor_id: Optional[uuid.UUID] = None,
    ) -> PayrollRecord:
        """
        Amend a draft or processed record and recompute all derived figures.

        Raises:
            ValidationException: empty amendment or negative amount (nothing read)
            NotFoundException: record absent or owned by another tenant
            InvalidStateException: record is paid
            ConflictException: concurrent writers kept winning after all retries
        """
        if not isinstance(amendment, PayrollAmendment):
            amendment = PayrollAmendment.from_mapping(amendment)
        changes = amendment.validate()
        tenant_id = require_tenant(tenant_id)
        scope = TenantScope(self.db, tenant_id)

        async def apply() -> PayrollRecord:
            record = await scope.get(PayrollRecord, record_id, for_update=True, resource_type="PayrollRecord")
            if not record.is_editable:
                raise InvalidStateException(
                    "PayrollRecord", record.status.value, "amend",
                    message="Paid payroll records cannot be amended",
                )

            profiles = await self.employees.get_employees(tenant_id, [record.employee_id])
            old_values = snapshot_record(record)
            next_sequence = record.version + 1

            for name, value in changes.items():
                setattr(record, name, value)

            inputs = PayrollInputs(
                basic_salary=record.basic_salary,
                allowances=record.allowances,
                bonuses=record.bonuses,
                overtime=record.overtime,
                medical_aid=record.medical_aid,
                other_deductions=record.other_deductions,
            )
            for name, value in self._figures(inputs, profiles.get(record.employee_id)).items():
                setattr(record, name, value)

            # UPDATE first so a stale version fails before the audit insert
            await self.db.flush()
            self.audit.append(
                record,
                PayrollAuditAction.UPDATE,
                sequence=next_sequence,
                old_values=old_values,
                new_values=snapshot_record(record),
                actor_id=actor_id,
                notes=amendment.notes,
            )
            await self.db.flush()
            return record

        record = await run_in_transaction(self.db, apply, f"amend of payroll record {record_id}")
        logger.info(
            f"Amended payroll record {record.id} for tenant {tenant_id}: "
            f"fields={sorted(changes)} gross={record.gross_pay} net={record.net_pay}"
        )
        return record

    # ===========================================
    # STATE TRANSITIONS
    # ===========================================

    async def process(
        self,
        tenant_id: uuid.UUID,
        period: PeriodLike,
        employee_ids: Sequence[uuid.UUID],
        actor_id: Optional[uuid.UUID] = None,
    ) -> ProcessResult:
        """
        Move the named employees' draft records for a period to processed.

        Records that are not draft (or do not exist) are skipped silently and
        left out of the result.
        """
        if not employee_ids:
            raise ValidationException(
                "At least one employee id is required",
                field="employee_ids",
                code=ErrorCode.MISSING_FIELD,
            )
        period = PayrollPeriod.parse(period)
        tenant_id = require_tenant(tenant_id)
        scope = TenantScope(self.db, tenant_id)
        wanted = list(dict.fromkeys(employee_ids))

        async def apply() -> ProcessResult:
            result = await self.db.execute(
                scope.select(
                    PayrollRecord,
                    PayrollRecord.month == period.month,
                    PayrollRecord.year == period.year,
                    PayrollRecord.employee_id.in_(wanted),
                    PayrollRecord.status == PayrollStatus.DRAFT,
                )
                .order_by(PayrollRecord.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            records = list(result.scalars().all())
            if not records:
                return ProcessResult(count=0)

            now = utcnow()
            old_snapshots = {}
            next_sequences = {}
            for record in records:
                old_snapshots[record.id] = snapshot_record(record)
                next_sequences[record.id] = record.version + 1
                record.status = PayrollStatus.PROCESSED
                record.processed_at = now
                record.processed_by = actor_id
            await self.db.flush()

            for record in records:
                self.audit.append(
                    record,
                    PayrollAuditAction.PROCESS,
                    sequence=next_sequences[record.id],
                    old_values=old_snapshots[record.id],
                    new_values=snapshot_record(record),
                    actor_id=actor_id,
                )
            await self.db.flush()
            return ProcessResult(
                count=len(records),
                record_ids=[r.id for r in records],
                employee_ids=[r.employee_id for r in records],
            )

        outcome = await run_in_transaction(self.db, apply, f"process of period {period}")
        logger.info(
            f"Processed {outcome.count} of {len(wanted)} requested payroll records "
            f"for tenant {tenant_id}, period {period}"
        )
        return outcome

    async def mark_paid(
        self,
        tenant_id: uuid.UUID,
        record_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
        payment_method: Union[PaymentMethod, str] = PaymentMethod.BANK_TRANSFER,
        payment_date: Optional[date] = None,
        payment_reference: Optional[str] = None,
    ) -> PayrollRecord:
        """
        Transition a processed record to paid.

        Raises:
            ValidationException: unknown payment method
            NotFoundException: record absent or owned by another tenant
            ConflictException: record already paid
            InvalidStateException: record still draft
        """
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationException(
                f"Invalid payment method: {payment_method}",
                field="payment_method",
                details={"allowed": [m.value for m in PaymentMethod]},
            )
        tenant_id = require_tenant(tenant_id)
        scope = TenantScope(self.db, tenant_id)

        async def apply() -> PayrollRecord:
            record = await scope.get(PayrollRecord, record_id, for_update=True, resource_type="PayrollRecord")
            if record.status == PayrollStatus.PAID:
                raise ConflictException(
                    "Payroll record is already paid",
                    resource_type="PayrollRecord",
                    code=ErrorCode.ALREADY_PROCESSED,
                    details={"record_id": str(record.id)},
                )
            if record.status != PayrollStatus.PROCESSED:
                raise InvalidStateException(
                    "PayrollRecord", record.status.value, "mark as paid",
                    message="Only processed payroll records can be marked as paid",
                )

            old_values = snapshot_record(record)
            next_sequence = record.version + 1
            record.status = PayrollStatus.PAID
            record.payment_method = method
            record.payment_date = payment_date or date.today()
            record.payment_reference = payment_reference
            record.paid_at = utcnow()
            record.paid_by = actor_id
            await self.db.flush()

            self.audit.append(
                record,
                PayrollAuditAction.MARK_PAID,
                sequence=next_sequence,
                old_values=old_values,
                new_values=snapshot_record(record),
                actor_id=actor_id,
            )
            await self.db.flush()
            return record

        record = await run_in_transaction(self.db, apply, f"mark_paid of payroll record {record_id}")
        logger.info(
            f"Payroll record {record.id} for tenant {tenant_id} marked paid "
            f"via {method.value} ({payment_reference or 'no reference'})"
        )
        return record

    # ===========================================
    # QUERIES
    # ===========================================

    async def get_record(self, tenant_id: uuid.UUID, record_id: uuid.UUID) -> PayrollRecord:
        """Get one record; NotFound when absent or foreign."""
        return await TenantScope(self.db, tenant_id).get(
            PayrollRecord, record_id, resource_type="PayrollRecord"
        )

    async def list_records(
        self,
        tenant_id: uuid.UUID,
        period: PeriodLike,
        status: Optional[Union[PayrollStatus, str]] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> Tuple[List[PayrollRecord], int]:
        """List a period's records with an optional status filter."""
        period = PayrollPeriod.parse(period)
        scope = TenantScope(self.db, tenant_id)
        query = scope.select(
            PayrollRecord,
            PayrollRecord.month == period.month,
            PayrollRecord.year == period.year,
        )
        if status:
            try:
                query = query.where(PayrollRecord.status == PayrollStatus(status))
            except ValueError:
                raise ValidationException(f"Invalid status: {status}", field="status")

        return await self._paginate(query, page, per_page)

    async def employee_history(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
        page: int = 1,
        per_page: int = 24,
    ) -> Tuple[List[PayrollRecord], int]:
        """An employee's records, newest period first."""
        scope = TenantScope(self.db, tenant_id)
        query = scope.select(PayrollRecord, PayrollRecord.employee_id == employee_id)
        return await self._paginate(
            query, page, per_page,
            order_by=(PayrollRecord.year.desc(), PayrollRecord.month.desc()),
        )

    async def _paginate(self, query, page: int, per_page: int, order_by=None):
        page = max(page, 1)
        per_page = max(min(per_page, 500), 1)

        # Count
        count_result = await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = count_result.scalar()

        # Paginate
        query = query.order_by(*(order_by or (PayrollRecord.employee_id,)))
        query = query.offset((page - 1) * per_page).limit(per_page)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def summarize_period(self, tenant_id: uuid.UUID, period: PeriodLike) -> PeriodSummary:
        """Status counts and money totals for one period."""
        period = PayrollPeriod.parse(period)
        scope = TenantScope(self.db, tenant_id)
        result = await self.db.execute(
            scope.select(
                PayrollRecord,
                PayrollRecord.month == period.month,
                PayrollRecord.year == period.year,
            )
        )
        records = list(result.scalars().all())

        # Summed in Python so totals stay exact Decimals on every backend
        return PeriodSummary(
            period=period.label,
            record_count=len(records),
            status_counts=dict(Counter(r.status.value for r in records)),
            total_gross=sum((r.gross_pay for r in records), ZERO),
            total_tax=sum((r.tax for r in records), ZERO),
            total_uif_employee=sum((r.uif_employee for r in records), ZERO),
            total_deductions=sum((r.total_deductions for r in records), ZERO),
            total_net=sum((r.net_pay for r in records), ZERO),
        )

    async def list_audit_entries(
        self,
        tenant_id: uuid.UUID,
        record_id: uuid.UUID,
    ) -> List[PayrollAuditLog]:
        """Audit trail of one record, oldest first."""
        return await self.audit.list_entries(tenant_id, record_id)

    async def verify_audit_chain(self, tenant_id: uuid.UUID, record_id: uuid.UUID) -> bool:
        """True when the record's audit chain is unbroken and ends at its current state."""
        record = await self.get_record(tenant_id, record_id)
        return await self.audit.verify_chain(tenant_id, record_id, snapshot_record(record))
