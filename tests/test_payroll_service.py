"""
Paystream - Payroll Service Tests

Period initialization, amendment, lifecycle transitions, audit trail and
tenant isolation.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select

from paystream.models import (
    AuditLogImmutableError,
    PaymentMethod,
    PayrollAuditAction,
    PayrollAuditLog,
    PayrollRecord,
    PayrollStatus,
)
from paystream.services.payroll_service import PayrollAmendment, PayrollService
from paystream.utils.error_handling import (
    ConflictException,
    ErrorCode,
    InvalidAmountException,
    InvalidPeriodException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)

from conftest import TEST_MONTH, TEST_PERIOD, TEST_YEAR, create_employee


class TestInitializePeriod:
    """Draft record creation for a period."""

    @pytest.mark.asyncio
    async def test_creates_one_draft_per_active_employee(self, db_session, company, employees):
        service = PayrollService(db_session)

        created = await service.initialize_period(company.id, TEST_MONTH, TEST_YEAR)

        assert created == 3
        records, total = await service.list_records(company.id, TEST_PERIOD)
        assert total == 3
        assert {r.employee_id for r in records} == {
            employees["thandi"].id, employees["pieter"].id, employees["lerato"].id,
        }
        assert all(r.status == PayrollStatus.DRAFT for r in records)

    @pytest.mark.asyncio
    async def test_reference_figures(self, initialized_period):
        record = initialized_period["thandi"]

        assert record.gross_pay == Decimal("20000.00")
        assert record.tax == Decimal("3619.33")
        assert record.uif_employee == Decimal("200.00")
        assert record.total_deductions == Decimal("3819.33")
        assert record.net_pay == Decimal("16180.67")

    @pytest.mark.asyncio
    async def test_override_and_pension_from_employee(self, initialized_period):
        record = initialized_period["pieter"]

        assert record.tax == Decimal("7500.00")
        assert record.pension == Decimal("2250.00")
        assert record.uif_employee == Decimal("300.00")
        assert record.net_pay == Decimal("19950.00")

    @pytest.mark.asyncio
    async def test_missing_salary_gives_zero_record(self, initialized_period):
        record = initialized_period["lerato"]

        assert record.basic_salary == Decimal("0.00")
        assert record.gross_pay == Decimal("0.00")
        assert record.tax == Decimal("0.00")
        assert record.net_pay == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, db_session, company, initialized_period):
        service = PayrollService(db_session)
        await service.amend(company.id, initialized_period["thandi"].id, {"allowances": Decimal("500")})

        created = await service.initialize_period(company.id, TEST_MONTH, TEST_YEAR)

        assert created == 0
        _, total = await service.list_records(company.id, TEST_PERIOD)
        assert total == 3
        record = await service.get_record(company.id, initialized_period["thandi"].id)
        assert record.allowances == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_new_employee_picked_up_on_rerun(self, db_session, company, initialized_period):
        await create_employee(db_session, company.id, "Naledi", "Khumalo", "12000.00")
        service = PayrollService(db_session)

        assert await service.initialize_period(company.id, TEST_MONTH, TEST_YEAR) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("month,year", [(0, 2025), (13, 2025), (6, 1999), (6, 2100)])
    async def test_invalid_period_rejected(self, db_session, company, month, year):
        service = PayrollService(db_session)

        with pytest.raises(InvalidPeriodException):
            await service.initialize_period(company.id, month, year)

    @pytest.mark.asyncio
    async def test_missing_tenant_rejected(self, db_session):
        service = PayrollService(db_session)

        with pytest.raises(ValidationException) as exc_info:
            await service.initialize_period(None, TEST_MONTH, TEST_YEAR)
        assert exc_info.value.code == ErrorCode.MISSING_FIELD


class TestAmendment:
    """Recomputation on amendment."""

    @pytest.mark.asyncio
    async def test_amend_recomputes_everything(self, db_session, company, initialized_period):
        service = PayrollService(db_session)
        record = initialized_period["thandi"]

        amended = await service.amend(
            company.id, record.id,
            PayrollAmendment(allowances=Decimal("1000"), medical_aid=Decimal("1500"), notes="Travel allowance"),
        )

        # 21,000 a month: 42,678 + (252,000 - 237,100) x 26% = 46,552 / 12
        assert amended.gross_pay == Decimal("21000.00")
        assert amended.tax == Decimal("3879.33")
        assert amended.uif_employee == Decimal("210.00")
        assert amended.medical_aid == Decimal("1500.00")
        assert amended.total_deductions == Decimal("5589.33")
        assert amended.net_pay == Decimal("15410.67")
        assert amended.notes == "Travel allowance"
        assert amended.version == 2

    @pytest.mark.asyncio
    async def test_invariants_hold_after_amend(self, db_session, company, initialized_period):
        service = PayrollService(db_session)
        record = await service.amend(
            company.id, initialized_period["pieter"].id,
            {"bonuses": "2500.50", "overtime": "499.50", "other_deductions": "100"},
        )

        assert record.gross_pay == record.basic_salary + record.allowances + record.bonuses + record.overtime
        assert record.total_deductions == (
            record.tax + record.uif_employee + record.pension + record.medical_aid + record.other_deductions
        )
        assert record.net_pay == record.gross_pay - record.total_deductions
        assert record.tax == Decimal("8250.00")

    @pytest.mark.asyncio
    async def test_processed_record_can_be_amended(self, db_session, company, initialized_period):
        service = PayrollService(db_session)
        record = initialized_period["thandi"]
        await service.process(company.id, TEST_PERIOD, [record.employee_id])

        amended = await service.amend(company.id, record.id, {"bonuses": Decimal("100")})

        assert amended.status == PayrollStatus.PROCESSED
        assert amended.gross_pay == Decimal("20100.00")

    @pytest.mark.asyncio
    async def test_paid_record_cannot_be_amended(self, db_session, company, initialized_period):
        service = PayrollService(db_session)
        company_id, record = company.id, initialized_period["thandi"]
        record_id = record.id
        await service.process(company_id, TEST_PERIOD, [record.employee_id])
        await service.mark_paid(company_id, record_id)

        with pytest.raises(InvalidStateException):
            await service.amend(company_id, record_id, {"allowances": Decimal("1")})

        unchanged = await service.get_record(company_id, record_id)
        assert unchanged.status == PayrollStatus.PAID
        assert unchanged.allowances == Decimal("0.00")
        assert unchanged.version == 3
        entries = await service.list_audit_entries(company_id, record_id)
        assert [e.sequence for e in entries] == [2, 3]

    @pytest.mark.asyncio
    async def test_empty_amendment_rejected(self, db_session, company, initialized_period):
        service = PayrollService(db_session)

        with pytest.raises(ValidationException) as exc_info:
            await service.amend(company.id, initialized_period["thandi"].id, {})
        assert exc_info.value.code == ErrorCode.MISSING_FIELD

    @pytest.mark.asyncio
    async def test_negative_amount_rejected(self, db_session, company, initialized_period):
        service = PayrollService(db_session)

        with pytest.raises(InvalidAmountException) as exc_info:
            await service.amend(company.id, initialized_period["thandi"].id, {"allowances": Decimal("-10")})
        assert exc_info.value.field == "allowances"

    @pytest.mark.asyncio
    async def test_non_numeric_amount_rejected(self, db_session, company, initialized_period):
        service = PayrollService(db_session)

        with pytest.raises(InvalidAmountException):
            await service.amend(company.id, initialized_period["thandi"].id, {"bonuses": "lots"})

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, db_session, company, initialized_period):
        service = PayrollService(db_session)

        with pytest.raises(ValidationException):
            await service.amend(company.id, initialized_period["thandi"].id, {"basic_salary": Decimal("1")})

    @pytest.mark.asyncio
    async def test_unknown_record(self, db_session, company, employees):
        service = PayrollService(db_session)

        with pytest.raises(NotFoundException):
            await service.amend(company.id, uuid4(), {"allowances": Decimal("1")})


class TestLifecycle:
    """draft -> processed -> paid."""

    @pytest.mark.asyncio
    async def test_process_only_named_drafts(self, db_session, company, employees, initialized_period):
        service = PayrollService(db_session)

        result = await service.process(company.id, TEST_PERIOD, [employees["thandi"].id, employees["pieter"].id])

        assert result.count == 2
        assert set(result.employee_ids) == {employees["thandi"].id, employees["pieter"].id}
        lerato = await service.get_record(company.id, initialized_period["lerato"].id)
        assert lerato.status == PayrollStatus.DRAFT

    @pytest.mark.asyncio
    async def test_process_skips_non_drafts(self, db_session, company, employees, initialized_period):
        service = PayrollService(db_session)
        await service.process(company.id, TEST_PERIOD, [employees["thandi"].id])

        result = await service.process(company.id, TEST_PERIOD, [employees["thandi"].id, uuid4()])

        assert result.count == 0
        assert result.record_ids == []

    @pytest.mark.asyncio
    async def test_process_requires_employee_ids(self, db_session, company, initialized_period):
        service = PayrollService(db_session)

        with pytest.raises(ValidationException):
            await service.process(company.id, TEST_PERIOD, [])

    @pytest.mark.asyncio
    async def test_mark_paid(self, db_session, company, initialized_period):
        service = PayrollService(db_session)
        record = initialized_period["thandi"]
        actor = uuid4()
        await service.process(company.id, TEST_PERIOD, [record.employee_id])

        paid = await service.mark_paid(
            company.id, record.id,
            actor_id=actor,
            payment_method="cash",
            payment_date=date(2025, 3, 25),
            payment_reference="PAY-0325",
        )

        assert paid.status == PayrollStatus.PAID
        assert paid.payment_method == PaymentMethod.CASH
        assert paid.payment_date == date(2025, 3, 25)
        assert paid.payment_reference == "PAY-0325"
        assert paid.paid_by == actor
        assert paid.paid_at is not None

    @pytest.mark.asyncio
    async def test_payment_date_defaults_to_today(self, db_session, company, initialized_period):
        service = PayrollService(db_session)
        record = initialized_period["thandi"]
        await service.process(company.id, TEST_PERIOD, [record.employee_id])

        paid = await service.mark_paid(company.id, record.id)

        assert paid.payment_date == date.today()
        assert paid.payment_method == PaymentMethod.BANK_TRANSFER

    @pytest.mark.asyncio
    async def test_mark_paid_twice_conflicts(self, db_session, company, initialized_period):
        service = PayrollService(db_session)
        record = initialized_period["thandi"]
        await service.process(company.id, TEST_PERIOD, [record.employee_id])
        await service.mark_paid(company.id, record.id)

        with pytest.raises(ConflictException) as exc_info:
            await service.mark_paid(company.id, record.id)
        assert exc_info.value.code == ErrorCode.ALREADY_PROCESSED

    @pytest.mark.asyncio
    async def test_draft_cannot_be_paid(self, db_session, company, initialized_period):
        service = PayrollService(db_session)

        with pytest.raises(InvalidStateException):
            await service.mark_paid(company.id, initialized_period["thandi"].id)

    @pytest.mark.asyncio
    async def test_invalid_payment_method(self, db_session, company, initialized_period):
        service = PayrollService(db_session)

        with pytest.raises(ValidationException):
            await service.mark_paid(company.id, initialized_period["thandi"].id, payment_method="barter")


class TestAuditTrail:
    """One audit entry per mutation, forming an unbroken chain."""

    @pytest.mark.asyncio
    async def test_no_entry_at_creation(self, db_session, company, initialized_period):
        service = PayrollService(db_session)

        assert await service.list_audit_entries(company.id, initialized_period["thandi"].id) == []

    @pytest.mark.asyncio
    async def test_full_chain(self, db_session, company, initialized_period):
        service = PayrollService(db_session)
        record = initialized_period["thandi"]
        actor = uuid4()

        await service.amend(company.id, record.id, {"allowances": Decimal("1000")}, actor_id=actor)
        await service.process(company.id, TEST_PERIOD, [record.employee_id], actor_id=actor)
        await service.mark_paid(company.id, record.id, actor_id=actor)

        entries = await service.list_audit_entries(company.id, record.id)
        assert [e.action for e in entries] == [
            PayrollAuditAction.UPDATE, PayrollAuditAction.PROCESS, PayrollAuditAction.MARK_PAID,
        ]
        assert [e.sequence for e in entries] == [2, 3, 4]
        assert [(e.old_status, e.new_status) for e in entries] == [
            ("draft", "draft"), ("draft", "processed"), ("processed", "paid"),
        ]
        assert entries[0].old_values["allowances"] == "0.00"
        assert entries[0].new_values["allowances"] == "1000.00"
        assert entries[0].new_values["net_pay"] == "16910.67"
        assert all(e.actor_id == actor for e in entries)
        assert await service.verify_audit_chain(company.id, record.id) is True

    @pytest.mark.asyncio
    async def test_failed_mutation_leaves_no_entry(self, db_session, company, initialized_period):
        service = PayrollService(db_session)
        company_id, record_id = company.id, initialized_period["thandi"].id

        with pytest.raises(InvalidStateException):
            await service.mark_paid(company_id, record_id)

        assert await service.list_audit_entries(company_id, record_id) == []
        record = await service.get_record(company_id, record_id)
        assert record.status == PayrollStatus.DRAFT
        assert record.version == 1

    @pytest.mark.asyncio
    async def test_entries_are_immutable(self, db_session, company, initialized_period):
        service = PayrollService(db_session)
        company_id, record_id = company.id, initialized_period["thandi"].id
        await service.amend(company_id, record_id, {"allowances": Decimal("10")})
        entry = (await service.list_audit_entries(company_id, record_id))[0]

        entry.notes = "tampered"
        with pytest.raises(AuditLogImmutableError):
            await db_session.flush()
        await db_session.rollback()

        entry = (await service.list_audit_entries(company_id, record_id))[0]
        assert entry.notes != "tampered"
        await db_session.delete(entry)
        with pytest.raises(AuditLogImmutableError):
            await db_session.flush()
        await db_session.rollback()

        result = await db_session.execute(
            select(PayrollAuditLog).where(PayrollAuditLog.payroll_record_id == record_id)
        )
        assert len(result.scalars().all()) == 1


class TestTenantIsolation:
    """Another tenant's records are invisible."""

    @pytest.mark.asyncio
    async def test_foreign_tenant_cannot_read_or_write(self, db_session, company, other_company, initialized_period):
        service = PayrollService(db_session)
        company_id, other_id = company.id, other_company.id
        record_id = initialized_period["thandi"].id

        with pytest.raises(NotFoundException):
            await service.get_record(other_id, record_id)
        with pytest.raises(NotFoundException):
            await service.amend(other_id, record_id, {"allowances": Decimal("1")})
        with pytest.raises(NotFoundException):
            await service.mark_paid(other_id, record_id)
        with pytest.raises(NotFoundException):
            await service.list_audit_entries(other_id, record_id)

        untouched = await service.get_record(company_id, record_id)
        assert untouched.status == PayrollStatus.DRAFT
        assert untouched.version == 1
        assert untouched.allowances == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_lists_never_include_foreign_rows(self, db_session, company, other_company, employees, initialized_period):
        service = PayrollService(db_session)

        records, total = await service.list_records(other_company.id, TEST_PERIOD)
        assert records == [] and total == 0

        result = await service.process(other_company.id, TEST_PERIOD, [employees["thandi"].id])
        assert result.count == 0
        thandi = await service.get_record(company.id, initialized_period["thandi"].id)
        assert thandi.status == PayrollStatus.DRAFT


class TestQueries:
    """Listing, history and period summary."""

    @pytest.mark.asyncio
    async def test_list_filters_by_status_and_paginates(self, db_session, company, employees, initialized_period):
        service = PayrollService(db_session)
        await service.process(company.id, TEST_PERIOD, [employees["thandi"].id])

        processed, total = await service.list_records(company.id, TEST_PERIOD, status="processed")
        assert total == 1 and processed[0].employee_id == employees["thandi"].id

        page, total = await service.list_records(company.id, TEST_PERIOD, page=2, per_page=2)
        assert total == 3 and len(page) == 1

        with pytest.raises(ValidationException):
            await service.list_records(company.id, TEST_PERIOD, status="archived")

    @pytest.mark.asyncio
    async def test_employee_history_newest_first(self, db_session, company, employees, initialized_period):
        service = PayrollService(db_session)
        await service.initialize_period(company.id, 4, TEST_YEAR)

        history, total = await service.employee_history(company.id, employees["thandi"].id)

        assert total == 2
        assert [(r.year, r.month) for r in history] == [(2025, 4), (2025, 3)]

    @pytest.mark.asyncio
    async def test_period_summary(self, db_session, company, employees, initialized_period):
        service = PayrollService(db_session)
        await service.process(company.id, TEST_PERIOD, [employees["pieter"].id])

        summary = await service.summarize_period(company.id, TEST_PERIOD)

        assert summary.record_count == 3
        assert summary.status_counts == {"draft": 2, "processed": 1}
        assert summary.total_gross == Decimal("50000.00")
        assert summary.total_tax == Decimal("11119.33")
        assert summary.total_net == Decimal("36130.67")

    @pytest.mark.asyncio
    async def test_records_are_never_deleted_by_service(self, db_session, company, initialized_period):
        result = await db_session.execute(select(PayrollRecord).where(PayrollRecord.tenant_id == company.id))
        assert len(result.scalars().all()) == 3
