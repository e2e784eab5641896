"""
Paystream - UI-19 Declaration Tests
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from paystream.models import SubmissionStatus, UIFDeclaration, UIFReasonCode
from paystream.services.statutory import StatutoryDeclarationService, UIFDeclarationService
from paystream.utils.error_handling import (
    ConflictException,
    ErrorCode,
    NotFoundException,
    ValidationException,
)

from conftest import TEST_PERIOD


@pytest.fixture
async def finalized_period(db_session, company, employees, initialized_period, finalize):
    await finalize(db_session, company.id, TEST_PERIOD, [employees["thandi"].id, employees["pieter"].id])
    return initialized_period


class TestUIFDeclaration:
    """UI-19 generation and totals."""

    @pytest.mark.asyncio
    async def test_totals(self, db_session, company, finalized_period):
        service = UIFDeclarationService(db_session)

        declaration = await service.generate(company.id, TEST_PERIOD)

        assert declaration.employee_count == 2
        assert declaration.total_remuneration == Decimal("50000.00")
        assert declaration.total_uif_employee == Decimal("500.00")
        assert declaration.total_uif_employer == Decimal("500.00")
        assert declaration.total_uif == Decimal("1000.00")
        assert declaration.employer_reference == "U123456789"
        assert await service.verify(company.id, declaration.id) is True

    @pytest.mark.asyncio
    async def test_december_of_last_accepted_year(self, db_session, company):
        year = date.today().year + 1
        service = UIFDeclarationService(db_session)

        declaration = await service.generate(company.id, f"{year}-12")

        assert declaration.due_date == date(year + 1, 1, 7)
        assert declaration.line_items == []

    @pytest.mark.asyncio
    async def test_line_defaults(self, db_session, company, employees, finalized_period):
        service = UIFDeclarationService(db_session)

        declaration = await service.generate(company.id, TEST_PERIOD)
        lines = {item.employee_id: item for item in declaration.line_items}

        thandi = lines[employees["thandi"].id]
        assert thandi.days_worked == 31
        assert thandi.reason_code == UIFReasonCode.STILL_EMPLOYED.value
        assert thandi.uif_number == "U0001"
        assert thandi.total_uif == Decimal("400.00")
        assert lines[employees["pieter"].id].uif_number is None

    @pytest.mark.asyncio
    async def test_line_edits_survive_regeneration(self, db_session, company, employees, finalized_period):
        service = UIFDeclarationService(db_session)
        declaration = await service.generate(company.id, TEST_PERIOD)
        pieter_line = next(i for i in declaration.line_items if i.employee_id == employees["pieter"].id)

        await service.update_line_item(
            company.id, pieter_line.id,
            uif_number="U0002", days_worked=15, reason_code=UIFReasonCode.RESIGNED.value,
        )
        regenerated = await service.generate(company.id, TEST_PERIOD)

        assert regenerated.id == declaration.id
        pieter = next(i for i in regenerated.line_items if i.employee_id == employees["pieter"].id)
        assert pieter.uif_number == "U0002"
        assert pieter.days_worked == 15
        assert pieter.reason_code == "06"
        assert regenerated.employee_count == 2

    @pytest.mark.asyncio
    async def test_line_update_validation(self, db_session, company, finalized_period):
        service = UIFDeclarationService(db_session)
        company_id = company.id
        declaration = await service.generate(company_id, TEST_PERIOD)
        declaration_id, line_id = declaration.id, declaration.line_items[0].id

        with pytest.raises(ValidationException) as exc_info:
            await service.update_line_item(company_id, line_id)
        assert exc_info.value.code == ErrorCode.MISSING_FIELD

        with pytest.raises(ValidationException):
            await service.update_line_item(company_id, line_id, reason_code="99")

        with pytest.raises(ValidationException):
            await service.update_line_item(company_id, line_id, days_worked=32)

        with pytest.raises(NotFoundException):
            await service.update_line_item(company_id, uuid4(), days_worked=10)

        reloaded = await service.get(company_id, declaration_id)
        line = next(i for i in reloaded.line_items if i.id == line_id)
        assert line.days_worked == 31
        assert line.reason_code == "01"

    @pytest.mark.asyncio
    async def test_submitted_declaration_is_frozen(self, db_session, company, finalized_period):
        service = UIFDeclarationService(db_session)
        company_id = company.id
        declaration = await service.generate(company_id, TEST_PERIOD)
        declaration_id, line_id = declaration.id, declaration.line_items[0].id

        submitted = await service.submit(company_id, declaration_id, submission_reference="UFILING-7")
        assert submitted.submission_status == SubmissionStatus.SUBMITTED

        with pytest.raises(ConflictException) as exc_info:
            await service.update_line_item(company_id, line_id, days_worked=20)
        assert exc_info.value.code == ErrorCode.CANNOT_MODIFY

        with pytest.raises(ConflictException):
            await service.generate(company_id, TEST_PERIOD)

        frozen = await service.get(company_id, declaration_id)
        assert frozen.submission_status == SubmissionStatus.SUBMITTED
        assert all(i.days_worked == 31 for i in frozen.line_items)

    @pytest.mark.asyncio
    async def test_foreign_tenant_cannot_see_declaration(self, db_session, company, other_company, finalized_period):
        service = UIFDeclarationService(db_session)
        declaration = await service.generate(company.id, TEST_PERIOD)

        with pytest.raises(NotFoundException):
            await service.get(other_company.id, declaration.id)
        assert await service.list(other_company.id, 2025) == []
        assert [d.id for d in await service.list(company.id, 2025)] == [declaration.id]

    @pytest.mark.asyncio
    async def test_facade_generates_and_finds(self, db_session, company, finalized_period):
        statutory = StatutoryDeclarationService(db_session)

        declaration = await statutory.generate_uif_declaration(company.id, TEST_PERIOD)
        found = await statutory.get_declaration(company.id, declaration.id)

        assert isinstance(found, UIFDeclaration)
