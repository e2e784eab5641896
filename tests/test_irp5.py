"""
Paystream - IRP5 Certificate Tests

Annual certificates for tax year 2026 (March 2025 - February 2026) and the
IT3(a) reconciliation against the EMP201s of that year.
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from paystream.models import AnnualCertificate, CertificateStatus
from paystream.services.payroll_service import PayrollService
from paystream.services.statutory import (
    AnnualCertificateService,
    StatutoryDeclarationService,
    WithholdingDeclarationService,
    certificate_number,
)
from paystream.utils.error_handling import InvalidPeriodException, InvalidStateException, NotFoundException

from conftest import TEST_PERIOD


TAX_YEAR = 2026


@pytest.fixture
async def two_months(db_session, company, employees, initialized_period, finalize):
    """March and April 2025 finalized for Thandi and Pieter."""
    ids = [employees["thandi"].id, employees["pieter"].id]
    await finalize(db_session, company.id, TEST_PERIOD, ids, pay=True)
    await PayrollService(db_session).initialize_period(company.id, 4, 2025)
    await finalize(db_session, company.id, "2025-04", ids)
    return initialized_period


class TestCertificateGeneration:
    """One draft certificate per employee with finalized payroll."""

    @pytest.mark.asyncio
    async def test_generate(self, db_session, company, employees, two_months):
        service = AnnualCertificateService(db_session)

        result = await service.generate(company.id, TAX_YEAR)

        assert (result.generated, result.updated, result.removed, result.skipped_issued) == (2, 0, 0, 0)
        certificates = {c.employee_id: c for c in await service.list(company.id, TAX_YEAR)}
        assert set(certificates) == {employees["thandi"].id, employees["pieter"].id}

        thandi = certificates[employees["thandi"].id]
        assert thandi.generation_status == CertificateStatus.DRAFT
        assert thandi.months_employed == 2
        assert thandi.code_3601 == Decimal("40000.00")
        assert thandi.code_4101 == Decimal("7238.66")
        assert thandi.code_4141 == Decimal("400.00")
        assert thandi.code_4142 == Decimal("400.00")
        assert thandi.code_4149 == Decimal("400.00")
        assert thandi.total_remuneration == thandi.code_3601
        assert thandi.total_deductions == Decimal("7638.66")
        assert thandi.net_pay == Decimal("32361.34")
        assert thandi.tax_number == "0123456789"

    @pytest.mark.asyncio
    async def test_certificate_numbers_are_unique_and_stable(self, db_session, company, two_months):
        service = AnnualCertificateService(db_session)
        await service.generate(company.id, TAX_YEAR)
        before = sorted(c.certificate_number for c in await service.list(company.id, TAX_YEAR))

        result = await service.generate(company.id, TAX_YEAR)
        after = sorted(c.certificate_number for c in await service.list(company.id, TAX_YEAR))

        assert result.updated == 2 and result.generated == 0
        assert before == after
        assert before == [
            certificate_number(company.id, TAX_YEAR, 1),
            certificate_number(company.id, TAX_YEAR, 2),
        ]
        assert before[0].startswith(f"IRP5-{TAX_YEAR}-{company.id.hex[:8].upper()}-")

    @pytest.mark.asyncio
    async def test_drafts_follow_payroll_changes(self, db_session, company, two_months):
        service = AnnualCertificateService(db_session)
        await service.generate(company.id, TAX_YEAR)
        # April is processed, so it can still be amended
        april, _ = await PayrollService(db_session).list_records(company.id, "2025-04", status="processed")
        thandi_april = next(r for r in april if r.employee_id == two_months["thandi"].employee_id)
        await PayrollService(db_session).amend(company.id, thandi_april.id, {"allowances": Decimal("1000")})

        await service.generate(company.id, TAX_YEAR)
        certificate = next(
            c for c in await service.list(company.id, TAX_YEAR)
            if c.employee_id == two_months["thandi"].employee_id
        )

        assert certificate.code_3601 == Decimal("41000.00")
        assert certificate.code_4101 == Decimal("7498.66")

    @pytest.mark.asyncio
    async def test_records_outside_tax_year_are_ignored(self, db_session, company, employees, initialized_period, finalize):
        await finalize(db_session, company.id, TEST_PERIOD, [employees["thandi"].id])
        await PayrollService(db_session).initialize_period(company.id, 2, 2025)
        await finalize(db_session, company.id, "2025-02", [employees["thandi"].id])
        service = AnnualCertificateService(db_session)

        await service.generate(company.id, TAX_YEAR)
        certificates = await service.list(company.id, TAX_YEAR)

        assert len(certificates) == 1
        assert certificates[0].months_employed == 1
        assert certificates[0].code_3601 == Decimal("20000.00")

    @pytest.mark.asyncio
    async def test_invalid_tax_year(self, db_session, company):
        service = AnnualCertificateService(db_session)

        with pytest.raises(InvalidPeriodException):
            await service.generate(company.id, 1990)


class TestIssueAndReissue:
    """Issued certificates are frozen until explicitly reissued."""

    @pytest.mark.asyncio
    async def test_issue_freezes_certificates(self, db_session, company, two_months):
        statutory = StatutoryDeclarationService(db_session)
        await statutory.generate_annual_certificates(company.id, TAX_YEAR)
        actor = uuid4()

        issued = await statutory.issue_certificates(company.id, TAX_YEAR, actor_id=actor)

        assert issued == 2
        certificates = await statutory.certificates.list(company.id, TAX_YEAR)
        assert all(c.generation_status == CertificateStatus.ISSUED for c in certificates)
        assert all(c.issued_by == actor and c.issued_date is not None for c in certificates)

        result = await statutory.generate_annual_certificates(company.id, TAX_YEAR)
        assert result.skipped_issued == 2
        assert result.updated == 0
        assert await statutory.issue_certificates(company.id, TAX_YEAR) == 0

    @pytest.mark.asyncio
    async def test_reissue_recomputes_issued_certificate(self, db_session, company, two_months):
        service = AnnualCertificateService(db_session)
        await service.generate(company.id, TAX_YEAR)
        await service.issue(company.id, TAX_YEAR)
        thandi_employee = two_months["thandi"].employee_id
        certificate = next(c for c in await service.list(company.id, TAX_YEAR) if c.employee_id == thandi_employee)
        number = certificate.certificate_number

        april, _ = await PayrollService(db_session).list_records(company.id, "2025-04", status="processed")
        thandi_april = next(r for r in april if r.employee_id == thandi_employee)
        await PayrollService(db_session).amend(company.id, thandi_april.id, {"bonuses": Decimal("1000")})

        await service.generate(company.id, TAX_YEAR)
        frozen = await service.get(company.id, certificate.id)
        assert frozen.code_3601 == Decimal("40000.00")

        reissued = await service.reissue(company.id, certificate.id)

        assert reissued.code_3601 == Decimal("41000.00")
        assert reissued.reissue_count == 1
        assert reissued.certificate_number == number
        assert reissued.generation_status == CertificateStatus.ISSUED

    @pytest.mark.asyncio
    async def test_draft_cannot_be_reissued(self, db_session, company, two_months):
        service = AnnualCertificateService(db_session)
        await service.generate(company.id, TAX_YEAR)
        draft = (await service.list(company.id, TAX_YEAR))[0]

        with pytest.raises(InvalidStateException):
            await service.reissue(company.id, draft.id)

    @pytest.mark.asyncio
    async def test_foreign_tenant_cannot_reach_certificates(self, db_session, company, other_company, two_months):
        statutory = StatutoryDeclarationService(db_session)
        company_id, other_id = company.id, other_company.id
        await statutory.generate_annual_certificates(company_id, TAX_YEAR)
        certificate_id = (await statutory.certificates.list(company_id, TAX_YEAR))[0].id

        assert isinstance(await statutory.get_declaration(company_id, certificate_id), AnnualCertificate)
        with pytest.raises(NotFoundException):
            await statutory.certificates.reissue(other_id, certificate_id)
        assert await statutory.certificates.list(other_id, TAX_YEAR) == []
        certificate = await statutory.certificates.get(company_id, certificate_id)
        assert certificate.reissue_count == 0


class TestTaxYearReconciliation:
    """Certificate totals against EMP201 totals."""

    @pytest.mark.asyncio
    async def test_balanced_when_every_month_declared(self, db_session, company, two_months):
        withholding = WithholdingDeclarationService(db_session)
        await withholding.generate(company.id, TEST_PERIOD)
        await withholding.generate(company.id, "2025-04")
        service = AnnualCertificateService(db_session)
        await service.generate(company.id, TAX_YEAR)

        report = await service.reconcile_tax_year(company.id, TAX_YEAR)

        assert report.balanced is True
        assert report.certificate_count == 2
        assert report.declaration_count == 2
        assert report.missing_periods == []
        assert report.certificate_totals["code_4101"] == Decimal("22238.66")
        assert all(value == Decimal("0.00") for value in report.differences.values())

    @pytest.mark.asyncio
    async def test_missing_emp201_is_reported(self, db_session, company, two_months):
        await WithholdingDeclarationService(db_session).generate(company.id, TEST_PERIOD)
        service = AnnualCertificateService(db_session)
        await service.generate(company.id, TAX_YEAR)

        report = await service.reconcile_tax_year(company.id, TAX_YEAR)

        assert report.balanced is False
        assert report.missing_periods == ["2025-04"]
        assert report.differences["code_3601"] == Decimal("50000.00")
