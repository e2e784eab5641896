"""
Paystream - IRP5 Service

Annual employee tax certificates (IRP5) for a tax year, and the employer
reconciliation (IT3(a)) of certificate totals against the monthly EMP201
declarations of the same tax year.

Source codes per certificate:
- 3601: gross remuneration
- 4101: PAYE withheld
- 4141: UIF employee contribution
- 4142: UIF employer contribution
- 4149: SDL

Draft certificates are refreshed on every generation run and keep their
numbers. Issued certificates are frozen; only an explicit reissue recomputes
them.
"""

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from paystream.models.base import utcnow
from paystream.models.declaration import (
    AnnualCertificate,
    CertificateStatus,
    WithholdingDeclaration,
)
from paystream.models.payroll import PayrollRecord
from paystream.services.directory import EmployeeProfile
from paystream.services.statutory.base import (
    ZERO,
    StatutoryGeneratorBase,
    assert_reconciled,
    column_sum,
)
from paystream.services.tenant_scope import TenantScope, require_tenant
from paystream.services.transactions import run_in_transaction
from paystream.utils.error_handling import InvalidStateException
from paystream.utils.periods import tax_year_periods, validate_tax_year


logger = logging.getLogger(__name__)

DOCUMENT_TYPE = "IRP5"

# IT3(a) comparison: certificate code -> EMP201 total
RECONCILIATION_COLUMNS = OrderedDict([
    ("code_3601", "total_remuneration"),
    ("code_4101", "paye_amount"),
    ("code_4141", "uif_employee_amount"),
    ("code_4142", "uif_employer_amount"),
    ("code_4149", "sdl_amount"),
])


def certificate_number(tenant_id: uuid.UUID, tax_year: int, sequence: int) -> str:
    """e.g. IRP5-2025-1A2B3C4D-00001"""
    return f"IRP5-{tax_year}-{tenant_id.hex[:8].upper()}-{sequence:05d}"


def _number_sequence(number: str) -> int:
    try:
        return int(number.rsplit("-", 1)[-1])
    except ValueError:
        return 0


@dataclass
class CertificateRunResult:
    """Outcome of one generation run."""
    generated: int = 0
    updated: int = 0
    removed: int = 0
    skipped_issued: int = 0


@dataclass
class TaxYearReconciliation:
    """IT3(a) comparison of certificate totals with EMP201 totals."""
    tax_year: int
    certificate_count: int
    declaration_count: int
    certificate_totals: Dict[str, Decimal]
    declaration_totals: Dict[str, Decimal]
    differences: Dict[str, Decimal]
    missing_periods: List[str] = field(default_factory=list)

    @property
    def balanced(self) -> bool:
        return not self.missing_periods and all(v == ZERO for v in self.differences.values())


class AnnualCertificateService(StatutoryGeneratorBase):
    """Service for IRP5 certificates and the IT3(a) reconciliation."""

    def _apply_figures(
        self,
        certificate: AnnualCertificate,
        records: List[PayrollRecord],
        profile: Optional[EmployeeProfile],
    ) -> None:
        """Recompute every figure of a certificate from its payroll records."""
        gross = column_sum(records, "gross_pay")
        certificate.employee_name = self._employee_name(profile, certificate.employee_id)
        certificate.id_number = profile.id_number if profile else None
        certificate.tax_number = profile.tax_number if profile else None
        certificate.code_3601 = gross
        certificate.code_4101 = column_sum(records, "tax")
        certificate.code_4141 = column_sum(records, "uif_employee")
        certificate.code_4142 = sum(
            (self.uif.employer_contribution(r.gross_pay) for r in records), ZERO
        )
        certificate.code_4149 = sum((self.sdl.levy(r.gross_pay) for r in records), ZERO)
        certificate.total_remuneration = gross
        certificate.total_deductions = column_sum(records, "total_deductions")
        certificate.net_pay = column_sum(records, "net_pay")
        certificate.months_employed = len({(r.year, r.month) for r in records})
        certificate.generated_at = utcnow()

    @staticmethod
    def verify_certificate(certificate: AnnualCertificate) -> None:
        """Raise ReconciliationException if the derived fields disagree."""
        assert_reconciled(
            DOCUMENT_TYPE,
            certificate,
            [],
            {},
            derived={
                "total_remuneration": certificate.code_3601,
                "net_pay": certificate.total_remuneration - certificate.total_deductions,
            },
            employee_count_field=None,
        )

    @staticmethod
    def _group_by_employee(records: List[PayrollRecord]) -> Dict[uuid.UUID, List[PayrollRecord]]:
        grouped: Dict[uuid.UUID, List[PayrollRecord]] = OrderedDict()
        for record in records:
            grouped.setdefault(record.employee_id, []).append(record)
        return grouped

    async def generate(self, tenant_id: uuid.UUID, tax_year: int) -> CertificateRunResult:
        """
        Create or refresh the draft certificates of a tax year.

        One certificate per employee with finalized payroll in the tax year.
        Drafts whose employee no longer has finalized payroll are removed.
        """
        validate_tax_year(tax_year)
        tenant_id = require_tenant(tenant_id)
        scope = TenantScope(self.db, tenant_id)

        async def build() -> CertificateRunResult:
            result = CertificateRunResult()
            records = await self._finalized_records(scope, tax_year_periods(tax_year))
            by_employee = self._group_by_employee(records)
            profiles = await self._profiles(tenant_id, records)

            existing_rows = await self.db.execute(
                scope.select(AnnualCertificate, AnnualCertificate.tax_year == tax_year)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            existing = {c.employee_id: c for c in existing_rows.scalars().all()}

            numbers = await self.db.execute(
                scope.filter(
                    select(AnnualCertificate.certificate_number).where(AnnualCertificate.tax_year == tax_year),
                    AnnualCertificate,
                )
            )
            next_sequence = max((_number_sequence(n) for n in numbers.scalars().all()), default=0) + 1

            for employee_id, employee_records in by_employee.items():
                certificate = existing.get(employee_id)
                if certificate is not None and certificate.is_issued:
                    result.skipped_issued += 1
                    continue
                if certificate is None:
                    certificate = AnnualCertificate(
                        tenant_id=tenant_id,
                        employee_id=employee_id,
                        tax_year=tax_year,
                        certificate_number=certificate_number(tenant_id, tax_year, next_sequence),
                        generation_status=CertificateStatus.DRAFT,
                        reissue_count=0,
                    )
                    next_sequence += 1
                    self.db.add(certificate)
                    result.generated += 1
                else:
                    result.updated += 1
                self._apply_figures(certificate, employee_records, profiles.get(employee_id))
                self.verify_certificate(certificate)

            for employee_id, certificate in existing.items():
                if employee_id not in by_employee and not certificate.is_issued:
                    await self.db.delete(certificate)
                    result.removed += 1

            await self.db.flush()
            return result

        result = await run_in_transaction(
            self.db,
            build,
            f"IRP5 generation for tax year {tax_year}",
            retry_on=(StaleDataError, IntegrityError),
        )
        logger.info(
            f"IRP5 run for tenant {tenant_id}, tax year {tax_year}: "
            f"{result.generated} generated, {result.updated} updated, "
            f"{result.removed} removed, {result.skipped_issued} issued skipped"
        )
        return result

    async def issue(
        self,
        tenant_id: uuid.UUID,
        tax_year: int,
        actor_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Issue every draft certificate of the tax year. Returns the number issued."""
        validate_tax_year(tax_year)
        scope = TenantScope(self.db, tenant_id)

        async def apply() -> int:
            rows = await self.db.execute(
                scope.select(
                    AnnualCertificate,
                    AnnualCertificate.tax_year == tax_year,
                    AnnualCertificate.generation_status == CertificateStatus.DRAFT,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            drafts = list(rows.scalars().all())
            issued_at = utcnow()
            for certificate in drafts:
                self.verify_certificate(certificate)
                certificate.generation_status = CertificateStatus.ISSUED
                certificate.issued_date = issued_at
                certificate.issued_by = actor_id
            await self.db.flush()
            return len(drafts)

        count = await run_in_transaction(self.db, apply, f"IRP5 issue for tax year {tax_year}")
        logger.info(f"Issued {count} IRP5 certificates for tenant {scope.tenant_id}, tax year {tax_year}")
        return count

    async def reissue(
        self,
        tenant_id: uuid.UUID,
        certificate_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> AnnualCertificate:
        """
        Recompute an issued certificate from current payroll and issue it again.

        The certificate keeps its number; no prior version is retained.
        """
        scope = TenantScope(self.db, tenant_id)

        async def apply() -> AnnualCertificate:
            certificate = await scope.get(
                AnnualCertificate, certificate_id, for_update=True, resource_type="Certificate"
            )
            if not certificate.is_issued:
                raise InvalidStateException(
                    resource_type="certificate",
                    current_state=certificate.generation_status.value,
                    operation="reissue",
                    message="Only issued certificates can be reissued; regenerate drafts instead",
                )
            records = await self._finalized_records(
                scope, tax_year_periods(certificate.tax_year), employee_id=certificate.employee_id
            )
            profiles = await self.employees.get_employees(scope.tenant_id, [certificate.employee_id])
            self._apply_figures(certificate, records, profiles.get(certificate.employee_id))
            self.verify_certificate(certificate)
            certificate.reissue_count += 1
            certificate.issued_date = utcnow()
            certificate.issued_by = actor_id
            await self.db.flush()
            return certificate

        certificate = await run_in_transaction(self.db, apply, f"IRP5 reissue {certificate_id}")
        logger.info(
            f"Reissued IRP5 {certificate.certificate_number} "
            f"(reissue {certificate.reissue_count}) for tenant {certificate.tenant_id}"
        )
        return certificate

    async def get(self, tenant_id: uuid.UUID, certificate_id: uuid.UUID) -> AnnualCertificate:
        return await TenantScope(self.db, tenant_id).get(
            AnnualCertificate, certificate_id, resource_type="Certificate"
        )

    async def list(self, tenant_id: uuid.UUID, tax_year: int) -> List[AnnualCertificate]:
        """Certificates of a tax year ordered by certificate number."""
        scope = TenantScope(self.db, tenant_id)
        result = await self.db.execute(
            scope.select(AnnualCertificate, AnnualCertificate.tax_year == tax_year).order_by(
                AnnualCertificate.certificate_number
            )
        )
        return list(result.scalars().all())

    async def reconcile_tax_year(self, tenant_id: uuid.UUID, tax_year: int) -> TaxYearReconciliation:
        """
        IT3(a) reconciliation.

        Sums the certificate source codes and compares them with the EMP201
        totals of the twelve tax-year months. Months that carry finalized
        payroll but no EMP201 are reported as missing.
        """
        validate_tax_year(tax_year)
        scope = TenantScope(self.db, tenant_id)
        periods = tax_year_periods(tax_year)

        certificates = await self.list(scope.tenant_id, tax_year)

        # Only EMP201s inside the tax year; a calendar-year filter would overlap two tax years
        declarations: List[WithholdingDeclaration] = []
        for year in sorted({y for y, _ in periods}):
            months = [m for y, m in periods if y == year]
            rows = await self.db.execute(
                scope.select(
                    WithholdingDeclaration,
                    WithholdingDeclaration.year == year,
                    WithholdingDeclaration.month.in_(months),
                )
            )
            declarations.extend(rows.scalars().all())

        certificate_totals = {
            code: column_sum(certificates, code) for code in RECONCILIATION_COLUMNS
        }
        declaration_totals = {
            code: column_sum(declarations, total) for code, total in RECONCILIATION_COLUMNS.items()
        }
        differences = {
            code: certificate_totals[code] - declaration_totals[code] for code in RECONCILIATION_COLUMNS
        }

        declared: set = {(d.year, d.month) for d in declarations}
        records = await self._finalized_records(scope, periods)
        paid_periods: List[Tuple[int, int]] = sorted({(r.year, r.month) for r in records})
        missing = [f"{y:04d}-{m:02d}" for y, m in paid_periods if (y, m) not in declared]

        report = TaxYearReconciliation(
            tax_year=tax_year,
            certificate_count=len(certificates),
            declaration_count=len(declarations),
            certificate_totals=certificate_totals,
            declaration_totals=declaration_totals,
            differences=differences,
            missing_periods=missing,
        )
        if not report.balanced:
            logger.warning(
                f"IT3(a) for tenant {scope.tenant_id}, tax year {tax_year} does not balance: "
                f"differences={ {k: str(v) for k, v in differences.items()} }, missing={missing}"
            )
        return report
