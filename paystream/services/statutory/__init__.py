"""
Paystream - Statutory Declarations

EMP201, UI-19 and IRP5 generators plus a single entry point that exposes
them under one service.
"""

import uuid
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from paystream.models.declaration import AnnualCertificate, UIFDeclaration, WithholdingDeclaration
from paystream.services.directory import CompanyDirectory, EmployeeDirectory
from paystream.services.statutory.base import FINALIZED_STATUSES, assert_reconciled
from paystream.services.statutory.emp201_service import (
    WithholdingDashboard,
    WithholdingDeclarationService,
    withholding_liability,
)
from paystream.services.statutory.irp5_service import (
    AnnualCertificateService,
    CertificateRunResult,
    TaxYearReconciliation,
    certificate_number,
)
from paystream.services.statutory.ui19_service import UIFDeclarationService
from paystream.services.tenant_scope import TenantScope
from paystream.utils.error_handling import NotFoundException
from paystream.utils.periods import PayrollPeriod


Declaration = Union[WithholdingDeclaration, UIFDeclaration, AnnualCertificate]


class StatutoryDeclarationService:
    """Facade over the three declaration generators."""

    def __init__(
        self,
        db: AsyncSession,
        employees: Optional[EmployeeDirectory] = None,
        companies: Optional[CompanyDirectory] = None,
    ):
        self.db = db
        self.withholding = WithholdingDeclarationService(db, employees=employees, companies=companies)
        self.uif = UIFDeclarationService(db, employees=employees, companies=companies)
        self.certificates = AnnualCertificateService(db, employees=employees, companies=companies)

    async def generate_withholding_declaration(
        self, tenant_id: uuid.UUID, period: Union[str, PayrollPeriod]
    ) -> WithholdingDeclaration:
        return await self.withholding.generate(tenant_id, period)

    async def generate_uif_declaration(
        self, tenant_id: uuid.UUID, period: Union[str, PayrollPeriod]
    ) -> UIFDeclaration:
        return await self.uif.generate(tenant_id, period)

    async def generate_annual_certificates(self, tenant_id: uuid.UUID, tax_year: int) -> CertificateRunResult:
        return await self.certificates.generate(tenant_id, tax_year)

    async def issue_certificates(
        self, tenant_id: uuid.UUID, tax_year: int, actor_id: Optional[uuid.UUID] = None
    ) -> int:
        return await self.certificates.issue(tenant_id, tax_year, actor_id)

    async def get_declaration(self, tenant_id: uuid.UUID, declaration_id: uuid.UUID) -> Declaration:
        """Look up an EMP201, UI-19 or IRP5 by id within the tenant."""
        scope = TenantScope(self.db, tenant_id)
        for model in (WithholdingDeclaration, UIFDeclaration, AnnualCertificate):
            found = await scope.find(model, model.id == declaration_id)
            if found is not None:
                return found
        raise NotFoundException("Declaration", declaration_id)


__all__ = [
    "FINALIZED_STATUSES",
    "assert_reconciled",
    "WithholdingDashboard",
    "WithholdingDeclarationService",
    "withholding_liability",
    "UIFDeclarationService",
    "AnnualCertificateService",
    "CertificateRunResult",
    "TaxYearReconciliation",
    "certificate_number",
    "StatutoryDeclarationService",
    "Declaration",
]
