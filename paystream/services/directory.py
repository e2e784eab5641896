"""
Paystream - Collaborator Directories

Read-only interfaces onto employee and company master data, which are owned
by other parts of the platform. The engine depends on the Protocols; the SQL
implementations read the collaborator tables directly.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from paystream.models.company import Company
from paystream.models.employee import Employee
from paystream.services.tenant_scope import TenantScope, require_tenant
from paystream.utils.error_handling import NotFoundException


# ===========================================
# READ MODELS
# ===========================================

@dataclass(frozen=True)
class EmployeeProfile:
    """What payroll needs to know about an employee."""
    id: uuid.UUID
    tenant_id: uuid.UUID
    full_name: str
    basic_salary: Optional[Decimal]
    custom_tax_rate: Optional[Decimal]
    pension_rate: Optional[Decimal]
    is_active: bool
    id_number: Optional[str] = None
    tax_number: Optional[str] = None
    uif_number: Optional[str] = None

    @classmethod
    def from_model(cls, employee: Employee) -> "EmployeeProfile":
        return cls(
            id=employee.id,
            tenant_id=employee.tenant_id,
            full_name=employee.full_name,
            basic_salary=employee.basic_salary,
            custom_tax_rate=employee.custom_tax_rate,
            pension_rate=employee.pension_rate,
            is_active=employee.is_active,
            id_number=employee.id_number,
            tax_number=employee.tax_number,
            uif_number=employee.uif_number,
        )


@dataclass(frozen=True)
class CompanyProfile:
    """Employer header data for declarations."""
    id: uuid.UUID
    name: str
    currency_code: str
    paye_reference: Optional[str] = None
    uif_reference: Optional[str] = None
    sdl_reference: Optional[str] = None


# ===========================================
# INTERFACES
# ===========================================

class EmployeeDirectory(Protocol):
    async def get_employee(self, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> EmployeeProfile:
        ...

    async def list_active_employees(self, tenant_id: uuid.UUID) -> List[EmployeeProfile]:
        ...

    async def get_employees(
        self, tenant_id: uuid.UUID, employee_ids: Iterable[uuid.UUID]
    ) -> Dict[uuid.UUID, EmployeeProfile]:
        ...


class CompanyDirectory(Protocol):
    async def get_company(self, tenant_id: uuid.UUID) -> CompanyProfile:
        ...


# ===========================================
# SQL IMPLEMENTATIONS
# ===========================================

class SqlEmployeeDirectory:
    """EmployeeDirectory over the shared `employees` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_employee(self, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> EmployeeProfile:
        employee = await TenantScope(self.db, tenant_id).get(Employee, employee_id)
        return EmployeeProfile.from_model(employee)

    async def list_active_employees(self, tenant_id: uuid.UUID) -> List[EmployeeProfile]:
        scope = TenantScope(self.db, tenant_id)
        result = await self.db.execute(
            scope.select(Employee, Employee.is_active.is_(True)).order_by(
                Employee.last_name, Employee.first_name
            )
        )
        return [EmployeeProfile.from_model(e) for e in result.scalars().all()]

    async def get_employees(
        self, tenant_id: uuid.UUID, employee_ids: Iterable[uuid.UUID]
    ) -> Dict[uuid.UUID, EmployeeProfile]:
        """Profiles keyed by id; ids outside the tenant are simply absent."""
        ids = list(set(employee_ids))
        if not ids:
            return {}
        scope = TenantScope(self.db, tenant_id)
        result = await self.db.execute(scope.select(Employee, Employee.id.in_(ids)))
        return {e.id: EmployeeProfile.from_model(e) for e in result.scalars().all()}


class SqlCompanyDirectory:
    """CompanyDirectory over the shared `companies` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_company(self, tenant_id: uuid.UUID) -> CompanyProfile:
        # The company row is the tenant itself, so it is keyed on id
        tenant_id = require_tenant(tenant_id)
        company = await self.db.get(Company, tenant_id)
        if company is None:
            raise NotFoundException("Company", tenant_id)
        return CompanyProfile(
            id=company.id,
            name=company.name,
            currency_code=company.currency_code,
            paye_reference=company.paye_reference,
            uif_reference=company.uif_reference,
            sdl_reference=company.sdl_reference,
        )
