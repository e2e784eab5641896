"""
Paystream - FastAPI Dependencies

Shared dependencies for tenant resolution, actor identification and
service construction.

Authentication is handled upstream; the gateway forwards the resolved tenant
and acting user as headers:
1. X-Tenant-ID (required on every payroll and statutory route)
2. X-Actor-ID (optional, recorded on audit entries and submissions)
"""

import uuid
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from paystream.database import get_async_session
from paystream.services.payroll_service import PayrollService
from paystream.services.statutory import (
    AnnualCertificateService,
    StatutoryDeclarationService,
    UIFDeclarationService,
    WithholdingDeclarationService,
)
from paystream.services.tenant_scope import require_tenant
from paystream.utils.error_handling import ErrorCode, ValidationException


async def get_current_tenant_id(
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID"),
) -> uuid.UUID:
    """
    Resolve the tenant for the request.

    Raises:
        ValidationException: header missing or not a UUID
    """
    return require_tenant(x_tenant_id)


async def get_current_actor_id(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-ID"),
) -> Optional[uuid.UUID]:
    if not x_actor_id:
        return None
    try:
        return uuid.UUID(x_actor_id)
    except ValueError:
        raise ValidationException(
            f"Invalid actor id: {x_actor_id}",
            field="X-Actor-ID",
            code=ErrorCode.INVALID_FORMAT,
        )


# ===========================================
# SERVICE FACTORIES
# ===========================================

def get_payroll_service(db: AsyncSession = Depends(get_async_session)) -> PayrollService:
    return PayrollService(db)


def get_withholding_service(db: AsyncSession = Depends(get_async_session)) -> WithholdingDeclarationService:
    return WithholdingDeclarationService(db)


def get_uif_declaration_service(db: AsyncSession = Depends(get_async_session)) -> UIFDeclarationService:
    return UIFDeclarationService(db)


def get_certificate_service(db: AsyncSession = Depends(get_async_session)) -> AnnualCertificateService:
    return AnnualCertificateService(db)


def get_statutory_service(db: AsyncSession = Depends(get_async_session)) -> StatutoryDeclarationService:
    return StatutoryDeclarationService(db)
