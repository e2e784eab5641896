"""
Paystream - Tenant Boundary

Single access layer for tenant-owned tables. Every query built here carries
`Model.tenant_id == tenant_id`; services never write that filter by hand.

A record that exists under another tenant and a record that does not exist
at all raise the same NotFoundException.
"""

import uuid
from typing import Any, Optional, Type, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from paystream.utils.error_handling import ErrorCode, NotFoundException, ValidationException


ModelT = TypeVar("ModelT")


def require_tenant(tenant_id: Optional[uuid.UUID]) -> uuid.UUID:
    """Reject a missing or malformed tenant id."""
    if tenant_id is None:
        raise ValidationException(
            "Tenant id is required",
            field="tenant_id",
            code=ErrorCode.MISSING_FIELD,
        )
    if isinstance(tenant_id, uuid.UUID):
        return tenant_id
    try:
        return uuid.UUID(str(tenant_id))
    except ValueError:
        raise ValidationException(
            f"Invalid tenant id: {tenant_id}",
            field="tenant_id",
            code=ErrorCode.INVALID_FORMAT,
        )


class TenantScope:
    """Tenant-bound query builder over one session."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID):
        self.db = db
        self.tenant_id = require_tenant(tenant_id)

    @staticmethod
    def _tenant_column(model: Type[Any]):
        column = getattr(model, "tenant_id", None)
        if column is None:
            raise TypeError(f"{model.__name__} is not a tenant-owned model")
        return column

    def select(self, model: Type[ModelT], *criteria) -> Select:
        """SELECT over `model` restricted to this tenant."""
        return select(model).where(self._tenant_column(model) == self.tenant_id, *criteria)

    def filter(self, stmt: Select, model: Type[Any]) -> Select:
        """Restrict an existing statement (joins, aggregates) to this tenant."""
        return stmt.where(self._tenant_column(model) == self.tenant_id)

    async def get(
        self,
        model: Type[ModelT],
        object_id: uuid.UUID,
        for_update: bool = False,
        resource_type: Optional[str] = None,
    ) -> ModelT:
        """
        Load one row by id within the tenant.

        for_update takes a row lock (SELECT ... FOR UPDATE; SQLite renders
        no lock clause) and refreshes any identity-map copy from the database.

        Raises:
            NotFoundException: absent, or owned by another tenant.
        """
        stmt = self.select(model, model.id == object_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        obj = result.scalar_one_or_none()
        if obj is None:
            raise NotFoundException(resource_type or model.__name__, object_id)
        return obj

    async def find(self, model: Type[ModelT], *criteria) -> Optional[ModelT]:
        """First row matching criteria within the tenant, or None."""
        result = await self.db.execute(self.select(model, *criteria).limit(1))
        return result.scalar_one_or_none()
