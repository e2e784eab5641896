"""
Paystream - Payroll Audit Trail Service

Append-only ledger of payroll record mutations. Entries are written inside
the caller's transaction (this service never commits), so a mutation and its
audit entry are applied or rolled back together.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from paystream.models.audit import PayrollAuditLog, PayrollAuditAction
from paystream.models.payroll import PayrollRecord, SNAPSHOT_FIELDS
from paystream.services.tax_calculators import to_money
from paystream.services.tenant_scope import TenantScope


def _snapshot_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(to_money(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    return value


def snapshot_record(record: PayrollRecord) -> Dict[str, Any]:
    """
    Canonical JSON-safe snapshot of a record's financial state.

    Amounts are rendered as two-decimal strings so snapshots taken before and
    after a database round trip compare equal.
    """
    return {name: _snapshot_value(getattr(record, name)) for name in SNAPSHOT_FIELDS}


class PayrollAuditService:
    """Service for the payroll audit trail."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def append(
        self,
        record: PayrollRecord,
        action: PayrollAuditAction,
        sequence: int,
        old_values: Dict[str, Any],
        new_values: Dict[str, Any],
        actor_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> PayrollAuditLog:
        """
        Stage one audit entry in the current transaction.

        Args:
            record: The mutated record
            action: Mutation kind
            sequence: Record version produced by the mutation
            old_values: Snapshot before the mutation
            new_values: Snapshot after the mutation
            actor_id: Who performed it
            notes: Free text
        """
        entry = PayrollAuditLog(
            tenant_id=record.tenant_id,
            payroll_record_id=record.id,
            sequence=sequence,
            actor_id=actor_id,
            action=action,
            old_status=old_values.get("status"),
            new_status=new_values.get("status"),
            old_values=old_values,
            new_values=new_values,
            notes=notes,
        )
        self.db.add(entry)
        return entry

    async def list_entries(
        self,
        tenant_id: uuid.UUID,
        record_id: uuid.UUID,
    ) -> List[PayrollAuditLog]:
        """Entries for one record in sequence order."""
        scope = TenantScope(self.db, tenant_id)
        # Unknown or foreign record -> NotFound, never an empty list
        await scope.get(PayrollRecord, record_id, resource_type="PayrollRecord")
        result = await self.db.execute(
            scope.select(
                PayrollAuditLog,
                PayrollAuditLog.payroll_record_id == record_id,
            ).order_by(PayrollAuditLog.sequence)
        )
        return list(result.scalars().all())

    async def verify_chain(
        self,
        tenant_id: uuid.UUID,
        record_id: uuid.UUID,
        current_snapshot: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Check the chain is unbroken.

        Sequences must be consecutive and each entry's old snapshot must equal
        the previous entry's new snapshot. With current_snapshot, the last
        entry's new snapshot must also match the live record.
        """
        entries = await self.list_entries(tenant_id, record_id)
        for previous, entry in zip(entries, entries[1:]):
            if entry.sequence != previous.sequence + 1:
                return False
            if entry.old_values != previous.new_values:
                return False
        if current_snapshot is not None and entries:
            return entries[-1].new_values == current_snapshot
        return True
