"""
Paystream - Payroll Audit Log Model

Append-only ledger of every mutation to a payroll record. Each entry stores
the full before/after snapshot so the chain can be replayed:
entry[n].old_values == entry[n-1].new_values.

This table should have no UPDATE or DELETE permissions. The ORM guards
below reject both at flush time as well.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import (
    DateTime, ForeignKey, Integer, String, Text, Uuid, JSON,
    Enum as SQLEnum, UniqueConstraint, event,
)
from sqlalchemy.orm import Mapped, mapped_column

from paystream.database import Base
from paystream.models.base import TenantMixin, utcnow


class PayrollAuditAction(str, Enum):
    """Mutations that produce an audit entry."""
    UPDATE = "update"
    PROCESS = "process"
    MARK_PAID = "mark_paid"


class AuditLogImmutableError(RuntimeError):
    """Raised when code tries to modify or delete a written audit entry."""


class PayrollAuditLog(Base, TenantMixin):
    """Immutable audit entry for a payroll record mutation."""

    __tablename__ = "payroll_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    payroll_record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_records.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Record version produced by this mutation",
    )

    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,  # System actions may not have a user
        index=True,
    )
    action: Mapped[PayrollAuditAction] = mapped_column(
        SQLEnum(PayrollAuditAction),
        nullable=False,
    )

    old_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    new_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Before/After snapshots
    old_values: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    new_values: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("payroll_record_id", "sequence", name="uq_payroll_audit_record_sequence"),
    )

    def __repr__(self) -> str:
        return (
            f"<PayrollAuditLog(record={self.payroll_record_id}, seq={self.sequence}, "
            f"action={self.action})>"
        )


@event.listens_for(PayrollAuditLog, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit entry {target.id} is immutable")


@event.listens_for(PayrollAuditLog, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit entry {target.id} cannot be deleted")
