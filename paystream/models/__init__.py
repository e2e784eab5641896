"""
Paystream - SQLAlchemy Models Package

This package contains all database models for the payroll engine.
"""

from paystream.models.base import BaseModel, TimestampMixin, TenantMixin, utcnow
from paystream.models.company import Company
from paystream.models.employee import Employee
from paystream.models.payroll import (
    PayrollRecord,
    PayrollStatus,
    PaymentMethod,
    SNAPSHOT_FIELDS,
)
from paystream.models.audit import (
    PayrollAuditLog,
    PayrollAuditAction,
    AuditLogImmutableError,
)
from paystream.models.declaration import (
    SubmissionStatus,
    DeclarationPaymentStatus,
    CertificateStatus,
    UIFReasonCode,
    WithholdingDeclaration,
    WithholdingLineItem,
    UIFDeclaration,
    UIFLineItem,
    AnnualCertificate,
)

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "TenantMixin",
    "utcnow",
    # Collaborator read models
    "Company",
    "Employee",
    # Payroll
    "PayrollRecord",
    "PayrollStatus",
    "PaymentMethod",
    "SNAPSHOT_FIELDS",
    # Audit
    "PayrollAuditLog",
    "PayrollAuditAction",
    "AuditLogImmutableError",
    # Statutory
    "SubmissionStatus",
    "DeclarationPaymentStatus",
    "CertificateStatus",
    "UIFReasonCode",
    "WithholdingDeclaration",
    "WithholdingLineItem",
    "UIFDeclaration",
    "UIFLineItem",
    "AnnualCertificate",
]
