"""
Paystream - Payroll Schemas

Pydantic schemas for payroll record requests and responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from paystream.models.audit import PayrollAuditAction
from paystream.models.payroll import PaymentMethod, PayrollStatus


# ===========================================
# ENUMS AS LITERALS
# ===========================================

PaymentMethodEnum = Literal["bank_transfer", "cash", "check", "crypto"]


# ===========================================
# PERIOD INITIALIZATION
# ===========================================

class InitializePeriodRequest(BaseModel):
    """Create draft records for every active employee."""
    month: int = Field(..., ge=1, le=12)
    year: int


class InitializePeriodResponse(BaseModel):
    month: int
    year: int
    created: int


# ===========================================
# RECORD SCHEMAS
# ===========================================

class PayrollAmendmentRequest(BaseModel):
    """
    Editable inputs of a draft or processed record.

    Omitted fields are left unchanged; at least one must be provided.
    """
    allowances: Optional[Decimal] = None
    bonuses: Optional[Decimal] = None
    overtime: Optional[Decimal] = None
    medical_aid: Optional[Decimal] = None
    other_deductions: Optional[Decimal] = None
    notes: Optional[str] = Field(None, max_length=2000)

    class Config:
        extra = "forbid"


class PayrollRecordResponse(BaseModel):
    """Payroll record response."""
    id: UUID
    tenant_id: UUID
    employee_id: UUID
    month: int
    year: int

    basic_salary: Decimal
    allowances: Decimal
    bonuses: Decimal
    overtime: Decimal
    gross_pay: Decimal

    tax: Decimal
    uif_employee: Decimal
    pension: Decimal
    medical_aid: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    status: PayrollStatus
    processed_at: Optional[datetime] = None
    processed_by: Optional[UUID] = None
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[date] = None
    payment_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    paid_by: Optional[UUID] = None
    notes: Optional[str] = None

    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PayrollRecordList(BaseModel):
    items: List[PayrollRecordResponse]
    total: int
    page: int
    per_page: int


class PeriodSummaryResponse(BaseModel):
    """Per-period totals."""
    period: str
    record_count: int
    status_counts: Dict[str, int]
    total_gross: Decimal
    total_tax: Decimal
    total_uif_employee: Decimal
    total_deductions: Decimal
    total_net: Decimal

    class Config:
        from_attributes = True


# ===========================================
# LIFECYCLE SCHEMAS
# ===========================================

class ProcessPayrollRequest(BaseModel):
    """Move draft records of a period to processed."""
    period: str = Field(..., description="Payroll period as YYYY-MM", examples=["2025-03"])
    employee_ids: List[UUID] = Field(..., description="Employees whose draft records are processed")


class ProcessPayrollResponse(BaseModel):
    count: int
    record_ids: List[UUID]
    employee_ids: List[UUID]

    class Config:
        from_attributes = True


class MarkPaidRequest(BaseModel):
    """Record payment of a processed record."""
    payment_method: PaymentMethodEnum = "bank_transfer"
    payment_date: Optional[date] = None
    payment_reference: Optional[str] = Field(None, max_length=100)


# ===========================================
# AUDIT SCHEMAS
# ===========================================

class PayrollAuditEntryResponse(BaseModel):
    """One immutable audit entry."""
    id: UUID
    payroll_record_id: UUID
    sequence: int
    actor_id: Optional[UUID] = None
    action: PayrollAuditAction
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AuditChainResponse(BaseModel):
    record_id: UUID
    valid: bool
