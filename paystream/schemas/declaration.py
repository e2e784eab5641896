"""
Paystream - Statutory Declaration Schemas

Pydantic schemas for EMP201, UI-19 and IRP5 requests and responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID

from pydantic import BaseModel, Field

from paystream.models.declaration import (
    CertificateStatus,
    DeclarationPaymentStatus,
    SubmissionStatus,
)


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class GenerateDeclarationRequest(BaseModel):
    """Generate or regenerate a monthly declaration."""
    period: str = Field(..., description="Payroll period as YYYY-MM", examples=["2025-03"])


class SubmitDeclarationRequest(BaseModel):
    submission_reference: Optional[str] = Field(None, max_length=100)
    acknowledgement: Optional[str] = Field(None, max_length=255)


class RecordPaymentRequest(BaseModel):
    payment_date: date
    payment_reference: str = Field(..., min_length=1, max_length=100)
    payment_amount: Optional[Decimal] = Field(None, description="Defaults to the total liability")


class WithholdingAdjustmentRequest(BaseModel):
    eti_amount: Optional[Decimal] = Field(None, description="Employment Tax Incentive credit")
    notes: Optional[str] = Field(None, max_length=2000)


class UIFLineItemUpdate(BaseModel):
    """Non-monetary corrections to a draft UI-19 line."""
    uif_number: Optional[str] = Field(None, max_length=20)
    days_worked: Optional[int] = None
    reason_code: Optional[str] = Field(None, max_length=2)


class CertificateRunRequest(BaseModel):
    tax_year: int = Field(..., description="Tax year N runs 1 March N-1 to end February N")


# ===========================================
# EMP201 SCHEMAS
# ===========================================

class DeclarationHeader(BaseModel):
    """Fields shared by the monthly declarations."""
    id: UUID
    tenant_id: UUID
    month: int
    year: int
    period_start_date: date
    period_end_date: date
    due_date: Optional[date] = None
    employer_name: str
    employer_reference: Optional[str] = None
    currency_code: str
    employee_count: int
    total_remuneration: Decimal

    submission_status: SubmissionStatus
    submission_date: Optional[datetime] = None
    submission_reference: Optional[str] = None
    acknowledgement: Optional[str] = None
    submitted_by: Optional[UUID] = None

    payment_status: DeclarationPaymentStatus
    current_payment_status: DeclarationPaymentStatus
    payment_date: Optional[date] = None
    payment_reference: Optional[str] = None
    payment_amount: Optional[Decimal] = None

    notes: Optional[str] = None
    generated_at: Optional[datetime] = None
    version: int

    class Config:
        from_attributes = True


class WithholdingLineItemResponse(BaseModel):
    id: UUID
    employee_id: UUID
    payroll_record_id: UUID
    employee_name: str
    id_number: Optional[str] = None
    tax_number: Optional[str] = None
    gross_remuneration: Decimal
    paye: Decimal
    sdl: Decimal
    uif_employee: Decimal
    uif_employer: Decimal
    uif_total: Decimal

    class Config:
        from_attributes = True


class WithholdingDeclarationResponse(DeclarationHeader):
    """EMP201 with its lines."""
    paye_amount: Decimal
    sdl_amount: Decimal
    uif_employee_amount: Decimal
    uif_employer_amount: Decimal
    uif_total_amount: Decimal
    eti_amount: Decimal
    total_liability: Decimal
    line_items: List[WithholdingLineItemResponse] = []


class WithholdingDashboardResponse(BaseModel):
    year: int
    total_declarations: int
    submitted_count: int
    paid_count: int
    overdue_count: int
    total_liability_ytd: Decimal
    total_paid_ytd: Decimal
    total_outstanding: Decimal

    class Config:
        from_attributes = True


class PaymentScheduleEntry(BaseModel):
    month: int
    year: int
    period_name: str
    period_start_date: date
    period_end_date: date
    due_date: date


# ===========================================
# UI-19 SCHEMAS
# ===========================================

class UIFLineItemResponse(BaseModel):
    id: UUID
    declaration_id: UUID
    employee_id: UUID
    payroll_record_id: UUID
    employee_name: str
    id_number: Optional[str] = None
    uif_number: Optional[str] = None
    gross_remuneration: Decimal
    uif_employee: Decimal
    uif_employer: Decimal
    total_uif: Decimal
    days_worked: int
    reason_code: str

    class Config:
        from_attributes = True


class UIFDeclarationResponse(DeclarationHeader):
    """UI-19 with its lines."""
    total_uif_employee: Decimal
    total_uif_employer: Decimal
    total_uif: Decimal
    line_items: List[UIFLineItemResponse] = []


# ===========================================
# IRP5 SCHEMAS
# ===========================================

class AnnualCertificateResponse(BaseModel):
    """IRP5 certificate."""
    id: UUID
    tenant_id: UUID
    employee_id: UUID
    tax_year: int
    certificate_number: str
    employee_name: str
    id_number: Optional[str] = None
    tax_number: Optional[str] = None

    code_3601: Decimal
    code_4101: Decimal
    code_4141: Decimal
    code_4142: Decimal
    code_4149: Decimal

    total_remuneration: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    months_employed: int

    generation_status: CertificateStatus
    generated_at: Optional[datetime] = None
    issued_date: Optional[datetime] = None
    issued_by: Optional[UUID] = None
    reissue_count: int
    version: int

    class Config:
        from_attributes = True


class CertificateRunResponse(BaseModel):
    generated: int
    updated: int
    removed: int
    skipped_issued: int

    class Config:
        from_attributes = True


class CertificateIssueResponse(BaseModel):
    tax_year: int
    issued: int


class TaxYearReconciliationResponse(BaseModel):
    """IT3(a) reconciliation report."""
    tax_year: int
    certificate_count: int
    declaration_count: int
    certificate_totals: Dict[str, Decimal]
    declaration_totals: Dict[str, Decimal]
    differences: Dict[str, Decimal]
    missing_periods: List[str]
    balanced: bool

    class Config:
        from_attributes = True


class VerificationResponse(BaseModel):
    declaration_id: UUID
    reconciled: bool
