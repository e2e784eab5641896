"""
Paystream - Statutory Declaration Models

South African employer filings derived from payroll records:
- EMP201: monthly employer declaration (PAYE + SDL + UIF - ETI)
- UI-19: monthly UIF contributor declaration
- IRP5: annual employee tax certificate (one per employee per tax year)

Every declaration total equals the column sum of its line items. Line items
reference employees and payroll records by id only.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid,
    Enum as SQLEnum, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paystream.models.base import BaseModel, TenantMixin


MONEY = Numeric(precision=18, scale=2)
ZERO = Decimal("0.00")


# ===========================================
# ENUMS
# ===========================================

class SubmissionStatus(str, Enum):
    """Filing status of a periodic declaration."""
    DRAFT = "draft"
    SUBMITTED = "submitted"


class DeclarationPaymentStatus(str, Enum):
    """Payment status; OVERDUE is derived at read time, never stored."""
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class CertificateStatus(str, Enum):
    """Annual certificate status."""
    DRAFT = "draft"
    ISSUED = "issued"


class UIFReasonCode(str, Enum):
    """UI-19 reason codes for the contributor's status at period end."""
    STILL_EMPLOYED = "01"
    DECEASED = "02"
    RETIRED = "03"
    DISMISSED = "04"
    CONTRACT_EXPIRED = "05"
    RESIGNED = "06"
    BUSINESS_CLOSED = "08"
    RETRENCHED = "11"


# ===========================================
# SHARED DECLARATION SHELL
# ===========================================

class PeriodicDeclarationMixin(TenantMixin):
    """Columns shared by the monthly EMP201 and UI-19 declarations."""

    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    period_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Employer header (snapshot at generation)
    employer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    employer_reference: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)

    employee_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_remuneration: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)

    # Submission
    submission_status: Mapped[SubmissionStatus] = mapped_column(
        SQLEnum(SubmissionStatus),
        default=SubmissionStatus.DRAFT,
        nullable=False,
    )
    submission_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    submission_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    acknowledgement: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    submitted_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    # Payment
    payment_status: Mapped[DeclarationPaymentStatus] = mapped_column(
        SQLEnum(DeclarationPaymentStatus),
        default=DeclarationPaymentStatus.PENDING,
        nullable=False,
    )
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def period_label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def is_submitted(self) -> bool:
        return self.submission_status == SubmissionStatus.SUBMITTED

    def computed_payment_status(self, today: date) -> DeclarationPaymentStatus:
        """Pending declarations past their due date read as overdue."""
        if self.payment_status == DeclarationPaymentStatus.PAID:
            return DeclarationPaymentStatus.PAID
        if self.due_date is not None and self.due_date < today:
            return DeclarationPaymentStatus.OVERDUE
        return DeclarationPaymentStatus.PENDING

    @property
    def current_payment_status(self) -> DeclarationPaymentStatus:
        return self.computed_payment_status(date.today())


# ===========================================
# EMP201 - MONTHLY EMPLOYER DECLARATION
# ===========================================

class WithholdingDeclaration(BaseModel, PeriodicDeclarationMixin):
    """
    EMP201 monthly employer declaration.

    total_liability = paye + sdl + uif_total - eti
    """

    __tablename__ = "withholding_declarations"

    paye_amount: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    sdl_amount: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    uif_employee_amount: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    uif_employer_amount: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    uif_total_amount: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    eti_amount: Mapped[Decimal] = mapped_column(
        MONEY, default=ZERO, nullable=False,
        comment="Employment tax incentive credit",
    )
    total_liability: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    line_items: Mapped[List["WithholdingLineItem"]] = relationship(
        "WithholdingLineItem",
        back_populates="declaration",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="WithholdingLineItem.employee_name",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("tenant_id", "year", "month", name="uq_withholding_declaration_period"),
    )

    def __repr__(self) -> str:
        return f"<WithholdingDeclaration(id={self.id}, period={self.period_label})>"


class WithholdingLineItem(BaseModel, TenantMixin):
    """Per-employee row of an EMP201 declaration."""

    __tablename__ = "withholding_line_items"

    declaration_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("withholding_declarations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    payroll_record_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)

    employee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    id_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    tax_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    gross_remuneration: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    paye: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    sdl: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    uif_employee: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    uif_employer: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    uif_total: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)

    declaration: Mapped["WithholdingDeclaration"] = relationship(
        "WithholdingDeclaration",
        back_populates="line_items",
    )


# ===========================================
# UI-19 - UIF DECLARATION
# ===========================================

class UIFDeclaration(BaseModel, PeriodicDeclarationMixin):
    """UI-19 monthly UIF declaration."""

    __tablename__ = "uif_declarations"

    total_uif_employee: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    total_uif_employer: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    total_uif: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    line_items: Mapped[List["UIFLineItem"]] = relationship(
        "UIFLineItem",
        back_populates="declaration",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="UIFLineItem.employee_name",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("tenant_id", "year", "month", name="uq_uif_declaration_period"),
    )

    def __repr__(self) -> str:
        return f"<UIFDeclaration(id={self.id}, period={self.period_label})>"


class UIFLineItem(BaseModel, TenantMixin):
    """Per-employee row of a UI-19 declaration."""

    __tablename__ = "uif_line_items"

    declaration_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("uif_declarations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    payroll_record_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)

    employee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    id_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    uif_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    gross_remuneration: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    uif_employee: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    uif_employer: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    total_uif: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)

    days_worked: Mapped[int] = mapped_column(Integer, nullable=False)
    reason_code: Mapped[str] = mapped_column(
        String(2), default=UIFReasonCode.STILL_EMPLOYED.value, nullable=False,
    )

    declaration: Mapped["UIFDeclaration"] = relationship(
        "UIFDeclaration",
        back_populates="line_items",
    )


# ===========================================
# IRP5 - ANNUAL EMPLOYEE TAX CERTIFICATE
# ===========================================

class AnnualCertificate(BaseModel, TenantMixin):
    """
    IRP5 certificate for one employee and one tax year.

    Source codes:
    - 3601: taxable remuneration
    - 4101: PAYE withheld
    - 4141: UIF employee contribution
    - 4142: UIF employer contribution
    - 4149: SDL

    Figures are frozen once issued; only an explicit reissue recomputes them.
    """

    __tablename__ = "annual_certificates"

    employee_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    tax_year: Mapped[int] = mapped_column(
        Integer, nullable=False,
        comment="Tax year N runs 1 March N-1 to end February N",
    )
    certificate_number: Mapped[str] = mapped_column(String(40), nullable=False)

    # Employee identity (snapshot)
    employee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    id_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    tax_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    code_3601: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    code_4101: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    code_4141: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    code_4142: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    code_4149: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)

    total_remuneration: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    months_employed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    generation_status: Mapped[CertificateStatus] = mapped_column(
        SQLEnum(CertificateStatus),
        default=CertificateStatus.DRAFT,
        nullable=False,
    )
    generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    issued_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    issued_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    reissue_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("tenant_id", "employee_id", "tax_year", name="uq_annual_certificate_employee_year"),
        UniqueConstraint("tenant_id", "certificate_number", name="uq_annual_certificate_number"),
    )

    @property
    def is_issued(self) -> bool:
        return self.generation_status == CertificateStatus.ISSUED

    def __repr__(self) -> str:
        return f"<AnnualCertificate(number={self.certificate_number}, tax_year={self.tax_year})>"
