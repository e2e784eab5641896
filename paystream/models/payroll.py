"""
Paystream - Payroll Models

One PayrollRecord per employee per period (month, year). The record owns its
lifecycle state and every derived figure:

    gross_pay        = basic_salary + allowances + bonuses + overtime
    total_deductions = tax + uif_employee + pension + medical_aid + other_deductions
    net_pay          = gross_pay - total_deductions

Records move draft -> processed -> paid and are never deleted.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Date, DateTime, Integer, Numeric, String, Text, Uuid,
    Enum as SQLEnum, UniqueConstraint, Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from paystream.models.base import BaseModel, TenantMixin


MONEY = Numeric(precision=18, scale=2)
ZERO = Decimal("0.00")


# ===========================================
# ENUMS
# ===========================================

class PayrollStatus(str, Enum):
    """Payroll record lifecycle state."""
    DRAFT = "draft"
    PROCESSED = "processed"
    PAID = "paid"


class PaymentMethod(str, Enum):
    """How a processed record was paid out."""
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CHECK = "check"
    CRYPTO = "crypto"


# Fields captured in every audit snapshot, in a stable order
SNAPSHOT_FIELDS = (
    "basic_salary",
    "allowances",
    "bonuses",
    "overtime",
    "gross_pay",
    "tax",
    "uif_employee",
    "pension",
    "medical_aid",
    "other_deductions",
    "total_deductions",
    "net_pay",
    "status",
    "payment_method",
    "payment_date",
    "payment_reference",
    "notes",
)


# ===========================================
# PAYROLL RECORD
# ===========================================

class PayrollRecord(BaseModel, TenantMixin):
    """
    Pay computation for one employee and one period.

    `version` is the optimistic-lock counter; SQLAlchemy compares it on every
    UPDATE and raises StaleDataError when another writer got there first.
    """

    __tablename__ = "payroll_records"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    # Earnings inputs
    basic_salary: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    allowances: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    bonuses: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    overtime: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    gross_pay: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)

    # Deduction components
    tax: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    uif_employee: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    pension: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    medical_aid: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    other_deductions: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(MONEY, default=ZERO, nullable=False)

    # Lifecycle
    status: Mapped[PayrollStatus] = mapped_column(
        SQLEnum(PayrollStatus),
        default=PayrollStatus.DRAFT,
        nullable=False,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    # Payment (populated only at paid)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SQLEnum(PaymentMethod), nullable=True,
    )
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "employee_id", "month", "year",
            name="uq_payroll_record_employee_period",
        ),
        Index("ix_payroll_records_tenant_period", "tenant_id", "year", "month"),
    )

    @property
    def period_label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def is_editable(self) -> bool:
        """Draft and processed records accept amendments; paid ones never do."""
        return self.status != PayrollStatus.PAID

    def __repr__(self) -> str:
        return (
            f"<PayrollRecord(id={self.id}, employee_id={self.employee_id}, "
            f"period={self.period_label}, status={self.status})>"
        )
