"""
Paystream - Employee Model

Employee master data is owned by the HR collaborator. The engine only reads
salary, override rates and identity fields from it.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from paystream.models.base import BaseModel, TenantMixin


class Employee(BaseModel, TenantMixin):
    """Employee of a tenant company."""

    __tablename__ = "employees"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Identification
    id_number: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True,
        comment="National identity or passport number",
    )
    tax_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    uif_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Pay structure
    basic_salary: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=18, scale=2),
        nullable=True,
        comment="Monthly basic salary; null is treated as zero",
    )
    custom_tax_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=5, scale=2),
        nullable=True,
        comment="Flat withholding percentage replacing the bracket table",
    )
    pension_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=5, scale=2),
        nullable=True,
        comment="Pension contribution as a percentage of gross",
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def full_name(self) -> str:
        """Get employee's full name."""
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Employee(id={self.id}, name={self.full_name})>"
