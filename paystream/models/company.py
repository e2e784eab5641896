"""
Paystream - Company Model

The tenant. Owned by the company-management collaborator; the payroll engine
reads it for employer header data on statutory declarations.
"""

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from paystream.models.base import BaseModel


class Company(BaseModel):
    """Employer / tenant."""

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), default="ZAR", nullable=False)

    # Statutory registration numbers
    paye_reference: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    uif_reference: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    sdl_reference: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name={self.name})>"
