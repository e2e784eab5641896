"""
Paystream - Routers Package

FastAPI route handlers.

Routers:
- payroll: Period initialization, record amendment, processing, payment, audit trail
- statutory: EMP201, UI-19 and IRP5 declarations
"""

from paystream.routers import payroll, statutory

__all__ = ["payroll", "statutory"]
