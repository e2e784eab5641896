"""
Paystream - Multi-tenant Payroll Engine

Statutory payroll computation, record lifecycle, audit trail and
EMP201 / UI-19 / IRP5 declaration generation.
"""

__version__ = "0.1.0"
