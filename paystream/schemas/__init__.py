"""
Paystream - Schemas Package

Pydantic schemas for request/response validation.
"""
