"""
Paystream - Payroll Router

API endpoints for payroll periods, records and their lifecycle
(draft -> processed -> paid). All business rules live in PayrollService;
handlers only translate schemas.
"""

import uuid
from typing import Optional, List

from fastapi import APIRouter, Depends, status, Query, Path

from paystream.dependencies import (
    get_current_actor_id,
    get_current_tenant_id,
    get_payroll_service,
)
from paystream.services.payroll_service import PayrollAmendment, PayrollService
from paystream.schemas.payroll import (
    InitializePeriodRequest,
    InitializePeriodResponse,
    PayrollAmendmentRequest,
    PayrollRecordResponse,
    PayrollRecordList,
    PeriodSummaryResponse,
    ProcessPayrollRequest,
    ProcessPayrollResponse,
    MarkPaidRequest,
    PayrollAuditEntryResponse,
    AuditChainResponse,
)


router = APIRouter()


# ===========================================
# PERIOD ENDPOINTS
# ===========================================

@router.post(
    "/periods",
    response_model=InitializePeriodResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Initialize a payroll period",
    description="Create draft records for active employees without one. Safe to repeat.",
)
async def initialize_period(
    data: InitializePeriodRequest,
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: PayrollService = Depends(get_payroll_service),
):
    created = await service.initialize_period(tenant_id, data.month, data.year)
    return InitializePeriodResponse(month=data.month, year=data.year, created=created)


@router.get(
    "/periods/{period}/records",
    response_model=PayrollRecordList,
    summary="List records of a period",
)
async def list_records(
    period: str = Path(..., description="YYYY-MM"),
    status_filter: Optional[str] = Query(None, alias="status", description="draft, processed or paid"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: PayrollService = Depends(get_payroll_service),
):
    records, total = await service.list_records(
        tenant_id, period, status=status_filter, page=page, per_page=per_page
    )
    return PayrollRecordList(
        items=[PayrollRecordResponse.model_validate(r) for r in records],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get(
    "/periods/{period}/summary",
    response_model=PeriodSummaryResponse,
    summary="Totals of a period",
)
async def period_summary(
    period: str = Path(..., description="YYYY-MM"),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: PayrollService = Depends(get_payroll_service),
):
    summary = await service.summarize_period(tenant_id, period)
    return PeriodSummaryResponse.model_validate(summary)


@router.post(
    "/process",
    response_model=ProcessPayrollResponse,
    summary="Process draft records",
    description="Move draft records of the given employees to processed. Non-draft records are skipped.",
)
async def process_payroll(
    data: ProcessPayrollRequest,
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_current_actor_id),
    service: PayrollService = Depends(get_payroll_service),
):
    result = await service.process(tenant_id, data.period, data.employee_ids, actor_id=actor_id)
    return ProcessPayrollResponse.model_validate(result)


# ===========================================
# RECORD ENDPOINTS
# ===========================================

@router.get(
    "/records/{record_id}",
    response_model=PayrollRecordResponse,
    summary="Get a payroll record",
)
async def get_record(
    record_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: PayrollService = Depends(get_payroll_service),
):
    record = await service.get_record(tenant_id, record_id)
    return PayrollRecordResponse.model_validate(record)


@router.patch(
    "/records/{record_id}",
    response_model=PayrollRecordResponse,
    summary="Amend a payroll record",
    description="Change allowances, bonuses, overtime, medical aid, other deductions or notes and recompute.",
)
async def amend_record(
    data: PayrollAmendmentRequest,
    record_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_current_actor_id),
    service: PayrollService = Depends(get_payroll_service),
):
    amendment = PayrollAmendment.from_mapping(data.model_dump(exclude_unset=True))
    record = await service.amend(tenant_id, record_id, amendment, actor_id=actor_id)
    return PayrollRecordResponse.model_validate(record)


@router.post(
    "/records/{record_id}/mark-paid",
    response_model=PayrollRecordResponse,
    summary="Mark a processed record as paid",
)
async def mark_paid(
    data: MarkPaidRequest,
    record_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_current_actor_id),
    service: PayrollService = Depends(get_payroll_service),
):
    record = await service.mark_paid(
        tenant_id,
        record_id,
        actor_id=actor_id,
        payment_method=data.payment_method,
        payment_date=data.payment_date,
        payment_reference=data.payment_reference,
    )
    return PayrollRecordResponse.model_validate(record)


@router.get(
    "/employees/{employee_id}/records",
    response_model=PayrollRecordList,
    summary="Payroll history of an employee",
)
async def employee_history(
    employee_id: uuid.UUID = Path(...),
    page: int = Query(1, ge=1),
    per_page: int = Query(24, ge=1, le=500),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: PayrollService = Depends(get_payroll_service),
):
    records, total = await service.employee_history(tenant_id, employee_id, page=page, per_page=per_page)
    return PayrollRecordList(
        items=[PayrollRecordResponse.model_validate(r) for r in records],
        total=total,
        page=page,
        per_page=per_page,
    )


# ===========================================
# AUDIT ENDPOINTS
# ===========================================

@router.get(
    "/records/{record_id}/audit",
    response_model=List[PayrollAuditEntryResponse],
    summary="Audit trail of a record",
)
async def list_audit_entries(
    record_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: PayrollService = Depends(get_payroll_service),
):
    entries = await service.list_audit_entries(tenant_id, record_id)
    return [PayrollAuditEntryResponse.model_validate(e) for e in entries]


@router.get(
    "/records/{record_id}/audit/verify",
    response_model=AuditChainResponse,
    summary="Verify the audit chain of a record",
)
async def verify_audit_chain(
    record_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: PayrollService = Depends(get_payroll_service),
):
    valid = await service.verify_audit_chain(tenant_id, record_id)
    return AuditChainResponse(record_id=record_id, valid=valid)
