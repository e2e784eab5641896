"""
Paystream - Statutory Router

API endpoints for the statutory declarations:
- EMP201 monthly employer declaration
- UI-19 monthly UIF declaration
- IRP5 annual employee certificates and the IT3(a) reconciliation
"""

import uuid
from typing import Optional, List

from fastapi import APIRouter, Depends, status, Query, Path

from paystream.dependencies import (
    get_certificate_service,
    get_current_actor_id,
    get_current_tenant_id,
    get_statutory_service,
    get_uif_declaration_service,
    get_withholding_service,
)
from paystream.services.statutory import (
    AnnualCertificateService,
    StatutoryDeclarationService,
    UIFDeclarationService,
    WithholdingDeclarationService,
)
from paystream.models.declaration import AnnualCertificate, UIFDeclaration
from paystream.schemas.declaration import (
    GenerateDeclarationRequest,
    SubmitDeclarationRequest,
    RecordPaymentRequest,
    WithholdingAdjustmentRequest,
    UIFLineItemUpdate,
    CertificateRunRequest,
    WithholdingDeclarationResponse,
    WithholdingDashboardResponse,
    PaymentScheduleEntry,
    UIFDeclarationResponse,
    UIFLineItemResponse,
    AnnualCertificateResponse,
    CertificateRunResponse,
    CertificateIssueResponse,
    TaxYearReconciliationResponse,
    VerificationResponse,
)


router = APIRouter()


def _declaration_response(declaration):
    """Response schema matching the declaration kind."""
    if isinstance(declaration, AnnualCertificate):
        return AnnualCertificateResponse.model_validate(declaration)
    if isinstance(declaration, UIFDeclaration):
        return UIFDeclarationResponse.model_validate(declaration)
    return WithholdingDeclarationResponse.model_validate(declaration)


# ===========================================
# EMP201 ENDPOINTS
# ===========================================

@router.post(
    "/emp201",
    response_model=WithholdingDeclarationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate an EMP201",
    description="Generate or regenerate the EMP201 of a period from finalized payroll records.",
)
async def generate_emp201(
    data: GenerateDeclarationRequest,
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: WithholdingDeclarationService = Depends(get_withholding_service),
):
    declaration = await service.generate(tenant_id, data.period)
    return WithholdingDeclarationResponse.model_validate(declaration)


@router.get(
    "/emp201",
    response_model=List[WithholdingDeclarationResponse],
    summary="List EMP201 declarations of a year",
)
async def list_emp201(
    year: int = Query(..., description="Calendar year"),
    submission_status: Optional[str] = Query(None, description="draft or submitted"),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: WithholdingDeclarationService = Depends(get_withholding_service),
):
    declarations = await service.list(tenant_id, year, submission_status=submission_status)
    return [WithholdingDeclarationResponse.model_validate(d) for d in declarations]


@router.get(
    "/emp201/dashboard",
    response_model=WithholdingDashboardResponse,
    summary="EMP201 compliance dashboard",
)
async def emp201_dashboard(
    year: int = Query(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: WithholdingDeclarationService = Depends(get_withholding_service),
):
    dashboard = await service.dashboard(tenant_id, year)
    return WithholdingDashboardResponse.model_validate(dashboard)


@router.get(
    "/emp201/schedule",
    response_model=List[PaymentScheduleEntry],
    summary="EMP201 filing schedule of a year",
)
async def emp201_schedule(year: int = Query(...)):
    return [PaymentScheduleEntry(**entry) for entry in WithholdingDeclarationService.payment_schedule(year)]


@router.get(
    "/emp201/{declaration_id}",
    response_model=WithholdingDeclarationResponse,
    summary="Get an EMP201",
)
async def get_emp201(
    declaration_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: WithholdingDeclarationService = Depends(get_withholding_service),
):
    declaration = await service.get(tenant_id, declaration_id)
    return WithholdingDeclarationResponse.model_validate(declaration)


@router.patch(
    "/emp201/{declaration_id}",
    response_model=WithholdingDeclarationResponse,
    summary="Set EMP201 ETI credit or notes",
)
async def update_emp201_adjustments(
    data: WithholdingAdjustmentRequest,
    declaration_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: WithholdingDeclarationService = Depends(get_withholding_service),
):
    declaration = await service.update_adjustments(
        tenant_id, declaration_id, eti_amount=data.eti_amount, notes=data.notes
    )
    return WithholdingDeclarationResponse.model_validate(declaration)


@router.post(
    "/emp201/{declaration_id}/submit",
    response_model=WithholdingDeclarationResponse,
    summary="Submit an EMP201",
)
async def submit_emp201(
    data: SubmitDeclarationRequest,
    declaration_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_current_actor_id),
    service: WithholdingDeclarationService = Depends(get_withholding_service),
):
    declaration = await service.submit(
        tenant_id,
        declaration_id,
        submission_reference=data.submission_reference,
        acknowledgement=data.acknowledgement,
        actor_id=actor_id,
    )
    return WithholdingDeclarationResponse.model_validate(declaration)


@router.post(
    "/emp201/{declaration_id}/payment",
    response_model=WithholdingDeclarationResponse,
    summary="Record EMP201 payment",
)
async def record_emp201_payment(
    data: RecordPaymentRequest,
    declaration_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: WithholdingDeclarationService = Depends(get_withholding_service),
):
    declaration = await service.record_payment(
        tenant_id,
        declaration_id,
        payment_date=data.payment_date,
        payment_reference=data.payment_reference,
        payment_amount=data.payment_amount,
    )
    return WithholdingDeclarationResponse.model_validate(declaration)


@router.get(
    "/emp201/{declaration_id}/verify",
    response_model=VerificationResponse,
    summary="Re-check EMP201 totals against its lines",
)
async def verify_emp201(
    declaration_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: WithholdingDeclarationService = Depends(get_withholding_service),
):
    reconciled = await service.verify(tenant_id, declaration_id)
    return VerificationResponse(declaration_id=declaration_id, reconciled=reconciled)


# ===========================================
# UI-19 ENDPOINTS
# ===========================================

@router.post(
    "/ui19",
    response_model=UIFDeclarationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate a UI-19",
)
async def generate_ui19(
    data: GenerateDeclarationRequest,
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: UIFDeclarationService = Depends(get_uif_declaration_service),
):
    declaration = await service.generate(tenant_id, data.period)
    return UIFDeclarationResponse.model_validate(declaration)


@router.get(
    "/ui19",
    response_model=List[UIFDeclarationResponse],
    summary="List UI-19 declarations of a year",
)
async def list_ui19(
    year: int = Query(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: UIFDeclarationService = Depends(get_uif_declaration_service),
):
    declarations = await service.list(tenant_id, year)
    return [UIFDeclarationResponse.model_validate(d) for d in declarations]


@router.get(
    "/ui19/{declaration_id}",
    response_model=UIFDeclarationResponse,
    summary="Get a UI-19",
)
async def get_ui19(
    declaration_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: UIFDeclarationService = Depends(get_uif_declaration_service),
):
    declaration = await service.get(tenant_id, declaration_id)
    return UIFDeclarationResponse.model_validate(declaration)


@router.post(
    "/ui19/{declaration_id}/submit",
    response_model=UIFDeclarationResponse,
    summary="Submit a UI-19",
)
async def submit_ui19(
    data: SubmitDeclarationRequest,
    declaration_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_current_actor_id),
    service: UIFDeclarationService = Depends(get_uif_declaration_service),
):
    declaration = await service.submit(
        tenant_id,
        declaration_id,
        submission_reference=data.submission_reference,
        acknowledgement=data.acknowledgement,
        actor_id=actor_id,
    )
    return UIFDeclarationResponse.model_validate(declaration)


@router.patch(
    "/ui19/line-items/{line_item_id}",
    response_model=UIFLineItemResponse,
    summary="Correct a draft UI-19 line",
)
async def update_ui19_line_item(
    data: UIFLineItemUpdate,
    line_item_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: UIFDeclarationService = Depends(get_uif_declaration_service),
):
    item = await service.update_line_item(
        tenant_id,
        line_item_id,
        uif_number=data.uif_number,
        days_worked=data.days_worked,
        reason_code=data.reason_code,
    )
    return UIFLineItemResponse.model_validate(item)


@router.get(
    "/ui19/{declaration_id}/verify",
    response_model=VerificationResponse,
    summary="Re-check UI-19 totals against its lines",
)
async def verify_ui19(
    declaration_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: UIFDeclarationService = Depends(get_uif_declaration_service),
):
    reconciled = await service.verify(tenant_id, declaration_id)
    return VerificationResponse(declaration_id=declaration_id, reconciled=reconciled)


# ===========================================
# IRP5 ENDPOINTS
# ===========================================

@router.post(
    "/irp5/generate",
    response_model=CertificateRunResponse,
    summary="Generate IRP5 certificates for a tax year",
)
async def generate_irp5(
    data: CertificateRunRequest,
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: AnnualCertificateService = Depends(get_certificate_service),
):
    result = await service.generate(tenant_id, data.tax_year)
    return CertificateRunResponse.model_validate(result)


@router.post(
    "/irp5/issue",
    response_model=CertificateIssueResponse,
    summary="Issue draft IRP5 certificates of a tax year",
)
async def issue_irp5(
    data: CertificateRunRequest,
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_current_actor_id),
    service: AnnualCertificateService = Depends(get_certificate_service),
):
    issued = await service.issue(tenant_id, data.tax_year, actor_id=actor_id)
    return CertificateIssueResponse(tax_year=data.tax_year, issued=issued)


@router.get(
    "/irp5",
    response_model=List[AnnualCertificateResponse],
    summary="List IRP5 certificates of a tax year",
)
async def list_irp5(
    tax_year: int = Query(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: AnnualCertificateService = Depends(get_certificate_service),
):
    certificates = await service.list(tenant_id, tax_year)
    return [AnnualCertificateResponse.model_validate(c) for c in certificates]


@router.get(
    "/irp5/reconciliation",
    response_model=TaxYearReconciliationResponse,
    summary="IT3(a) reconciliation of a tax year",
)
async def reconcile_irp5(
    tax_year: int = Query(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: AnnualCertificateService = Depends(get_certificate_service),
):
    report = await service.reconcile_tax_year(tenant_id, tax_year)
    return TaxYearReconciliationResponse.model_validate(report)


@router.get(
    "/irp5/{certificate_id}",
    response_model=AnnualCertificateResponse,
    summary="Get an IRP5 certificate",
)
async def get_irp5(
    certificate_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: AnnualCertificateService = Depends(get_certificate_service),
):
    certificate = await service.get(tenant_id, certificate_id)
    return AnnualCertificateResponse.model_validate(certificate)


@router.post(
    "/irp5/{certificate_id}/reissue",
    response_model=AnnualCertificateResponse,
    summary="Recompute and reissue an issued certificate",
)
async def reissue_irp5(
    certificate_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_current_actor_id),
    service: AnnualCertificateService = Depends(get_certificate_service),
):
    certificate = await service.reissue(tenant_id, certificate_id, actor_id=actor_id)
    return AnnualCertificateResponse.model_validate(certificate)


# ===========================================
# LOOKUP
# ===========================================

@router.get(
    "/declarations/{declaration_id}",
    summary="Look up any declaration by id",
    description="Returns the EMP201, UI-19 or IRP5 certificate with this id.",
)
async def get_declaration(
    declaration_id: uuid.UUID = Path(...),
    tenant_id: uuid.UUID = Depends(get_current_tenant_id),
    service: StatutoryDeclarationService = Depends(get_statutory_service),
):
    declaration = await service.get_declaration(tenant_id, declaration_id)
    return _declaration_response(declaration)
