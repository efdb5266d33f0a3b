"""Credit application endpoints - submission and the three review phases"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from tradecredit.api.dependencies import get_actor, get_application_service
from tradecredit.api.v1.schemas import (
    ApplicationCreate,
    ApplicationResponse,
    CreditTermsSchema,
    FinalizeRequest,
    FinancialDecisionRequest,
    PreAnalysisRequest,
    RejectRequest,
    UsageResponse,
)
from tradecredit.domain.models import Actor, CreditApplication, CreditTerms
from tradecredit.services.application_service import ApplicationService

router = APIRouter()


def _terms(terms: Optional[CreditTerms]) -> Optional[CreditTermsSchema]:
    if terms is None:
        return None
    return CreditTermsSchema(
        credit_limit_cents=terms.credit_limit_cents,
        terms_days=list(terms.terms_days),
        down_payment_percent=terms.down_payment_percent,
    )


def to_application_response(app: CreditApplication) -> ApplicationResponse:
    return ApplicationResponse(
        id=str(app.id),
        importer_id=app.importer_id,
        requested_cents=app.requested_cents,
        purpose=app.purpose,
        phase=app.phase,
        pre_analysis_status=app.pre_analysis_status,
        financial_status=app.financial_status,
        admin_final_status=app.admin_final_status,
        risk_level=app.risk_level,
        offered_terms=_terms(app.offered_terms),
        final_terms=_terms(app.final_terms),
        rejection_reason=app.rejection_reason,
        rejected_phase=app.rejected_phase,
        version=app.version,
        created_at=app.created_at,
        updated_at=app.updated_at,
    )


@router.post("/applications", response_model=ApplicationResponse, status_code=201)
def submit_application(
    body: ApplicationCreate,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    """Importer submits a credit request; all review statuses start pending"""
    app = service.submit(actor, body.requested_cents, body.purpose)
    return to_application_response(app)


@router.get("/applications", response_model=List[ApplicationResponse])
def list_applications(
    importer_id: Optional[str] = Query(None, description="Staff-only importer filter"),
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    return [to_application_response(a) for a in service.list_applications(actor, importer_id)]


@router.get("/applications/{application_id}", response_model=ApplicationResponse)
def get_application(
    application_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    return to_application_response(service.get_application(actor, application_id))


@router.post("/applications/{application_id}/pre-analysis", response_model=ApplicationResponse)
def record_pre_analysis(
    application_id: uuid.UUID,
    body: PreAnalysisRequest,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    """Administrator screening; may be re-decided until the financial institution acts"""
    app = service.record_pre_analysis(actor, application_id, body.decision, body.risk_level, body.notes)
    return to_application_response(app)


@router.post("/applications/{application_id}/financial-decision", response_model=ApplicationResponse)
def record_financial_decision(
    application_id: uuid.UUID,
    body: FinancialDecisionRequest,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    app = service.record_financial_decision(
        actor,
        application_id,
        body.decision,
        credit_limit_cents=body.credit_limit_cents,
        terms_days=body.terms_days,
        down_payment_percent=body.down_payment_percent,
        notes=body.notes,
    )
    return to_application_response(app)


@router.post("/applications/{application_id}/finalize", response_model=ApplicationResponse)
def finalize_application(
    application_id: uuid.UUID,
    body: FinalizeRequest,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    """Administrator confirms (or tightens) the offer, making the credit drawable"""
    app = service.finalize(
        actor,
        application_id,
        override_limit_cents=body.override_limit_cents,
        override_terms_days=body.override_terms_days,
        override_down_payment_percent=body.override_down_payment_percent,
    )
    return to_application_response(app)


@router.post("/applications/{application_id}/reject", response_model=ApplicationResponse)
def reject_application(
    application_id: uuid.UUID,
    body: RejectRequest,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    return to_application_response(service.reject(actor, application_id, body.phase, body.reason))


@router.post("/applications/{application_id}/withdraw", response_model=ApplicationResponse)
def withdraw_application(
    application_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    return to_application_response(service.withdraw(actor, application_id))


@router.get("/applications/{application_id}/usage", response_model=UsageResponse)
def get_application_usage(
    application_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    usage = service.application_usage(actor, application_id)
    return UsageResponse(
        application_id=str(usage.application_id),
        limit_cents=usage.limit_cents,
        drawn_cents=usage.drawn_cents,
        remaining_cents=usage.remaining_cents,
    )
