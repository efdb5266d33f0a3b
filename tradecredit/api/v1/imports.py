"""Import endpoints - drawdowns, schedules and import lifecycle"""

import uuid
from typing import List

from fastapi import APIRouter, Depends

from tradecredit.api.dependencies import get_actor, get_application_service
from tradecredit.api.v1.schemas import (
    DrawdownRequest,
    DrawdownResponse,
    ImportResponse,
    ImportStatusRequest,
    ObligationSchema,
)
from tradecredit.domain.models import Actor, Import, PaymentObligation
from tradecredit.services.application_service import ApplicationService

router = APIRouter()


def _obligations(obligations: List[PaymentObligation]) -> List[ObligationSchema]:
    return [
        ObligationSchema(
            kind=o.kind,
            sequence_number=o.sequence_number,
            total_in_installment_set=o.total_in_installment_set,
            amount_cents=o.amount_cents,
            due_date=o.due_date,
            status=o.status,
        )
        for o in obligations
    ]


def to_import_response(imp: Import, obligations: List[PaymentObligation]) -> ImportResponse:
    return ImportResponse(
        id=str(imp.id),
        importer_id=imp.importer_id,
        credit_application_id=str(imp.credit_application_id) if imp.credit_application_id else None,
        total_value_cents=imp.total_value_cents,
        status=imp.status,
        drawdown_date=imp.drawdown_date,
        cancelled_at=imp.cancelled_at,
        obligations=_obligations(obligations),
    )


@router.post("/imports", response_model=DrawdownResponse, status_code=201)
def request_drawdown(
    body: DrawdownRequest,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    """
    Draw down credit by creating an import.

    Flow:
    1. Check the application is finalized and owned by the caller
    2. Authorize against the importer's pooled available credit
    3. Create the import and its payment schedule in the same transaction
    4. Notify importer and administrator after commit
    """
    result = service.request_drawdown(actor, body.credit_application_id, body.total_value_cents)
    return DrawdownResponse(
        credit_import=to_import_response(result.credit_import, result.obligations),
        available_cents=result.available_cents,
    )


@router.get("/imports/{import_id}", response_model=ImportResponse)
def get_import(
    import_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    imp = service.get_import(actor, import_id)
    return to_import_response(imp, service.list_obligations(actor, import_id))


@router.post(
    "/imports/{import_id}/schedule",
    responses={409: {"description": "Schedule was already generated by the drawdown"}},
)
def generate_schedule(
    import_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    """
    Schedules are written by the drawdown itself, so this always answers 409
    (404 outside the caller's scope). Correct a schedule by cancelling the
    import and drawing again.
    """
    service.generate_schedule(actor, import_id)


@router.post("/imports/{import_id}/cancel", response_model=ImportResponse)
def cancel_import(
    import_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    imp = service.cancel_import(actor, import_id)
    return to_import_response(imp, service.list_obligations(actor, import_id))


@router.patch("/imports/{import_id}/status", response_model=ImportResponse)
def update_import_status(
    import_id: uuid.UUID,
    body: ImportStatusRequest,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    imp = service.update_import_status(actor, import_id, body.status)
    return to_import_response(imp, service.list_obligations(actor, import_id))
