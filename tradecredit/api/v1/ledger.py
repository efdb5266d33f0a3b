"""Ledger endpoints - available credit and maintenance"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from tradecredit.api.dependencies import get_actor, get_application_service
from tradecredit.api.v1.schemas import LedgerResponse, OverdueRefreshResponse
from tradecredit.domain.ledger import CreditLedger
from tradecredit.domain.models import Actor
from tradecredit.services.application_service import ApplicationService
from tradecredit.utils.date_utils import utc_today

router = APIRouter()


def _ledger_response(ledger: CreditLedger) -> LedgerResponse:
    return LedgerResponse(
        importer_id=ledger.importer_id,
        granted_cents=ledger.granted_cents,
        drawn_cents=ledger.drawn_cents,
        available_cents=ledger.available_cents,
    )


@router.get("/ledger/{importer_id}", response_model=LedgerResponse)
def get_ledger(
    importer_id: str,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    """Granted, drawn and available credit pooled across finalized applications"""
    return _ledger_response(service.ledger_snapshot(actor, importer_id))


@router.post("/ledger/{importer_id}/reconcile", response_model=LedgerResponse)
def reconcile_ledger(
    importer_id: str,
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    return _ledger_response(service.reconcile_ledger(actor, importer_id))


@router.post("/obligations/refresh-overdue", response_model=OverdueRefreshResponse)
def refresh_overdue(
    as_of: Optional[date] = Query(None, description="Defaults to today (UTC)"),
    actor: Actor = Depends(get_actor),
    service: ApplicationService = Depends(get_application_service),
):
    as_of = as_of or utc_today()
    return OverdueRefreshResponse(as_of=as_of, flagged=service.refresh_overdue(actor, as_of))
