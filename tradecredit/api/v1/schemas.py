"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from tradecredit.domain.models import (
    AdminFinalStatus,
    FinancialStatus,
    ImportStatus,
    ObligationKind,
    ObligationStatus,
    Phase,
    PreAnalysisStatus,
    RiskLevel,
)


# ----- requests -----


class ApplicationCreate(BaseModel):
    """Request body for POST /v1/applications"""

    requested_cents: int = Field(..., description="Requested credit amount in cents")
    purpose: str = Field(..., description="What the credit will finance")


class PreAnalysisRequest(BaseModel):
    """Administrator pre-analysis decision"""

    decision: PreAnalysisStatus
    risk_level: Optional[RiskLevel] = None
    notes: Optional[str] = None


class FinancialDecisionRequest(BaseModel):
    """Financial institution decision; terms are required only on approval"""

    decision: FinancialStatus
    credit_limit_cents: Optional[int] = None
    terms_days: Optional[List[int]] = Field(None, description="Installment terms in days, e.g. [30, 60, 90]")
    down_payment_percent: Optional[Decimal] = None
    notes: Optional[str] = None


class FinalizeRequest(BaseModel):
    """Administrator finalization; omitted overrides keep the financial institution values"""

    override_limit_cents: Optional[int] = None
    override_terms_days: Optional[List[int]] = None
    override_down_payment_percent: Optional[Decimal] = None


class RejectRequest(BaseModel):
    phase: Phase
    reason: str


class DrawdownRequest(BaseModel):
    """Request body for POST /v1/imports; omit the application for a cash import"""

    credit_application_id: Optional[uuid.UUID] = None
    total_value_cents: int


class ImportStatusRequest(BaseModel):
    status: ImportStatus


# ----- responses -----


class CreditTermsSchema(BaseModel):
    credit_limit_cents: int
    terms_days: List[int]
    down_payment_percent: Decimal


class ApplicationResponse(BaseModel):
    """Credit application with derived phase"""

    id: str
    importer_id: str
    requested_cents: int
    purpose: str
    phase: Phase
    pre_analysis_status: PreAnalysisStatus
    financial_status: FinancialStatus
    admin_final_status: AdminFinalStatus
    risk_level: Optional[RiskLevel] = None
    offered_terms: Optional[CreditTermsSchema] = None
    final_terms: Optional[CreditTermsSchema] = None
    rejection_reason: Optional[str] = None
    rejected_phase: Optional[Phase] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ObligationSchema(BaseModel):
    """Single down payment or installment"""

    kind: ObligationKind
    sequence_number: int
    total_in_installment_set: int
    amount_cents: int
    due_date: date
    status: ObligationStatus


class ImportResponse(BaseModel):
    id: str
    importer_id: str
    credit_application_id: Optional[str] = None
    total_value_cents: int
    status: ImportStatus
    drawdown_date: date
    cancelled_at: Optional[datetime] = None
    obligations: List[ObligationSchema] = []


class DrawdownResponse(BaseModel):
    """Response for POST /v1/imports"""

    credit_import: ImportResponse
    available_cents: Optional[int] = None


class LedgerResponse(BaseModel):
    importer_id: str
    granted_cents: int
    drawn_cents: int
    available_cents: int


class UsageResponse(BaseModel):
    application_id: str
    limit_cents: int
    drawn_cents: int
    remaining_cents: int


class OverdueRefreshResponse(BaseModel):
    as_of: date
    flagged: int
