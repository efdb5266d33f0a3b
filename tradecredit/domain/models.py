"""Domain models - pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Role(str, Enum):
    """Role claim supplied by the identity provider"""

    IMPORTER = "importer"
    ADMINISTRATOR = "administrator"
    FINANCIAL_INSTITUTION = "financial_institution"


class PreAnalysisStatus(str, Enum):
    PENDING = "pending"
    PRE_APPROVED = "pre_approved"
    NEEDS_DOCUMENTS = "needs_documents"
    NEEDS_CLARIFICATION = "needs_clarification"
    REJECTED = "rejected"


class FinancialStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AdminFinalStatus(str, Enum):
    NONE = "none"
    FINALIZED = "finalized"
    REJECTED = "rejected"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Phase(str, Enum):
    """Single derived phase of a credit application"""

    PRE_ANALYSIS = "pre_analysis"
    FINANCIAL_REVIEW = "financial_review"
    FINAL_REVIEW = "final_review"
    FINALIZED = "finalized"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


TERMINAL_PHASES = frozenset({Phase.FINALIZED, Phase.REJECTED, Phase.CANCELLED})


@dataclass(frozen=True)
class Actor:
    """Caller identity as supplied by the transport layer; trusted verbatim"""

    role: Role
    importer_id: Optional[str] = None

    def can_see(self, owner_id: str) -> bool:
        """Importers are scoped to their own records; staff see everything"""
        return self.role != Role.IMPORTER or self.importer_id == owner_id


class ImportStatus(str, Enum):
    PLANNING = "planning"
    PRODUCTION = "production"
    DELIVERED_TO_AGENT = "delivered_to_agent"
    MARITIME_TRANSPORT = "maritime_transport"
    AIR_TRANSPORT = "air_transport"
    CUSTOMS_CLEARANCE = "customs_clearance"
    DOMESTIC_TRANSPORT = "domestic_transport"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


FINAL_IMPORT_STATUSES = frozenset({ImportStatus.COMPLETED, ImportStatus.CANCELLED})


class ObligationKind(str, Enum):
    DOWN_PAYMENT = "down_payment"
    INSTALLMENT = "installment"


class ObligationStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class CreditTerms:
    """Credit offer: limit, installment terms and down payment"""

    credit_limit_cents: int
    terms_days: Tuple[int, ...]
    down_payment_percent: Decimal


@dataclass
class CreditApplication:
    """Importer credit request and its three-phase review state"""

    id: uuid.UUID
    importer_id: str
    requested_cents: int
    purpose: str
    pre_analysis_status: PreAnalysisStatus = PreAnalysisStatus.PENDING
    financial_status: FinancialStatus = FinancialStatus.PENDING
    admin_final_status: AdminFinalStatus = AdminFinalStatus.NONE
    risk_level: Optional[RiskLevel] = None
    offered_terms: Optional[CreditTerms] = None  # financial institution
    final_terms: Optional[CreditTerms] = None  # written at finalization
    pre_analysis_notes: Optional[str] = None
    financial_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    rejected_phase: Optional[Phase] = None
    cancelled_at: Optional[datetime] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def phase(self) -> Phase:
        if self.cancelled_at is not None:
            return Phase.CANCELLED
        if (
            self.pre_analysis_status == PreAnalysisStatus.REJECTED
            or self.financial_status == FinancialStatus.REJECTED
            or self.admin_final_status == AdminFinalStatus.REJECTED
        ):
            return Phase.REJECTED
        if self.admin_final_status == AdminFinalStatus.FINALIZED:
            return Phase.FINALIZED
        if self.financial_status == FinancialStatus.APPROVED:
            return Phase.FINAL_REVIEW
        if self.pre_analysis_status == PreAnalysisStatus.PRE_APPROVED:
            return Phase.FINANCIAL_REVIEW
        return Phase.PRE_ANALYSIS

    @property
    def effective_terms(self) -> Optional[CreditTerms]:
        """Administrator's final terms when present, otherwise the offer"""
        return self.final_terms or self.offered_terms


@dataclass
class Import:
    """Drawdown against a finalized application (or a cash import)"""

    id: uuid.UUID
    importer_id: str
    credit_application_id: Optional[uuid.UUID]
    total_value_cents: int
    status: ImportStatus
    drawdown_date: date
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def draws_credit(self) -> bool:
        return self.credit_application_id is not None and self.status != ImportStatus.CANCELLED


@dataclass
class PaymentObligation:
    """Single scheduled payment: down payment or installment"""

    import_id: uuid.UUID
    kind: ObligationKind
    sequence_number: int
    total_in_installment_set: int
    amount_cents: int
    due_date: date
    status: ObligationStatus = ObligationStatus.PENDING
    id: Optional[uuid.UUID] = None


@dataclass
class ApplicationUsage:
    """Per-application view of drawn credit (informational)"""

    application_id: uuid.UUID
    limit_cents: int
    drawn_cents: int

    @property
    def remaining_cents(self) -> int:
        return self.limit_cents - self.drawn_cents


@dataclass
class WorkflowEvent:
    """Committed state change, dispatched to notification collaborators"""

    event_type: str
    importer_id: str
    application_id: Optional[uuid.UUID] = None
    import_id: Optional[uuid.UUID] = None
    data: Dict[str, Any] = field(default_factory=dict)
