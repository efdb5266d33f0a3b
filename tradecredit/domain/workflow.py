"""Credit application approval state machine.

Status fields are never written by callers. Every change goes through
`apply`, which takes one of the command types below and either returns the
updated application or raises a domain error.

Phases::

    pre_analysis --pre_approved--> financial_review --approved--> final_review --> finalized
         |   ^ needs_documents /        |                             |
         |   | needs_clarification      |                             |
         +---+-------- rejected --------+---------- rejected ---------+--> rejected
         |
         +-- withdrawn by importer --> cancelled

Guard order: terminal phase (IllegalTransition), actor role (Forbidden),
phase precondition (IllegalTransition), payload (InvalidInput).
"""

import dataclasses
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence, Union

from tradecredit.domain.exceptions import Forbidden, IllegalTransition, InvalidInput, NotFound
from tradecredit.domain.models import (
    TERMINAL_PHASES,
    AdminFinalStatus,
    CreditApplication,
    CreditTerms,
    FinancialStatus,
    Phase,
    PreAnalysisStatus,
    RiskLevel,
    Role,
)
from tradecredit.domain.money import to_percent
from tradecredit.domain.schedule import normalize_terms


@dataclass(frozen=True)
class PreAnalysisDecision:
    decision: PreAnalysisStatus
    risk_level: Optional[RiskLevel] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class FinancialDecision:
    decision: FinancialStatus
    credit_limit_cents: Optional[int] = None
    terms_days: Optional[Sequence[int]] = None
    down_payment_percent: Optional[Decimal] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Finalization:
    override_limit_cents: Optional[int] = None
    override_terms_days: Optional[Sequence[int]] = None
    override_down_payment_percent: Optional[Decimal] = None


@dataclass(frozen=True)
class Rejection:
    phase: Phase
    reason: str


@dataclass(frozen=True)
class Withdrawal:
    importer_id: str


Command = Union[PreAnalysisDecision, FinancialDecision, Finalization, Rejection, Withdrawal]

PRE_ANALYSIS_DECISIONS = frozenset(
    {
        PreAnalysisStatus.PRE_APPROVED,
        PreAnalysisStatus.NEEDS_DOCUMENTS,
        PreAnalysisStatus.NEEDS_CLARIFICATION,
        PreAnalysisStatus.REJECTED,
    }
)

FINANCIAL_DECISIONS = frozenset({FinancialStatus.APPROVED, FinancialStatus.REJECTED})

# Rejectable phase -> (owning role, phases in which the rejection is legal)
REJECTION_RULES = {
    Phase.PRE_ANALYSIS: (Role.ADMINISTRATOR, frozenset({Phase.PRE_ANALYSIS, Phase.FINANCIAL_REVIEW})),
    Phase.FINANCIAL_REVIEW: (Role.FINANCIAL_INSTITUTION, frozenset({Phase.FINANCIAL_REVIEW})),
    Phase.FINAL_REVIEW: (Role.ADMINISTRATOR, frozenset({Phase.FINAL_REVIEW})),
}

# Administrator may re-decide pre-analysis until the financial institution acts
COMMAND_RULES = {
    PreAnalysisDecision: (Role.ADMINISTRATOR, frozenset({Phase.PRE_ANALYSIS, Phase.FINANCIAL_REVIEW})),
    FinancialDecision: (Role.FINANCIAL_INSTITUTION, frozenset({Phase.FINANCIAL_REVIEW})),
    Finalization: (Role.ADMINISTRATOR, frozenset({Phase.FINAL_REVIEW})),
    Withdrawal: (Role.IMPORTER, frozenset({Phase.PRE_ANALYSIS})),
}


def open_application(
    actor_role: Role,
    importer_id: str,
    requested_cents: int,
    purpose: str,
    now: datetime,
) -> CreditApplication:
    """Create a new application with all three status fields at their start values"""
    if actor_role != Role.IMPORTER:
        raise Forbidden("Only importers may submit credit applications")
    if not importer_id:
        raise InvalidInput("Importer identity is required")
    if isinstance(requested_cents, bool) or not isinstance(requested_cents, int) or requested_cents <= 0:
        raise InvalidInput("Requested amount must be a positive number of cents")
    if not purpose or not purpose.strip():
        raise InvalidInput("Purpose must not be empty")

    return CreditApplication(
        id=uuid.uuid4(),
        importer_id=importer_id,
        requested_cents=requested_cents,
        purpose=purpose.strip(),
        version=1,
        created_at=now,
        updated_at=now,
    )


def event_type(command: Command) -> str:
    """Name of the workflow event a command produces once committed"""
    if isinstance(command, PreAnalysisDecision):
        return f"pre_analysis.{command.decision.value}"
    if isinstance(command, FinancialDecision):
        return f"financial.{command.decision.value}"
    if isinstance(command, Finalization):
        return "final.finalized"
    if isinstance(command, Rejection):
        return f"{command.phase.value}.rejected"
    return "application.withdrawn"


def _rules_for(command: Command):
    if isinstance(command, Rejection):
        if command.phase not in REJECTION_RULES:
            raise InvalidInput(f"Cannot reject at phase {command.phase.value}")
        return REJECTION_RULES[command.phase]
    return COMMAND_RULES[type(command)]


def apply(
    application: CreditApplication,
    actor_role: Role,
    command: Command,
    now: datetime,
) -> CreditApplication:
    """
    Central transition function for credit applications.

    Returns a new CreditApplication with version bumped; the input is untouched.

    Raises:
        IllegalTransition: application is terminal, or the command's phase is not active
        Forbidden: actor does not own the status field the command writes
        InvalidInput: command payload is malformed or out of range
        NotFound: importer withdrawing an application it does not own
    """
    current = application.phase
    if current in TERMINAL_PHASES:
        raise IllegalTransition(f"Application {application.id} is already {current.value}")

    owner, legal_phases = _rules_for(command)
    if actor_role != owner:
        raise Forbidden(f"Role {actor_role.value} cannot perform {event_type(command)}")

    if isinstance(command, Withdrawal) and command.importer_id != application.importer_id:
        raise NotFound(f"Credit application {application.id} not found")

    if current not in legal_phases:
        raise IllegalTransition(
            f"Cannot perform {event_type(command)} while application is in {current.value}"
        )

    if isinstance(command, PreAnalysisDecision):
        updated = _apply_pre_analysis(application, command)
    elif isinstance(command, FinancialDecision):
        updated = _apply_financial(application, command)
    elif isinstance(command, Finalization):
        updated = _apply_finalization(application, command)
    elif isinstance(command, Rejection):
        updated = _apply_rejection(application, command)
    else:
        updated = dataclasses.replace(application, cancelled_at=now)

    updated.version = application.version + 1
    updated.updated_at = now
    return updated


def _apply_pre_analysis(application: CreditApplication, command: PreAnalysisDecision) -> CreditApplication:
    if command.decision not in PRE_ANALYSIS_DECISIONS:
        raise InvalidInput(f"Invalid pre-analysis decision: {command.decision}")

    changes = {
        "pre_analysis_status": command.decision,
        "risk_level": command.risk_level or application.risk_level,
        "pre_analysis_notes": command.notes,
    }
    if command.decision == PreAnalysisStatus.REJECTED:
        changes["rejected_phase"] = Phase.PRE_ANALYSIS
        changes["rejection_reason"] = command.notes
    return dataclasses.replace(application, **changes)


def _apply_financial(application: CreditApplication, command: FinancialDecision) -> CreditApplication:
    if command.decision not in FINANCIAL_DECISIONS:
        raise InvalidInput(f"Invalid financial decision: {command.decision}")

    if command.decision == FinancialStatus.REJECTED:
        # Terms are ignored on rejection
        return dataclasses.replace(
            application,
            financial_status=FinancialStatus.REJECTED,
            financial_notes=command.notes,
            rejected_phase=Phase.FINANCIAL_REVIEW,
            rejection_reason=command.notes,
        )

    limit = command.credit_limit_cents
    if limit is None or isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise InvalidInput("Approved credit limit must be positive")
    if command.down_payment_percent is None:
        raise InvalidInput("Down payment percentage is required on approval")

    offer = CreditTerms(
        credit_limit_cents=limit,
        terms_days=normalize_terms(command.terms_days),
        down_payment_percent=to_percent(command.down_payment_percent),
    )
    return dataclasses.replace(
        application,
        financial_status=FinancialStatus.APPROVED,
        offered_terms=offer,
        financial_notes=command.notes,
    )


def _apply_finalization(application: CreditApplication, command: Finalization) -> CreditApplication:
    offer = application.offered_terms
    if offer is None:
        raise IllegalTransition(f"Application {application.id} has no financial offer to finalize")

    limit = offer.credit_limit_cents
    if command.override_limit_cents is not None:
        limit = command.override_limit_cents
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidInput("Override limit must be positive")
        if limit > offer.credit_limit_cents:
            raise InvalidInput(
                f"Override limit {limit} exceeds the financial institution limit {offer.credit_limit_cents}"
            )

    terms = offer.terms_days
    if command.override_terms_days is not None:
        terms = normalize_terms(command.override_terms_days)

    percent = offer.down_payment_percent
    if command.override_down_payment_percent is not None:
        percent = to_percent(command.override_down_payment_percent)

    return dataclasses.replace(
        application,
        admin_final_status=AdminFinalStatus.FINALIZED,
        final_terms=CreditTerms(credit_limit_cents=limit, terms_days=terms, down_payment_percent=percent),
    )


def _apply_rejection(application: CreditApplication, command: Rejection) -> CreditApplication:
    if not command.reason or not command.reason.strip():
        raise InvalidInput("Rejection reason must not be empty")

    field_by_phase = {
        Phase.PRE_ANALYSIS: ("pre_analysis_status", PreAnalysisStatus.REJECTED),
        Phase.FINANCIAL_REVIEW: ("financial_status", FinancialStatus.REJECTED),
        Phase.FINAL_REVIEW: ("admin_final_status", AdminFinalStatus.REJECTED),
    }
    status_field, value = field_by_phase[command.phase]
    return dataclasses.replace(
        application,
        rejected_phase=command.phase,
        rejection_reason=command.reason.strip(),
        **{status_field: value},
    )
