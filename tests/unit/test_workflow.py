"""Unit tests for the approval state machine"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from tradecredit.domain import workflow
from tradecredit.domain.exceptions import Forbidden, IllegalTransition, InvalidInput, NotFound
from tradecredit.domain.models import (
    AdminFinalStatus,
    FinancialStatus,
    Phase,
    PreAnalysisStatus,
    RiskLevel,
    Role,
)

NOW = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)

APPROVE = workflow.FinancialDecision(
    decision=FinancialStatus.APPROVED,
    credit_limit_cents=50000,
    terms_days=[90, 30, 60],
    down_payment_percent=Decimal("30"),
)


def _submitted():
    return workflow.open_application(Role.IMPORTER, "importer-001", 50000, "Electronics import", NOW)


def _pre_approved():
    return workflow.apply(
        _submitted(), Role.ADMINISTRATOR, workflow.PreAnalysisDecision(PreAnalysisStatus.PRE_APPROVED), NOW
    )


def _approved():
    return workflow.apply(_pre_approved(), Role.FINANCIAL_INSTITUTION, APPROVE, NOW)


def test_open_application_starts_pending():
    app = _submitted()
    assert app.pre_analysis_status == PreAnalysisStatus.PENDING
    assert app.financial_status == FinancialStatus.PENDING
    assert app.admin_final_status == AdminFinalStatus.NONE
    assert app.phase == Phase.PRE_ANALYSIS
    assert app.version == 1


@pytest.mark.parametrize("amount,purpose", [(0, "x"), (-5, "x"), (100, ""), (100, "   ")])
def test_open_application_invalid_input(amount, purpose):
    with pytest.raises(InvalidInput):
        workflow.open_application(Role.IMPORTER, "importer-001", amount, purpose, NOW)


def test_open_application_requires_importer_role():
    with pytest.raises(Forbidden):
        workflow.open_application(Role.ADMINISTRATOR, "importer-001", 100, "x", NOW)


def test_apply_returns_new_version_and_leaves_input_untouched():
    app = _submitted()
    updated = workflow.apply(
        app,
        Role.ADMINISTRATOR,
        workflow.PreAnalysisDecision(PreAnalysisStatus.NEEDS_DOCUMENTS, risk_level=RiskLevel.MEDIUM),
        NOW,
    )
    assert app.pre_analysis_status == PreAnalysisStatus.PENDING
    assert updated.pre_analysis_status == PreAnalysisStatus.NEEDS_DOCUMENTS
    assert updated.risk_level == RiskLevel.MEDIUM
    assert updated.version == app.version + 1


def test_pre_analysis_is_re_entrant_until_financial_phase_acts():
    app = workflow.apply(
        _submitted(), Role.ADMINISTRATOR, workflow.PreAnalysisDecision(PreAnalysisStatus.NEEDS_CLARIFICATION), NOW
    )
    app = workflow.apply(app, Role.ADMINISTRATOR, workflow.PreAnalysisDecision(PreAnalysisStatus.PRE_APPROVED), NOW)
    assert app.phase == Phase.FINANCIAL_REVIEW

    # Still re-decidable: financial institution has not acted
    app = workflow.apply(app, Role.ADMINISTRATOR, workflow.PreAnalysisDecision(PreAnalysisStatus.NEEDS_DOCUMENTS), NOW)
    assert app.phase == Phase.PRE_ANALYSIS


def test_pre_analysis_requires_administrator():
    with pytest.raises(Forbidden):
        workflow.apply(
            _submitted(),
            Role.FINANCIAL_INSTITUTION,
            workflow.PreAnalysisDecision(PreAnalysisStatus.PRE_APPROVED),
            NOW,
        )


def test_pre_analysis_rejects_pending_as_decision():
    with pytest.raises(InvalidInput):
        workflow.apply(_submitted(), Role.ADMINISTRATOR, workflow.PreAnalysisDecision(PreAnalysisStatus.PENDING), NOW)


def test_pre_analysis_after_financial_decision_is_illegal():
    with pytest.raises(IllegalTransition):
        workflow.apply(
            _approved(), Role.ADMINISTRATOR, workflow.PreAnalysisDecision(PreAnalysisStatus.NEEDS_DOCUMENTS), NOW
        )


def test_financial_decision_requires_pre_approval():
    with pytest.raises(IllegalTransition):
        workflow.apply(_submitted(), Role.FINANCIAL_INSTITUTION, APPROVE, NOW)


def test_financial_decision_requires_financial_institution():
    with pytest.raises(Forbidden):
        workflow.apply(_pre_approved(), Role.ADMINISTRATOR, APPROVE, NOW)


def test_financial_approval_records_sorted_terms():
    app = _approved()
    assert app.phase == Phase.FINAL_REVIEW
    assert app.offered_terms.credit_limit_cents == 50000
    assert app.offered_terms.terms_days == (30, 60, 90)
    assert app.offered_terms.down_payment_percent == Decimal("30")


@pytest.mark.parametrize(
    "limit,terms,percent",
    [(0, [30], "30"), (None, [30], "30"), (1000, [], "30"), (1000, None, "30"), (1000, [30], "150"), (1000, [30], None)],
)
def test_financial_approval_invalid_terms(limit, terms, percent):
    command = workflow.FinancialDecision(
        decision=FinancialStatus.APPROVED,
        credit_limit_cents=limit,
        terms_days=terms,
        down_payment_percent=Decimal(percent) if percent else None,
    )
    with pytest.raises(InvalidInput):
        workflow.apply(_pre_approved(), Role.FINANCIAL_INSTITUTION, command, NOW)


def test_financial_rejection_ignores_terms():
    command = workflow.FinancialDecision(decision=FinancialStatus.REJECTED, credit_limit_cents=-1, notes="Exposure")
    app = workflow.apply(_pre_approved(), Role.FINANCIAL_INSTITUTION, command, NOW)
    assert app.phase == Phase.REJECTED
    assert app.offered_terms is None
    assert app.rejected_phase == Phase.FINANCIAL_REVIEW


def test_finalize_copies_offer():
    app = workflow.apply(_approved(), Role.ADMINISTRATOR, workflow.Finalization(), NOW)
    assert app.admin_final_status == AdminFinalStatus.FINALIZED
    assert app.phase == Phase.FINALIZED
    assert app.final_terms == app.offered_terms


def test_finalize_overrides_may_tighten():
    command = workflow.Finalization(
        override_limit_cents=40000, override_terms_days=[30, 60], override_down_payment_percent=Decimal("40")
    )
    app = workflow.apply(_approved(), Role.ADMINISTRATOR, command, NOW)
    assert app.final_terms.credit_limit_cents == 40000
    assert app.final_terms.terms_days == (30, 60)
    assert app.final_terms.down_payment_percent == Decimal("40")
    assert app.effective_terms == app.final_terms


def test_finalize_override_cannot_loosen_limit():
    with pytest.raises(InvalidInput):
        workflow.apply(_approved(), Role.ADMINISTRATOR, workflow.Finalization(override_limit_cents=50001), NOW)


def test_finalize_requires_financial_approval():
    with pytest.raises(IllegalTransition):
        workflow.apply(_pre_approved(), Role.ADMINISTRATOR, workflow.Finalization(), NOW)


def test_finalized_is_terminal():
    app = workflow.apply(_approved(), Role.ADMINISTRATOR, workflow.Finalization(), NOW)
    with pytest.raises(IllegalTransition):
        workflow.apply(app, Role.ADMINISTRATOR, workflow.Finalization(), NOW)


@pytest.mark.parametrize("role", list(Role))
def test_rejection_is_terminal_for_every_actor(role):
    app = workflow.apply(
        _submitted(), Role.ADMINISTRATOR, workflow.PreAnalysisDecision(PreAnalysisStatus.REJECTED, notes="Fraud"), NOW
    )
    assert app.phase == Phase.REJECTED
    with pytest.raises(IllegalTransition):
        workflow.apply(app, role, APPROVE, NOW)


def test_reject_by_phase_owner():
    app = workflow.apply(
        _pre_approved(), Role.FINANCIAL_INSTITUTION, workflow.Rejection(Phase.FINANCIAL_REVIEW, "Collateral"), NOW
    )
    assert app.financial_status == FinancialStatus.REJECTED
    assert app.admin_final_status == AdminFinalStatus.NONE
    assert app.rejection_reason == "Collateral"


def test_reject_at_final_review():
    app = workflow.apply(_approved(), Role.ADMINISTRATOR, workflow.Rejection(Phase.FINAL_REVIEW, "Policy change"), NOW)
    assert app.admin_final_status == AdminFinalStatus.REJECTED
    assert app.phase == Phase.REJECTED


def test_reject_wrong_owner_is_forbidden():
    with pytest.raises(Forbidden):
        workflow.apply(_pre_approved(), Role.ADMINISTRATOR, workflow.Rejection(Phase.FINANCIAL_REVIEW, "x"), NOW)


def test_reject_phase_not_active_is_illegal():
    with pytest.raises(IllegalTransition):
        workflow.apply(_submitted(), Role.FINANCIAL_INSTITUTION, workflow.Rejection(Phase.FINANCIAL_REVIEW, "x"), NOW)


def test_reject_requires_reason():
    with pytest.raises(InvalidInput):
        workflow.apply(_submitted(), Role.ADMINISTRATOR, workflow.Rejection(Phase.PRE_ANALYSIS, " "), NOW)


def test_reject_unknown_phase():
    with pytest.raises(InvalidInput):
        workflow.apply(_submitted(), Role.ADMINISTRATOR, workflow.Rejection(Phase.FINALIZED, "x"), NOW)


def test_withdraw_by_owner():
    app = workflow.apply(_submitted(), Role.IMPORTER, workflow.Withdrawal("importer-001"), NOW)
    assert app.phase == Phase.CANCELLED
    assert app.cancelled_at == NOW


def test_withdraw_by_other_importer_not_found():
    with pytest.raises(NotFound):
        workflow.apply(_submitted(), Role.IMPORTER, workflow.Withdrawal("importer-999"), NOW)


def test_withdraw_after_pre_approval_is_illegal():
    with pytest.raises(IllegalTransition):
        workflow.apply(_pre_approved(), Role.IMPORTER, workflow.Withdrawal("importer-001"), NOW)


def test_event_types():
    assert workflow.event_type(APPROVE) == "financial.approved"
    assert workflow.event_type(workflow.Finalization()) == "final.finalized"
    assert workflow.event_type(workflow.Rejection(Phase.PRE_ANALYSIS, "x")) == "pre_analysis.rejected"
