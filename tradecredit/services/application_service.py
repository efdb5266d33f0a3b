"""Credit application service - orchestrates workflow, ledger and schedule generation"""

import logging
import uuid
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterator, List, Optional, Sequence

from sqlalchemy.orm import Session

from tradecredit.config import settings
from tradecredit.domain import workflow
from tradecredit.domain.exceptions import (
    Forbidden,
    IllegalTransition,
    InsufficientCredit,
    InvalidInput,
    NotFound,
    StorageConflict,
)
from tradecredit.domain.ledger import CreditLedger
from tradecredit.domain.models import (
    FINAL_IMPORT_STATUSES,
    Actor,
    ApplicationUsage,
    CreditApplication,
    FinancialStatus,
    Import,
    ImportStatus,
    PaymentObligation,
    Phase,
    PreAnalysisStatus,
    RiskLevel,
    Role,
    WorkflowEvent,
)
from tradecredit.domain.schedule import generate_payment_schedule
from tradecredit.infrastructure.database.repositories import (
    ApplicationRepository,
    ImportRepository,
    LedgerRepository,
    ObligationRepository,
)
from tradecredit.infrastructure.observability.logging import log_drawdown, log_transition
from tradecredit.infrastructure.observability.metrics import (
    record_drawdown,
    record_transition,
    transition_conflict_counter,
)
from tradecredit.utils.date_utils import utc_now
from tradecredit.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

# Lock order: application lock before importer lock
application_locks = KeyedLock()
importer_locks = KeyedLock()

Dispatcher = Callable[[WorkflowEvent], None]


@dataclass
class DrawdownResult:
    """Import created by a drawdown, its obligations and the remaining credit"""

    credit_import: Import
    obligations: List[PaymentObligation]
    available_cents: Optional[int]  # None for cash imports


def _discard(event: WorkflowEvent) -> None:
    pass


class ApplicationService:
    """
    Entry point for every credit operation invoked by the API layer.

    Each public method is one unit of work: it commits on success, rolls back
    and re-raises on any error, and dispatches workflow events only after the
    commit.
    """

    def __init__(
        self,
        db: Session,
        dispatch: Optional[Dispatcher] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.applications = ApplicationRepository(db)
        self.imports = ImportRepository(db)
        self.obligations = ObligationRepository(db)
        self.ledgers = LedgerRepository(db)
        self.dispatch = dispatch or _discard
        self.clock = clock

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # ----- lookups -----

    def _load_application(self, actor: Actor, application_id: uuid.UUID) -> CreditApplication:
        app = self.applications.get(application_id)
        if app is None or not actor.can_see(app.importer_id):
            raise NotFound(f"Credit application {application_id} not found")
        return app

    def _load_import(self, actor: Actor, import_id: uuid.UUID) -> Import:
        imp = self.imports.get(import_id)
        if imp is None or not actor.can_see(imp.importer_id):
            raise NotFound(f"Import {import_id} not found")
        return imp

    def get_application(self, actor: Actor, application_id: uuid.UUID) -> CreditApplication:
        return self._load_application(actor, application_id)

    def list_applications(self, actor: Actor, importer_id: Optional[str] = None) -> List[CreditApplication]:
        """Importers always see their own applications; staff may filter by importer"""
        if actor.role == Role.IMPORTER:
            return self.applications.list_by_importer(actor.importer_id)
        if importer_id:
            return self.applications.list_by_importer(importer_id)
        return self.applications.list_recent()

    def get_import(self, actor: Actor, import_id: uuid.UUID) -> Import:
        return self._load_import(actor, import_id)

    def list_obligations(self, actor: Actor, import_id: uuid.UUID) -> List[PaymentObligation]:
        self._load_import(actor, import_id)
        return self.obligations.list_by_import(import_id)

    def ledger_snapshot(self, actor: Actor, importer_id: str) -> CreditLedger:
        if not actor.can_see(importer_id):
            raise NotFound(f"Ledger for importer {importer_id} not found")
        return self.ledgers.get(importer_id)

    def application_usage(self, actor: Actor, application_id: uuid.UUID) -> ApplicationUsage:
        """Per-application drawn total; informational, the pooled ledger is the gate"""
        app = self._load_application(actor, application_id)
        terms = app.effective_terms if app.phase == Phase.FINALIZED else None
        return ApplicationUsage(
            application_id=app.id,
            limit_cents=terms.credit_limit_cents if terms else 0,
            drawn_cents=self.imports.drawn_against(app.id),
        )

    # ----- approval workflow -----

    def submit(self, actor: Actor, requested_cents: int, purpose: str) -> CreditApplication:
        """Create a new application. Rejected importers may always submit again."""
        with self._unit_of_work():
            app = workflow.open_application(
                actor.role, actor.importer_id, requested_cents, purpose, self.clock()
            )
            app = self.applications.create(app)

        self._committed(app, actor, "application.submitted")
        return app

    def record_pre_analysis(
        self,
        actor: Actor,
        application_id: uuid.UUID,
        decision: PreAnalysisStatus,
        risk_level: Optional[RiskLevel] = None,
        notes: Optional[str] = None,
    ) -> CreditApplication:
        command = workflow.PreAnalysisDecision(decision=decision, risk_level=risk_level, notes=notes)
        return self._transition(actor, application_id, command)

    def record_financial_decision(
        self,
        actor: Actor,
        application_id: uuid.UUID,
        decision: FinancialStatus,
        credit_limit_cents: Optional[int] = None,
        terms_days: Optional[Sequence[int]] = None,
        down_payment_percent: Optional[Decimal] = None,
        notes: Optional[str] = None,
    ) -> CreditApplication:
        command = workflow.FinancialDecision(
            decision=decision,
            credit_limit_cents=credit_limit_cents,
            terms_days=terms_days,
            down_payment_percent=down_payment_percent,
            notes=notes,
        )
        return self._transition(actor, application_id, command)

    def finalize(
        self,
        actor: Actor,
        application_id: uuid.UUID,
        override_limit_cents: Optional[int] = None,
        override_terms_days: Optional[Sequence[int]] = None,
        override_down_payment_percent: Optional[Decimal] = None,
    ) -> CreditApplication:
        """Finalize the financial offer and add its limit to the importer's ledger"""
        command = workflow.Finalization(
            override_limit_cents=override_limit_cents,
            override_terms_days=override_terms_days,
            override_down_payment_percent=override_down_payment_percent,
        )
        return self._transition(actor, application_id, command)

    def reject(self, actor: Actor, application_id: uuid.UUID, phase: Phase, reason: str) -> CreditApplication:
        return self._transition(actor, application_id, workflow.Rejection(phase=phase, reason=reason))

    def withdraw(self, actor: Actor, application_id: uuid.UUID) -> CreditApplication:
        return self._transition(actor, application_id, workflow.Withdrawal(importer_id=actor.importer_id))

    def _transition(self, actor: Actor, application_id: uuid.UUID, command: workflow.Command) -> CreditApplication:
        """
        Apply a workflow command with compare-and-swap on the row version.

        A lost version check raises StorageConflict and the whole operation is
        retried; on retry the reloaded state normally fails the precondition,
        so a lost race surfaces as IllegalTransition.
        """
        attempts = max(1, settings.transition_max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                updated = self._attempt_transition(actor, application_id, command)
                break
            except StorageConflict:
                transition_conflict_counter.inc()
                logger.warning(
                    "Version conflict on credit application",
                    extra={"application_id": str(application_id), "attempt": attempt},
                )
                if attempt == attempts:
                    raise

        self._committed(updated, actor, workflow.event_type(command))
        return updated

    def _attempt_transition(
        self, actor: Actor, application_id: uuid.UUID, command: workflow.Command
    ) -> CreditApplication:
        with application_locks(application_id), ExitStack() as held:
            with self._unit_of_work():
                current = self._load_application(actor, application_id)
                updated = workflow.apply(current, actor.role, command, self.clock())

                if isinstance(command, workflow.Finalization):
                    held.enter_context(importer_locks(updated.importer_id))

                self.applications.compare_and_swap(current.version, updated)

                if isinstance(command, workflow.Finalization):
                    self.ledgers.grant(
                        updated.importer_id, updated.effective_terms.credit_limit_cents, updated.updated_at
                    )
        return updated

    def _committed(self, app: CreditApplication, actor: Actor, transition: str) -> None:
        record_transition(transition)
        log_transition(str(app.id), app.importer_id, actor.role.value, transition, app.version)

        data = {"requested_cents": app.requested_cents}
        if app.effective_terms:
            data["limit_cents"] = app.effective_terms.credit_limit_cents
        self.dispatch(
            WorkflowEvent(event_type=transition, importer_id=app.importer_id, application_id=app.id, data=data)
        )

    # ----- drawdowns -----

    def request_drawdown(
        self,
        actor: Actor,
        credit_application_id: Optional[uuid.UUID],
        total_value_cents: int,
    ) -> DrawdownResult:
        """
        Create an import. Against an application it must pass the ledger gate.

        Authorization, credit reservation, import creation and schedule
        generation commit as one unit while the importer's lock is held.
        """
        if actor.role != Role.IMPORTER:
            raise Forbidden("Only importers may draw down credit")
        if not actor.importer_id:
            raise InvalidInput("Importer identity is required")
        if isinstance(total_value_cents, bool) or not isinstance(total_value_cents, int) or total_value_cents <= 0:
            raise InvalidInput("Import value must be a positive number of cents")

        if credit_application_id is None:
            return self._record_cash_import(actor, total_value_cents)

        importer_id = actor.importer_id
        now = self.clock()
        try:
            with importer_locks(importer_id), self._unit_of_work():
                app = self._load_application(actor, credit_application_id)
                if app.phase != Phase.FINALIZED:
                    raise IllegalTransition(
                        f"Credit application {app.id} is {app.phase.value}, not finalized"
                    )

                ledger = self.ledgers.get(importer_id)
                ledger.authorize_drawdown(total_value_cents, settings.currency)
                if not self.ledgers.reserve(importer_id, total_value_cents, now):
                    # Another process moved the aggregate between read and write
                    self.ledgers.get(importer_id).authorize_drawdown(total_value_cents, settings.currency)
                    raise StorageConflict(f"Ledger for importer {importer_id} changed concurrently")

                imp = self.imports.create(
                    Import(
                        id=uuid.uuid4(),
                        importer_id=importer_id,
                        credit_application_id=app.id,
                        total_value_cents=total_value_cents,
                        status=ImportStatus.PLANNING,
                        drawdown_date=now.date(),
                        created_at=now,
                        updated_at=now,
                    )
                )
                obligations = self._create_schedule(imp, app)
                available = ledger.available_cents - total_value_cents
        except InsufficientCredit as e:
            record_drawdown("insufficient_credit")
            log_drawdown(importer_id, None, total_value_cents, e.available_cents, "insufficient_credit")
            raise

        record_drawdown("approved", total_value_cents)
        log_drawdown(importer_id, str(imp.id), total_value_cents, available, "approved")
        self.dispatch(
            WorkflowEvent(
                event_type="import.drawdown_confirmed",
                importer_id=importer_id,
                application_id=app.id,
                import_id=imp.id,
                data={"value_cents": total_value_cents, "available_cents": available},
            )
        )
        return DrawdownResult(credit_import=imp, obligations=obligations, available_cents=available)

    def _record_cash_import(self, actor: Actor, total_value_cents: int) -> DrawdownResult:
        now = self.clock()
        with self._unit_of_work():
            imp = self.imports.create(
                Import(
                    id=uuid.uuid4(),
                    importer_id=actor.importer_id,
                    credit_application_id=None,
                    total_value_cents=total_value_cents,
                    status=ImportStatus.PLANNING,
                    drawdown_date=now.date(),
                    created_at=now,
                    updated_at=now,
                )
            )
        record_drawdown("cash")
        log_drawdown(actor.importer_id, str(imp.id), total_value_cents, 0, "cash")
        return DrawdownResult(credit_import=imp, obligations=[], available_cents=None)

    def _create_schedule(self, imp: Import, app: CreditApplication) -> List[PaymentObligation]:
        if self.obligations.exists_for_import(imp.id):
            raise IllegalTransition(f"Payment schedule for import {imp.id} already exists")
        terms = app.effective_terms
        obligations = generate_payment_schedule(
            import_id=imp.id,
            drawn_cents=imp.total_value_cents,
            down_payment_percent=terms.down_payment_percent,
            terms_days=terms.terms_days,
            drawdown_date=imp.drawdown_date,
        )
        return self.obligations.create_schedule(obligations)

    def generate_schedule(self, actor: Actor, import_id: uuid.UUID) -> None:
        """
        Refuse an explicit schedule generation request.

        Every credit drawdown writes its schedule in the drawdown transaction,
        so this never creates obligations; it only reports why a schedule cannot
        be generated again. Schedules are corrected by cancelling the import and
        drawing again.

        Raises:
            NotFound: import is outside the caller's scope
            IllegalTransition: always, naming the reason
        """
        imp = self._load_import(actor, import_id)
        if imp.credit_application_id is None:
            raise IllegalTransition(f"Import {imp.id} is a cash import without a credit schedule")
        if imp.status == ImportStatus.CANCELLED:
            raise IllegalTransition(f"Import {imp.id} is cancelled")
        raise IllegalTransition(f"Payment schedule for import {imp.id} was generated at drawdown")

    def cancel_import(self, actor: Actor, import_id: uuid.UUID) -> Import:
        """Cancel an import and release its value back to the importer's credit pool"""
        if actor.role == Role.FINANCIAL_INSTITUTION:
            raise Forbidden("Financial institutions cannot cancel imports")

        owner = self._load_import(actor, import_id).importer_id
        now = self.clock()
        with importer_locks(owner), self._unit_of_work():
            imp = self._load_import(actor, import_id)
            if imp.status in FINAL_IMPORT_STATUSES:
                raise IllegalTransition(f"Import {imp.id} is already {imp.status.value}")
            self.imports.set_status(imp.id, ImportStatus.CANCELLED, now, cancelled_at=now)
            if imp.draws_credit:
                self.ledgers.release(owner, imp.total_value_cents, now)
            cancelled = self.imports.get(imp.id)

        logger.info(
            "Import cancelled",
            extra={"import_id": str(imp.id), "importer_id": owner, "released_cents": imp.total_value_cents},
        )
        if imp.draws_credit:
            self.dispatch(
                WorkflowEvent(
                    event_type="import.cancelled",
                    importer_id=owner,
                    application_id=imp.credit_application_id,
                    import_id=imp.id,
                    data={"value_cents": imp.total_value_cents},
                )
            )
        return cancelled

    def update_import_status(self, actor: Actor, import_id: uuid.UUID, status: ImportStatus) -> Import:
        """Move an import along its logistics lifecycle; unrelated to credit"""
        if actor.role == Role.FINANCIAL_INSTITUTION:
            raise Forbidden("Financial institutions cannot update imports")
        if status == ImportStatus.CANCELLED:
            raise InvalidInput("Use the cancel operation to cancel an import")

        owner = self._load_import(actor, import_id).importer_id
        with importer_locks(owner), self._unit_of_work():
            imp = self._load_import(actor, import_id)
            if imp.status in FINAL_IMPORT_STATUSES:
                raise IllegalTransition(f"Import {imp.id} is already {imp.status.value}")
            self.imports.set_status(imp.id, status, self.clock())
            updated = self.imports.get(imp.id)
        return updated

    # ----- maintenance -----

    def refresh_overdue(self, actor: Actor, as_of: Optional[date] = None) -> int:
        """
        Flag pending obligations past their due date as overdue.

        Obligations of cancelled imports are skipped. The owning importer is
        notified once per newly flagged obligation. Returns the number flagged.
        """
        if actor.role != Role.ADMINISTRATOR:
            raise Forbidden("Only administrators may refresh obligation status")
        with self._unit_of_work():
            flagged = self.obligations.mark_overdue(as_of or self.clock().date())
        logger.info("Overdue obligations flagged", extra={"flagged": len(flagged)})

        for imp, obligation in flagged:
            self.dispatch(
                WorkflowEvent(
                    event_type="obligation.overdue",
                    importer_id=imp.importer_id,
                    application_id=imp.credit_application_id,
                    import_id=imp.id,
                    data={
                        "amount_cents": obligation.amount_cents,
                        "due_date": obligation.due_date.isoformat(),
                        "sequence_number": obligation.sequence_number,
                    },
                )
            )
        return len(flagged)

    def reconcile_ledger(self, actor: Actor, importer_id: str) -> CreditLedger:
        """Recompute the importer's aggregate from source rows and repair drift"""
        if actor.role != Role.ADMINISTRATOR:
            raise Forbidden("Only administrators may reconcile ledgers")

        with importer_locks(importer_id), self._unit_of_work():
            maintained = self.ledgers.get(importer_id)
            recomputed = CreditLedger.from_history(
                importer_id,
                self.applications.list_by_importer(importer_id),
                self.imports.list_by_importer(importer_id),
            )
            if (maintained.granted_cents, maintained.drawn_cents) != (
                recomputed.granted_cents,
                recomputed.drawn_cents,
            ):
                logger.warning(
                    "Ledger drift repaired",
                    extra={
                        "importer_id": importer_id,
                        "maintained_granted_cents": maintained.granted_cents,
                        "maintained_drawn_cents": maintained.drawn_cents,
                        "granted_cents": recomputed.granted_cents,
                        "drawn_cents": recomputed.drawn_cents,
                    },
                )
            self.ledgers.overwrite(recomputed, self.clock())
            reconciled = self.ledgers.get(importer_id)
        return reconciled
