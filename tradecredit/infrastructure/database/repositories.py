"""Data access layer for credit applications, imports, obligations and the ledger"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from tradecredit.domain.exceptions import StorageConflict
from tradecredit.domain.ledger import CreditLedger
from tradecredit.domain.models import (
    AdminFinalStatus,
    CreditApplication,
    CreditTerms,
    FinancialStatus,
    Import,
    ImportStatus,
    ObligationKind,
    ObligationStatus,
    PaymentObligation,
    Phase,
    PreAnalysisStatus,
    RiskLevel,
)
from tradecredit.infrastructure.database.models import (
    CreditApplicationRecord,
    ImporterLedgerRecord,
    ImportRecord,
    PaymentObligationRecord,
)


def _terms_from_columns(limit: Optional[int], days: Optional[list], percent: Optional[Decimal]) -> Optional[CreditTerms]:
    if limit is None:
        return None
    return CreditTerms(
        credit_limit_cents=limit,
        terms_days=tuple(days or ()),
        down_payment_percent=Decimal(percent) if percent is not None else Decimal(0),
    )


def _application_to_domain(record: CreditApplicationRecord) -> CreditApplication:
    return CreditApplication(
        id=record.id,
        importer_id=record.importer_id,
        requested_cents=record.requested_cents,
        purpose=record.purpose,
        pre_analysis_status=PreAnalysisStatus(record.pre_analysis_status),
        financial_status=FinancialStatus(record.financial_status),
        admin_final_status=AdminFinalStatus(record.admin_final_status),
        risk_level=RiskLevel(record.risk_level) if record.risk_level else None,
        offered_terms=_terms_from_columns(
            record.credit_limit_cents, record.approved_terms_days, record.down_payment_percent
        ),
        final_terms=_terms_from_columns(
            record.final_credit_limit_cents, record.final_approved_terms_days, record.final_down_payment_percent
        ),
        pre_analysis_notes=record.pre_analysis_notes,
        financial_notes=record.financial_notes,
        rejection_reason=record.rejection_reason,
        rejected_phase=Phase(record.rejected_phase) if record.rejected_phase else None,
        cancelled_at=record.cancelled_at,
        version=record.version,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _application_columns(app: CreditApplication) -> Dict[str, Any]:
    """Flatten the mutable part of an application into column values"""
    offer = app.offered_terms
    final = app.final_terms
    return {
        "pre_analysis_status": app.pre_analysis_status.value,
        "financial_status": app.financial_status.value,
        "admin_final_status": app.admin_final_status.value,
        "risk_level": app.risk_level.value if app.risk_level else None,
        "credit_limit_cents": offer.credit_limit_cents if offer else None,
        "approved_terms_days": list(offer.terms_days) if offer else None,
        "down_payment_percent": offer.down_payment_percent if offer else None,
        "final_credit_limit_cents": final.credit_limit_cents if final else None,
        "final_approved_terms_days": list(final.terms_days) if final else None,
        "final_down_payment_percent": final.down_payment_percent if final else None,
        "pre_analysis_notes": app.pre_analysis_notes,
        "financial_notes": app.financial_notes,
        "rejection_reason": app.rejection_reason,
        "rejected_phase": app.rejected_phase.value if app.rejected_phase else None,
        "cancelled_at": app.cancelled_at,
        "version": app.version,
        "updated_at": app.updated_at,
    }


def _import_to_domain(record: ImportRecord) -> Import:
    return Import(
        id=record.id,
        importer_id=record.importer_id,
        credit_application_id=record.credit_application_id,
        total_value_cents=record.total_value_cents,
        status=ImportStatus(record.status),
        drawdown_date=record.drawdown_date,
        cancelled_at=record.cancelled_at,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _obligation_to_domain(record: PaymentObligationRecord) -> PaymentObligation:
    return PaymentObligation(
        id=record.id,
        import_id=record.import_id,
        kind=ObligationKind(record.kind),
        sequence_number=record.sequence_number,
        total_in_installment_set=record.total_in_installment_set,
        amount_cents=record.amount_cents,
        due_date=record.due_date,
        status=ObligationStatus(record.status),
    )


class ApplicationRepository:
    """Repository for credit applications"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, app: CreditApplication) -> CreditApplication:
        """Persist a freshly submitted application"""
        record = CreditApplicationRecord(
            id=app.id,
            importer_id=app.importer_id,
            requested_cents=app.requested_cents,
            purpose=app.purpose,
            created_at=app.created_at,
            **_application_columns(app),
        )
        self.db.add(record)
        self.db.flush()
        return _application_to_domain(record)

    def get(self, application_id: uuid.UUID) -> Optional[CreditApplication]:
        """Fetch the current committed state, bypassing the identity map"""
        record = self.db.get(CreditApplicationRecord, application_id, populate_existing=True)
        return _application_to_domain(record) if record else None

    def list_by_importer(self, importer_id: str) -> List[CreditApplication]:
        records = self.db.scalars(
            select(CreditApplicationRecord)
            .where(CreditApplicationRecord.importer_id == importer_id)
            .order_by(CreditApplicationRecord.created_at.desc())
        ).all()
        return [_application_to_domain(r) for r in records]

    def list_recent(self, limit: int = 50) -> List[CreditApplication]:
        records = self.db.scalars(
            select(CreditApplicationRecord).order_by(CreditApplicationRecord.created_at.desc()).limit(limit)
        ).all()
        return [_application_to_domain(r) for r in records]

    def compare_and_swap(self, expected_version: int, app: CreditApplication) -> None:
        """
        Write a transition only if nobody else wrote since `expected_version` was read.

        Raises:
            StorageConflict: row version moved on (concurrent writer)
        """
        result = self.db.execute(
            update(CreditApplicationRecord)
            .where(CreditApplicationRecord.id == app.id)
            .where(CreditApplicationRecord.version == expected_version)
            .values(**_application_columns(app))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StorageConflict(f"Credit application {app.id} was modified concurrently")


class ImportRepository:
    """Repository for imports (drawdowns)"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, imp: Import) -> Import:
        record = ImportRecord(
            id=imp.id,
            importer_id=imp.importer_id,
            credit_application_id=imp.credit_application_id,
            total_value_cents=imp.total_value_cents,
            status=imp.status.value,
            drawdown_date=imp.drawdown_date,
            created_at=imp.created_at,
            updated_at=imp.updated_at,
        )
        self.db.add(record)
        self.db.flush()
        return _import_to_domain(record)

    def get(self, import_id: uuid.UUID) -> Optional[Import]:
        record = self.db.get(ImportRecord, import_id, populate_existing=True)
        return _import_to_domain(record) if record else None

    def list_by_importer(self, importer_id: str) -> List[Import]:
        records = self.db.scalars(
            select(ImportRecord).where(ImportRecord.importer_id == importer_id).order_by(ImportRecord.created_at)
        ).all()
        return [_import_to_domain(r) for r in records]

    def set_status(
        self,
        import_id: uuid.UUID,
        status: ImportStatus,
        now: datetime,
        cancelled_at: Optional[datetime] = None,
    ) -> None:
        values = {"status": status.value, "updated_at": now}
        if cancelled_at is not None:
            values["cancelled_at"] = cancelled_at
        self.db.execute(
            update(ImportRecord)
            .where(ImportRecord.id == import_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    def drawn_against(self, application_id: uuid.UUID) -> int:
        """Value of non-cancelled imports referencing one application"""
        total = self.db.scalar(
            select(func.coalesce(func.sum(ImportRecord.total_value_cents), 0))
            .where(ImportRecord.credit_application_id == application_id)
            .where(ImportRecord.status != ImportStatus.CANCELLED.value)
        )
        return int(total or 0)


class ObligationRepository:
    """Repository for payment obligations"""

    def __init__(self, db: Session):
        self.db = db

    def exists_for_import(self, import_id: uuid.UUID) -> bool:
        count = self.db.scalar(
            select(func.count()).select_from(PaymentObligationRecord).where(PaymentObligationRecord.import_id == import_id)
        )
        return bool(count)

    def create_schedule(self, obligations: List[PaymentObligation]) -> List[PaymentObligation]:
        """Insert an obligation set in one flush"""
        records = [
            PaymentObligationRecord(
                import_id=o.import_id,
                kind=o.kind.value,
                sequence_number=o.sequence_number,
                total_in_installment_set=o.total_in_installment_set,
                amount_cents=o.amount_cents,
                due_date=o.due_date,
                status=o.status.value,
            )
            for o in obligations
        ]
        self.db.add_all(records)
        self.db.flush()
        return [_obligation_to_domain(r) for r in records]

    def list_by_import(self, import_id: uuid.UUID) -> List[PaymentObligation]:
        records = self.db.scalars(
            select(PaymentObligationRecord)
            .where(PaymentObligationRecord.import_id == import_id)
            .order_by(PaymentObligationRecord.sequence_number)
        ).all()
        return [_obligation_to_domain(r) for r in records]

    def mark_overdue(self, as_of: date) -> List[Tuple[Import, PaymentObligation]]:
        """
        Flag pending obligations due before `as_of`.

        Obligations of cancelled imports are left untouched. Returns each newly
        flagged obligation with the import it belongs to.
        """
        rows = self.db.execute(
            select(PaymentObligationRecord, ImportRecord)
            .join(ImportRecord, PaymentObligationRecord.import_id == ImportRecord.id)
            .where(ImportRecord.status != ImportStatus.CANCELLED.value)
            .where(PaymentObligationRecord.status == ObligationStatus.PENDING.value)
            .where(PaymentObligationRecord.due_date < as_of)
            .order_by(ImportRecord.created_at, PaymentObligationRecord.sequence_number)
        ).all()
        if not rows:
            return []

        self.db.execute(
            update(PaymentObligationRecord)
            .where(PaymentObligationRecord.id.in_([obligation.id for obligation, _ in rows]))
            .where(PaymentObligationRecord.status == ObligationStatus.PENDING.value)
            .values(status=ObligationStatus.OVERDUE.value)
            .execution_options(synchronize_session=False)
        )

        flagged = []
        for obligation_record, import_record in rows:
            obligation = _obligation_to_domain(obligation_record)
            obligation.status = ObligationStatus.OVERDUE
            flagged.append((_import_to_domain(import_record), obligation))
        return flagged


class LedgerRepository:
    """Repository for the maintained per-importer credit aggregate"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, importer_id: str) -> CreditLedger:
        record = self.db.get(ImporterLedgerRecord, importer_id, populate_existing=True)
        if record is None:
            return CreditLedger(importer_id=importer_id)
        return CreditLedger(
            importer_id=importer_id,
            granted_cents=record.granted_cents,
            drawn_cents=record.drawn_cents,
            version=record.version,
        )

    def _ensure(self, importer_id: str, now: datetime) -> None:
        if self.db.get(ImporterLedgerRecord, importer_id) is None:
            self.db.add(
                ImporterLedgerRecord(importer_id=importer_id, granted_cents=0, drawn_cents=0, version=0, updated_at=now)
            )
            self.db.flush()

    def grant(self, importer_id: str, amount_cents: int, now: datetime) -> None:
        """Add a finalized application's limit to the importer's pool"""
        self._ensure(importer_id, now)
        self.db.execute(
            update(ImporterLedgerRecord)
            .where(ImporterLedgerRecord.importer_id == importer_id)
            .values(
                granted_cents=ImporterLedgerRecord.granted_cents + amount_cents,
                version=ImporterLedgerRecord.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

    def reserve(self, importer_id: str, amount_cents: int, now: datetime) -> bool:
        """
        Conditionally consume credit: succeeds only if headroom still covers the amount.

        The condition is evaluated by the database inside the UPDATE, so two
        writers can never both observe the same headroom.
        """
        result = self.db.execute(
            update(ImporterLedgerRecord)
            .where(ImporterLedgerRecord.importer_id == importer_id)
            .where(ImporterLedgerRecord.granted_cents - ImporterLedgerRecord.drawn_cents >= amount_cents)
            .values(
                drawn_cents=ImporterLedgerRecord.drawn_cents + amount_cents,
                version=ImporterLedgerRecord.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def release(self, importer_id: str, amount_cents: int, now: datetime) -> None:
        """Return a cancelled import's value to the pool"""
        self.db.execute(
            update(ImporterLedgerRecord)
            .where(ImporterLedgerRecord.importer_id == importer_id)
            .values(
                drawn_cents=ImporterLedgerRecord.drawn_cents - amount_cents,
                version=ImporterLedgerRecord.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

    def overwrite(self, ledger: CreditLedger, now: datetime) -> None:
        """Replace the aggregate with recomputed totals (reconciliation only)"""
        self._ensure(ledger.importer_id, now)
        self.db.execute(
            update(ImporterLedgerRecord)
            .where(ImporterLedgerRecord.importer_id == ledger.importer_id)
            .values(
                granted_cents=ledger.granted_cents,
                drawn_cents=ledger.drawn_cents,
                version=ImporterLedgerRecord.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
