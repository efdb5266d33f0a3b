"""SQLAlchemy ORM models for credit applications, imports and obligations"""

import uuid
from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class CreditApplicationRecord(Base):
    """Credit application with its three review status fields"""

    __tablename__ = "credit_application"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    importer_id = Column(Text, nullable=False, index=True)
    requested_cents = Column(BigInteger, nullable=False)
    purpose = Column(Text, nullable=False)

    pre_analysis_status = Column(Text, nullable=False, default="pending")
    financial_status = Column(Text, nullable=False, default="pending")
    admin_final_status = Column(Text, nullable=False, default="none")
    risk_level = Column(Text, nullable=True)

    # Financial institution offer
    credit_limit_cents = Column(BigInteger, nullable=True)
    approved_terms_days = Column(JSON, nullable=True)
    down_payment_percent = Column(Numeric(5, 2), nullable=True)

    # Administrator finalization
    final_credit_limit_cents = Column(BigInteger, nullable=True)
    final_approved_terms_days = Column(JSON, nullable=True)
    final_down_payment_percent = Column(Numeric(5, 2), nullable=True)

    pre_analysis_notes = Column(Text, nullable=True)
    financial_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    rejected_phase = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency counter, compared on every transition
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    imports = relationship("ImportRecord", back_populates="credit_application")


class ImportRecord(Base):
    """Import operation; credit imports draw down a finalized application"""

    __tablename__ = "credit_import"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    importer_id = Column(Text, nullable=False, index=True)
    credit_application_id = Column(Uuid, ForeignKey("credit_application.id"), nullable=True, index=True)
    total_value_cents = Column(BigInteger, nullable=False)
    status = Column(Text, nullable=False, default="planning")
    drawdown_date = Column(Date, nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    credit_application = relationship("CreditApplicationRecord", back_populates="imports")
    obligations = relationship(
        "PaymentObligationRecord",
        back_populates="credit_import",
        cascade="all, delete-orphan",
        order_by="PaymentObligationRecord.sequence_number",
    )


class PaymentObligationRecord(Base):
    """Down payment or installment generated once per drawdown"""

    __tablename__ = "payment_obligation"
    __table_args__ = (UniqueConstraint("import_id", "sequence_number", name="uq_obligation_sequence"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    import_id = Column(Uuid, ForeignKey("credit_import.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(Text, nullable=False)
    sequence_number = Column(Integer, nullable=False)
    total_in_installment_set = Column(Integer, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    credit_import = relationship("ImportRecord", back_populates="obligations")


class ImporterLedgerRecord(Base):
    """Maintained aggregate of granted and drawn credit per importer"""

    __tablename__ = "importer_credit_ledger"

    importer_id = Column(Text, primary_key=True)
    granted_cents = Column(BigInteger, nullable=False, default=0)
    drawn_cents = Column(BigInteger, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
