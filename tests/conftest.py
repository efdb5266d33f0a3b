"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from typing import Generator, List
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from tradecredit.api.main import create_app
from tradecredit.domain.models import Actor, CreditApplication, FinancialStatus, PreAnalysisStatus, Role, WorkflowEvent
from tradecredit.infrastructure.database.models import Base
from tradecredit.infrastructure.database.session import build_engine, create_tables, get_db
from tradecredit.services.application_service import ApplicationService


NOW = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)

IMPORTER = Actor(role=Role.IMPORTER, importer_id="importer-001")
OTHER_IMPORTER = Actor(role=Role.IMPORTER, importer_id="importer-002")
ADMIN = Actor(role=Role.ADMINISTRATOR)
FINANCIAL = Actor(role=Role.FINANCIAL_INSTITUTION)


def fixed_clock() -> datetime:
    return NOW


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so concurrent sessions see each other's commits"""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    create_tables(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """Create test database and session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def events() -> List[WorkflowEvent]:
    """Workflow events dispatched by the service, in order"""
    return []


@pytest.fixture
def service(db: Session, events: List[WorkflowEvent]) -> ApplicationService:
    return ApplicationService(db, dispatch=events.append, clock=fixed_clock)


@pytest.fixture
def finalized_application(service: ApplicationService) -> CreditApplication:
    """Application approved for 50000 over 30/60/90 days with 30% down payment, finalized unchanged"""
    app = service.submit(IMPORTER, 50000, "Import of industrial components")
    service.record_pre_analysis(ADMIN, app.id, PreAnalysisStatus.PRE_APPROVED)
    service.record_financial_decision(
        FINANCIAL,
        app.id,
        FinancialStatus.APPROVED,
        credit_limit_cents=50000,
        terms_days=[30, 60, 90],
        down_payment_percent=Decimal("30"),
    )
    return service.finalize(ADMIN, app.id)


@pytest.fixture
def notifications() -> Generator[AsyncMock, None, None]:
    """Patch outbound notification delivery"""
    with patch(
        "tradecredit.infrastructure.clients.notifications.NotificationClient.send_event",
        new_callable=AsyncMock,
    ) as mock_send:
        yield mock_send


@pytest.fixture
def client(db: Session, notifications: AsyncMock) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)
