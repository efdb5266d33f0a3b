"""Database engine and session management"""

from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from tradecredit.config import settings
from tradecredit.infrastructure.database.models import Base


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    PostgreSQL gets a bounded, pre-pinged pool. SQLite (local runs and tests)
    is shared across request threads, so same-thread checking is disabled and
    writers wait on the file lock instead of failing immediately.
    """
    options: Dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False, "timeout": settings.sqlite_busy_timeout_seconds}
    else:
        options.update(
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=3600,
        )
    return create_engine(database_url, **options)


def create_tables(bind: Engine) -> None:
    """Create any missing tables; schema changes are out of scope"""
    Base.metadata.create_all(bind=bind)


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
