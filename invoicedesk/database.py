"""
SQLAlchemy engine and sessions.

Request handlers get one session per request through ``get_db``; the
processing worker opens its own sessions from ``SessionLocal``.
"""
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from invoicedesk.config import get_settings


def build_engine(database_url: str) -> Engine:
    """Engine for SQLite in development or a pooled PostgreSQL server."""
    options: Dict[str, Any]
    if database_url.startswith("sqlite"):
        # Worker threads and the event loop share connections
        options = {"connect_args": {"check_same_thread": False}}
    else:
        options = {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}
    return create_engine(database_url, **options)


engine = build_engine(get_settings().database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Session for one request, closed when the response is done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create any missing tables for the registered models."""
    import invoicedesk.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
