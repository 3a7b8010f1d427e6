"""
Engine and session lifecycle for the expense store.

PostgreSQL in production; SQLite URLs work for local runs and the test suite.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator, Dict, Any
import logging

from app.database.models import Base

logger = logging.getLogger(__name__)

engine = None
SessionLocal = None


def _engine_options(database_url: str) -> Dict[str, Any]:
    if not database_url.startswith("sqlite"):
        return {"pool_pre_ping": True}

    options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # In-memory databases live on a single connection
        options["poolclass"] = StaticPool
    return options


def init_db(database_url: str):
    """Bind the engine and session factory, then create the users and expenses tables."""
    global engine, SessionLocal

    engine = create_engine(database_url, echo=False, **_engine_options(database_url))
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.create_all(bind=engine)
    logger.info("Expense store ready on %s", engine.url.render_as_string(hide_password=True))


def ensure_db_initialized():
    if SessionLocal is not None:
        return
    from app.config import settings
    if not settings.DATABASE_URL:
        raise RuntimeError("DATABASE_URL must be set before the expense store is used")
    init_db(settings.DATABASE_URL)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding one session per request.

    Services commit their own unit of work; the session is closed afterwards
    whether or not the request succeeded.
    """
    ensure_db_initialized()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def close_db():
    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
        logger.info("Expense store connection closed")
    engine = None
    SessionLocal = None
