"""
Database engine and session management
"""

import logging
from typing import Generator, Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from account_service.core.config import Settings

logger = logging.getLogger(__name__)

Base = declarative_base()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)

_engine: Optional[Engine] = None


def init_engine(settings: Settings) -> Engine:
    """Create the process-wide engine and bind the session factory to it"""
    global _engine

    if settings.DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            settings.DATABASE_URL,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            settings.DATABASE_URL,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_timeout=settings.DATABASE_POOL_TIMEOUT,
            pool_pre_ping=True,
        )

    SessionLocal.configure(bind=engine)
    _engine = engine
    return engine


def init_db() -> None:
    """Create any missing tables"""
    # Import models so they register on Base.metadata
    from account_service import models  # noqa: F401

    if _engine is None:
        raise RuntimeError("Database engine not initialized")
    Base.metadata.create_all(bind=_engine)
    logger.info("Database tables ensured")


def dispose_db() -> None:
    """Dispose engine connections on shutdown"""
    if _engine is not None:
        _engine.dispose()


def get_db() -> Generator[Session, None, None]:
    """Dependency function yielding a request-scoped session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
