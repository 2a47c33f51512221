"""Database connection and session management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator

from .config import get_settings

settings = get_settings()


def _engine_options(database_url: str) -> dict:
    """Pool options for the configured backend.

    SQLite (local development, tests) does not take the Postgres pool knobs.
    """
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,   # Verify connections before using
        "pool_size": 3,
        "max_overflow": 7,
        "pool_recycle": 3600,
        "pool_timeout": 30,
    }


# Create database engine
engine = create_engine(settings.database_url, **_engine_options(settings.database_url))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency function to get database session.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
