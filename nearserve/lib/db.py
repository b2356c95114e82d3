"""
Database engine and session management using SQLAlchemy 2.x.
Provides connection pooling and session factory for the application.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session, DeclarativeBase
from sqlalchemy.pool import StaticPool
from typing import Generator

from nearserve.lib.settings import settings


# Base class for all SQLAlchemy models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def _engine_options(url: str) -> dict:
    """Pool options per backend. SQLite (tests, local dev) shares one connection."""
    if url.startswith("sqlite"):
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_size": 5,
        "max_overflow": 10,
    }


engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)


# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI routes to get a database session.

    Usage:
        @app.get("/example")
        def example(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize the database by creating all tables.
    Should be called after all models are imported.
    """
    import nearserve.models  # noqa: F401  registers every table on Base.metadata
    Base.metadata.create_all(bind=engine)


def drop_db():
    """
    Drop all tables. Use with caution - for testing only.
    """
    Base.metadata.drop_all(bind=engine)
