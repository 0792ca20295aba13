"""
Database Session Management.

Supports multiple database backends:
- SQLite (default, for development/testing)
- PostgreSQL (recommended for production)

Usage:
    from booktone.db.session import get_db, SessionLocal

    # In FastAPI endpoints
    @router.get("/recommendations/{book_id}")
    def get_book_recommendations(book_id: int, db: Session = Depends(get_db)):
        ...

The batch engine never shares a request session; it opens its own short-lived
sessions from ``SessionLocal`` (see ``booktone.batch.store``).
"""
import logging
import time
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool, QueuePool

from booktone.config import settings


# =============================================================================
# Engine Configuration
# =============================================================================
def get_engine_args(database_url: str) -> dict:
    """
    Get database engine arguments based on database type.

    SQLite requires special handling for:
    - Same thread checking (the worker runs store calls in a thread pool)
    - Connection pooling

    PostgreSQL uses connection pooling for performance.
    """
    if database_url.startswith("sqlite"):
        args = {
            "connect_args": {"check_same_thread": False},
            "echo": settings.DB_ECHO
        }
        # An in-memory database only exists on its one connection
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            args["poolclass"] = StaticPool
        return args

    return {
        "poolclass": QueuePool,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,  # Verify connection before using
        "echo": settings.DB_ECHO
    }


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, **get_engine_args(database_url))


# Create engine
engine = build_engine(settings.get_database_url())


# =============================================================================
# Session Factory
# =============================================================================
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine
)


# =============================================================================
# Database Dependency
# =============================================================================
def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency for FastAPI.

    The session is automatically closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =============================================================================
# Table Creation
# =============================================================================
def create_tables(bind: Engine = engine):
    """
    Create all database tables.

    Called during application startup.
    """
    from booktone.models.base import Base
    # Import all models to register them with Base
    from booktone.models import batch, recommendation  # noqa: F401

    Base.metadata.create_all(bind=bind)


def drop_tables(bind: Engine = engine):
    """
    Drop all database tables.

    USE WITH CAUTION - Only for testing/development.
    """
    from booktone.models.base import Base
    Base.metadata.drop_all(bind=bind)


# =============================================================================
# Optional: Slow Query Logging
# =============================================================================
if settings.DEBUG:
    logger = logging.getLogger("sqlalchemy.slow_queries")
    SLOW_QUERY_THRESHOLD = 1.0  # seconds

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        total_time = time.time() - conn.info["query_start_time"].pop(-1)
        if total_time > SLOW_QUERY_THRESHOLD:
            logger.warning(f"Slow query ({total_time:.2f}s): {statement[:200]}...")
