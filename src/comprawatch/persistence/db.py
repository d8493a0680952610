"""
Database connection and session management.

Provides sync database access with connection pooling, session lifecycle
management, and the ping/reconnect hooks used by health checks and store
recovery.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.logging import get_logger
from .models import Base

logger = get_logger("persistence.db")


class StoreUnavailableError(Exception):
    """The database cannot be reached."""


# =============================================================================
# Global Engine References
# =============================================================================

_engine: Engine | None = None
_engine_url: str | None = None
_engine_options: dict[str, object] = {}
_session_factory: sessionmaker[Session] | None = None


# =============================================================================
# SQLite Configuration
# =============================================================================


def _configure_sqlite(engine: Engine) -> None:
    """Configure SQLite for reliability.

    pysqlite's own transaction handling does not cooperate with SAVEPOINT,
    so transactions are started explicitly and the driver's implicit BEGIN is
    disabled.
    """
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


# =============================================================================
# Engine Creation
# =============================================================================


def get_engine(
    url: str | None = None,
    echo: bool = False,
    pool_size: int = 5,
) -> Engine:
    """Get or create the database engine.

    Calling with a different URL disposes the current engine first.

    Args:
        url: SQLAlchemy database URL (required on first call)
        echo: Whether to log SQL statements
        pool_size: Connection pool size (ignored for SQLite)

    Returns:
        SQLAlchemy Engine instance
    """
    global _engine, _engine_url, _engine_options, _session_factory

    if _engine is not None and (url is None or url == _engine_url):
        return _engine

    if url is None:
        raise StoreUnavailableError("Database engine is not configured")

    if _engine is not None:
        dispose_engines()

    # Ensure data directory exists for SQLite
    if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
        db_path = url.replace("sqlite:///", "")
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    if url.startswith("sqlite"):
        _engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        _configure_sqlite(_engine)
    else:
        _engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=10,
            pool_pre_ping=True,
        )

    _engine_url = url
    _engine_options = {"echo": echo, "pool_size": pool_size}
    _session_factory = sessionmaker(
        bind=_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )

    return _engine


# =============================================================================
# Session Management
# =============================================================================


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session that commits on success.

    Usage:
        with get_session() as session:
            session.execute(...)

    Yields:
        SQLAlchemy Session instance
    """
    if _session_factory is None:
        get_engine()

    assert _session_factory is not None
    session = _session_factory()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================================
# Health
# =============================================================================


def ping_database() -> bool:
    """Run ``SELECT 1`` against the store.

    Returns:
        True if the store answered
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, StoreUnavailableError, OSError) as e:
        logger.warning(f"Database ping failed: {e}")
        return False


def reconnect() -> bool:
    """Drop pooled connections, rebuild the engine and ping again."""
    url = _engine_url
    options = dict(_engine_options)
    if url is None:
        return False

    dispose_engines()
    get_engine(url, **options)  # type: ignore[arg-type]
    return ping_database()


# =============================================================================
# Database Initialization
# =============================================================================


def init_db(url: str | None = None, echo: bool = False) -> None:
    """Initialize the database schema.

    Creates all tables if they don't exist. For production use,
    prefer Alembic migrations.
    """
    engine = get_engine(url, echo=echo)
    Base.metadata.create_all(bind=engine)


def drop_db(url: str | None = None) -> None:
    """Drop all database tables.

    WARNING: This will delete all data!
    """
    engine = get_engine(url)
    Base.metadata.drop_all(bind=engine)


# =============================================================================
# Cleanup
# =============================================================================


def dispose_engines() -> None:
    """Dispose of the database engine.

    Should be called on application shutdown.
    """
    global _engine, _engine_url, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    _session_factory = None
