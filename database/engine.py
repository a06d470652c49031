"""
Database Persistence Layer - Core Engine.

============================================================
CRM DATABASE ACCESS
============================================================

Shared SQLAlchemy engine and session management for the
CRM PostgreSQL database.

The engagement core reads principal rollups from the
principal_activity_summary materialized view and records
view refreshes in activity_refresh_log. Both go through
the sessions created here.

Requirements:
- One pooled engine per process, built from the environment
- Sessions never commit implicitly, except transaction_scope()
- Connection and schema problems raise, never degrade

============================================================
"""

import os
import logging
from typing import Generator, Iterable, List, Optional
from contextlib import contextmanager

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.exc import SQLAlchemyError, OperationalError

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


# =============================================================
# CUSTOM EXCEPTIONS
# =============================================================


class DatabasePersistenceError(Exception):
    """Raised when a CRM database operation fails."""
    pass


class DatabaseConnectionError(DatabasePersistenceError):
    """Raised when the CRM database cannot be reached."""
    pass


class DatabaseInitializationError(DatabasePersistenceError):
    """Raised when application tables cannot be created."""
    pass


# =============================================================
# DECLARATIVE BASE
# =============================================================

# Tables owned by the application. Views managed by SQL
# migrations are mapped on their own metadata.
Base = declarative_base()


# =============================================================
# CONSTANTS
# =============================================================

DEFAULT_DATABASE_URL = "postgresql://crm_user@localhost:5432/crm"

# Relations the engagement core reads or writes
REQUIRED_RELATIONS = (
    "principal_activity_summary",
    "activity_refresh_log",
)


# =============================================================
# DATABASE ENGINE
# =============================================================

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def _redact(url: str) -> str:
    return url.split("@")[-1]


def get_database_url() -> str:
    """
    Resolve the CRM database URL.

    DATABASE_URL_SYNC wins over DATABASE_URL. An asyncpg URL
    is rewritten for the synchronous psycopg2 driver.
    """
    url = os.getenv("DATABASE_URL_SYNC")
    if not url:
        url = os.getenv("DATABASE_URL")
        if url and url.startswith("postgresql+asyncpg"):
            url = url.replace("postgresql+asyncpg", "postgresql", 1)

    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"DATABASE_URL not set, using default: {_redact(url)}")

    return url


def create_database_engine(
    database_url: Optional[str] = None,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    echo: bool = False,
) -> Engine:
    """
    Create a SQLAlchemy engine.

    Without an explicit URL the engine is built from the
    environment and cached for the process. An explicit URL
    always yields a fresh, uncached engine.

    Args:
        database_url: Explicit URL, defaults to the environment
        pool_size: Connections kept open in the pool
        max_overflow: Extra connections allowed under load
        pool_timeout: Seconds to wait for a free connection
        pool_recycle: Recycle connections after N seconds
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    global _engine

    if database_url is None and _engine is not None:
        return _engine

    url = database_url or get_database_url()
    logger.info(f"Creating database engine for: {_redact(url)}")

    if url.startswith("sqlite"):
        # SQLite uses a single-connection pool
        engine = create_engine(url, echo=echo, future=True)
    else:
        engine = create_engine(
            url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
            echo=echo,
            future=True,
        )

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug(f"Connected to {_redact(url)}")

    if database_url is None:
        _engine = engine

    return engine


def get_engine() -> Engine:
    """Return the process engine, creating it on first use."""
    return create_database_engine()


def get_session_factory() -> sessionmaker:
    """Return the process session factory, creating it on first use."""
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            expire_on_commit=False,
        )

    return _SessionFactory


def reset_engine() -> None:
    """Dispose the cached engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


# =============================================================
# SESSION MANAGEMENT
# =============================================================


def get_session() -> Session:
    """
    Open a new session.

    The caller commits and closes it. Prefer get_db_session().
    """
    return get_session_factory()()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Session scope without an implicit commit.

    Usage:
        with get_db_session() as session:
            rollups = ActivityRollupRepository(session).list_rollups()

    Any exception rolls the session back and propagates.
    """
    session = get_session()
    try:
        yield session
    except Exception as e:
        kind = "Database" if isinstance(e, SQLAlchemyError) else "Unexpected"
        logger.error(f"{kind} error, rolling back: {e}")
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def transaction_scope() -> Generator[Session, None, None]:
    """
    Session scope that commits on success.

    Usage:
        with transaction_scope() as session:
            ActivityRollupRepository(session).refresh()

    Database errors are re-raised as DatabasePersistenceError.
    Other exceptions roll back and propagate unchanged.
    """
    session = get_session()
    try:
        yield session
        session.commit()
        logger.debug("Transaction committed")
    except SQLAlchemyError as e:
        logger.error(f"Transaction failed, rolling back: {e}")
        session.rollback()
        raise DatabasePersistenceError(f"Transaction failed: {e}") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================


def verify_database_connection(engine: Optional[Engine] = None) -> bool:
    """
    Run SELECT 1 against the database.

    Returns:
        True if the database answered

    Raises:
        DatabaseConnectionError: If no connection can be made
    """
    engine = engine or get_engine()

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).scalar()
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e

    logger.info("Database connection verified")
    return True


def create_all_tables(engine: Optional[Engine] = None) -> None:
    """
    Create the application tables registered on Base.

    Model modules must be imported first. Views are not
    part of this metadata.

    Raises:
        DatabaseInitializationError: If table creation fails
    """
    engine = engine or get_engine()

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabaseInitializationError(f"Table creation failed: {e}") from e

    logger.info(f"Application tables ready: {', '.join(sorted(Base.metadata.tables))}")


def find_missing_relations(
    engine: Optional[Engine] = None,
    relations: Iterable[str] = REQUIRED_RELATIONS,
) -> List[str]:
    """
    List required tables or views that do not exist.

    On PostgreSQL, has_table() also reports views and
    materialized views.
    """
    inspector = inspect(engine or get_engine())

    missing = []
    for name in relations:
        if inspector.has_table(name):
            logger.info(f"  [OK] Relation verified: {name}")
        else:
            logger.warning(f"  [!!] Relation missing: {name}")
            missing.append(name)
    return missing
