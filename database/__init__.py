"""
Database Package Initialization.

============================================================
CRM DATABASE ACCESS LAYER
============================================================

Engine, session and transaction helpers shared by every
package that talks to the CRM PostgreSQL database.

REQUIRED:
- Every failure raises hard exceptions
- All transactions are explicit with commit/rollback

============================================================
"""

from .engine import (
    # Declarative base
    Base,

    # Constants
    DEFAULT_DATABASE_URL,
    REQUIRED_RELATIONS,

    # Engine creation
    get_database_url,
    create_database_engine,
    get_engine,
    reset_engine,

    # Session management
    get_session,
    get_db_session,
    transaction_scope,

    # Database initialization
    verify_database_connection,
    create_all_tables,
    find_missing_relations,

    # Exceptions
    DatabasePersistenceError,
    DatabaseConnectionError,
    DatabaseInitializationError,
)


__all__ = [
    "Base",
    "DEFAULT_DATABASE_URL",
    "REQUIRED_RELATIONS",
    "get_database_url",
    "create_database_engine",
    "get_engine",
    "reset_engine",
    "get_session",
    "get_db_session",
    "transaction_scope",
    "verify_database_connection",
    "create_all_tables",
    "find_missing_relations",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
]
