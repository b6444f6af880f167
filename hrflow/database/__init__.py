"""Database package for connection and session management."""

from hrflow.database.database import (
    DatabaseConfig,
    create_db_engine,
    create_session_factory,
    init_db,
    session_scope,
)

__all__ = [
    "DatabaseConfig",
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "session_scope",
]
