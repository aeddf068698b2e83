"""Database package for connection and session management."""

from timesheet_portal.database.database import (
    DatabaseConfig,
    get_db,
    get_db_context,
    get_engine,
    get_session_factory,
    init_db,
)

__all__ = [
    "DatabaseConfig",
    "get_db",
    "get_db_context",
    "get_engine",
    "get_session_factory",
    "init_db",
]
