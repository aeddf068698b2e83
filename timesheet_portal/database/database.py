"""Database connection and session management."""

import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from timesheet_portal.models.base import Base


@dataclass
class DatabaseConfig:
    """Database configuration settings."""

    url: str = "sqlite:///./timesheet_portal.db"
    pool_size: int = 5
    max_overflow: int = 10
    echo: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create config from environment variables."""
        return cls(
            url=os.getenv("DATABASE_URL", "sqlite:///./timesheet_portal.db"),
            pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
            echo=os.getenv("DB_ECHO", "false").lower() == "true",
        )

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    def engine_options(self) -> Dict[str, Any]:
        """Keyword arguments for create_engine appropriate to the backend."""
        if self.is_sqlite:
            return {
                "echo": self.echo,
                "connect_args": {"check_same_thread": False},
            }
        return {
            "echo": self.echo,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_pre_ping": True,  # Verify connections before use
        }


# Module-level engine and session factory (initialized lazily)
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """SQLite ignores ON DELETE clauses unless foreign keys are switched on."""

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def get_engine(config: Optional[DatabaseConfig] = None) -> Engine:
    """
    Get or create the SQLAlchemy engine.

    Uses singleton pattern to reuse engine across requests.
    """
    global _engine

    if _engine is None:
        if config is None:
            config = DatabaseConfig.from_env()

        _engine = create_engine(config.url, **config.engine_options())
        if config.is_sqlite:
            enable_sqlite_foreign_keys(_engine)

    return _engine


def get_session_factory(config: Optional[DatabaseConfig] = None) -> sessionmaker[Session]:
    """
    Get or create the session factory.

    Uses singleton pattern to reuse factory across requests.
    """
    global _session_factory

    if _session_factory is None:
        engine = get_engine(config)
        _session_factory = sessionmaker(
            bind=engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    return _session_factory


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.

    Use with FastAPI's Depends() for automatic session management.
    Commits on success, rolls back on exception.
    """
    session_factory = get_session_factory()
    session = session_factory()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI.

    Useful for scripts and one-off maintenance tasks.
    """
    session_factory = get_session_factory()
    session = session_factory()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(config: Optional[DatabaseConfig] = None) -> None:
    """
    Initialize database by creating all tables.

    Intended for SQLite/development setups.
    Use Alembic migrations for production.
    """
    # Importing the package registers every mapped class on Base.metadata
    import timesheet_portal.models  # noqa: F401

    engine = get_engine(config)
    Base.metadata.create_all(bind=engine)


def dispose_engine() -> None:
    """
    Dispose of the engine and reset module state.

    Useful for testing and graceful shutdown.
    """
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None
