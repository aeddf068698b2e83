"""Shared fixtures: in-memory database, seeded reference data and API client."""

from typing import Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from timesheet_portal.config.settings import Settings
from timesheet_portal.database.database import enable_sqlite_foreign_keys, get_db
from timesheet_portal.main import create_app
from timesheet_portal.models import Base, Employee, Project, ProjectStatus, Role, Stage
from timesheet_portal.utils.security import hash_password


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the environment."""
    return Settings()


@pytest.fixture
def seeded(db_session) -> Dict[str, object]:
    """
    Reference data most tests rely on.

    PSEC-000 is the default approver; EMP001/EMP002 book time against
    PROJ001/PROJ002.
    """
    password = hash_password("secret")
    records = {
        "approver": Employee(
            employee_id="PSEC-000",
            name="Default Approver",
            email="approver@psec.test",
            password=password,
            role=Role.LEVEL1,
        ),
        "alice": Employee(
            employee_id="EMP001",
            name="Alice Tan",
            email="alice@psec.test",
            password=password,
            role=Role.LEVEL3,
            position="Architect",
        ),
        "ben": Employee(
            employee_id="EMP002",
            name="Ben Lim",
            email="ben@psec.test",
            password=password,
            role=Role.LEVEL2,
        ),
        "alpha": Project(project_code="PROJ001", name="Alpha Tower", status=ProjectStatus.ACTIVE),
        "beta": Project(project_code="PROJ002", name="Beta Park", status=ProjectStatus.ACTIVE),
        "design": Stage(task_id="TD.01.00", name="Schematic Design", category="DESIGN"),
    }
    db_session.add_all(records.values())
    db_session.commit()
    return records


# =============================================================================
# CSV
# =============================================================================

@pytest.fixture
def build_csv():
    """Return a function that renders header + rows as CSV bytes."""

    def _build(headers: List[str], rows: List[List[str]], bom: bool = False) -> bytes:
        lines = [",".join(headers)] + [",".join(row) for row in rows]
        text = "\n".join(lines) + "\n"
        if bom:
            text = "\ufeff" + text
        return text.encode("utf-8")

    return _build


# =============================================================================
# API
# =============================================================================

@pytest.fixture
def app(session_factory):
    """Application whose get_db dependency uses the test database."""
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"X-User-ID": "PSEC-000", "X-User-Role": "LEVEL1"}


@pytest.fixture
def multipart():
    """Return a function building TestClient multipart kwargs for an upload."""

    def _multipart(content: bytes, data_type: Optional[str], filename: str = "data.csv", **fields) -> Dict:
        data = {} if data_type is None else {"dataType": data_type}
        data.update(fields)
        return {"files": {"csvFile": (filename, content, "text/csv")}, "data": data}

    return _multipart
