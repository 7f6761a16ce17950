"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from datetime import UTC, datetime

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from intranet.core import database as db_module
from intranet.core.auth import encode_access_token
from intranet.core.database import Base
from intranet.core.realtime import reset_broker
from intranet.models.employee import Employee, EmployeeRole, EmployeeStatus
from intranet.models.hospital import Hospital
from intranet.repositories.employee_repository import EmployeeRepository
from intranet.services.chat_runtime import reset_chat_runtime

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Well-known default hospital ID used across all tests
DEFAULT_HOSPITAL_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

CHAT_TABLES = ("message_reaction", "message", "chat_room_participant", "chat_room")


def _seed_default_hospital(session: Session) -> None:
    """Insert a default hospital used by all tests."""
    hospital = session.query(Hospital).filter(Hospital.id == DEFAULT_HOSPITAL_ID).first()
    if hospital is None:
        hospital = Hospital(
            id=DEFAULT_HOSPITAL_ID,
            name="Default Test Hospital",
        )
        session.add(hospital)
        session.commit()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data and the chat runtime
    (in-memory store, storage decision, broker) after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal
    reset_chat_runtime()
    reset_broker()

    Base.metadata.create_all(bind=_test_engine)

    session = _TestSessionLocal()
    try:
        _seed_default_hospital(session)
    finally:
        session.close()

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    reset_chat_runtime()
    reset_broker()
    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for direct repository and service testing."""
    gen = db_module.get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def drop_chat_tables():
    """Remove the chat tables so chat storage runs in degraded mode."""
    for name in CHAT_TABLES:
        Base.metadata.tables[name].drop(bind=_test_engine, checkfirst=True)
    yield


@pytest.fixture
def default_hospital_id():
    """Return the default hospital ID for tests."""
    return DEFAULT_HOSPITAL_ID


def make_employee(
    db: Session,
    name: str,
    email: str | None = None,
    *,
    role: str = EmployeeRole.EMPLOYEE.value,
    status: str = EmployeeStatus.ACTIVE.value,
    hospital_id: uuid.UUID = DEFAULT_HOSPITAL_ID,
    department_id: uuid.UUID | None = None,
    position: str | None = None,
    auth_user_id: str | None = None,
) -> Employee:
    return EmployeeRepository(db).create(
        name=name,
        email=email or f"{name.lower().replace(' ', '.')}@hospital.test",
        hospital_id=hospital_id,
        role=role,
        status=status,
        department_id=department_id,
        position=position,
        auth_user_id=auth_user_id,
    )


def auth_headers(
    email: str, user_id: str | None = None, name: str | None = None, *, verified: bool = True
) -> dict:
    token = encode_access_token(
        user_id or f"auth-{email}",
        email,
        metadata={"name": name} if name else None,
        email_verified_at=datetime(2026, 1, 1, tzinfo=UTC) if verified else None,
    )
    return {"Authorization": f"Bearer {token}"}
