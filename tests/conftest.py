"""
Test configuration for the dental clinic scheduling backend.
"""
import os

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dental_clinic.database import Base, get_db
from dental_clinic.main import app
from dental_clinic.auth.models import UserRole
from dental_clinic.auth.schemas import CurrentUser
from dental_clinic.auth.security import create_access_token
from dental_clinic.appointments.models import AppointmentCategory
from dental_clinic.appointments.schemas import AppointmentCreate
from dental_clinic.appointments.service import create_appointment

# Test database URL
TEST_DATABASE_URL = "sqlite://"

# Create test database engine
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """
    Create a fresh database for each test.
    """
    Base.metadata.create_all(bind=engine)
    
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """
    Create a test client with a test database session.
    """
    def override_get_db():
        try:
            yield db
        finally:
            pass
    
    app.dependency_overrides[get_db] = override_get_db
    
    with TestClient(app) as client:
        yield client
    
    app.dependency_overrides = {}


@pytest.fixture
def auth_headers():
    """
    Build an Authorization header for a caller.
    """
    def _headers(role: str = "receptionist", user_id: str = "staff-1"):
        token = create_access_token({"sub": user_id, "role": role})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def receptionist():
    return CurrentUser(id="reception-1", role=UserRole.RECEPTIONIST)


@pytest.fixture
def book(db, receptionist):
    """
    Book an appointment through the service; times default to UTC.
    """
    def _book(start, end, practitioner_id="dr-p", subject_id="patient-1", timezone="UTC", **extra):
        extra.setdefault("category", AppointmentCategory.CHECKUP)
        data = AppointmentCreate(
            practitioner_id=practitioner_id,
            subject_id=subject_id,
            start_time=start,
            end_time=end,
            timezone=timezone,
            **extra
        )
        return create_appointment(db, data, receptionist)
    return _book


@pytest.fixture
def session_factory(tmp_path):
    """
    Session factory on a file-backed database, one connection per session.

    For tests that run the service from several threads at once.
    """
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'clinic.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=file_engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    file_engine.dispose()
