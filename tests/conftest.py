import pytest
import os
from datetime import date
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SUBMIT_RATE_LIMIT"] = "1000/minute"
os.environ["SEED_LEAVE_TYPES"] = "false"

from leave_portal.database import Base, get_db
from leave_portal.main import app
from leave_portal.schemas.leave import AccrualRules, CarryOverRules, EmployeeContext, LeaveTypeCreate
from leave_portal.services.leave_type_registry import LeaveTypeRegistry
from fastapi.testclient import TestClient



@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database per test; services commit and roll back on their own."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture(scope="function")
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()

@pytest.fixture(scope="function")
def file_sessionmaker(tmp_path):
    """File-backed database for tests that need several real connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'leave.db'}",
        connect_args={"check_same_thread": False, "timeout": 10},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()

@pytest.fixture(scope="function")
def employee():
    return EmployeeContext(
        employee_id="emp-100",
        name="Dana Reyes",
        department="Engineering",
        role="EMPLOYEE",
        hire_date=date(2020, 1, 15),
    )

@pytest.fixture(scope="function")
def approver():
    return EmployeeContext(employee_id="mgr-7", name="Sam Okafor", department="Engineering", role="MANAGER")

@pytest.fixture(scope="function")
def make_leave_type(db_session):
    """Factory creating leave types through the registry."""
    def _make(name="Annual Leave", max_days=20, carry_over=None, accrual=None, **overrides):
        config = LeaveTypeCreate(
            name=name,
            max_days_per_year=max_days,
            carry_over_rules=carry_over or CarryOverRules(),
            accrual_rules=accrual or AccrualRules(),
            **overrides
        )
        return LeaveTypeRegistry(db_session).create_type(config, created_by="hr-1")
    return _make

@pytest.fixture(scope="function")
def annual_type(make_leave_type):
    return make_leave_type()

@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
