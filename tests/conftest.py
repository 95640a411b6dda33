import asyncio
import pytest
import os
import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from kpi_portal.database import Base, get_db
from kpi_portal.main import app
from kpi_portal.models import KPI, KPIItem, Department, DepartmentFeatures
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture(scope="function")
def db_session():
    """Get a clean database session for each test function with rollback safety."""
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)

    yield session

    session.close()
    transaction.rollback()
    connection.close()

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

class SerialASGITransport(httpx.ASGITransport):
    """Serves one request at a time, since every request shares the test session."""

    _lock = None

    async def handle_async_request(self, request):
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            return await super().handle_async_request(request)

@pytest.fixture(scope="function")
def asgi_transport(db_session):
    """httpx transport that calls the app in-process against the test database."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield SerialASGITransport(app=app)
    app.dependency_overrides.clear()

@pytest.fixture(scope="function")
def department(db_session):
    dept = Department(name="Engineering", code="ENG")
    db_session.add(dept)
    db_session.commit()
    return dept

@pytest.fixture(scope="function")
def make_features(db_session):
    """Attach calculation feature flags to a department."""
    def _make(department, **flags):
        features = DepartmentFeatures(department_id=department.id, **flags)
        db_session.add(features)
        db_session.commit()
        return features
    return _make

@pytest.fixture(scope="function")
def make_kpi(db_session):
    """
    Create a KPI with items. ``items`` is a list of dicts of KPIItem fields;
    pass an empty list for a legacy single-item KPI.
    """
    def _make(items=None, status="pending", period="quarterly", department=None, **fields):
        if items is None:
            items = [
                {"title": "Close sprint tickets", "target_value": "40", "goal_weight": "60%"},
                {"title": "Write design docs", "target_value": "4", "goal_weight": "40%"},
            ]
        kpi = KPI(
            employee_id=fields.pop("employee_id", 101),
            manager_id=fields.pop("manager_id", 7),
            department_id=department.id if department else None,
            title=fields.pop("title", "Q1 delivery goals"),
            period=period,
            quarter="Q1",
            year=2026,
            status=status,
            **fields,
        )
        for order, item in enumerate(items, start=1):
            kpi.items.append(KPIItem(item_order=order, **item))
        db_session.add(kpi)
        db_session.commit()
        db_session.refresh(kpi)
        return kpi
    return _make
