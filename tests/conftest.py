"""
Pytest configuration and shared fixtures
"""
import os

# Settings are read at import time, so the test environment must be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["SEED_PHASE_TEMPLATES"] = "false"
os.environ["JWT_SECRET"] = "test-secret-key-minimum-32-chars-long-for-security"
os.environ["RATE_LIMIT"] = "10000/minute"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from noorhub.auth.security import create_access_token, set_password
from noorhub.db import Base, get_db
from noorhub.main import app
from noorhub.models.models import Employee, Phase, Site, Task


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """API client whose requests each get a fresh session on the test database"""
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_employee(db):
    counter = {"n": 0}

    def _make(name=None, role="worker", status="Active", password="secret123", email=None):
        counter["n"] += 1
        n = counter["n"]
        employee = Employee(
            name=name or f"Employee {n}",
            phone=f"+10000000{n:03d}",
            email=email,
            role=role,
            status=status,
        )
        set_password(employee, password)
        db.add(employee)
        db.commit()
        return employee

    return _make


@pytest.fixture
def admin(make_employee):
    return make_employee(name="Admin", role="admin", email="admin@example.com")


@pytest.fixture
def worker(make_employee):
    return make_employee(name="Worker W", email="worker@example.com")


@pytest.fixture
def outsider(make_employee):
    return make_employee(name="Unassigned U")


@pytest.fixture
def site(db):
    site = Site(name="Villa 12", location="Plot 4", city="Pune", status="active")
    db.add(site)
    db.commit()
    return site


@pytest.fixture
def phase(db, site):
    phase = Phase(site_id=site.id, name="Tiles work", order_num=1, status="not_started")
    db.add(phase)
    db.commit()
    return phase


@pytest.fixture
def task(db, site, phase, worker):
    """Task T: not started, 0%, assigned to W"""
    task = Task(site_id=site.id, phase_id=phase.id, name="Kitchen wall", status="not_started", progress=0)
    task.assignees.append(worker)
    db.add(task)
    db.commit()
    return task


@pytest.fixture
def auth_headers():
    def _headers(employee):
        return {"Authorization": f"Bearer {create_access_token(str(employee.id), role=employee.role)}"}

    return _headers
