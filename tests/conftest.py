# tests/conftest.py
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storehub.auth.security import create_access_token, get_password_hash
from storehub.db import Base, get_db
from storehub.main import app
from storehub.models.models import JobLog, Store, User


engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool, future=True)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

PASSWORD = "password123"


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def stores(db_session):
    """Store 1 (Northgate) and store 5 (Park Lane)."""
    rows = {
        1: Store(id=1, name="Northgate", store_code="NGT"),
        5: Store(id=5, name="Park Lane", store_code="PKL"),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    return rows


@pytest.fixture
def users(db_session, stores):
    accounts = {
        "admin": ("admin", None, "Alex Admin"),
        "regional": ("regional", None, "Riley Regional"),
        "store": ("store", 1, "Nia Store"),
        "store5": ("store", 5, "Pat Store"),
        "maintenance": ("maintenance", None, "Morgan Maintenance"),
        "staff": ("staff", 1, "Sam Staff"),
        "staff_unbound": ("staff", None, "Uma Unbound"),
    }
    rows = {}
    for username, (role, store_id, name) in accounts.items():
        user = User(
            username=username,
            email=f"{username.replace('_', '.')}@example.com",
            name=name,
            role=role,
            store_id=store_id,
            password_hash=get_password_hash(PASSWORD),
            is_active=True,
        )
        db_session.add(user)
        rows[username] = user
    db_session.commit()
    return rows


def headers_for(user: User) -> dict:
    token = create_access_token(str(user.id), role=user.role, store_id=user.store_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_job(db_session):
    def _make(**fields) -> JobLog:
        values = {
            "description": "Coffee machine not heating",
            "category": "other",
            "flag": "normal",
            "logged_by": "Nia Store",
            "status": "pending",
            "attachments": [],
            "created_at": datetime.utcnow(),
            "updated_at": datetime.utcnow(),
        }
        values.update(fields)
        job = JobLog(**values)
        db_session.add(job)
        db_session.commit()
        db_session.refresh(job)
        return job

    return _make


@pytest.fixture
def auth_headers(users):
    def _headers(username: str) -> dict:
        return headers_for(users[username])

    return _headers
