"""Shared test fixtures for the vaultgen test suite.

All tests use an in-memory SQLite database shared through a StaticPool.
Tables are created once at import and emptied before each test.
"""

import os

# Force auth off and use the in-memory database before any app imports.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_FORMAT"] = "text"

import pytest
from fastapi.testclient import TestClient

from vaultgen.core.config import settings
from vaultgen.database import SessionLocal, get_db, init_db
from vaultgen.main import app
from vaultgen.models import ContentVersion, GenerationJob
from vaultgen.services.circuit_breaker import reset_all

init_db()


@pytest.fixture(autouse=True)
def _clean_tables():
    """Empty all tables before each test for isolation.

    Runs before the test (not after) so failures leave data available
    for debugging.
    """
    db = SessionLocal()
    try:
        db.query(ContentVersion).delete()
        db.query(GenerationJob).delete()
        db.commit()
    finally:
        db.close()
    reset_all()
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def client(db):
    """FastAPI TestClient with the DB dependency overridden to use the test session."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_enabled(monkeypatch):
    """Turn token authentication on for one test."""
    monkeypatch.setattr(settings, "auth_enabled", True)
    yield
