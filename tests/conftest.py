"""Shared fixtures: in-memory database, API client, agent fakes."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from camfleet.config import settings
from camfleet.database import Base, create_tables, get_db
from camfleet.main import app

TEST_TOKEN = "test-token"


@pytest.fixture
def db_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(db_factory):
    session = db_factory()
    yield session
    session.close()


@pytest.fixture
def client(db_factory, tmp_path, monkeypatch):
    def override_get_db():
        session = db_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(settings, "AUTH_TOKEN", TEST_TOKEN)
    monkeypatch.setattr(settings, "STORAGE_PATH", str(tmp_path / "storage"))
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {TEST_TOKEN}"}
