"""
Pytest configuration and shared fixtures for Bridge tests.

Test Categories:
- unit: Fast tests with no external dependencies (< 100ms each)
- integration: Tests driving the HTTP API through FastAPI's TestClient

Run categories:
- pytest -m unit              # Fast unit tests only
- pytest -m "not integration" # Skip API tests
- pytest                      # All tests
"""
from datetime import datetime, timedelta, timezone

import pytest


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (HTTP API via TestClient)")


@pytest.fixture
def db_path(tmp_path):
    """Path to a fresh SQLite database for one test."""
    return str(tmp_path / "crm.db")


@pytest.fixture
def store(db_path):
    """An empty CrmStore backed by a temporary database."""
    from api.services.crm_store import CrmStore
    return CrmStore(db_path)


@pytest.fixture
def now():
    """Fixed reference time for recency calculations."""
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_person(store):
    """Factory that stores a person (and optional facts) and returns it."""
    from api.services.crm_store import Fact, Person

    def _make(name, facts=None, **fields):
        person = store.create_person(Person(name=name, **fields))
        for fact_type, value in (facts or []):
            store.create_fact(Fact(person_id=person.id, type=fact_type, value=value))
        return person

    return _make


@pytest.fixture
def days_ago(now):
    """Helper returning a datetime N days before the fixed reference time."""
    def _days_ago(days):
        return now - timedelta(days=days)
    return _days_ago


@pytest.fixture
def mock_settings(db_path, monkeypatch):
    """
    Settings pointing at the temporary database.

    Patches every module that imported the global settings object.
    """
    from config.settings import Settings

    mock = Settings(db_path=db_path, origin_name="Michelle Campeau")
    for target in (
        "config.settings.settings",
        "api.services.consolidator.settings",
        "api.services.ranking.settings",
        "api.routes.people.settings",
    ):
        monkeypatch.setattr(target, mock)
    return mock


@pytest.fixture
def client(store, mock_settings):
    """TestClient whose routes use the temporary store."""
    from fastapi.testclient import TestClient
    from api.main import app
    from api.routes.dependencies import get_store

    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def pytest_collection_modifyitems(config, items):
    """Auto-mark API tests as integration tests."""
    for item in items:
        if "test_api" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
