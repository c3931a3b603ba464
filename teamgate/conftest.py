# teamgate/conftest.py
from uuid import uuid4

import pytest


@pytest.fixture(scope="function", autouse=True)
def sqlite_db():
    """
    Fresh in-memory SQLite database for every test.

    The engine uses one shared connection, so the database lives exactly as
    long as the engine; disposing it between tests wipes all state.
    """
    from teamgate.core.database import dispose_engine, init_engine, create_all_tables

    dispose_engine()
    init_engine("sqlite://")
    create_all_tables()
    yield
    dispose_engine()


@pytest.fixture(scope="function", autouse=True)
def clear_notifications():
    """Clear buffered owner notifications before each test."""
    from teamgate.features.notifications.service import clear_notifications as clear

    clear()
    yield
    clear()


@pytest.fixture
def seeded():
    """Default permission catalog and free/pro/enterprise plans."""
    from teamgate.features.catalog.service import seed_permissions
    from teamgate.features.plans.service import seed_plans

    seed_permissions()
    seed_plans()


@pytest.fixture
def make_user():
    """Factory: make_user(email=None, superuser=False) -> User."""
    from teamgate.features.users.service import get_or_create_user

    def _make(email=None, superuser=False, user_id=None):
        uid = user_id or f"user-{uuid4().hex[:10]}"
        return get_or_create_user(uid, email=email or f"{uid}@example.com", is_superuser=superuser)

    return _make


@pytest.fixture
def make_team(seeded, make_user):
    """Factory: make_team(plan_slug="pro", owner=None) -> (team, owner)."""
    from teamgate.features.teams.service import create_team

    def _make(plan_slug="pro", owner=None, name="Acme"):
        owner = owner or make_user()
        team = create_team(owner.user_id, name, plan_slug)
        return team, owner

    return _make


@pytest.fixture
def refresh_user():
    """Re-read a user (default team changes are not reflected in old objects)."""
    from teamgate.features.users.service import get_user

    def _refresh(user):
        return get_user(user.user_id)

    return _refresh


@pytest.fixture
def client(seeded):
    from fastapi.testclient import TestClient
    from teamgate.main import app

    return TestClient(app)
