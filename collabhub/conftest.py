"""
Shared pytest fixtures.

Each test gets its own SQLite file so membership state never leaks between
tests. The notification dispatcher is replaced by a recorder.
"""

import os
import tempfile

# Point the import-time migration at a throwaway DB BEFORE importing the app
os.environ.setdefault("DATABASE_PATH", os.path.join(tempfile.mkdtemp(), "collabhub_import.db"))

import pytest
from fastapi.testclient import TestClient

from collabhub.auth_context import create_access_token
from collabhub.db import get_db_connection, init_engine
from collabhub.main import app
from collabhub.migrate import run_migrations
from collabhub.notifications import get_notification_dispatcher
from collabhub.users import create_user


class RecordingDispatcher:
    """Collects notifications instead of sending them."""

    def __init__(self):
        self.sent = []

    def notify(self, scope, event, payload):
        self.sent.append((scope, event, payload))

    def events(self):
        return [event for _, event, _ in self.sent]


@pytest.fixture
def database(tmp_path):
    init_engine(f"sqlite:///{tmp_path / 'collabhub_test.db'}")
    run_migrations()
    yield


@pytest.fixture
def dispatcher():
    recorder = RecordingDispatcher()
    app.dependency_overrides[get_notification_dispatcher] = lambda: recorder
    yield recorder
    app.dependency_overrides.pop(get_notification_dispatcher, None)


@pytest.fixture
def client(database, dispatcher):
    return TestClient(app)


@pytest.fixture
def make_user(database):
    """Create a user directly in the directory and return id, email and auth headers."""
    def _make(email: str, first_name: str = None, last_name: str = None) -> dict:
        with get_db_connection() as conn:
            user = create_user(
                conn,
                email=email,
                password="secret123",
                first_name=first_name,
                last_name=last_name,
            )
        token = create_access_token({"sub": str(user.id), "email": user.email})
        return {
            "id": user.id,
            "email": user.email,
            "headers": {"Authorization": f"Bearer {token}"},
        }
    return _make
