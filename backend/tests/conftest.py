"""Shared test fixtures and configuration for backend tests."""
import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from chatcore.auth.service import TokenService
from chatcore.chat.connection import ClientConnection
from chatcore.chat.hub import ChatHub
from chatcore.main import app
from chatcore.store.service import MessageStore
from chatcore.users.service import UserDirectory


@pytest.fixture(autouse=True)
def in_memory_services():
    """Use in-memory DuckDB databases and a fresh hub for each test.

    Keeps tests away from the file-based chat.duckdb / users.duckdb, which
    may be locked by a running server.
    """
    ChatHub.reset_instance()
    MessageStore.reset_instance()
    UserDirectory.reset_instance()
    MessageStore.get_instance(db_path=":memory:")
    UserDirectory.get_instance(db_path=":memory:")
    yield
    ChatHub.reset_instance()
    MessageStore.reset_instance()
    UserDirectory.reset_instance()


@pytest.fixture
def store():
    return MessageStore.get_instance()


@pytest.fixture
def directory():
    return UserDirectory.get_instance()


@pytest.fixture
def hub():
    return ChatHub.get_instance()


@pytest.fixture
def users(directory):
    """Three seeded users: alice, bob and carol."""
    return {
        name: directory.create_user(name, display_name=name.capitalize())
        for name in ("alice", "bob", "carol")
    }


@pytest.fixture
def tokens():
    """Issue bearer tokens signed with the configured secret."""
    service = TokenService.from_config()

    def _issue(user) -> str:
        return service.issue(user.id)

    return _issue


@pytest.fixture
def auth_headers(tokens):
    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {tokens(user)}"}

    return _headers


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app.

    Named api_client (not client) to avoid shadowing the module-level
    `client = TestClient(app)` pattern used in existing test files.
    """
    return TestClient(app)


def fake_websocket() -> AsyncMock:
    """A WebSocket stand-in that records every frame sent to it."""
    ws = AsyncMock()
    ws.sent = []

    async def _send_json(frame):
        ws.sent.append(json.loads(json.dumps(frame)))

    ws.send_json.side_effect = _send_json
    return ws


def fake_connection(user_id: str) -> ClientConnection:
    return ClientConnection(fake_websocket(), user_id)


def events(conn: ClientConnection, event_type: str = None) -> list:
    """Frames sent to a fake connection, optionally filtered by type."""
    frames = conn.websocket.sent
    if event_type is None:
        return frames
    return [f for f in frames if f["type"] == event_type]


@pytest.fixture
def make_connection():
    return fake_connection


@pytest.fixture
def frames():
    return events


@pytest.fixture
def make_websocket():
    return fake_websocket
