"""
Shared fixtures: an in-memory Mongo (mongomock-motor), repositories, a fake
websocket for gateway tests, and a TestClient wired to the in-memory db.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Tuple

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from mythrift.database.connection import mongo_db_dependency
from mythrift.main import create_app
from mythrift.repositories.conversation_repository import ConversationRepository
from mythrift.repositories.user_repository import UserRepository
from mythrift.schemas.user import UserPublic
from mythrift.utils.websocket_manager import ConnectionManager


class FakeWebSocket:
    """Records what the gateway sends; can be told to fail on send."""

    def __init__(self, fail_on_send: bool = False) -> None:
        self.accepted = False
        self.closed = False
        self.close_code = None
        self.sent: List[Dict[str, Any]] = []
        self.fail_on_send = fail_on_send

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: Dict[str, Any]) -> None:
        if self.closed or self.fail_on_send:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code

    def events(self, name: str) -> List[Any]:
        return [m["data"] for m in self.sent if m["event"] == name]


@pytest.fixture
def db():
    return AsyncMongoMockClient()["mythrift_test"]


@pytest.fixture
def user_repo(db) -> UserRepository:
    return UserRepository(db)


@pytest.fixture
def conversation_repo(db) -> ConversationRepository:
    return ConversationRepository(db)


@pytest.fixture
def gateway() -> ConnectionManager:
    return ConnectionManager()


@pytest.fixture
def fake_socket():
    return FakeWebSocket


@pytest.fixture
def make_user(user_repo):
    """Insert a user directly and return it as the authenticated identity."""

    async def _make(name: str) -> UserPublic:
        doc = await user_repo.create_user(
            name=name,
            email=f"{name.lower()}@mail.com",
            hashed_password="not-a-real-hash",
        )
        return UserPublic.from_document(doc)

    return _make


@asynccontextmanager
async def _no_lifespan(app):
    yield


@pytest.fixture
def app(db):
    application = create_app()
    # no real Mongo or Redis in tests
    application.router.lifespan_context = _no_lifespan
    application.dependency_overrides[mongo_db_dependency] = lambda: db
    return application


@pytest.fixture
def client(app):
    # one portal for the whole test so sockets and requests share a loop
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client):
    """Register through the API; returns (user_id, auth headers)."""

    def _register(name: str) -> Tuple[str, Dict[str, str]]:
        resp = client.post(
            "/auth/register",
            json={"name": name, "email": f"{name.lower()}@mail.com", "password": "secret1"},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return body["user"]["id"], {"Authorization": f"Bearer {body['token']}"}

    return _register
