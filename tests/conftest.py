# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Awaitable, Callable, Generator, Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from cipherchat.core.security import create_access_token
from cipherchat.db.session import Base
from cipherchat.db.session import get_db as app_get_session
from cipherchat.main import app as fastapi_app
from cipherchat.services.connection import Connection
from cipherchat.services.relay import RelayEngine, get_relay_engine
from cipherchat.services.store import ChatStore, ChatSummary, UserRecord


class RecordingConnection(Connection):
    """In-memory connection that records every emitted event."""

    def __init__(self, broken: bool = False) -> None:
        super().__init__()
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.closed = False
        self.broken = broken

    async def _send(self, frame: dict[str, Any]) -> None:
        if self.broken:
            raise RuntimeError("connection reset")
        self.sent.append((frame["event"], frame["data"]))

    async def close(self, code: int = 1000) -> None:
        self.closed = True

    def events(self, name: str | None = None) -> list[dict[str, Any]]:
        """Return payloads of emitted events, optionally filtered by name."""
        return [data for event, data in self.sent if name is None or event == name]

    def names(self) -> list[str]:
        return [event for event, _ in self.sent]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture()
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'relay.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def store(session_factory: sessionmaker[Session]) -> ChatStore:
    return ChatStore(session_factory)


@pytest.fixture()
def relay(store: ChatStore) -> RelayEngine:
    return RelayEngine(store=store)


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    session_factory: sessionmaker[Session],
    relay: RelayEngine,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_relay_engine] = lambda: relay
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)
        app.dependency_overrides.pop(get_relay_engine, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def alice(store: ChatStore) -> UserRecord:
    return store.create_user("alice")


@pytest.fixture()
def bob(store: ChatStore) -> UserRecord:
    return store.create_user("bob")


@pytest.fixture()
def carol(store: ChatStore) -> UserRecord:
    return store.create_user("carol")


@pytest.fixture()
def chat_ab(store: ChatStore, alice: UserRecord, bob: UserRecord) -> ChatSummary:
    """Chat between alice and bob, as seen by alice."""
    summary, _ = store.start_chat(alice.id, bob.id)
    return summary


def token_for(user: UserRecord) -> str:
    return create_access_token(user.id, user.nickname)


def headers_for(user: UserRecord) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture()
def auth_headers() -> Callable[[UserRecord], dict[str, str]]:
    """Return a helper building bearer headers for a user."""
    return headers_for


@pytest.fixture()
def user_token() -> Callable[[UserRecord], str]:
    return token_for


@pytest.fixture()
def connect(relay: RelayEngine) -> Callable[..., Awaitable[RecordingConnection]]:
    """Return a coroutine that authenticates and admits a recording connection."""

    async def _connect(user: UserRecord, broken: bool = False) -> RecordingConnection:
        connection = RecordingConnection(broken=broken)
        relay.gate.admit(connection, token_for(user))
        await relay.admit(connection)
        return connection

    return _connect
