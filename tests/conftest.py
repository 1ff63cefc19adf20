# tests/conftest.py
from __future__ import annotations

import base64
import os
from collections.abc import Callable, Generator, Iterator
from datetime import datetime, timedelta
from itertools import count
from typing import Any

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "quire-test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PRESENCE_BACKEND", "memory")

import pytest
import respx
from fastapi import FastAPI
from fastapi.testclient import TestClient
from nacl.public import PrivateKey
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from quire.core.security import create_access_token
from quire.db.session import Base
from quire.db.session import get_db as app_get_session
from quire.db.time import utcnow
from quire.main import app as fastapi_app
from quire.models import Message, User
from quire.schemas.message import MessagePayload, payload_adapter
from quire.services.message_store import MessageStore

TEST_DB_URL = "sqlite://"

_USER_COUNTER = count(1)


class FakeSocket:
    """Stand-in for a WebSocket that records every frame sent to it."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, data: Any, mode: str = "text") -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def events(self, name: str) -> list[dict[str, Any]]:
        return [frame["data"] for frame in self.sent if frame.get("event") == name]


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Services commit, so every test starts from empty tables instead of a rollback.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(autouse=True)
def isolate_respx_global_router() -> Iterator[None]:
    """Drop routes left on respx's global router so they cannot leak across tests."""
    yield
    respx.mock.clear()
    respx.mock.reset()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def generate_public_key() -> str:
    """Return a fresh base64 Curve25519 box public key."""
    return base64.b64encode(bytes(PrivateKey.generate().public_key)).decode()


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Factory persisting users with unique usernames and emails."""

    def _make(username: str | None = None, **fields: Any) -> User:
        number = next(_USER_COUNTER)
        name = username or f"user{number}"
        user = User(
            username=name,
            email=f"{name}.{number}@example.com",
            profile_img=fields.pop("profile_img", f"https://img.example.com/{name}.png"),
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def alice(make_user: Callable[..., User]) -> User:
    return make_user("alice")


@pytest.fixture()
def bob(make_user: Callable[..., User]) -> User:
    return make_user("bob")


@pytest.fixture()
def e2ee_user(make_user: Callable[..., User]) -> Callable[[str], User]:
    """Factory for users who have uploaded a public key."""

    def _make(username: str) -> User:
        return make_user(username, public_key=generate_public_key(), e2ee_enabled=True)

    return _make


def auth_headers(user: User) -> dict[str, str]:
    """Return bearer authorization headers for ``user``."""
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def seed_messages(db_session: Session) -> Callable[..., list[Message]]:
    """Persist messages one second apart, oldest first."""

    def _seed(
        sender: User,
        receiver: User,
        count_: int,
        start: datetime | None = None,
        payload: dict[str, Any] | None = None,
    ) -> list[Message]:
        store = MessageStore(db_session)
        base = start or utcnow() - timedelta(hours=1)
        created: list[Message] = []
        for index in range(count_):
            parsed: MessagePayload = payload_adapter.validate_python(
                payload or {"kind": "text", "text": f"message {index}"}
            )
            created.append(
                store.create(
                    sender.id,
                    receiver.id,
                    parsed,
                    created_at=base + timedelta(seconds=index),
                )
            )
        return created

    return _seed
