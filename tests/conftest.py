"""Pytest fixtures for service and API tests."""

import asyncio
import os
from collections.abc import Callable, Generator
from typing import Any

os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from notifyhub.api import deps
from notifyhub.core.security import create_access_token
from notifyhub.db import models  # noqa: F401  # Imported for side effects
from notifyhub.db.base import Base
from notifyhub.db.models import Notification, PushSubscription, User
from notifyhub.main import create_app
from notifyhub.services.channels import ChannelSender, ChannelSenders
from notifyhub.services.dispatch import BackgroundDispatcher
from notifyhub.services.notification_service import NotificationService
from notifyhub.services.realtime import PresenceHub, PresenceRegistry


class FakeWebSocket:
    """Records what the hub does to a socket."""

    def __init__(self, fail_send: bool = False) -> None:
        self.accepted = False
        self.closed_code: int | None = None
        self.sent: list[dict[str, Any]] = []
        self.fail_send = fail_send

    async def accept(self) -> None:
        self.accepted = True

    async def close(self, code: int = 1000) -> None:
        self.closed_code = code

    async def send_json(self, data: dict[str, Any]) -> None:
        if self.fail_send:
            raise RuntimeError("socket is gone")
        self.sent.append(data)

    def events(self, name: str) -> list[Any]:
        return [frame["data"] for frame in self.sent if frame["event"] == name]


class RecordingSender(ChannelSender):
    """Channel sender that records calls and raises configured failures.

    ``failures`` maps a target (or a push endpoint) to the exception to raise;
    the ``"*"`` key applies to every target.
    """

    def __init__(
        self,
        name: str,
        *,
        enabled: bool = True,
        failures: dict[str, Exception] | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.name = name
        self.calls: list[tuple[Any, Any]] = []
        self.failures = failures or {}
        self.gate = gate
        self.called = asyncio.Event()
        super().__init__(enabled=enabled, missing="test")

    async def _deliver(self, target: Any, content: Any) -> None:
        self.calls.append((target, content))
        self.called.set()
        if self.gate is not None:
            await self.gate.wait()
        key = getattr(target, "endpoint", target)
        exc = self.failures.get(key) or self.failures.get("*")
        if exc is not None:
            raise exc


@pytest.fixture(scope="session")
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def session_factory(db_engine) -> Callable[[], Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.rollback()
        db.query(PushSubscription).delete()
        db.query(Notification).delete()
        db.query(User).delete()
        db.commit()
        db.close()


@pytest.fixture()
def make_user(db_session) -> Callable[..., User]:
    counter = {"value": 0}

    def factory(email: str | None = "default", phone: str | None = None, **extra: Any) -> User:
        counter["value"] += 1
        if email == "default":
            email = f"user{counter['value']}@example.com"
        user = User(email=email, phone=phone, full_name=extra.pop("full_name", None), **extra)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return factory


@pytest.fixture()
def senders() -> ChannelSenders:
    return ChannelSenders(
        push=RecordingSender("push"),
        email=RecordingSender("email"),
        sms=RecordingSender("sms"),
    )


@pytest.fixture()
def presence_hub() -> PresenceHub:
    return PresenceHub(PresenceRegistry())


@pytest.fixture()
def dispatcher() -> BackgroundDispatcher:
    return BackgroundDispatcher()


@pytest.fixture()
def notification_service(
    db_session, presence_hub, senders, dispatcher, session_factory
) -> NotificationService:
    return NotificationService(
        db_session,
        presence_hub=presence_hub,
        senders=senders,
        dispatcher=dispatcher,
        session_factory=session_factory,
        webapp_url="https://app.example.com",
    )


@pytest.fixture()
def fake_websocket_cls() -> type[FakeWebSocket]:
    return FakeWebSocket


@pytest.fixture()
def recording_sender_cls() -> type[RecordingSender]:
    return RecordingSender


@pytest.fixture()
def auth_headers() -> Callable[[User], dict[str, str]]:
    def build(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return build


@pytest.fixture()
def client(db_session: Session, session_factory, senders) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_session_factory] = lambda: session_factory
    app.dependency_overrides[deps.get_channel_senders] = lambda: senders
    with TestClient(app) as test_client:
        yield test_client
