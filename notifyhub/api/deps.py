"""Shared API dependencies."""
from __future__ import annotations

from typing import Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from starlette.requests import HTTPConnection

from notifyhub.config import settings
from notifyhub.core.security import InvalidTokenError, read_access_token
from notifyhub.db.models.user import User
from notifyhub.db.session import SessionLocal
from notifyhub.services.channels import ChannelSenders
from notifyhub.services.dispatch import BackgroundDispatcher
from notifyhub.services.notification_service import NotificationService
from notifyhub.services.realtime import PresenceHub

# Tokens are issued by the auth service; this URL only feeds the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for request lifetime."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """Return the factory background deliveries use to open their own sessions."""

    return SessionLocal


def get_optional_user(
    token: str | None = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User | None:
    """Resolve the caller when a valid bearer token is present, else ``None``."""

    if not token:
        return None
    try:
        token_data = read_access_token(token)
    except InvalidTokenError:
        return None
    return db.get(User, token_data.sub)


def get_current_user(
    token: str | None = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    """Resolve the authenticated user from the Authorization header."""

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exception

    try:
        token_data = read_access_token(token)
    except InvalidTokenError as exc:
        raise credentials_exception from exc

    user = db.get(User, token_data.sub)
    if not user:
        raise credentials_exception
    return user


def get_presence_hub(connection: HTTPConnection) -> PresenceHub:
    """Return the process-wide presence hub created at start-up."""

    return connection.app.state.presence_hub


def get_dispatcher(connection: HTTPConnection) -> BackgroundDispatcher:
    return connection.app.state.dispatcher


def get_channel_senders(connection: HTTPConnection) -> ChannelSenders:
    return connection.app.state.senders


def get_notification_service(
    db: Session = Depends(get_db),
    presence_hub: PresenceHub = Depends(get_presence_hub),
    senders: ChannelSenders = Depends(get_channel_senders),
    dispatcher: BackgroundDispatcher = Depends(get_dispatcher),
    session_factory=Depends(get_session_factory),
) -> NotificationService:
    """Assemble the notification service with request-scoped dependencies."""

    return NotificationService(
        db,
        presence_hub=presence_hub,
        senders=senders,
        dispatcher=dispatcher,
        session_factory=session_factory,
        webapp_url=settings.WEBAPP_URL,
    )
