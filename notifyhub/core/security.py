"""JWT helpers for verifying identities issued by the auth service."""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import JWTError, jwt
from pydantic import ValidationError

from notifyhub.config import settings
from notifyhub.schemas.auth import TokenPayload


ALGORITHM = "HS256"


class InvalidTokenError(Exception):
    """Raised when a JWT cannot be decoded or is invalid."""


def create_access_token(subject: str | Any, expires_minutes: int | None = None) -> str:
    """Create a signed JWT access token for the supplied subject."""

    minutes = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload: Dict[str, Any] = {"exp": expire, "sub": str(subject), "type": "access"}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode a JWT and return its payload, raising ``InvalidTokenError`` if invalid."""

    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc


def read_access_token(token: str) -> TokenPayload:
    """Validate an access token and return its typed payload."""

    payload = decode_token(token)
    if payload.get("type") != "access":
        raise InvalidTokenError("Token must be an access token")
    try:
        return TokenPayload.model_validate(payload)
    except ValidationError as exc:
        raise InvalidTokenError("Malformed token payload") from exc


def resolve_token_subject(token: str | None) -> uuid.UUID | None:
    """Return the user id carried by ``token`` or ``None`` when it is unusable."""

    if not token:
        return None
    try:
        return read_access_token(token).sub
    except InvalidTokenError:
        return None
