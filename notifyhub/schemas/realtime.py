"""Schemas for realtime socket messaging."""
from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field


class RealtimeEvent(str, Enum):
    """Event names shared with the web client."""

    NOTIFICATION_NEW = "notification:new"
    BOOKING_CREATED = "booking.created"
    BOOKING_UPDATED = "booking.updated"
    RECEIVE_MESSAGE = "receiveMessage"
    MESSAGES_READ = "messagesRead"
    JOINED = "joined"
    ERROR = "error"


class JoinFrame(BaseModel):
    """Client request to join a broadcast group."""

    event: Literal["join"]
    data: str


class PingFrame(BaseModel):
    """Keep-alive sent by clients behind aggressive proxies."""

    event: Literal["ping"]
    data: Any = None


ClientFrame = Annotated[JoinFrame | PingFrame, Field(discriminator="event")]


class ServerFrame(BaseModel):
    """Outbound frame envelope."""

    event: str
    data: Any = None
