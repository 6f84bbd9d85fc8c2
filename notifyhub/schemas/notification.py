"""Pydantic models for notifications and push subscriptions."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class NotificationRequest(BaseModel):
    """Input to ``NotificationService.notify``.

    ``payload`` is opaque to the server and interpreted only by clients.
    """

    recipient_id: Optional[uuid.UUID] = None
    title: str = "Notification"
    message: str = ""
    type: str = "generic"
    payload: dict[str, Any] = Field(default_factory=dict)
    send_push: bool = True
    send_email: bool = True
    send_sms: bool = True
    sender_id: Optional[uuid.UUID] = None


class NotificationRead(BaseModel):
    """Persisted notification as returned over REST and the realtime channel."""

    id: uuid.UUID
    user_id: uuid.UUID
    sender_id: Optional[uuid.UUID] = None
    title: str
    message: str
    type: str
    payload: dict[str, Any]
    read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationPage(BaseModel):
    total: int
    page: int
    limit: int
    items: list[NotificationRead]


class UnreadCount(BaseModel):
    unread: int


class MarkReadResponse(BaseModel):
    ok: bool = True
    id: uuid.UUID


class VapidKeyResponse(BaseModel):
    public_key: Optional[str] = Field(default=None, serialization_alias="publicKey")


class SubscriptionKeys(BaseModel):
    p256dh: Optional[str] = None
    auth: Optional[str] = None


class SubscriptionInfo(BaseModel):
    """Browser ``PushSubscription.toJSON()`` shape."""

    endpoint: Optional[str] = None
    keys: SubscriptionKeys = Field(default_factory=SubscriptionKeys)

    model_config = ConfigDict(extra="ignore")


class SubscribeRequest(BaseModel):
    """Accepts ``{"subscription": {...}}`` or the bare subscription object."""

    subscription: Optional[SubscriptionInfo] = None
    endpoint: Optional[str] = None
    keys: Optional[SubscriptionKeys] = None
    user_id: Optional[uuid.UUID] = Field(
        default=None, validation_alias=AliasChoices("userId", "user_id")
    )

    model_config = ConfigDict(extra="ignore")

    def resolved(self) -> SubscriptionInfo:
        if self.subscription is not None:
            return self.subscription
        return SubscriptionInfo(endpoint=self.endpoint, keys=self.keys or SubscriptionKeys())


class SubscribeResponse(BaseModel):
    ok: bool = True
    id: uuid.UUID


class UnsubscribeRequest(BaseModel):
    endpoint: Optional[str] = None
    user_id: Optional[uuid.UUID] = Field(
        default=None, validation_alias=AliasChoices("userId", "user_id")
    )

    model_config = ConfigDict(extra="ignore")
