"""Pydantic schema exports."""

from notifyhub.schemas.auth import TokenPayload
from notifyhub.schemas.notification import (
    MarkReadResponse,
    NotificationPage,
    NotificationRead,
    NotificationRequest,
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionInfo,
    SubscriptionKeys,
    UnreadCount,
    UnsubscribeRequest,
    VapidKeyResponse,
)
from notifyhub.schemas.realtime import ClientFrame, RealtimeEvent, ServerFrame

__all__ = [
    "ClientFrame",
    "MarkReadResponse",
    "NotificationPage",
    "NotificationRead",
    "NotificationRequest",
    "RealtimeEvent",
    "ServerFrame",
    "SubscribeRequest",
    "SubscribeResponse",
    "SubscriptionInfo",
    "SubscriptionKeys",
    "TokenPayload",
    "UnreadCount",
    "UnsubscribeRequest",
    "VapidKeyResponse",
]
