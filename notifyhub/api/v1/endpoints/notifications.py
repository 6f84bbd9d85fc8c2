"""Notification inbox and push subscription endpoints."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Body, Depends, Header, Query
from sqlalchemy.orm import Session

from notifyhub.api import deps
from notifyhub.db.models.user import User
from notifyhub.schemas import (
    MarkReadResponse,
    NotificationPage,
    NotificationRead,
    NotificationRequest,
    SubscribeRequest,
    SubscribeResponse,
    UnreadCount,
    UnsubscribeRequest,
    VapidKeyResponse,
)
from notifyhub.services.channels import ChannelSenders
from notifyhub.services.inbox import MAX_PAGE_SIZE, InboxService
from notifyhub.services.notification_service import NotificationService
from notifyhub.services.subscriptions import SubscriptionRegistry
from notifyhub.utils.exceptions import InvalidRequest

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=NotificationPage)
def list_notifications(
    page: int = Query(1),
    limit: int = Query(20),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> NotificationPage:
    """Return the caller's notifications, newest first."""

    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    total, items = InboxService(db).list_for_user(current_user.id, page=page, limit=limit)
    return NotificationPage(
        total=total,
        page=page,
        limit=limit,
        items=[NotificationRead.model_validate(item) for item in items],
    )


@router.get("/unread-count", response_model=UnreadCount)
def unread_count(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> UnreadCount:
    return UnreadCount(unread=InboxService(db).unread_count(current_user.id))


@router.put("/{notification_id}/read", response_model=MarkReadResponse)
def mark_read(
    notification_id: uuid.UUID,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> MarkReadResponse:
    notification = InboxService(db).mark_read(notification_id, current_user.id)
    return MarkReadResponse(id=notification.id)


@router.get("/vapid", response_model=VapidKeyResponse)
def get_vapid_public_key(
    senders: ChannelSenders = Depends(deps.get_channel_senders),
) -> VapidKeyResponse:
    """Public key the browser needs to subscribe, or null when push is off."""

    push = senders.push
    public_key = getattr(push, "public_key", None) if push.enabled else None
    return VapidKeyResponse(public_key=public_key)


@router.post("/subscribe", response_model=SubscribeResponse)
def subscribe(
    body: SubscribeRequest = Body(...),
    user_agent: str | None = Header(default=None),
    db: Session = Depends(deps.get_db),
    current_user: User | None = Depends(deps.get_optional_user),
) -> SubscribeResponse:
    """Upsert a browser push subscription by endpoint.

    The session user wins; an explicit ``userId`` in the body is only used by
    anonymous callers attaching a device they registered before login.
    """

    info = body.resolved()
    owner_id = current_user.id if current_user else body.user_id
    subscription = SubscriptionRegistry(db).upsert(
        info.endpoint,
        info.keys.model_dump(),
        user_id=owner_id,
        user_agent=user_agent[:255] if user_agent else None,
    )
    return SubscribeResponse(id=subscription.id)


@router.post("/unsubscribe")
def unsubscribe(
    body: UnsubscribeRequest | None = Body(default=None),
    db: Session = Depends(deps.get_db),
    current_user: User | None = Depends(deps.get_optional_user),
) -> dict:
    """Remove by endpoint, else every device of the caller, else of ``userId``."""

    body = body or UnsubscribeRequest()
    registry = SubscriptionRegistry(db)
    if body.endpoint:
        registry.detach_by_endpoint(body.endpoint)
        return {"ok": True}

    owner_id = current_user.id if current_user else body.user_id
    if owner_id is None:
        raise InvalidRequest("endpoint or authenticated user or userId required")
    registry.detach_all_for_user(owner_id)
    return {"ok": True, "removedForUser": str(owner_id)}


@router.post("/test", response_model=NotificationRead, status_code=201)
async def test_notification(
    current_user: User = Depends(deps.get_current_user),
    service: NotificationService = Depends(deps.get_notification_service),
) -> NotificationRead:
    """Send a test notification to the caller over every channel."""

    notification = await service.notify(
        NotificationRequest(
            recipient_id=current_user.id,
            title="Success!",
            message="This is a test notification.",
            type="test",
        )
    )
    return NotificationRead.model_validate(notification)
