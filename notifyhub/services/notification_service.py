"""Notification orchestration: persist once, then fan out to every channel."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notifyhub.db.models.notification import Notification
from notifyhub.db.models.user import User
from notifyhub.schemas.notification import NotificationRead, NotificationRequest
from notifyhub.schemas.realtime import RealtimeEvent
from notifyhub.services.channels import (
    ChannelSenders,
    EmailContent,
    PushContent,
    PushTarget,
    build_sms_text,
)
from notifyhub.services.dispatch import BackgroundDispatcher
from notifyhub.services.realtime import PresenceHub
from notifyhub.services.subscriptions import SubscriptionRegistry
from notifyhub.utils.exceptions import (
    DeliveryFailed,
    InvalidRequest,
    PersistenceError,
    RecipientNotFound,
)


@dataclass
class FanOut:
    """Everything the background deliveries need, detached from the caller's session."""

    notification_id: uuid.UUID
    recipient_id: uuid.UUID
    record: dict[str, Any]
    request: NotificationRequest
    email: str | None = None
    phone: str | None = None
    channels: list[str] = field(default_factory=list)


class NotificationService:
    """Single entry point for creating notifications and triggering delivery.

    ``notify`` succeeds as soon as the record is stored. Realtime, push, email
    and SMS deliveries then run concurrently on the background dispatcher;
    their failures are logged and never reach the caller.
    """

    def __init__(
        self,
        db: Session,
        *,
        presence_hub: PresenceHub,
        senders: ChannelSenders,
        dispatcher: BackgroundDispatcher,
        session_factory: Callable[[], Session],
        webapp_url: str | None = None,
    ):
        self.db = db
        self.presence_hub = presence_hub
        self.senders = senders
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.webapp_url = webapp_url

    async def notify(self, request: NotificationRequest) -> Notification:
        """Persist a notification for ``request.recipient_id`` and start delivery."""

        if request.recipient_id is None:
            raise InvalidRequest("recipient_id required for notify")

        recipient = self.db.get(User, request.recipient_id)
        if recipient is None:
            logger.error(
                "Notification recipient does not exist",
                recipient_id=str(request.recipient_id),
                notification_type=request.type,
            )
            raise RecipientNotFound(
                "User not found", details={"recipient_id": str(request.recipient_id)}
            )

        notification = Notification(
            user_id=recipient.id,
            title=request.title,
            message=request.message,
            type=request.type,
            payload=dict(request.payload),
            read=False,
        )
        if request.sender_id is not None:
            notification.sender_id = request.sender_id

        self.db.add(notification)
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to store notification", recipient_id=str(recipient.id))
            raise PersistenceError("Failed to store notification") from exc
        self.db.refresh(notification)

        fan_out = FanOut(
            notification_id=notification.id,
            recipient_id=recipient.id,
            record=NotificationRead.model_validate(notification).model_dump(mode="json"),
            request=request,
            email=recipient.email,
            phone=recipient.phone,
        )
        self.dispatcher.spawn(self.deliver(fan_out), name=f"notify:{notification.id}")
        return notification

    async def deliver(self, fan_out: FanOut) -> None:
        """Start every applicable channel at once and wait for all of them to settle."""

        request = fan_out.request
        jobs: dict[str, Any] = {"realtime": self._deliver_realtime(fan_out)}
        if request.send_push:
            jobs["push"] = self._deliver_push(fan_out)
        if request.send_email and self.senders.email.enabled and fan_out.email:
            jobs["email"] = self._deliver_email(fan_out)
        if request.send_sms and self.senders.sms.enabled and fan_out.phone:
            jobs["sms"] = self._deliver_sms(fan_out)
        fan_out.channels = list(jobs)

        results = await asyncio.gather(*jobs.values(), return_exceptions=True)
        for channel, result in zip(jobs, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Channel delivery failed",
                    channel=channel,
                    notification_id=str(fan_out.notification_id),
                    error=str(result),
                )
        logger.debug(
            "Fan-out settled",
            notification_id=str(fan_out.notification_id),
            channels=fan_out.channels,
        )

    async def _deliver_realtime(self, fan_out: FanOut) -> None:
        delivered = await self.presence_hub.broadcast(
            fan_out.recipient_id, RealtimeEvent.NOTIFICATION_NEW.value, fan_out.record
        )
        logger.debug(
            "Realtime notification emitted",
            notification_id=str(fan_out.notification_id),
            connections=delivered,
        )

    def _load_push_targets(self, user_id: uuid.UUID) -> list[PushTarget]:
        db = self.session_factory()
        try:
            subscriptions = SubscriptionRegistry(db).list_for_user(user_id)
            return [
                PushTarget(endpoint=sub.endpoint, p256dh=sub.p256dh, auth=sub.auth)
                for sub in subscriptions
            ]
        finally:
            db.close()

    def _evict(self, endpoint: str) -> None:
        db = self.session_factory()
        try:
            SubscriptionRegistry(db).detach_by_endpoint(endpoint)
        finally:
            db.close()

    async def _deliver_push(self, fan_out: FanOut) -> None:
        if not self.senders.push.enabled:
            return
        targets = await asyncio.to_thread(self._load_push_targets, fan_out.recipient_id)
        if not targets:
            return
        request = fan_out.request
        content = PushContent(
            title=request.title,
            body=request.message,
            data={
                **request.payload,
                "notificationId": str(fan_out.notification_id),
                "type": request.type,
            },
        )
        await asyncio.gather(
            *(self._push_one(fan_out, target, content) for target in targets)
        )

    async def _push_one(self, fan_out: FanOut, target: PushTarget, content: PushContent) -> None:
        try:
            await self.senders.push.deliver(target, content)
        except DeliveryFailed as exc:
            if exc.gone:
                logger.info(
                    "Evicting expired push subscription",
                    user_id=str(fan_out.recipient_id),
                    status_code=exc.status_code,
                )
                try:
                    await asyncio.to_thread(self._evict, target.endpoint)
                except SQLAlchemyError as db_exc:
                    logger.warning("Failed to evict push subscription", error=str(db_exc))
            else:
                logger.warning(
                    "WebPush failed",
                    notification_id=str(fan_out.notification_id),
                    status_code=exc.status_code,
                    error=exc.message,
                )
        except Exception as exc:
            logger.warning(
                "WebPush failed",
                notification_id=str(fan_out.notification_id),
                error=str(exc),
            )

    async def _deliver_email(self, fan_out: FanOut) -> None:
        request = fan_out.request
        link = request.payload.get("link") or f"{self.webapp_url or ''}/notifications"
        content = EmailContent(title=request.title, message=request.message, link=link)
        try:
            await self.senders.email.deliver(fan_out.email, content)
        except Exception as exc:
            logger.warning(
                "Failed to send email notification",
                notification_id=str(fan_out.notification_id),
                error=str(exc),
            )

    async def _deliver_sms(self, fan_out: FanOut) -> None:
        request = fan_out.request
        try:
            await self.senders.sms.deliver(fan_out.phone, build_sms_text(request.title, request.message))
        except Exception as exc:
            logger.warning(
                "Failed to send SMS",
                notification_id=str(fan_out.notification_id),
                error=str(exc),
            )
