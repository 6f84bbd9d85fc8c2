"""Helpers used by booking, chat and payment flows to raise notifications.

Each helper guards every ``notify`` call on its own: a failure for one party
is logged and never prevents the next notification or the caller's action.
"""
from __future__ import annotations

import uuid
from typing import Any

from loguru import logger

from notifyhub.db.models.notification import Notification
from notifyhub.schemas.notification import NotificationRequest
from notifyhub.schemas.realtime import RealtimeEvent
from notifyhub.services.notification_service import NotificationService
from notifyhub.utils.exceptions import NotifyHubException


SNIPPET_LIMIT = 120


def message_snippet(text: str | None) -> str:
    if not text:
        return "You received a new message"
    if len(text) > SNIPPET_LIMIT:
        return text[: SNIPPET_LIMIT - 3] + "…"
    return text


async def _safe_notify(service: NotificationService, request: NotificationRequest) -> Notification | None:
    try:
        return await service.notify(request)
    except NotifyHubException as exc:
        logger.warning(
            "Event notification failed",
            notification_type=request.type,
            recipient_id=str(request.recipient_id),
            error=exc.message,
        )
        return None


async def notify_booking_created(
    service: NotificationService,
    *,
    booking_id: Any,
    customer_id: uuid.UUID,
    provider_id: uuid.UUID,
    service_title: str | None = None,
) -> list[Notification]:
    title = service_title or "service"
    event_payload = {"bookingId": str(booking_id), "serviceTitle": service_title}
    for party in (provider_id, customer_id):
        await service.presence_hub.broadcast(party, RealtimeEvent.BOOKING_CREATED.value, event_payload)

    requests = [
        NotificationRequest(
            recipient_id=customer_id,
            title="Booking created",
            message=f"Your booking for {title} has been created.",
            type="booking.created",
            payload={"bookingId": str(booking_id), "link": f"/bookings/{booking_id}"},
        ),
        NotificationRequest(
            recipient_id=provider_id,
            title="New booking received",
            message=f"You have a new booking for {title}.",
            type="booking.received",
            payload={"bookingId": str(booking_id), "link": f"/provider/bookings/{booking_id}"},
        ),
    ]
    created = [await _safe_notify(service, request) for request in requests]
    return [item for item in created if item is not None]


async def notify_booking_status(
    service: NotificationService,
    *,
    booking_id: Any,
    customer_id: uuid.UUID,
    provider_id: uuid.UUID,
    status: str,
    service_title: str | None = None,
) -> list[Notification]:
    event_payload = {"bookingId": str(booking_id), "status": status}
    for party in (customer_id, provider_id):
        await service.presence_hub.broadcast(party, RealtimeEvent.BOOKING_UPDATED.value, event_payload)

    requests = [
        NotificationRequest(
            recipient_id=customer_id,
            title=f"Booking {status}",
            message=f"Your booking for {service_title or 'service'} is now {status}.",
            type="booking.status",
            payload={"bookingId": str(booking_id), "status": status, "serviceTitle": service_title},
        ),
        NotificationRequest(
            recipient_id=provider_id,
            title=f"Booking {status}",
            message=f"Booking {booking_id} status changed to {status}.",
            type="booking.status.provider",
            payload={"bookingId": str(booking_id), "status": status},
            send_sms=False,
        ),
    ]
    created = [await _safe_notify(service, request) for request in requests]
    return [item for item in created if item is not None]


async def notify_new_message(
    service: NotificationService,
    *,
    recipient_id: uuid.UUID,
    text: str | None,
    conversation_id: Any,
    message_id: Any,
    sender_name: str | None = None,
    sender_id: uuid.UUID | None = None,
) -> Notification | None:
    """Push-only notification for a chat message."""

    request = NotificationRequest(
        recipient_id=recipient_id,
        title=f"New message from {sender_name or 'Someone'}",
        message=message_snippet(text),
        type="chat.message",
        payload={
            "conversationId": str(conversation_id),
            "messageId": str(message_id),
            "link": f"/chats/{conversation_id}",
        },
        send_push=True,
        send_email=False,
        send_sms=False,
        sender_id=sender_id,
    )
    return await _safe_notify(service, request)


async def notify_payment_completed(
    service: NotificationService,
    *,
    payment_id: Any,
    booking_id: Any,
    amount: Any,
    customer_id: uuid.UUID,
    provider_id: uuid.UUID,
) -> list[Notification]:
    payload = {"bookingId": str(booking_id), "paymentId": str(payment_id), "amount": amount}
    requests = [
        NotificationRequest(
            recipient_id=customer_id,
            title="Payment received",
            message=f"Payment for booking {booking_id} received successfully.",
            type="payment.completed",
            payload=payload,
        ),
        NotificationRequest(
            recipient_id=provider_id,
            title="Booking paid",
            message=f"Booking {booking_id} has been paid.",
            type="payment.provider",
            payload=payload,
            send_sms=False,
        ),
    ]
    created = [await _safe_notify(service, request) for request in requests]
    return [item for item in created if item is not None]
