"""Tests for the notification fan-out orchestrator."""
from __future__ import annotations

import asyncio
import threading
import uuid

import pytest
from sqlalchemy.exc import OperationalError

from notifyhub.core.security import create_access_token
from notifyhub.db.models import Notification, PushSubscription
from notifyhub.schemas import NotificationRequest
from notifyhub.services.channels import ChannelSenders, EmailContent, PushContent
from notifyhub.services.subscriptions import SubscriptionRegistry
from notifyhub.utils.exceptions import (
    DeliveryFailed,
    InvalidRequest,
    PersistenceError,
    RecipientNotFound,
)


def _subscribe(db_session, user, endpoint: str) -> PushSubscription:
    return SubscriptionRegistry(db_session).upsert(
        endpoint, {"p256dh": f"key-{endpoint}", "auth": "secret"}, user_id=user.id
    )


@pytest.mark.asyncio
async def test_notify_applies_defaults(notification_service, dispatcher, db_session, make_user):
    user = make_user()

    notification = await notification_service.notify(NotificationRequest(recipient_id=user.id))
    await dispatcher.drain()

    stored = db_session.get(Notification, notification.id)
    assert stored is not None
    assert stored.user_id == user.id
    assert stored.title == "Notification"
    assert stored.message == ""
    assert stored.type == "generic"
    assert stored.payload == {}
    assert stored.read is False
    assert stored.sender_id is None
    assert stored.created_at is not None


@pytest.mark.asyncio
async def test_notify_records_request_fields(notification_service, dispatcher, db_session, make_user):
    recipient = make_user()
    sender = make_user()

    notification = await notification_service.notify(
        NotificationRequest(
            recipient_id=recipient.id,
            title="Booking created",
            message="Your booking has been created.",
            type="booking.created",
            payload={"bookingId": "b-1", "link": "/bookings/b-1"},
            sender_id=sender.id,
        )
    )
    await dispatcher.drain()

    db_session.expire_all()
    stored = db_session.get(Notification, notification.id)
    assert stored.title == "Booking created"
    assert stored.message == "Your booking has been created."
    assert stored.type == "booking.created"
    assert stored.payload == {"bookingId": "b-1", "link": "/bookings/b-1"}
    assert stored.sender_id == sender.id
    assert stored.read is False


@pytest.mark.asyncio
async def test_notify_requires_recipient(notification_service, db_session):
    with pytest.raises(InvalidRequest):
        await notification_service.notify(NotificationRequest())

    assert db_session.query(Notification).count() == 0


@pytest.mark.asyncio
async def test_notify_unknown_recipient_persists_nothing(notification_service, dispatcher, db_session, senders):
    with pytest.raises(RecipientNotFound):
        await notification_service.notify(NotificationRequest(recipient_id=uuid.uuid4()))

    assert db_session.query(Notification).count() == 0
    assert dispatcher.pending == 0
    assert senders.push.calls == []


@pytest.mark.asyncio
async def test_all_channels_disabled_still_persists(
    notification_service, dispatcher, db_session, senders, make_user
):
    user = make_user(phone="+15550001111")
    _subscribe(db_session, user, "https://push.example.com/a")

    notification = await notification_service.notify(
        NotificationRequest(
            recipient_id=user.id, send_push=False, send_email=False, send_sms=False
        )
    )
    await dispatcher.drain()

    assert db_session.get(Notification, notification.id) is not None
    assert senders.push.calls == []
    assert senders.email.calls == []
    assert senders.sms.calls == []


@pytest.mark.asyncio
async def test_gone_subscription_is_evicted(
    notification_service, dispatcher, db_session, session_factory, senders, make_user
):
    user = make_user()
    _subscribe(db_session, user, "https://push.example.com/alive")
    _subscribe(db_session, user, "https://push.example.com/expired")
    senders.push.failures["https://push.example.com/expired"] = DeliveryFailed(
        "gone", channel="push", gone=True, status_code=410
    )

    notification = await notification_service.notify(
        NotificationRequest(recipient_id=user.id, title="Hi", send_email=False, send_sms=False)
    )
    await dispatcher.drain()

    assert {target.endpoint for target, _ in senders.push.calls} == {
        "https://push.example.com/alive",
        "https://push.example.com/expired",
    }
    check = session_factory()
    try:
        remaining = SubscriptionRegistry(check).list_for_user(user.id)
        assert [sub.endpoint for sub in remaining] == ["https://push.example.com/alive"]
        stored = check.get(Notification, notification.id)
        assert stored is not None
        assert stored.title == "Hi"
    finally:
        check.close()


@pytest.mark.asyncio
async def test_transient_push_failure_keeps_subscription(
    notification_service, dispatcher, db_session, senders, make_user
):
    user = make_user()
    _subscribe(db_session, user, "https://push.example.com/flaky")
    senders.push.failures["*"] = DeliveryFailed("503", channel="push", status_code=503)

    await notification_service.notify(NotificationRequest(recipient_id=user.id))
    await dispatcher.drain()

    db_session.expire_all()
    assert len(SubscriptionRegistry(db_session).list_for_user(user.id)) == 1


@pytest.mark.asyncio
async def test_push_payload_carries_notification_identity(
    notification_service, dispatcher, db_session, senders, make_user
):
    user = make_user()
    _subscribe(db_session, user, "https://push.example.com/a")

    notification = await notification_service.notify(
        NotificationRequest(
            recipient_id=user.id,
            title="Payment received",
            message="Thanks",
            type="payment.completed",
            payload={"paymentId": "p-1"},
        )
    )
    await dispatcher.drain()

    target, content = senders.push.calls[0]
    assert isinstance(content, PushContent)
    assert target.p256dh == "key-https://push.example.com/a"
    assert content.title == "Payment received"
    assert content.body == "Thanks"
    assert content.data == {
        "paymentId": "p-1",
        "notificationId": str(notification.id),
        "type": "payment.completed",
    }


@pytest.mark.asyncio
async def test_email_failure_does_not_affect_other_channels(
    notification_service, dispatcher, db_session, presence_hub, senders, make_user, fake_websocket_cls
):
    user = make_user(phone="+15550002222")
    _subscribe(db_session, user, "https://push.example.com/a")
    socket = fake_websocket_cls()
    await presence_hub.connect(socket, create_access_token(user.id))
    senders.email.failures["*"] = DeliveryFailed("smtp down", channel="email")

    notification = await notification_service.notify(
        NotificationRequest(recipient_id=user.id, title="Booking", message="Confirmed")
    )
    await dispatcher.drain()

    assert notification.id is not None
    assert len(senders.email.calls) == 1
    assert senders.sms.calls == [("+15550002222", "Booking - Confirmed")]
    assert len(senders.push.calls) == 1
    assert [item["id"] for item in socket.events("notification:new")] == [str(notification.id)]


@pytest.mark.asyncio
async def test_email_uses_payload_link_or_inbox_default(
    notification_service, dispatcher, senders, make_user
):
    user = make_user()

    await notification_service.notify(
        NotificationRequest(recipient_id=user.id, title="A", payload={"link": "/bookings/1"})
    )
    await notification_service.notify(NotificationRequest(recipient_id=user.id, title="B"))
    await dispatcher.drain()

    links = {content.title: content.link for _, content in senders.email.calls}
    assert all(isinstance(content, EmailContent) for _, content in senders.email.calls)
    assert links == {"A": "/bookings/1", "B": "https://app.example.com/notifications"}


@pytest.mark.asyncio
async def test_contactless_recipient_skips_email_and_sms(
    notification_service, dispatcher, senders, make_user
):
    user = make_user(email=None, phone=None)

    await notification_service.notify(NotificationRequest(recipient_id=user.id))
    await dispatcher.drain()

    assert senders.email.calls == []
    assert senders.sms.calls == []


@pytest.mark.asyncio
async def test_unconfigured_senders_are_not_used(
    db_session, presence_hub, dispatcher, session_factory, make_user, recording_sender_cls
):
    from notifyhub.services.notification_service import NotificationService

    disabled = ChannelSenders(
        push=recording_sender_cls("push", enabled=False),
        email=recording_sender_cls("email", enabled=False),
        sms=recording_sender_cls("sms", enabled=False),
    )
    service = NotificationService(
        db_session,
        presence_hub=presence_hub,
        senders=disabled,
        dispatcher=dispatcher,
        session_factory=session_factory,
    )
    user = make_user(phone="+15550003333")
    _subscribe(db_session, user, "https://push.example.com/a")

    await service.notify(NotificationRequest(recipient_id=user.id))
    await dispatcher.drain()

    assert disabled.push.calls == []
    assert disabled.email.calls == []
    assert disabled.sms.calls == []


@pytest.mark.asyncio
async def test_notify_returns_before_slow_channel_completes(
    db_session, presence_hub, dispatcher, session_factory, make_user, recording_sender_cls
):
    from notifyhub.services.notification_service import NotificationService

    gate = asyncio.Event()
    senders = ChannelSenders(
        push=recording_sender_cls("push"),
        email=recording_sender_cls("email", gate=gate),
        sms=recording_sender_cls("sms"),
    )
    service = NotificationService(
        db_session,
        presence_hub=presence_hub,
        senders=senders,
        dispatcher=dispatcher,
        session_factory=session_factory,
    )
    user = make_user(phone="+15550004444")

    notification = await service.notify(NotificationRequest(recipient_id=user.id))
    assert notification.id is not None
    assert dispatcher.pending == 1

    # SMS must not wait behind the stalled email delivery.
    await asyncio.wait_for(senders.sms.called.wait(), timeout=1)
    await asyncio.wait_for(senders.email.called.wait(), timeout=1)
    assert dispatcher.pending == 1

    gate.set()
    await dispatcher.drain()
    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_persistence_failure_propagates(
    notification_service, dispatcher, db_session, make_user, monkeypatch
):
    user = make_user()

    def broken_commit() -> None:
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(db_session, "commit", broken_commit)
    with pytest.raises(PersistenceError):
        await notification_service.notify(NotificationRequest(recipient_id=user.id))
    monkeypatch.undo()

    assert dispatcher.pending == 0
    assert db_session.query(Notification).count() == 0


@pytest.mark.asyncio
async def test_each_call_creates_its_own_record(notification_service, dispatcher, db_session, make_user):
    user = make_user()
    request = NotificationRequest(recipient_id=user.id, type="booking.updated")

    first = await notification_service.notify(request)
    second = await notification_service.notify(request)
    await dispatcher.drain()

    assert first.id != second.id
    assert db_session.query(Notification).filter_by(user_id=user.id).count() == 2


@pytest.mark.asyncio
async def test_subscription_lookups_run_off_the_event_loop(
    notification_service, dispatcher, db_session, senders, make_user, monkeypatch
):
    user = make_user()
    _subscribe(db_session, user, "https://push.example.com/gone")
    senders.push.failures["*"] = DeliveryFailed("gone", channel="push", gone=True, status_code=404)
    loop_thread = threading.get_ident()
    seen: dict[str, int] = {}

    load_targets = notification_service._load_push_targets
    evict = notification_service._evict

    def recording_load(user_id):
        seen["load"] = threading.get_ident()
        return load_targets(user_id)

    def recording_evict(endpoint):
        seen["evict"] = threading.get_ident()
        return evict(endpoint)

    monkeypatch.setattr(notification_service, "_load_push_targets", recording_load)
    monkeypatch.setattr(notification_service, "_evict", recording_evict)

    await notification_service.notify(NotificationRequest(recipient_id=user.id))
    await dispatcher.drain()

    assert set(seen) == {"load", "evict"}
    assert loop_thread not in seen.values()
    db_session.expire_all()
    assert SubscriptionRegistry(db_session).list_for_user(user.id) == []
