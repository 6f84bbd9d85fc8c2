"""Service layer package."""

from notifyhub.services.dispatch import BackgroundDispatcher
from notifyhub.services.inbox import InboxService
from notifyhub.services.notification_service import NotificationService
from notifyhub.services.realtime import PresenceHub, PresenceRegistry
from notifyhub.services.subscriptions import SubscriptionRegistry

__all__ = [
    "BackgroundDispatcher",
    "InboxService",
    "NotificationService",
    "PresenceHub",
    "PresenceRegistry",
    "SubscriptionRegistry",
]
