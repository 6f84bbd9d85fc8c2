"""Database models package."""
from notifyhub.db.models.user import User
from notifyhub.db.models.notification import Notification
from notifyhub.db.models.push_subscription import PushSubscription

__all__ = [
    "User",
    "Notification",
    "PushSubscription",
]
