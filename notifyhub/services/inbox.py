"""Read side of the notification store used by the REST API."""
from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from notifyhub.db.models.notification import Notification
from notifyhub.utils.exceptions import NotificationNotFound


MAX_PAGE_SIZE = 200


class InboxService:
    """Query and acknowledge a user's stored notifications."""

    def __init__(self, db: Session):
        self.db = db

    def list_for_user(
        self, user_id: uuid.UUID, page: int = 1, limit: int = 20
    ) -> tuple[int, list[Notification]]:
        """Return ``(total, items)`` for one page, newest first."""

        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        total = self.db.scalar(
            select(func.count()).select_from(Notification).where(Notification.user_id == user_id)
        )
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return total or 0, list(self.db.scalars(stmt))

    def unread_count(self, user_id: uuid.UUID) -> int:
        count = self.db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
        )
        return count or 0

    def mark_read(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> Notification:
        """Set ``read`` on a notification owned by ``user_id``; idempotent."""

        notification = self.db.scalars(
            select(Notification).where(
                Notification.id == notification_id, Notification.user_id == user_id
            )
        ).first()
        if notification is None:
            raise NotificationNotFound("Notification not found")
        if not notification.read:
            notification.mark_read()
            self.db.commit()
            self.db.refresh(notification)
        return notification
