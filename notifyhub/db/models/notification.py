"""Notification database model."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID

from notifyhub.db.base import Base
from notifyhub.db.types import JSONMap


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Notification(Base):
    """A stored notification addressed to one user.

    Records are immutable after creation apart from ``read``.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read_created", "user_id", "read", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    sender_id = Column(UUID(as_uuid=True), nullable=True)

    title = Column(String(255), nullable=False, default="Notification")
    message = Column(Text, nullable=False, default="")
    type = Column(String(100), nullable=False, default="generic")
    payload = Column(JSONMap, nullable=False, default=dict)

    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def mark_read(self) -> None:
        """Flag the notification as read; repeated calls are harmless."""

        self.read = True
