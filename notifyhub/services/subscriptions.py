"""Push subscription registry with upsert-by-endpoint semantics."""
from __future__ import annotations

import uuid
from typing import Mapping

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from notifyhub.db.models.push_subscription import PushSubscription
from notifyhub.db.models.user import User
from notifyhub.utils.exceptions import InvalidRequest


class SubscriptionRegistry:
    """CRUD over ``PushSubscription`` rows.

    ``endpoint`` is globally unique: subscribing the same browser endpoint
    again overwrites the stored keys instead of adding a second row.
    """

    def __init__(self, db: Session):
        self.db = db

    def _get_by_endpoint(self, endpoint: str) -> PushSubscription | None:
        return self.db.scalars(
            select(PushSubscription).where(PushSubscription.endpoint == endpoint)
        ).first()

    def upsert(
        self,
        endpoint: str | None,
        keys: Mapping[str, str | None] | None,
        user_id: uuid.UUID | None = None,
        user_agent: str | None = None,
    ) -> PushSubscription:
        """Create or refresh the subscription for ``endpoint``.

        ``user_id`` is only written when given, so an anonymous re-subscribe
        never detaches a device from its owner. An unknown ``user_id`` is
        dropped and the device is stored anonymously.
        """

        if not endpoint:
            raise InvalidRequest("subscription object required")
        keys = keys or {}
        p256dh, auth = keys.get("p256dh"), keys.get("auth")
        if not p256dh or not auth:
            raise InvalidRequest("subscription keys p256dh and auth required")

        if user_id is not None and self.db.get(User, user_id) is None:
            logger.warning(
                "Subscription owner does not exist, storing anonymously",
                user_id=str(user_id),
            )
            user_id = None

        existing = self._get_by_endpoint(endpoint)
        if existing is None:
            subscription = PushSubscription(
                endpoint=endpoint,
                p256dh=p256dh,
                auth=auth,
                user_id=user_id,
                user_agent=user_agent,
            )
            self.db.add(subscription)
            try:
                self.db.commit()
            except IntegrityError:
                # Another request registered the endpoint first; update theirs.
                self.db.rollback()
                existing = self._get_by_endpoint(endpoint)
                if existing is None:
                    raise
            else:
                self.db.refresh(subscription)
                logger.info(
                    "Push subscription created",
                    subscription_id=str(subscription.id),
                    user_id=str(user_id) if user_id else None,
                )
                return subscription

        existing.p256dh = p256dh
        existing.auth = auth
        if user_id is not None:
            existing.user_id = user_id
        if user_agent:
            existing.user_agent = user_agent
        self.db.commit()
        self.db.refresh(existing)
        return existing

    def detach_by_endpoint(self, endpoint: str) -> bool:
        """Delete the subscription for ``endpoint``; returns whether one existed."""

        result = self.db.execute(
            delete(PushSubscription).where(PushSubscription.endpoint == endpoint)
        )
        self.db.commit()
        return bool(result.rowcount)

    def detach_all_for_user(self, user_id: uuid.UUID) -> int:
        """Delete every subscription owned by ``user_id``."""

        result = self.db.execute(
            delete(PushSubscription).where(PushSubscription.user_id == user_id)
        )
        self.db.commit()
        return result.rowcount or 0

    def list_for_user(self, user_id: uuid.UUID) -> list[PushSubscription]:
        stmt = (
            select(PushSubscription)
            .where(PushSubscription.user_id == user_id)
            .order_by(PushSubscription.created_at)
        )
        return list(self.db.scalars(stmt))
