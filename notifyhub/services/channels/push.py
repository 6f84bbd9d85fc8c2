"""Web Push delivery via VAPID-signed requests."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

from pywebpush import WebPushException, webpush

from notifyhub.config import Settings
from notifyhub.services.channels.base import ChannelSender
from notifyhub.utils.exceptions import DeliveryFailed


GONE_STATUSES = frozenset({404, 410})


@dataclass(frozen=True)
class PushTarget:
    """Detached copy of a stored subscription, safe to use outside a DB session."""

    endpoint: str
    p256dh: str
    auth: str

    def subscription_info(self) -> dict[str, Any]:
        return {"endpoint": self.endpoint, "keys": {"p256dh": self.p256dh, "auth": self.auth}}


@dataclass
class PushContent:
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps({"title": self.title, "body": self.body, "data": self.data}, default=str)


class PushSender(ChannelSender[PushTarget, PushContent]):
    """Send encrypted payloads to browser push services."""

    name = "push"

    def __init__(
        self,
        *,
        public_key: str | None,
        private_key: str | None,
        subject: str,
        ttl: int = 86400,
        timeout: float | None = None,
    ) -> None:
        self.public_key = public_key
        self.private_key = private_key
        self.subject = subject
        self.ttl = ttl
        self.timeout = timeout
        super().__init__(
            enabled=bool(public_key and private_key),
            missing="VAPID_PUBLIC_KEY/VAPID_PRIVATE_KEY",
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "PushSender":
        return cls(
            public_key=settings.VAPID_PUBLIC_KEY,
            private_key=settings.VAPID_PRIVATE_KEY,
            subject=settings.VAPID_SUBJECT,
            ttl=settings.PUSH_TTL_SECONDS,
            timeout=settings.DELIVERY_TIMEOUT_SECONDS,
        )

    def _send(self, target: PushTarget, content: PushContent) -> Any:
        return webpush(
            subscription_info=target.subscription_info(),
            data=content.to_json(),
            vapid_private_key=self.private_key,
            # pywebpush adds aud/exp to the claims dict, so hand it a fresh one
            vapid_claims={"sub": self.subject},
            ttl=self.ttl,
            timeout=self.timeout,
        )

    async def _deliver(self, target: PushTarget, content: PushContent) -> Any:
        try:
            return await asyncio.to_thread(self._send, target, content)
        except WebPushException as exc:
            response = getattr(exc, "response", None)
            status_code = response.status_code if response is not None else None
            raise DeliveryFailed(
                f"Push delivery failed: {exc}",
                channel=self.name,
                gone=status_code in GONE_STATUSES,
                status_code=status_code,
            ) from exc
        except Exception as exc:
            raise DeliveryFailed(f"Push delivery failed: {exc}", channel=self.name) from exc
