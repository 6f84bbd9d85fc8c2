"""SMS delivery through Twilio."""
from __future__ import annotations

import asyncio
from typing import Any

from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.rest import Client

from notifyhub.config import Settings
from notifyhub.services.channels.base import ChannelSender
from notifyhub.utils.exceptions import DeliveryFailed


def build_sms_text(title: str, message: str) -> str:
    """Collapse a notification into the single line sent by SMS."""

    return f"{title} - {message}"


class SmsSender(ChannelSender[str, str]):
    """Send one text message per call."""

    name = "sms"

    def __init__(
        self,
        *,
        account_sid: str | None,
        auth_token: str | None,
        from_number: str | None,
        client: Any | None = None,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self._client = client
        super().__init__(
            enabled=bool(client or (account_sid and auth_token and from_number)),
            missing="TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN/TWILIO_PHONE_FROM",
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmsSender":
        return cls(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            from_number=settings.TWILIO_PHONE_FROM,
        )

    @property
    def client(self) -> Any:
        """Lazy-load the Twilio client."""
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def _send(self, phone_number: str, text: str) -> Any:
        return self.client.messages.create(body=text, from_=self.from_number, to=phone_number)

    async def _deliver(self, target: str, content: str) -> Any:
        try:
            return await asyncio.to_thread(self._send, target, content)
        except TwilioRestException as exc:
            raise DeliveryFailed(
                f"SMS delivery failed: {exc.msg}",
                channel=self.name,
                status_code=exc.status,
            ) from exc
        except (TwilioException, OSError) as exc:
            raise DeliveryFailed(f"SMS delivery failed: {exc}", channel=self.name) from exc
