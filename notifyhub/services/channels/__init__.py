"""Delivery channel adapters."""
from __future__ import annotations

from dataclasses import dataclass

from notifyhub.config import Settings
from notifyhub.services.channels.base import ChannelSender
from notifyhub.services.channels.email import EmailContent, EmailSender
from notifyhub.services.channels.push import PushContent, PushSender, PushTarget
from notifyhub.services.channels.sms import SmsSender, build_sms_text


@dataclass
class ChannelSenders:
    """The set of senders a ``NotificationService`` fans out to."""

    push: ChannelSender
    email: ChannelSender
    sms: ChannelSender

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChannelSenders":
        return cls(
            push=PushSender.from_settings(settings),
            email=EmailSender.from_settings(settings),
            sms=SmsSender.from_settings(settings),
        )


__all__ = [
    "ChannelSender",
    "ChannelSenders",
    "EmailContent",
    "EmailSender",
    "PushContent",
    "PushSender",
    "PushTarget",
    "SmsSender",
    "build_sms_text",
]
