"""Uniform deliver-or-fail contract shared by every delivery channel."""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from loguru import logger


TargetT = TypeVar("TargetT")
ContentT = TypeVar("ContentT")


class ChannelSender(Generic[TargetT, ContentT]):
    """Base class for external delivery mechanisms.

    A sender built without credentials logs once and then ignores every
    ``deliver`` call. Configured senders raise ``DeliveryFailed`` on error.
    """

    name: str = "channel"

    def __init__(self, *, enabled: bool, missing: str | None = None) -> None:
        self.enabled = enabled
        if not enabled:
            logger.warning(
                "Channel not configured, deliveries disabled",
                channel=self.name,
                missing=missing,
            )

    async def deliver(self, target: TargetT, content: ContentT) -> Any:
        if not self.enabled:
            return None
        return await self._deliver(target, content)

    async def _deliver(self, target: TargetT, content: ContentT) -> Any:
        raise NotImplementedError
