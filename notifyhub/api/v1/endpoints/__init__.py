"""API endpoint modules for v1."""

from notifyhub.api.v1.endpoints import notifications, realtime_ws

__all__ = [
    "notifications",
    "realtime_ws",
]
