"""Version 1 of the HTTP and realtime API."""

from notifyhub.api.v1.api import api_router

__all__ = ["api_router"]
