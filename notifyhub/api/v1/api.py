"""API router for version 1."""
from fastapi import APIRouter

from notifyhub.api.v1.endpoints import notifications, realtime_ws


api_router = APIRouter()
api_router.include_router(notifications.router)
api_router.include_router(realtime_ws.router)
