"""FastAPI application factory."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from notifyhub.api.v1 import api_router
from notifyhub.config import settings
from notifyhub.services.channels import ChannelSenders
from notifyhub.services.dispatch import BackgroundDispatcher
from notifyhub.services.realtime import PresenceHub, PresenceRegistry
from notifyhub.utils.exceptions import register_exception_handlers


tags_metadata: List[dict[str, str]] = [
    {"name": "notifications", "description": "Notification inbox and push subscriptions."},
    {"name": "realtime", "description": "Per-user realtime event stream."},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the in-process realtime registry, senders and background tasks."""

    app.state.presence_hub = PresenceHub(PresenceRegistry())
    app.state.dispatcher = BackgroundDispatcher()
    app.state.senders = ChannelSenders.from_settings(settings)
    logger.info("Notification fan-out started")
    try:
        yield
    finally:
        await app.state.dispatcher.drain()
        await app.state.presence_hub.close_all()
        logger.info("Notification fan-out stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Stores notifications and delivers them over realtime, web push, email and SMS.",
        version="0.1.0",
        openapi_tags=tags_metadata,
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors(), "message": "Validation failed"},
        )

    register_exception_handlers(app)

    @app.get("/health", tags=["health"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
