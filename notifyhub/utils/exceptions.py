"""Custom exception classes and error handling utilities."""
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger


class NotifyHubException(Exception):
    """Base exception for the application."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidRequest(NotifyHubException):
    """A required identifier was not supplied by the caller."""
    pass


class RecipientNotFound(NotifyHubException):
    """The notification recipient does not exist."""
    pass


class NotificationNotFound(NotifyHubException):
    """The notification does not exist or belongs to someone else."""
    pass


class PersistenceError(NotifyHubException):
    """Storing a notification record failed."""
    pass


class DeliveryFailed(NotifyHubException):
    """A single channel delivery attempt failed.

    ``gone`` marks a permanent failure: the target no longer exists and should
    be forgotten. Everything else is transient.
    """

    def __init__(
        self,
        message: str,
        *,
        channel: str,
        gone: bool = False,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.channel = channel
        self.gone = gone
        self.status_code = status_code


async def handle_invalid_request(request: Request, error: InvalidRequest) -> JSONResponse:
    """Handle requests missing a required identifier."""
    logger.warning(f"Invalid request: {error.message}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": error.message, "details": error.details},
    )


async def handle_recipient_not_found(request: Request, error: RecipientNotFound) -> JSONResponse:
    """Handle notify calls aimed at unknown users."""
    logger.error(f"Recipient not found: {error.message}")
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": error.message},
    )


async def handle_notification_not_found(
    request: Request, error: NotificationNotFound
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": error.message},
    )


async def handle_persistence_error(request: Request, error: PersistenceError) -> JSONResponse:
    """Handle database errors and return appropriate HTTP response."""
    logger.error(f"Database error: {error.message}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the domain exception handlers to ``app``."""

    app.add_exception_handler(InvalidRequest, handle_invalid_request)
    app.add_exception_handler(RecipientNotFound, handle_recipient_not_found)
    app.add_exception_handler(NotificationNotFound, handle_notification_not_found)
    app.add_exception_handler(PersistenceError, handle_persistence_error)
