"""Realtime WebSocket endpoint delivering per-user events."""
from __future__ import annotations

from fastapi import APIRouter, Depends, WebSocket
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from notifyhub.api.deps import get_presence_hub
from notifyhub.schemas.realtime import ClientFrame, JoinFrame, PingFrame, RealtimeEvent
from notifyhub.services.realtime import PresenceHub

router = APIRouter(prefix="/realtime", tags=["realtime"])

client_frame_adapter = TypeAdapter(ClientFrame)


def _extract_token(websocket: WebSocket) -> str | None:
    header = websocket.headers.get("Authorization")
    if header and header.lower().startswith("bearer "):
        return header.split(" ", 1)[1]
    query_token = websocket.query_params.get("token")
    return query_token


@router.websocket("/ws")
async def realtime_stream(
    websocket: WebSocket,
    hub: PresenceHub = Depends(get_presence_hub),
) -> None:
    connection = await hub.connect(websocket, _extract_token(websocket))
    if connection is None:
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text") or message.get("bytes") or ""

            try:
                frame = client_frame_adapter.validate_json(raw)
            except ValidationError as exc:
                errors = exc.errors(include_url=False, include_context=False, include_input=False)
                await hub.send_personal_message(
                    connection,
                    RealtimeEvent.ERROR.value,
                    {"detail": "invalid_payload", "errors": errors},
                )
                continue

            if isinstance(frame, JoinFrame):
                if hub.join(connection, frame.data):
                    await hub.send_personal_message(
                        connection, RealtimeEvent.JOINED.value, connection.user_id
                    )
                continue

            if isinstance(frame, PingFrame):
                await hub.send_personal_message(connection, "pong", frame.data)
                continue

            logger.debug("Unhandled realtime frame", frame_event=frame.event)
    finally:
        hub.disconnect(connection)
