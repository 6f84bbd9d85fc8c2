"""Realtime presence tracking and per-user broadcast over WebSockets."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict

from fastapi import WebSocket
from loguru import logger

from notifyhub.core.security import resolve_token_subject
from notifyhub.schemas.realtime import ServerFrame


POLICY_VIOLATION = 1008
GOING_AWAY = 1001


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"
    JOINED = "joined"
    CLOSED = "closed"


@dataclass(eq=False)
class RealtimeConnection:
    """One live socket and the identity it authenticated as."""

    websocket: WebSocket
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str | None = None
    state: ConnectionState = ConnectionState.CONNECTING


class PresenceRegistry:
    """In-process map of user id to that user's live connections.

    Mutated only on connect and disconnect, never across an ``await``.
    """

    def __init__(self) -> None:
        self._groups: Dict[str, Dict[str, RealtimeConnection]] = {}

    def add(self, connection: RealtimeConnection) -> None:
        if connection.user_id is None:
            raise ValueError("Only authenticated connections can join a group")
        self._groups.setdefault(connection.user_id, {})[connection.id] = connection

    def remove(self, connection: RealtimeConnection) -> None:
        if connection.user_id is None:
            return
        group = self._groups.get(connection.user_id)
        if group is None:
            return
        group.pop(connection.id, None)
        if not group:
            self._groups.pop(connection.user_id, None)

    def members(self, user_id: str) -> list[RealtimeConnection]:
        return list(self._groups.get(user_id, {}).values())

    def contains(self, connection: RealtimeConnection) -> bool:
        if connection.user_id is None:
            return False
        return connection.id in self._groups.get(connection.user_id, {})

    def groups(self) -> list[str]:
        return list(self._groups)

    def all_connections(self) -> list[RealtimeConnection]:
        return [conn for group in self._groups.values() for conn in group.values()]

    def clear(self) -> None:
        self._groups.clear()


Authenticator = Callable[[str | None], "uuid.UUID | str | None"]


class PresenceHub:
    """Authenticate sockets and deliver events to every device of a user."""

    def __init__(
        self,
        registry: PresenceRegistry,
        authenticate: Authenticator = resolve_token_subject,
    ) -> None:
        self.registry = registry
        self._authenticate = authenticate

    async def connect(self, websocket: WebSocket, token: str | None) -> RealtimeConnection | None:
        """Run the handshake; returns the joined connection or ``None`` when rejected."""

        connection = RealtimeConnection(websocket=websocket)
        connection.state = ConnectionState.AUTHENTICATING
        subject = self._authenticate(token) if token else None
        if subject is None:
            connection.state = ConnectionState.REJECTED
            logger.warning(
                "Realtime handshake rejected",
                connection_id=connection.id,
                reason="missing token" if not token else "invalid token",
            )
            await websocket.close(code=POLICY_VIOLATION)
            return None

        connection.user_id = str(subject)
        connection.state = ConnectionState.AUTHENTICATED
        await websocket.accept()
        self.registry.add(connection)
        connection.state = ConnectionState.JOINED
        logger.info(
            "Realtime connection joined",
            connection_id=connection.id,
            user_id=connection.user_id,
        )
        return connection

    def join(self, connection: RealtimeConnection, requested: Any) -> bool:
        """Honour a client ``join`` only for the connection's own group."""

        if connection.user_id is None or connection.state in (
            ConnectionState.REJECTED,
            ConnectionState.CLOSED,
        ):
            return False
        if str(requested) != connection.user_id:
            logger.warning(
                "Refused join for foreign group",
                connection_id=connection.id,
                user_id=connection.user_id,
                requested=str(requested),
            )
            return False
        if not self.registry.contains(connection):
            self.registry.add(connection)
        connection.state = ConnectionState.JOINED
        return True

    def disconnect(self, connection: RealtimeConnection) -> None:
        self.registry.remove(connection)
        connection.state = ConnectionState.CLOSED
        logger.info(
            "Realtime connection closed",
            connection_id=connection.id,
            user_id=connection.user_id,
        )

    async def broadcast(self, user_id: uuid.UUID | str, event: str, payload: Any) -> int:
        """Send ``event`` to every connection of ``user_id``; returns how many got it."""

        targets = self.registry.members(str(user_id))
        if not targets:
            return 0
        frame = ServerFrame(event=event, data=payload).model_dump()
        results = await asyncio.gather(
            *(connection.websocket.send_json(frame) for connection in targets),
            return_exceptions=True,
        )
        delivered = 0
        for connection, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Failed to broadcast realtime event",
                    connection_id=connection.id,
                    realtime_event=event,
                    error=str(result),
                )
                continue
            delivered += 1
        return delivered

    async def send_personal_message(
        self, connection: RealtimeConnection, event: str, payload: Any
    ) -> None:
        await connection.websocket.send_json(ServerFrame(event=event, data=payload).model_dump())

    async def close_all(self) -> None:
        """Close every socket; used at shutdown."""

        for connection in self.registry.all_connections():
            try:
                await connection.websocket.close(code=GOING_AWAY)
            except Exception as exc:
                logger.debug("Socket already closed", connection_id=connection.id, error=str(exc))
            connection.state = ConnectionState.CLOSED
        self.registry.clear()
