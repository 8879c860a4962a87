from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from starlette.requests import HTTPConnection

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    """Raised when a realtime frame could not be handed to one or more connections."""


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    JOINED = "joined"
    DISCONNECTED = "disconnected"


class FrameSender(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass(slots=True)
class ChannelConnection:
    sender: FrameSender
    id: str = field(default_factory=lambda: str(uuid4()))
    state: ConnectionState = ConnectionState.CONNECTED
    identity: str | None = None


class ChannelRegistry:
    """Tracks which live connections have joined which principal's room."""

    def __init__(self) -> None:
        self._connections: dict[str, ChannelConnection] = {}
        self._rooms: dict[str, set[str]] = {}

    def connect(self, sender: FrameSender) -> ChannelConnection:
        connection = ChannelConnection(sender=sender)
        self._connections[connection.id] = connection
        logger.info("realtime connection opened id=%s", connection.id)
        return connection

    def join(self, connection: ChannelConnection, identity: str) -> None:
        if connection.state is ConnectionState.DISCONNECTED:
            raise ValueError(f"connection {connection.id} is already closed")
        if connection.identity is not None and connection.identity != identity:
            self._leave_room(connection)
        connection.identity = identity
        connection.state = ConnectionState.JOINED
        self._rooms.setdefault(identity, set()).add(connection.id)
        logger.info("realtime connection joined id=%s identity=%s", connection.id, identity)

    def disconnect(self, connection: ChannelConnection) -> None:
        if connection.state is ConnectionState.DISCONNECTED:
            return
        self._leave_room(connection)
        self._connections.pop(connection.id, None)
        connection.state = ConnectionState.DISCONNECTED
        logger.info("realtime connection closed id=%s", connection.id)

    def room_size(self, identity: str) -> int:
        return len(self._rooms.get(identity, ()))

    async def deliver(self, identity: str, event: str, data: Any) -> int:
        """Send one frame to every connection in ``identity``'s room.

        Returns the number of connections that accepted the frame. Connections that fail
        are dropped, and a ``NotificationDeliveryError`` is raised once the rest of the
        room has been served.
        """
        frame = {"event": event, "data": data}
        delivered = 0
        failed: list[ChannelConnection] = []
        for connection_id in list(self._rooms.get(identity, ())):
            connection = self._connections.get(connection_id)
            if connection is None:
                continue
            try:
                await connection.sender.send_json(frame)
            except Exception:
                failed.append(connection)
                continue
            delivered += 1

        for connection in failed:
            self.disconnect(connection)
        if failed:
            raise NotificationDeliveryError(
                f"{event} to {identity} failed on {len(failed)} of {len(failed) + delivered} connections"
            )
        return delivered

    def _leave_room(self, connection: ChannelConnection) -> None:
        if connection.identity is None:
            return
        room = self._rooms.get(connection.identity)
        if room is None:
            return
        room.discard(connection.id)
        if not room:
            del self._rooms[connection.identity]


def get_channel_registry(connection: HTTPConnection) -> ChannelRegistry:
    return connection.app.state.channels
