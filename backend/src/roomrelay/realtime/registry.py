"""Connection registry mapping transient connection ids to display names."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Protocol

from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.monitoring.metrics import realtime_connections

from .errors import ValidationFailed

logger = logging.getLogger(__name__)


class JsonSocket(Protocol):
    """Subset of the Starlette websocket API used for fan-out."""

    application_state: WebSocketState

    async def send_json(self, data: Any) -> None: ...


async def safe_send_json(websocket: JsonSocket, data: dict[str, Any]) -> bool:
    """Safely send JSON data through websocket, handling disconnections gracefully.

    Returns True if message was sent successfully, False otherwise.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


@dataclass
class Connection:
    connection_id: str
    websocket: JsonSocket
    display_name: str | None = None
    room_code: str | None = None


class ConnectionRegistry:
    """Track live connections and a global display name index.

    The name index serves signalling target resolution independently of room
    membership. Every connection registered under a name is kept; the most
    recent registration still present wins.
    """

    def __init__(self, *, max_name_length: int = 64) -> None:
        self._connections: Dict[str, Connection] = {}
        self._by_name: Dict[str, list[str]] = {}
        self._max_name_length = max_name_length

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def clean_name(self, display_name: Any) -> str:
        if not isinstance(display_name, str) or not display_name.strip():
            raise ValidationFailed("Display name is required")
        return display_name.strip()[: self._max_name_length]

    def attach(self, websocket: JsonSocket, connection_id: str | None = None) -> Connection:
        connection_id = connection_id or uuid.uuid4().hex
        connection = Connection(connection_id=connection_id, websocket=websocket)
        self._connections[connection_id] = connection
        realtime_connections.labels("rooms").inc()
        return connection

    def _unindex(self, name: str, connection_id: str) -> None:
        holders = self._by_name.get(name)
        if not holders or connection_id not in holders:
            return
        holders.remove(connection_id)
        if not holders:
            del self._by_name[name]

    def detach(self, connection_id: str) -> Connection | None:
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None
        if connection.display_name is not None:
            self._unindex(connection.display_name, connection_id)
        realtime_connections.labels("rooms").dec()
        return connection

    def register(self, connection_id: str, display_name: Any) -> str:
        connection = self._connections.get(connection_id)
        if connection is None:
            raise ValidationFailed("Unknown connection")
        name = self.clean_name(display_name)
        if connection.display_name is not None:
            self._unindex(connection.display_name, connection_id)
        connection.display_name = name
        self._by_name.setdefault(name, []).append(connection_id)
        return name

    def ids(self) -> list[str]:
        return list(self._connections)

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def resolve(self, display_name: str) -> str | None:
        holders = self._by_name.get(display_name)
        return holders[-1] if holders else None

    def name_of(self, connection_id: str) -> str | None:
        connection = self._connections.get(connection_id)
        return connection.display_name if connection is not None else None

    def room_of(self, connection_id: str) -> str | None:
        connection = self._connections.get(connection_id)
        return connection.room_code if connection is not None else None

    def set_room(self, connection_id: str, room_code: str | None) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.room_code = room_code

    async def send(self, connection_id: str, payload: dict[str, Any]) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        return await safe_send_json(connection.websocket, payload)


__all__ = ["Connection", "ConnectionRegistry", "JsonSocket", "safe_send_json"]
