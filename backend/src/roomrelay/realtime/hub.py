"""Composition root for the realtime room engine."""

from __future__ import annotations

import logging
from typing import Callable

from app.config import Settings, get_settings

from ..voice.calls import CallCoordinator
from ..voice.signaling import SignalingRelay
from .codes import generate_code
from .messaging import MessagingRelay
from .registry import Connection, ConnectionRegistry, JsonSocket
from .rooms import RoomStore

logger = logging.getLogger(__name__)


class RealtimeHub:
    """Owns one registry and the components layered on top of it."""

    def __init__(
        self,
        *,
        max_name_length: int = 64,
        code_length: int = 6,
        max_code_attempts: int = 32,
        history_limit: int = 500,
        max_payload_bytes: int = 10 * 1024 * 1024,
        like_policy: str = "toggle",
        code_generator: Callable[[int], str] = generate_code,
    ) -> None:
        self.registry = ConnectionRegistry(max_name_length=max_name_length)
        self.rooms = RoomStore(
            self.registry,
            code_length=code_length,
            max_code_attempts=max_code_attempts,
            history_limit=history_limit,
            max_payload_bytes=max_payload_bytes,
            like_policy=like_policy,
            code_generator=code_generator,
        )
        self.messaging = MessagingRelay(self.rooms)
        self.calls = CallCoordinator(self.rooms)
        self.signaling = SignalingRelay(self.registry)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RealtimeHub":
        return cls(
            max_name_length=settings.display_name_max_length,
            code_length=settings.room_code_length,
            max_code_attempts=settings.room_code_max_attempts,
            history_limit=settings.chat_history_max_messages,
            max_payload_bytes=settings.max_inline_payload_bytes,
            like_policy=settings.like_policy,
        )

    def connect(self, websocket: JsonSocket) -> Connection:
        connection = self.registry.attach(websocket)
        logger.debug("Connection %s attached", connection.connection_id)
        return connection

    async def disconnect(self, connection_id: str) -> None:
        """Release every piece of state derived from *connection_id*."""

        try:
            await self.rooms.leave_room(connection_id)
        finally:
            self.registry.detach(connection_id)
            logger.debug("Connection %s detached", connection_id)

    async def shutdown(self) -> None:
        for connection_id in list(self.registry.ids()):
            await self.disconnect(connection_id)


# ---------------------------------------------------------------------------
# Module level lifecycle helpers
# ---------------------------------------------------------------------------


_hub = RealtimeHub.from_settings(get_settings())


def configure_realtime(settings: Settings | None = None) -> RealtimeHub:
    """Replace the process wide hub, dropping all live rooms."""

    global _hub
    _hub = RealtimeHub.from_settings(settings or get_settings())
    return _hub


async def startup_realtime() -> None:
    logger.info("Realtime hub ready (like policy: %s)", _hub.rooms.like_policy)


async def shutdown_realtime() -> None:
    await _hub.shutdown()


def get_hub() -> RealtimeHub:
    return _hub


__all__ = [
    "RealtimeHub",
    "configure_realtime",
    "get_hub",
    "shutdown_realtime",
    "startup_realtime",
]
