"""Realtime room engine: registry, room store, chat relay and hub."""

from .errors import (  # noqa: F401
    CallInProgress,
    MessageNotFound,
    NotRoomMember,
    RelayError,
    RoomCodeExhausted,
    RoomNotFound,
    ValidationFailed,
)
from .hub import (  # noqa: F401
    RealtimeHub,
    configure_realtime,
    get_hub,
    shutdown_realtime,
    startup_realtime,
)
from .messaging import MessagingRelay  # noqa: F401
from .registry import Connection, ConnectionRegistry, safe_send_json  # noqa: F401
from .rooms import ChatMessage, Room, RoomMember, RoomStore  # noqa: F401

__all__ = [
    "configure_realtime",
    "startup_realtime",
    "shutdown_realtime",
    "get_hub",
    "RealtimeHub",
    "Connection",
    "ConnectionRegistry",
    "RoomStore",
    "Room",
    "RoomMember",
    "ChatMessage",
    "MessagingRelay",
    "safe_send_json",
    "RelayError",
    "RoomNotFound",
    "MessageNotFound",
    "NotRoomMember",
    "ValidationFailed",
    "CallInProgress",
    "RoomCodeExhausted",
]
