"""Pydantic schemas for API and websocket payloads."""

from .events import (
    BackgroundEvent,
    CallRequestEvent,
    ConnectionLookupEvent,
    CreateRoomEvent,
    EditMessageEvent,
    JoinRoomEvent,
    MessageRefEvent,
    RegisterEvent,
    RoomEvent,
    SendMessageEvent,
    SignalEvent,
    TypingEvent,
    UsernameLookupEvent,
    VideoStateEvent,
)
from .rooms import CallSummary, RoomSummary

__all__ = [
    "BackgroundEvent",
    "CallRequestEvent",
    "CallSummary",
    "ConnectionLookupEvent",
    "CreateRoomEvent",
    "EditMessageEvent",
    "JoinRoomEvent",
    "MessageRefEvent",
    "RegisterEvent",
    "RoomEvent",
    "RoomSummary",
    "SendMessageEvent",
    "SignalEvent",
    "TypingEvent",
    "UsernameLookupEvent",
    "VideoStateEvent",
]
