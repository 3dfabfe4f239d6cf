"""Schemas for inbound websocket events.

Clients speak camelCase; a few legacy spellings used by older clients
(``username``, ``room``, ``message``, ``newContent``, ``backgroundImage``)
are accepted as aliases.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class InboundEvent(BaseModel):
    """Base class for client to server events."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RegisterEvent(InboundEvent):
    display_name: str = Field(
        ..., validation_alias=AliasChoices("displayName", "username", "display_name")
    )


class CreateRoomEvent(InboundEvent):
    display_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("displayName", "creatorName", "username", "display_name"),
    )


class RoomEvent(InboundEvent):
    """Any event addressed to a room."""

    room_code: str = Field(..., validation_alias=AliasChoices("roomCode", "room", "room_code"))


class JoinRoomEvent(RoomEvent):
    display_name: str | None = Field(
        default=None, validation_alias=AliasChoices("displayName", "username", "display_name")
    )


class SendMessageEvent(RoomEvent):
    id: str | None = None
    text: str | None = Field(default=None, validation_alias=AliasChoices("text", "message"))
    attachment: str | None = Field(
        default=None, validation_alias=AliasChoices("attachment", "attachmentBase64")
    )
    attachment_name: str | None = None
    attachment_type: str | None = None
    audio: str | None = Field(default=None, validation_alias=AliasChoices("audio", "audioBase64"))

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class MessageRefEvent(RoomEvent):
    message_id: str = Field(..., validation_alias=AliasChoices("messageId", "message_id"))

    @field_validator("message_id", mode="before")
    @classmethod
    def coerce_message_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class EditMessageEvent(MessageRefEvent):
    new_text: str = Field(
        ..., validation_alias=AliasChoices("newText", "newContent", "new_text")
    )


class TypingEvent(RoomEvent):
    is_typing: bool = Field(default=True, validation_alias=AliasChoices("isTyping", "is_typing"))


class BackgroundEvent(RoomEvent):
    background: str | None = Field(
        default=None, validation_alias=AliasChoices("background", "backgroundImage")
    )


class CallRequestEvent(RoomEvent):
    participants: list[str] = Field(default_factory=list)
    message: str | None = None


class VideoStateEvent(RoomEvent):
    is_video_enabled: bool = Field(
        ..., validation_alias=AliasChoices("isVideoEnabled", "is_video_enabled")
    )


class SignalEvent(InboundEvent):
    to: str = Field(..., min_length=1)
    payload: Any = Field(
        default=None, validation_alias=AliasChoices("payload", "offer", "answer", "candidate")
    )


class ConnectionLookupEvent(InboundEvent):
    display_name: str = Field(
        ..., validation_alias=AliasChoices("displayName", "username", "display_name")
    )


class UsernameLookupEvent(InboundEvent):
    connection_id: str = Field(
        ..., validation_alias=AliasChoices("connectionId", "socketId", "connection_id")
    )


__all__ = [
    "BackgroundEvent",
    "CallRequestEvent",
    "ConnectionLookupEvent",
    "CreateRoomEvent",
    "EditMessageEvent",
    "InboundEvent",
    "JoinRoomEvent",
    "MessageRefEvent",
    "RegisterEvent",
    "RoomEvent",
    "SendMessageEvent",
    "SignalEvent",
    "TypingEvent",
    "UsernameLookupEvent",
    "VideoStateEvent",
]
