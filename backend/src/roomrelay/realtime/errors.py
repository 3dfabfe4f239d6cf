"""Errors raised by the realtime room engine.

Every error is scoped to the single event that triggered it: the websocket
layer reports it back to the offending connection and keeps the socket open.
"""

from __future__ import annotations


class RelayError(RuntimeError):
    """Base class for recoverable room engine failures."""

    default_detail = "Request could not be processed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    @property
    def code(self) -> str:
        return type(self).__name__


class RoomNotFound(RelayError):
    default_detail = "Room not found"

    def __init__(self, room_code: str | None = None) -> None:
        self.room_code = room_code
        detail = f"Room {room_code} not found" if room_code else None
        super().__init__(detail)


class MessageNotFound(RelayError):
    default_detail = "Message not found"

    def __init__(self, message_id: str | None = None) -> None:
        self.message_id = message_id
        detail = f"Message {message_id} not found" if message_id else None
        super().__init__(detail)


class NotRoomMember(RelayError):
    default_detail = "Connection is not a member of this room"


class ValidationFailed(RelayError):
    default_detail = "Invalid payload"


class CallInProgress(RelayError):
    default_detail = "A call is already in progress in this room"


class RoomCodeExhausted(RelayError):
    """Raised when no free room code was found within the retry budget."""

    default_detail = "Unable to allocate a room code"


__all__ = [
    "RelayError",
    "RoomNotFound",
    "MessageNotFound",
    "NotRoomMember",
    "ValidationFailed",
    "CallInProgress",
    "RoomCodeExhausted",
]
