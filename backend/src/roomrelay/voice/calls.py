"""Per-room voice/video call state machine.

A room's call moves ``idle -> ringing -> connected`` and back to ``idle``.
The participant list is the single source of truth for teardown: whenever it
becomes empty the call returns to ``idle`` and forgets its initiator, no
matter which event emptied it. ``CallState`` enforces that itself so every
caller (including room departure cleanup in the store) gets it for free.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable

from ..realtime.errors import CallInProgress

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from ..realtime.rooms import Room, RoomStore

logger = logging.getLogger(__name__)


class CallPhase(str, Enum):
    IDLE = "idle"
    RINGING = "ringing"
    CONNECTED = "connected"


@dataclass
class CallState:
    phase: CallPhase = CallPhase.IDLE
    initiator: str | None = None
    participants: list[str] = field(default_factory=list)

    @property
    def active(self) -> bool:
        return self.phase is not CallPhase.IDLE

    def reset(self) -> None:
        self.phase = CallPhase.IDLE
        self.initiator = None
        self.participants = []

    def add(self, name: str) -> bool:
        if name in self.participants:
            return False
        self.participants.append(name)
        return True

    def discard(self, name: str) -> bool:
        """Remove *name*; an emptied call collapses to idle."""

        if name not in self.participants:
            return False
        self.participants = [participant for participant in self.participants if participant != name]
        if not self.participants:
            self.reset()
        return True

    def to_public(self) -> dict[str, Any]:
        return {
            "active": self.active,
            "phase": self.phase.value,
            "initiator": self.initiator,
            "participants": list(self.participants),
        }


class CallCoordinator:
    """Drive call transitions on top of the room store's per-room locks."""

    def __init__(self, store: "RoomStore") -> None:
        self._store = store

    def _payload(self, event: str, room: "Room", **extra: Any) -> dict[str, Any]:
        return {"type": event, "roomCode": room.code, **extra, **room.call.to_public()}

    async def state(self, room_code: str) -> dict[str, Any]:
        async with self._store.locked(room_code) as room:
            return room.call.to_public()

    async def call_request(
        self,
        room_code: str,
        connection_id: str,
        participants: Iterable[str] | None = None,
        *,
        message: str | None = None,
    ) -> CallState:
        async with self._store.locked(room_code) as room:
            initiator = self._store.member_locked(room, connection_id).display_name
            call = room.call
            if call.active:
                raise CallInProgress()
            call.phase = CallPhase.RINGING
            call.initiator = initiator
            call.participants = []
            call.add(initiator)
            members = set(room.member_names())
            for name in participants or ():
                # Names of connections outside the room are ignored.
                if isinstance(name, str) and name.strip() in members:
                    call.add(name.strip())
            logger.info("Call requested by %s in room %s", initiator, room.code)
            await self._store.broadcast_locked(
                room,
                self._payload(
                    "callRequest",
                    room,
                    **{"from": initiator, "message": message or f"{initiator} is calling everyone in the room"},
                ),
                exclude={connection_id},
            )
            return call

    async def call_accepted(self, room_code: str, connection_id: str) -> CallState:
        async with self._store.locked(room_code) as room:
            accepter = self._store.member_locked(room, connection_id).display_name
            call = room.call
            if not call.active:
                logger.debug("Ignoring call acceptance from %s in idle room %s", accepter, room.code)
                return call
            call.add(accepter)
            if call.phase is CallPhase.RINGING and len(call.participants) > 1:
                call.phase = CallPhase.CONNECTED
            await self._store.broadcast_locked(
                room, self._payload("callAccepted", room, **{"from": accepter})
            )
            return call

    async def call_rejected(self, room_code: str, connection_id: str) -> CallState:
        async with self._store.locked(room_code) as room:
            rejecter = self._store.member_locked(room, connection_id).display_name
            call = room.call
            call.discard(rejecter)
            await self._store.broadcast_locked(
                room, self._payload("callRejected", room, **{"from": rejecter})
            )
            return call

    async def call_ended(self, room_code: str, connection_id: str) -> CallState:
        async with self._store.locked(room_code) as room:
            ender = self._store.member_locked(room, connection_id).display_name
            room.call.reset()
            logger.info("Call ended by %s in room %s", ender, room.code)
            await self._store.broadcast_locked(
                room,
                self._payload("callEnded", room, **{"from": ender, "message": f"{ender} ended the call"}),
            )
            return room.call

    async def user_joined_call(self, room_code: str, connection_id: str) -> CallState:
        async with self._store.locked(room_code) as room:
            name = self._store.member_locked(room, connection_id).display_name
            call = room.call
            if not call.active:
                logger.debug("Ignoring call join from %s in idle room %s", name, room.code)
                return call
            call.add(name)
            await self._store.broadcast_locked(
                room, self._payload("userJoinedCall", room, username=name)
            )
            return call

    async def user_left_call(self, room_code: str, connection_id: str) -> CallState:
        async with self._store.locked(room_code) as room:
            name = self._store.member_locked(room, connection_id).display_name
            call = room.call
            call.discard(name)
            await self._store.broadcast_locked(
                room, self._payload("userLeftCall", room, username=name)
            )
            return call

    async def video_state_changed(
        self, room_code: str, connection_id: str, enabled: bool
    ) -> None:
        async with self._store.locked(room_code) as room:
            name = self._store.member_locked(room, connection_id).display_name
            await self._store.broadcast_locked(
                room,
                {
                    "type": "videoStateChanged",
                    "roomCode": room.code,
                    "username": name,
                    "isVideoEnabled": enabled,
                },
            )


__all__ = ["CallCoordinator", "CallPhase", "CallState"]
