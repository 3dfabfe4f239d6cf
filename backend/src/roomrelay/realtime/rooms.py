"""In-memory room store: lifecycle, membership, history and fan-out."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, Iterable

from app.monitoring.metrics import (
    realtime_events_total,
    realtime_payloads_truncated_total,
    realtime_rooms,
)

from ..voice.calls import CallState
from .codes import MIN_ROOM_CODE_LENGTH, generate_code, normalize_code, unique_code
from .errors import MessageNotFound, NotRoomMember, RoomNotFound, ValidationFailed
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

SYSTEM_SENDER = "System"
LIKE_POLICIES = {"toggle", "add"}


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RoomMember:
    connection_id: str
    display_name: str


@dataclass
class ChatMessage:
    id: str
    sender: str
    text: str | None = None
    attachment: str | None = None
    attachment_name: str | None = None
    attachment_type: str | None = None
    audio: str | None = None
    likes: list[str] = field(default_factory=list)
    edited: bool = False
    edited_at: str | None = None
    created_at: str = field(default_factory=utcnow_iso)

    @property
    def has_content(self) -> bool:
        return bool((self.text or "").strip() or self.attachment or self.audio)

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sender": self.sender,
            "text": self.text,
            "attachment": self.attachment,
            "attachmentName": self.attachment_name,
            "attachmentType": self.attachment_type,
            "audio": self.audio,
            "likes": list(self.likes),
            "isEdited": self.edited,
            "editedAt": self.edited_at,
            "createdAt": self.created_at,
        }


@dataclass
class Room:
    code: str
    creator: str
    members: list[RoomMember] = field(default_factory=list)
    messages: list[ChatMessage] = field(default_factory=list)
    background: str | None = None
    call: CallState = field(default_factory=CallState)
    created_at: str = field(default_factory=utcnow_iso)
    closed: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def member(self, connection_id: str) -> RoomMember | None:
        for member in self.members:
            if member.connection_id == connection_id:
                return member
        return None

    def member_names(self) -> list[str]:
        return [member.display_name for member in self.members]

    def find_message(self, message_id: str) -> ChatMessage | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


class RoomStore:
    """Own every live room and serialise the events that touch each one.

    Each room carries its own lock: a mutation and the fan-out it produces run
    under that lock, so members see a room's events in history order while
    unrelated rooms progress independently. ``self._lock`` only guards the
    code map itself. Lock order is room lock, then store lock. A freshly
    created room is the only lock held while another room lock is taken
    (the creator leaving its previous room); a joiner waiting on it holds no
    other room lock.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        *,
        code_length: int = MIN_ROOM_CODE_LENGTH,
        max_code_attempts: int = 32,
        history_limit: int = 500,
        max_payload_bytes: int = 10 * 1024 * 1024,
        like_policy: str = "toggle",
        code_generator: Callable[[int], str] = generate_code,
    ) -> None:
        if like_policy not in LIKE_POLICIES:
            raise ValueError(f"Unsupported like policy: {like_policy}")
        self._registry = registry
        self._rooms: Dict[str, Room] = {}
        self._lock = asyncio.Lock()
        self._code_length = code_length
        self._max_code_attempts = max_code_attempts
        self._history_limit = history_limit
        self._max_payload_bytes = max_payload_bytes
        self._like_policy = like_policy
        self._code_generator = code_generator

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def like_policy(self) -> str:
        return self._like_policy

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_code: object) -> bool:
        return isinstance(room_code, str) and normalize_code(room_code) in self._rooms

    # ------------------------------------------------------------------
    # Locking and delivery helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def locked(self, room_code: Any) -> AsyncIterator[Room]:
        """Yield the live room for *room_code* while holding its lock."""

        if not isinstance(room_code, str) or not room_code.strip():
            raise RoomNotFound()
        code = normalize_code(room_code)
        room = self._rooms.get(code)
        if room is None:
            raise RoomNotFound(code)
        async with room.lock:
            if room.closed:
                raise RoomNotFound(code)
            yield room

    @staticmethod
    def member_locked(room: Room, connection_id: str) -> RoomMember:
        member = room.member(connection_id)
        if member is None:
            raise NotRoomMember(f"Not a member of room {room.code}")
        return member

    async def broadcast_locked(
        self,
        room: Room,
        payload: dict[str, Any],
        *,
        exclude: Iterable[str] | None = None,
    ) -> int:
        exclude_set = set(exclude or [])
        delivered = 0
        for member in list(room.members):
            if member.connection_id in exclude_set:
                continue
            if await self._registry.send(member.connection_id, payload):
                delivered += 1
        realtime_events_total.labels("rooms", "out", payload.get("type", "message")).inc()
        return delivered

    async def send_to(self, connection_id: str, payload: dict[str, Any]) -> bool:
        return await self._registry.send(connection_id, payload)

    @staticmethod
    def notice(text: str) -> dict[str, Any]:
        return {"type": "system", "sender": SYSTEM_SENDER, "text": text, "timestamp": utcnow_iso()}

    @staticmethod
    def users_payload(room: Room) -> dict[str, Any]:
        users = room.member_names()
        return {"type": "roomUsers", "roomCode": room.code, "users": users, "count": len(users)}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_room(self, connection_id: str, creator_name: Any) -> str:
        name = self._registry.clean_name(creator_name)

        # The code is reserved before the current room is left, so running out
        # of codes leaves the caller where they were.
        async with self._lock:
            code = unique_code(
                self._rooms.__contains__,
                length=self._code_length,
                max_attempts=self._max_code_attempts,
                generator=self._code_generator,
            )
            room = Room(code=code, creator=name, members=[RoomMember(connection_id, name)])
            # Nobody else can see the room yet, so this never waits.
            await room.lock.acquire()
            self._rooms[code] = room
            realtime_rooms.set(len(self._rooms))
        try:
            await self.leave_room(connection_id)
            self._registry.set_room(connection_id, code)
            logger.info("Room %s created by %s", code, name)
            await self.broadcast_locked(room, self.notice(f"{name} has created the room"))
        finally:
            room.lock.release()
        return code

    async def join_room(self, room_code: Any, connection_id: str, display_name: Any) -> str:
        name = self._registry.clean_name(display_name)
        if not isinstance(room_code, str) or not room_code.strip():
            raise RoomNotFound()
        code = normalize_code(room_code)
        if code not in self._rooms:
            raise RoomNotFound(code)

        current = self._registry.room_of(connection_id)
        if current is not None and current != code:
            await self.leave_room(connection_id)

        async with self.locked(code) as room:
            member = room.member(connection_id)
            if member is None:
                room.members.append(RoomMember(connection_id, name))
            else:
                member.display_name = name
            self._registry.set_room(connection_id, code)

            await self.send_to(
                connection_id,
                {
                    "type": "roomHistory",
                    "roomCode": code,
                    "messages": [message.to_public() for message in room.messages],
                },
            )
            if room.background is not None:
                await self.send_to(
                    connection_id,
                    {"type": "roomBackground", "roomCode": code, "background": room.background},
                )
            if room.call.active:
                await self.send_to(connection_id, {"type": "callState", "roomCode": code, **room.call.to_public()})

            await self.broadcast_locked(room, self.users_payload(room))
            if member is None:
                await self.broadcast_locked(room, self.notice(f"{name} has joined the room"))
        logger.info("%s joined room %s", name, code)
        return code

    async def leave_room(self, connection_id: str) -> str | None:
        """Remove *connection_id* from its current room; return the code it left."""

        code = self._registry.room_of(connection_id)
        if code is None:
            return None
        room = self._rooms.get(code)
        if room is None:
            self._registry.set_room(connection_id, None)
            return None

        async with room.lock:
            if self._registry.room_of(connection_id) == code:
                self._registry.set_room(connection_id, None)
            member = room.member(connection_id)
            if member is None or room.closed:
                return None
            room.members.remove(member)
            logger.info("%s left room %s", member.display_name, code)

            if not room.members:
                await self._destroy_locked(room)
                return code

            name = member.display_name
            if name not in room.member_names() and room.call.discard(name):
                await self.broadcast_locked(
                    room,
                    {
                        "type": "userLeftCall",
                        "roomCode": code,
                        "username": name,
                        **room.call.to_public(),
                    },
                )
            await self.broadcast_locked(room, self.users_payload(room))
            await self.broadcast_locked(room, self.notice(f"{name} has left the room"))
        return code

    async def _destroy_locked(self, room: Room) -> None:
        room.closed = True
        room.messages.clear()
        room.background = None
        room.call.reset()
        async with self._lock:
            if self._rooms.get(room.code) is room:
                self._rooms.pop(room.code, None)
            realtime_rooms.set(len(self._rooms))
        logger.info("Room %s deleted (empty)", room.code)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _truncate(self, value: str | None, kind: str, room_code: str) -> str | None:
        if value is None:
            return value
        encoded = value.encode("utf-8")
        if len(encoded) <= self._max_payload_bytes:
            return value
        logger.warning(
            "Inline %s payload in room %s exceeds %d bytes; truncating",
            kind,
            room_code,
            self._max_payload_bytes,
        )
        realtime_payloads_truncated_total.labels(kind).inc()
        # A multi-byte character split by the cut is dropped whole.
        return encoded[: self._max_payload_bytes].decode("utf-8", errors="ignore")

    def append_locked(self, room: Room, message: ChatMessage) -> ChatMessage:
        if not message.has_content:
            raise ValidationFailed("Message must contain text, an attachment or audio")
        if not message.id or room.find_message(message.id) is not None:
            message.id = uuid.uuid4().hex
        message.attachment = self._truncate(message.attachment, "attachment", room.code)
        message.audio = self._truncate(message.audio, "audio", room.code)
        room.messages.append(message)
        overflow = len(room.messages) - self._history_limit
        if overflow > 0:
            del room.messages[:overflow]
        return message

    async def record_message(
        self,
        room_code: str,
        message: ChatMessage,
        *,
        sender_id: str | None = None,
    ) -> ChatMessage:
        async with self.locked(room_code) as room:
            if sender_id is not None:
                message.sender = self.member_locked(room, sender_id).display_name
            stored = self.append_locked(room, message)
            await self.broadcast_locked(
                room,
                {"type": "message", "roomCode": room.code, "message": stored.to_public()},
                exclude={sender_id} if sender_id is not None else None,
            )
        return stored

    async def history(self, room_code: str) -> list[dict[str, Any]]:
        async with self.locked(room_code) as room:
            return [message.to_public() for message in room.messages]

    async def edit_message(
        self,
        room_code: str,
        message_id: str,
        new_text: str,
        *,
        actor_id: str | None = None,
    ) -> ChatMessage:
        async with self.locked(room_code) as room:
            if actor_id is not None:
                self.member_locked(room, actor_id)
            message = room.find_message(message_id)
            if message is None:
                raise MessageNotFound(message_id)
            if not new_text.strip() and not (message.attachment or message.audio):
                raise ValidationFailed("Edited message must keep some content")
            message.text = new_text
            message.edited = True
            message.edited_at = utcnow_iso()
            await self.broadcast_locked(
                room,
                {"type": "messageEdited", "roomCode": room.code, "message": message.to_public()},
            )
        return message

    async def delete_message(
        self,
        room_code: str,
        message_id: str,
        *,
        actor_id: str | None = None,
    ) -> ChatMessage:
        async with self.locked(room_code) as room:
            if actor_id is not None:
                self.member_locked(room, actor_id)
            message = room.find_message(message_id)
            if message is None:
                raise MessageNotFound(message_id)
            room.messages.remove(message)
            await self.broadcast_locked(
                room,
                {
                    "type": "messageDeleted",
                    "roomCode": room.code,
                    "messageId": message.id,
                    "username": message.sender,
                },
            )
        return message

    async def like_message(
        self,
        room_code: str,
        message_id: str,
        liker_name: str | None = None,
        *,
        actor_id: str | None = None,
    ) -> list[str]:
        async with self.locked(room_code) as room:
            if actor_id is not None:
                liker_name = self.member_locked(room, actor_id).display_name
            if not liker_name:
                raise ValidationFailed("Liker display name is required")
            message = room.find_message(message_id)
            if message is None:
                raise MessageNotFound(message_id)
            if liker_name in message.likes:
                if self._like_policy == "add":
                    return list(message.likes)
                message.likes.remove(liker_name)
            else:
                message.likes.append(liker_name)
            likes = list(message.likes)
            await self.broadcast_locked(
                room,
                {"type": "messageLiked", "roomCode": room.code, "messageId": message.id, "likes": likes},
            )
        return likes

    async def set_background(
        self,
        room_code: str,
        background: str | None,
        *,
        actor_id: str | None = None,
    ) -> None:
        async with self.locked(room_code) as room:
            if actor_id is not None:
                self.member_locked(room, actor_id)
            room.background = background
            await self.broadcast_locked(
                room,
                {"type": "backgroundChanged", "roomCode": room.code, "background": background},
            )
        logger.info("Background changed in room %s", room.code)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    async def participants(self, room_code: str) -> list[str]:
        async with self.locked(room_code) as room:
            return room.member_names()

    async def describe(self, room_code: str) -> dict[str, Any]:
        async with self.locked(room_code) as room:
            return {
                "code": room.code,
                "creator": room.creator,
                "createdAt": room.created_at,
                "users": room.member_names(),
                "messageCount": len(room.messages),
                "hasBackground": room.background is not None,
                "call": room.call.to_public(),
            }


__all__ = [
    "ChatMessage",
    "LIKE_POLICIES",
    "Room",
    "RoomMember",
    "RoomStore",
    "SYSTEM_SENDER",
    "utcnow_iso",
]
