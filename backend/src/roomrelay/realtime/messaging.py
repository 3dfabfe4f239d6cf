"""Chat event relay: validates chat events and fans them out through the store."""

from __future__ import annotations

import logging

from .errors import ValidationFailed
from .rooms import ChatMessage, RoomStore

logger = logging.getLogger(__name__)


def _optional_text(value: object, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailed(f"{field_name} must be a string")
    return value or None


class MessagingRelay:
    """Chat operations scoped to the sending connection's room membership."""

    def __init__(self, store: RoomStore) -> None:
        self._store = store

    async def send_message(
        self,
        connection_id: str,
        room_code: str,
        *,
        text: str | None = None,
        attachment: str | None = None,
        attachment_name: str | None = None,
        attachment_type: str | None = None,
        audio: str | None = None,
        message_id: str | None = None,
    ) -> ChatMessage:
        message = ChatMessage(
            id=_optional_text(message_id, "id") or "",
            sender="",
            text=_optional_text(text, "text"),
            attachment=_optional_text(attachment, "attachment"),
            attachment_name=_optional_text(attachment_name, "attachmentName"),
            attachment_type=_optional_text(attachment_type, "attachmentType"),
            audio=_optional_text(audio, "audio"),
        )
        if not message.has_content:
            raise ValidationFailed("Message must contain text, an attachment or audio")
        stored = await self._store.record_message(room_code, message, sender_id=connection_id)
        logger.debug(
            "Message %s from %s in room %s (attachment=%s, audio=%s)",
            stored.id,
            stored.sender,
            room_code,
            stored.attachment is not None,
            stored.audio is not None,
        )
        return stored

    async def edit_message(
        self, connection_id: str, room_code: str, message_id: str, new_text: str
    ) -> ChatMessage:
        if not isinstance(new_text, str):
            raise ValidationFailed("newText must be a string")
        return await self._store.edit_message(
            room_code, message_id, new_text, actor_id=connection_id
        )

    async def delete_message(
        self, connection_id: str, room_code: str, message_id: str
    ) -> ChatMessage:
        return await self._store.delete_message(room_code, message_id, actor_id=connection_id)

    async def like_message(
        self, connection_id: str, room_code: str, message_id: str
    ) -> list[str]:
        return await self._store.like_message(room_code, message_id, actor_id=connection_id)

    async def typing(self, connection_id: str, room_code: str, is_typing: bool) -> None:
        async with self._store.locked(room_code) as room:
            member = self._store.member_locked(room, connection_id)
            await self._store.broadcast_locked(
                room,
                {
                    "type": "userTyping",
                    "roomCode": room.code,
                    "username": member.display_name,
                    "isTyping": bool(is_typing),
                },
                exclude={connection_id},
            )

    async def change_background(
        self, connection_id: str, room_code: str, background: str | None
    ) -> None:
        await self._store.set_background(
            room_code, _optional_text(background, "background"), actor_id=connection_id
        )


__all__ = ["MessagingRelay"]
