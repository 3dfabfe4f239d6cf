"""WebSocket endpoint for room chat, calls and signalling."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

import anyio
from fastapi import APIRouter, WebSocket
from fastapi.websockets import WebSocketDisconnect, WebSocketState
from pydantic import ValidationError

from app.config import get_settings
from app.monitoring.metrics import realtime_errors_total, realtime_events_total
from app.schemas import (
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
from roomrelay.realtime import RealtimeHub, RelayError, ValidationFailed, get_hub, safe_send_json
from roomrelay.realtime.codes import normalize_code

router = APIRouter(tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

T = TypeVar("T")

Reply = Dict[str, Any] | None
Handler = Callable[[RealtimeHub, str, Dict[str, Any]], Awaitable[Reply]]


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            should_ping = interval <= 0 or (
                now - last_activity >= interval
                and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if should_ping:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


async def _send_error(
    websocket: WebSocket, detail: str, *, event: str | None = None, code: str = "error"
) -> None:
    realtime_errors_total.labels(code).inc()
    await safe_send_json(
        websocket, {"type": "error", "event": event, "code": code, "detail": detail}
    )


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(problems) or "Invalid payload"


def _require_name(hub: RealtimeHub, connection_id: str, candidate: str | None) -> str:
    name = candidate if candidate and candidate.strip() else hub.registry.name_of(connection_id)
    if not name:
        raise ValidationFailed("Display name is required")
    return hub.registry.register(connection_id, name)


# ---------------------------------------------------------------------------
# Session and room events
# ---------------------------------------------------------------------------


async def _handle_register(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    event = RegisterEvent.model_validate(payload)
    name = hub.registry.register(connection_id, event.display_name)
    logger.info("Connection %s registered as %s", connection_id, name)
    return {"type": "registered", "connectionId": connection_id, "displayName": name}


async def _handle_create_room(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    event = CreateRoomEvent.model_validate(payload)
    name = _require_name(hub, connection_id, event.display_name)
    room_code = await hub.rooms.create_room(connection_id, name)
    return {"type": "roomCreated", "roomCode": room_code}


async def _handle_join_room(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    event = JoinRoomEvent.model_validate(payload)
    name = _require_name(hub, connection_id, event.display_name)
    room_code = await hub.rooms.join_room(event.room_code, connection_id, name)
    return {"type": "roomJoined", "roomCode": room_code, "success": True}


async def _handle_leave_room(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    room_code = await hub.rooms.leave_room(connection_id)
    return {"type": "roomLeft", "roomCode": room_code}


async def _handle_room_participants(
    hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]
) -> Reply:
    event = RoomEvent.model_validate(payload)
    participants = await hub.rooms.participants(event.room_code)
    return {
        "type": "roomParticipants",
        "roomCode": normalize_code(event.room_code),
        "participants": participants,
    }


async def _handle_connection_lookup(
    hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]
) -> Reply:
    event = ConnectionLookupEvent.model_validate(payload)
    return {
        "type": "connectionId",
        "displayName": event.display_name,
        "connectionId": hub.registry.resolve(event.display_name),
    }


async def _handle_username_lookup(
    hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]
) -> Reply:
    event = UsernameLookupEvent.model_validate(payload)
    return {
        "type": "username",
        "connectionId": event.connection_id,
        "username": hub.registry.name_of(event.connection_id),
    }


async def _handle_ping(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    return {"type": "pong"}


async def _handle_pong(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    # Keepalive acknowledgement; receiving it already refreshed the idle timer.
    return None


# ---------------------------------------------------------------------------
# Chat events
# ---------------------------------------------------------------------------


async def _handle_send_message(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    event = SendMessageEvent.model_validate(payload)
    stored = await hub.messaging.send_message(
        connection_id,
        event.room_code,
        text=event.text,
        attachment=event.attachment,
        attachment_name=event.attachment_name,
        attachment_type=event.attachment_type,
        audio=event.audio,
        message_id=event.id,
    )
    return {"type": "messageSent", "roomCode": event.room_code, "message": stored.to_public()}


async def _handle_edit_message(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    event = EditMessageEvent.model_validate(payload)
    await hub.messaging.edit_message(connection_id, event.room_code, event.message_id, event.new_text)
    return None


async def _handle_delete_message(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    event = MessageRefEvent.model_validate(payload)
    await hub.messaging.delete_message(connection_id, event.room_code, event.message_id)
    return None


async def _handle_like_message(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    event = MessageRefEvent.model_validate(payload)
    await hub.messaging.like_message(connection_id, event.room_code, event.message_id)
    return None


async def _handle_typing(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    event = TypingEvent.model_validate(payload)
    await hub.messaging.typing(connection_id, event.room_code, event.is_typing)
    return None


async def _handle_change_background(
    hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]
) -> Reply:
    event = BackgroundEvent.model_validate(payload)
    await hub.messaging.change_background(connection_id, event.room_code, event.background)
    return None


# ---------------------------------------------------------------------------
# Call events
# ---------------------------------------------------------------------------


async def _handle_call_request(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    event = CallRequestEvent.model_validate(payload)
    await hub.calls.call_request(
        event.room_code, connection_id, event.participants, message=event.message
    )
    return None


def _call_transition(method_name: str) -> Handler:
    async def handle(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
        event = RoomEvent.model_validate(payload)
        await getattr(hub.calls, method_name)(event.room_code, connection_id)
        return None

    return handle


async def _handle_video_state(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
    event = VideoStateEvent.model_validate(payload)
    await hub.calls.video_state_changed(event.room_code, connection_id, event.is_video_enabled)
    return None


# ---------------------------------------------------------------------------
# Signalling
# ---------------------------------------------------------------------------


def _signal(kind: str) -> Handler:
    async def handle(hub: RealtimeHub, connection_id: str, payload: Dict[str, Any]) -> Reply:
        event = SignalEvent.model_validate(payload)
        await hub.signaling.relay(connection_id, event.to, kind, event.payload)
        return None

    return handle


EVENT_HANDLERS: Dict[str, Handler] = {
    "register": _handle_register,
    "createRoom": _handle_create_room,
    "joinRoom": _handle_join_room,
    "leaveRoom": _handle_leave_room,
    "getRoomParticipants": _handle_room_participants,
    "getConnectionId": _handle_connection_lookup,
    "getSocketId": _handle_connection_lookup,
    "getUsername": _handle_username_lookup,
    "ping": _handle_ping,
    "pong": _handle_pong,
    "sendMessage": _handle_send_message,
    "chatMessage": _handle_send_message,
    "editMessage": _handle_edit_message,
    "deleteMessage": _handle_delete_message,
    "likeMessage": _handle_like_message,
    "typing": _handle_typing,
    "changeBackground": _handle_change_background,
    "callRequest": _handle_call_request,
    "callAccepted": _call_transition("call_accepted"),
    "callRejected": _call_transition("call_rejected"),
    "callEnded": _call_transition("call_ended"),
    "userJoinedCall": _call_transition("user_joined_call"),
    "userLeftCall": _call_transition("user_left_call"),
    "videoStateChanged": _handle_video_state,
    "offer": _signal("offer"),
    "answer": _signal("answer"),
    "iceCandidate": _signal("iceCandidate"),
}


async def dispatch_event(
    hub: RealtimeHub, connection_id: str, websocket: WebSocket, payload: Dict[str, Any]
) -> None:
    """Run one inbound event; failures are reported to the sender only."""

    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        await _send_error(websocket, "Message type must be provided", code="ValidationFailed")
        return

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        await _send_error(websocket, "Unsupported payload type", event=event_type, code="UnsupportedEvent")
        return

    realtime_events_total.labels("rooms", "in", event_type).inc()
    try:
        reply = await handler(hub, connection_id, payload)
    except ValidationError as exc:
        await _send_error(
            websocket, _describe_validation_error(exc), event=event_type, code="ValidationFailed"
        )
    except RelayError as exc:
        await _send_error(websocket, exc.detail, event=event_type, code=exc.code)
    except Exception:
        logger.exception("Unexpected error while handling %s from %s", event_type, connection_id)
        await _send_error(websocket, "Internal error", event=event_type, code="InternalError")
    else:
        if reply is not None:
            await safe_send_json(websocket, reply)


@router.websocket("/ws")
async def websocket_room_events(websocket: WebSocket) -> None:
    """Handle every room, chat, call and signalling event for one client."""

    hub = get_hub()
    await websocket.accept()
    connection = hub.connect(websocket)
    connection_id = connection.connection_id
    await safe_send_json(websocket, {"type": "connected", "connectionId": connection_id})

    try:
        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            try:
                payload = json.loads(raw_message)
            except json.JSONDecodeError:
                await _send_error(websocket, "Invalid message format", code="ValidationFailed")
                continue

            if not isinstance(payload, dict):
                await _send_error(
                    websocket, "Message payload must be a JSON object", code="ValidationFailed"
                )
                continue

            if payload.get("type") == "forceDisconnect":
                logger.info("Forcing disconnection for connection %s", connection_id)
                await websocket.close()
                break

            await dispatch_event(hub, connection_id, websocket, payload)
    except WebSocketDisconnect:
        pass
    finally:
        # Cleanup must finish even when the handler task is being cancelled.
        with anyio.CancelScope(shield=True):
            await hub.disconnect(connection_id)
