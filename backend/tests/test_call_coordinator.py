from __future__ import annotations

import pytest

from roomrelay.realtime import CallInProgress, NotRoomMember, RealtimeHub
from roomrelay.voice.calls import CallPhase, CallState

from conftest import DummyWebSocket


def _connect(hub: RealtimeHub, name: str) -> tuple[str, DummyWebSocket]:
    websocket = DummyWebSocket()
    connection = hub.connect(websocket)
    hub.registry.register(connection.connection_id, name)
    return connection.connection_id, websocket


async def _room(hub: RealtimeHub, *names: str):
    members = [_connect(hub, name) for name in names]
    code = await hub.rooms.create_room(members[0][0], names[0])
    for (connection_id, _), name in zip(members[1:], names[1:]):
        await hub.rooms.join_room(code, connection_id, name)
    for _, websocket in members:
        websocket.clear()
    return code, members


def _assert_consistent(call: CallState) -> None:
    assert (call.phase is CallPhase.IDLE) == (not call.participants)
    if call.phase is CallPhase.IDLE:
        assert call.initiator is None


def test_discarding_last_participant_returns_to_idle() -> None:
    call = CallState(phase=CallPhase.CONNECTED, initiator="Alice", participants=["Alice"])

    assert call.discard("Alice") is True
    assert call.phase is CallPhase.IDLE
    assert call.initiator is None
    assert call.discard("Alice") is False


@pytest.mark.anyio("asyncio")
async def test_call_request_rings_everyone_but_the_initiator(hub: RealtimeHub) -> None:
    code, [(alice_id, alice_ws), (_, bob_ws)] = await _room(hub, "Alice", "Bob")

    call = await hub.calls.call_request(code, alice_id)

    assert call.phase is CallPhase.RINGING
    assert call.initiator == "Alice"
    assert call.participants == ["Alice"]
    assert alice_ws.sent == []
    ring = bob_ws.sent[0]
    assert ring["type"] == "callRequest"
    assert ring["from"] == "Alice"
    assert ring["phase"] == "ringing"
    assert ring["message"] == "Alice is calling everyone in the room"
    _assert_consistent(call)


@pytest.mark.anyio("asyncio")
async def test_second_call_request_is_rejected(hub: RealtimeHub) -> None:
    code, [(alice_id, _), (bob_id, _)] = await _room(hub, "Alice", "Bob")
    await hub.calls.call_request(code, alice_id)

    with pytest.raises(CallInProgress):
        await hub.calls.call_request(code, bob_id)

    state = await hub.calls.state(code)
    assert state["initiator"] == "Alice"


@pytest.mark.anyio("asyncio")
async def test_call_lifecycle_keeps_participants_and_phase_consistent(hub: RealtimeHub) -> None:
    code, [(alice_id, alice_ws), (bob_id, _), (carol_id, _)] = await _room(
        hub, "Alice", "Bob", "Carol"
    )

    call = await hub.calls.call_request(code, alice_id)
    _assert_consistent(call)

    call = await hub.calls.call_accepted(code, bob_id)
    assert call.phase is CallPhase.CONNECTED
    assert call.participants == ["Alice", "Bob"]
    _assert_consistent(call)

    call = await hub.calls.call_rejected(code, carol_id)
    assert call.participants == ["Alice", "Bob"]
    _assert_consistent(call)

    call = await hub.calls.user_left_call(code, alice_id)
    assert call.participants == ["Bob"]
    _assert_consistent(call)

    call = await hub.calls.user_left_call(code, bob_id)
    assert call.phase is CallPhase.IDLE
    _assert_consistent(call)

    assert alice_ws.types() == ["callAccepted", "callRejected", "userLeftCall", "userLeftCall"]
    assert alice_ws.sent[-1]["active"] is False


@pytest.mark.anyio("asyncio")
async def test_rejection_by_the_only_callee_leaves_initiator_ringing(hub: RealtimeHub) -> None:
    code, [(alice_id, _), (bob_id, _)] = await _room(hub, "Alice", "Bob")
    await hub.calls.call_request(code, alice_id, ["Bob"])

    call = await hub.calls.call_rejected(code, bob_id)

    assert call.phase is CallPhase.RINGING
    assert call.participants == ["Alice"]


@pytest.mark.anyio("asyncio")
async def test_call_ended_resets_for_everyone(hub: RealtimeHub) -> None:
    code, [(alice_id, alice_ws), (bob_id, bob_ws)] = await _room(hub, "Alice", "Bob")
    await hub.calls.call_request(code, alice_id)
    await hub.calls.call_accepted(code, bob_id)

    call = await hub.calls.call_ended(code, bob_id)

    assert call.phase is CallPhase.IDLE
    assert call.participants == []
    for websocket in (alice_ws, bob_ws):
        ended = websocket.of_type("callEnded")[0]
        assert ended["from"] == "Bob"
        assert ended["active"] is False


@pytest.mark.anyio("asyncio")
async def test_accept_and_join_are_ignored_while_idle(hub: RealtimeHub) -> None:
    code, [(alice_id, alice_ws), (bob_id, _)] = await _room(hub, "Alice", "Bob")

    call = await hub.calls.call_accepted(code, bob_id)
    assert call.phase is CallPhase.IDLE
    call = await hub.calls.user_joined_call(code, bob_id)
    assert call.participants == []
    assert alice_ws.sent == []


@pytest.mark.anyio("asyncio")
async def test_leaving_the_room_drops_the_member_from_the_call(hub: RealtimeHub) -> None:
    code, [(alice_id, alice_ws), (bob_id, _)] = await _room(hub, "Alice", "Bob")
    await hub.calls.call_request(code, alice_id)
    await hub.calls.call_accepted(code, bob_id)
    alice_ws.clear()

    await hub.rooms.leave_room(bob_id)

    left = alice_ws.of_type("userLeftCall")[0]
    assert left["username"] == "Bob"
    assert left["participants"] == ["Alice"]
    state = await hub.calls.state(code)
    assert state["participants"] == ["Alice"]


@pytest.mark.anyio("asyncio")
async def test_joiner_receives_the_active_call_state(hub: RealtimeHub) -> None:
    code, [(alice_id, _), _] = await _room(hub, "Alice", "Bob")
    await hub.calls.call_request(code, alice_id)
    carol_id, carol_ws = _connect(hub, "Carol")

    await hub.rooms.join_room(code, carol_id, "Carol")

    call_state = carol_ws.of_type("callState")[0]
    assert call_state["phase"] == "ringing"
    assert call_state["initiator"] == "Alice"


@pytest.mark.anyio("asyncio")
async def test_video_state_is_broadcast_to_the_room(hub: RealtimeHub) -> None:
    code, [(alice_id, alice_ws), (_, bob_ws)] = await _room(hub, "Alice", "Bob")

    await hub.calls.video_state_changed(code, alice_id, False)

    for websocket in (alice_ws, bob_ws):
        assert websocket.sent == [
            {"type": "videoStateChanged", "roomCode": code, "username": "Alice", "isVideoEnabled": False}
        ]


@pytest.mark.anyio("asyncio")
async def test_call_events_require_membership(hub: RealtimeHub) -> None:
    code, _ = await _room(hub, "Alice")
    mallory_id, _ = _connect(hub, "Mallory")

    with pytest.raises(NotRoomMember):
        await hub.calls.call_request(code, mallory_id)


@pytest.mark.anyio("asyncio")
async def test_call_request_ignores_names_outside_the_room(hub: RealtimeHub) -> None:
    code, [(alice_id, _), (bob_id, _)] = await _room(hub, "Alice", "Bob")

    call = await hub.calls.call_request(code, alice_id, ["Zed", "Bob"])
    assert call.participants == ["Alice", "Bob"]

    await hub.calls.call_accepted(code, bob_id)
    await hub.calls.user_left_call(code, alice_id)
    call = await hub.calls.user_left_call(code, bob_id)

    assert call.phase is CallPhase.IDLE
    assert call.initiator is None
    assert call.participants == []
