"""Read-only room inspection endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from app.schemas import RoomSummary
from roomrelay.realtime import RoomNotFound, get_hub

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.get("/{room_code}", response_model=RoomSummary)
async def read_room(room_code: str) -> RoomSummary:
    """Return a snapshot of a live room."""

    try:
        snapshot = await get_hub().rooms.describe(room_code)
    except RoomNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.detail) from exc
    return RoomSummary.model_validate(snapshot)
