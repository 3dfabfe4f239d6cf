"""Schemas for the read-only room endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CallSummary(BaseModel):
    """Public view of a room's call state."""

    active: bool
    phase: str
    initiator: str | None = None
    participants: list[str] = Field(default_factory=list)


class RoomSummary(BaseModel):
    """Room representation returned to clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    code: str
    creator: str
    created_at: datetime
    users: list[str] = Field(default_factory=list)
    message_count: int = Field(0, ge=0)
    has_background: bool = False
    call: CallSummary
