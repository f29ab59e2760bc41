"""
Admin API request/response schemas.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class SlotCreateRequest(BaseModel):
    """
    Either start/end (timezone-aware) or text "DD.MM.YYYY HH:MM-HH:MM" in local time.
    """

    start: datetime | None = None
    end: datetime | None = None
    text: str | None = None
    label: str | None = None


class SlotResponse(BaseModel):
    """Response schema for a live slot."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    start: datetime
    end: datetime


class RejectRequest(BaseModel):
    """Request schema for rejecting a booking request."""

    reason: str | None = None


class ProposeMoveRequest(BaseModel):
    candidate_slot_id: str


class ProcedureCreateRequest(BaseModel):
    name: str


class ProcedureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    name: str


class BlacklistRequest(BaseModel):
    username: str


class PatternCreateRequest(BaseModel):
    name: str
    intervals: str  # "10:00-11:00, 11:30-12:30"


class PatternResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    intervals: str


class ApplyPatternRequest(BaseModel):
    date: date


class SessionStartRequest(BaseModel):
    """Begin a multi-step staff interaction (e.g. typing a slot or a reject reason)."""

    mode: str
    data: dict[str, Any] = {}


class SessionResponse(BaseModel):
    actor_id: int
    mode: str
    data: dict[str, Any]
    expires_at: float


class AdminActionResponse(BaseModel):
    """Response schema for admin request actions."""

    success: bool
    message: str
    request_id: str
    status: str
