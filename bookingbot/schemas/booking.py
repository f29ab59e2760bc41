"""
Schemas shared by the client routes and the admin request queue.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class SubmitRequest(BaseModel):
    """Request schema for a client choosing a slot."""

    subject_id: int
    subject_handle: str | None = None
    subject_name: str | None = None
    slot_id: str
    procedure_key: str | None = None


class MoveAnswerRequest(BaseModel):
    """The subject answering a proposed move."""

    subject_id: int


class BookingRequestResponse(BaseModel):
    """Response schema for a single booking request."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    subject_id: int
    subject_handle: str | None = None
    subject_name: str | None = None
    slot_id: str | None = None
    slot_label: str | None = None
    slot_start: datetime | None = None
    slot_end: datetime | None = None
    procedure_key: str | None = None
    procedure_name: str | None = None
    status: str
    move_slot_id: str | None = None
    move_slot_label: str | None = None
    prev_status: str | None = None
    reminder_evening_sent: bool = False
    reminder_final_sent: bool = False
    created_at: datetime | None = None


class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    subject_id: int
    request_id: str | None = None
    date_label: str | None = None
    procedure_label: str | None = None
    outcome_label: str
    created_at: datetime | None = None
