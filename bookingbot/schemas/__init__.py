"""
Pydantic schemas for API request/response validation.
"""

from bookingbot.schemas.admin import (
    AdminActionResponse,
    ApplyPatternRequest,
    BlacklistRequest,
    PatternCreateRequest,
    PatternResponse,
    ProcedureCreateRequest,
    ProcedureResponse,
    ProposeMoveRequest,
    RejectRequest,
    SessionResponse,
    SessionStartRequest,
    SlotCreateRequest,
    SlotResponse,
)
from bookingbot.schemas.booking import (
    BookingRequestResponse,
    HistoryEntryResponse,
    MoveAnswerRequest,
    SubmitRequest,
)

__all__ = [
    "AdminActionResponse",
    "ApplyPatternRequest",
    "BlacklistRequest",
    "BookingRequestResponse",
    "HistoryEntryResponse",
    "MoveAnswerRequest",
    "PatternCreateRequest",
    "PatternResponse",
    "ProcedureCreateRequest",
    "ProcedureResponse",
    "ProposeMoveRequest",
    "RejectRequest",
    "SessionResponse",
    "SessionStartRequest",
    "SlotCreateRequest",
    "SlotResponse",
    "SubmitRequest",
]
