"""
Client-facing routes, called by the chat layer on behalf of a subject.
"""

import logging

from fastapi import APIRouter, Depends, Security
from sqlalchemy.orm import Session

from bookingbot.api.auth import get_admin_auth
from bookingbot.api.dependencies import get_app_notifier
from bookingbot.db.deps import get_db
from bookingbot.schemas.admin import ProcedureResponse, SlotResponse
from bookingbot.schemas.booking import (
    BookingRequestResponse,
    HistoryEntryResponse,
    MoveAnswerRequest,
    SubmitRequest,
)
from bookingbot.services import (
    booking_coordinator,
    history_log,
    reference_data,
    request_ledger,
    slot_store,
)
from bookingbot.services.booking_coordinator import Subject
from bookingbot.services.notifier import Notifier

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/slots", response_model=list[SlotResponse])
def list_open_slots(db: Session = Depends(get_db)):
    """Open slots, earliest first. The first one is the slot that gives a pending request."""
    return slot_store.list_slots(db)


@router.get("/procedures", response_model=list[ProcedureResponse])
def list_procedures(db: Session = Depends(get_db)):
    return reference_data.list_procedures(db)


@router.post("/requests", response_model=BookingRequestResponse, status_code=201)
def submit_request(
    body: SubmitRequest,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    notifier: Notifier = Depends(get_app_notifier),
):
    subject = Subject(id=body.subject_id, handle=body.subject_handle, name=body.subject_name)
    return booking_coordinator.submit(
        db, subject, body.slot_id, procedure_key=body.procedure_key, notifier=notifier
    )


@router.post("/requests/{request_id}/move/confirm", response_model=BookingRequestResponse)
def confirm_move(
    request_id: str,
    body: MoveAnswerRequest,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    notifier: Notifier = Depends(get_app_notifier),
):
    return booking_coordinator.confirm_move(db, request_id, actor_id=body.subject_id, notifier=notifier)


@router.post("/requests/{request_id}/move/decline", response_model=BookingRequestResponse)
def decline_move(
    request_id: str,
    body: MoveAnswerRequest,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    notifier: Notifier = Depends(get_app_notifier),
):
    return booking_coordinator.decline_move(db, request_id, actor_id=body.subject_id, notifier=notifier)


@router.get("/subjects/{subject_id}/requests", response_model=list[BookingRequestResponse])
def list_subject_requests(
    subject_id: int,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    return request_ledger.list_for_subject(db, subject_id)


@router.get("/subjects/{subject_id}/history", response_model=list[HistoryEntryResponse])
def get_history(
    subject_id: int,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    return history_log.list_for_subject(db, subject_id)
