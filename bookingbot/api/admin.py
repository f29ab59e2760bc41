import logging

from fastapi import APIRouter, Depends, HTTPException, Security
from sqlalchemy.orm import Session

from bookingbot.api.auth import get_admin_auth, get_staff_actor, require_staff_actor
from bookingbot.api.dependencies import get_app_notifier, get_request_or_404, get_sessions
from bookingbot.constants.statuses import ALL_STATUSES
from bookingbot.db.deps import get_db
from bookingbot.db.models import BookingRequest
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
from bookingbot.schemas.booking import BookingRequestResponse
from bookingbot.services import (
    booking_coordinator,
    reference_data,
    request_ledger,
    slot_store,
)
from bookingbot.services.errors import ValidationError
from bookingbot.services.notifier import Notifier
from bookingbot.services.promotion_scheduler import run_promotion_tick
from bookingbot.services.reminders import run_reminder_tick
from bookingbot.services.session_context import SessionContext, SessionStore
from bookingbot.services.system_event_service import cleanup_old_events, list_events

logger = logging.getLogger(__name__)

router = APIRouter()


def _action_response(message: str, request) -> dict:
    return {
        "success": True,
        "message": message,
        "request_id": request.id,
        "status": request.status,
    }


# ---- Slots ----


@router.get("/slots", response_model=list[SlotResponse])
def list_slots(
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    return slot_store.list_slots(db)


@router.post("/slots", response_model=SlotResponse, status_code=201)
def create_slot(
    body: SlotCreateRequest,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
):
    """
    Create a slot from start/end or from staff text "DD.MM.YYYY HH:MM-HH:MM" (local time).
    """
    booking_coordinator.ensure_staff(actor_id)
    if body.text:
        interval = slot_store.parse_slot_interval(body.text)
        if interval is None:
            raise ValidationError("Expected DD.MM.YYYY HH:MM-HH:MM with end after start")
        start, end = interval
    elif body.start is not None and body.end is not None:
        start, end = body.start, body.end
    else:
        raise ValidationError("Provide either text or both start and end")
    return slot_store.create_slot(db, body.label, start, end)


@router.delete("/slots/{slot_id}")
def delete_slot(
    slot_id: str,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
):
    booking_coordinator.ensure_staff(actor_id)
    deleted = slot_store.delete_slot(db, slot_id)
    return {"deleted": deleted, "slot_id": slot_id}


# ---- Requests ----


@router.get("/requests", response_model=list[BookingRequestResponse])
def list_requests(
    status: str,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    """Queue of requests in one status (pending, approved, conditional, ...)."""
    if status not in ALL_STATUSES:
        raise HTTPException(status_code=422, detail=f"Unknown status '{status}'")
    return request_ledger.list_by_status(db, status)


@router.get("/requests/{request_id}", response_model=BookingRequestResponse)
def get_request(
    request: BookingRequest = Depends(get_request_or_404),
    _auth: bool = Security(get_admin_auth),
):
    return request


@router.post("/requests/{request_id}/approve", response_model=AdminActionResponse)
def approve_request(
    request_id: str,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
    notifier: Notifier = Depends(get_app_notifier),
):
    """pending -> approved. Claims the slot and schedules reminders."""
    request = booking_coordinator.approve(db, request_id, actor_id=actor_id, notifier=notifier)
    return _action_response("Request approved.", request)


@router.post("/requests/{request_id}/reject", response_model=AdminActionResponse)
def reject_request(
    request_id: str,
    body: RejectRequest | None = None,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
    notifier: Notifier = Depends(get_app_notifier),
):
    """Any non-terminal status -> rejected. Slots held by the request go back to the pool."""
    reason = body.reason if body else None
    request = booking_coordinator.reject(
        db, request_id, actor_id=actor_id, reason=reason, notifier=notifier
    )
    return _action_response("Request rejected.", request)


@router.post("/requests/{request_id}/complete", response_model=AdminActionResponse)
def complete_request(
    request_id: str,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
    notifier: Notifier = Depends(get_app_notifier),
):
    request = booking_coordinator.complete(db, request_id, actor_id=actor_id, notifier=notifier)
    return _action_response("Visit marked as completed.", request)


@router.post("/requests/{request_id}/no-show", response_model=AdminActionResponse)
def no_show_request(
    request_id: str,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
    notifier: Notifier = Depends(get_app_notifier),
):
    request = booking_coordinator.mark_no_show(db, request_id, actor_id=actor_id, notifier=notifier)
    return _action_response("Visit marked as no-show.", request)


@router.post("/requests/{request_id}/promote", response_model=AdminActionResponse)
def promote_request(
    request_id: str,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
    notifier: Notifier = Depends(get_app_notifier),
):
    """Staff override: conditional / reserved_later -> pending."""
    request = booking_coordinator.force_promote(db, request_id, actor_id=actor_id, notifier=notifier)
    return _action_response("Reservation promoted to request.", request)


@router.post("/requests/{request_id}/move", response_model=AdminActionResponse)
def propose_move(
    request_id: str,
    body: ProposeMoveRequest,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
    notifier: Notifier = Depends(get_app_notifier),
):
    """Offer another slot; the candidate is held until the subject answers."""
    request = booking_coordinator.propose_move(
        db, request_id, body.candidate_slot_id, actor_id=actor_id, notifier=notifier
    )
    return _action_response("Move proposed. Waiting for the client.", request)


@router.delete("/requests/{request_id}")
def delete_request(
    request_id: str,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
):
    """Remove a rejected / completed / no-show record."""
    booking_coordinator.delete_record(db, request_id, actor_id=actor_id)
    return {"deleted": True, "request_id": request_id}


# ---- Procedures ----


@router.get("/procedures", response_model=list[ProcedureResponse])
def list_procedures(
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    return reference_data.list_procedures(db)


@router.post("/procedures", response_model=ProcedureResponse, status_code=201)
def add_procedure(
    body: ProcedureCreateRequest,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
):
    booking_coordinator.ensure_staff(actor_id)
    return reference_data.add_procedure(db, body.name)


@router.delete("/procedures/{key}")
def delete_procedure(
    key: str,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
):
    booking_coordinator.ensure_staff(actor_id)
    return {"deleted": reference_data.delete_procedure(db, key), "key": key}


# ---- Blacklist ----


@router.get("/blacklist")
def list_blacklist(
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    return {"usernames": reference_data.list_blacklist(db)}


@router.post("/blacklist", status_code=201)
def add_to_blacklist(
    body: BlacklistRequest,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
):
    booking_coordinator.ensure_staff(actor_id)
    return {"username": reference_data.add_to_blacklist(db, body.username)}


@router.delete("/blacklist/{username}")
def remove_from_blacklist(
    username: str,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
):
    booking_coordinator.ensure_staff(actor_id)
    return {"deleted": reference_data.remove_from_blacklist(db, username)}


# ---- Schedule patterns ----


@router.get("/patterns", response_model=list[PatternResponse])
def list_patterns(
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    return reference_data.list_patterns(db)


@router.post("/patterns", response_model=PatternResponse, status_code=201)
def add_pattern(
    body: PatternCreateRequest,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
):
    booking_coordinator.ensure_staff(actor_id)
    return reference_data.add_pattern(db, body.name, body.intervals)


@router.delete("/patterns/{pattern_id}")
def delete_pattern(
    pattern_id: str,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
):
    booking_coordinator.ensure_staff(actor_id)
    return {"deleted": reference_data.delete_pattern(db, pattern_id)}


@router.post("/patterns/{pattern_id}/apply")
def apply_pattern(
    pattern_id: str,
    body: ApplyPatternRequest,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    actor_id: int | None = Depends(get_staff_actor),
):
    """Create the pattern's slots on the given date; overlapping / past intervals are skipped."""
    booking_coordinator.ensure_staff(actor_id)
    return reference_data.apply_pattern_to_date(db, pattern_id, body.date)


# ---- Staff session context ----


def _session_response(ctx: SessionContext) -> dict:
    return {
        "actor_id": ctx.actor_id,
        "mode": ctx.mode,
        "data": ctx.data,
        "expires_at": ctx.expires_at,
    }


@router.get("/session", response_model=SessionResponse)
def get_session(
    _auth: bool = Security(get_admin_auth),
    actor_id: int = Depends(require_staff_actor),
    sessions: SessionStore = Depends(get_sessions),
):
    ctx = sessions.get(actor_id)
    if ctx is None:
        raise HTTPException(status_code=404, detail="No active session")
    return _session_response(ctx)


@router.put("/session", response_model=SessionResponse)
def start_session(
    body: SessionStartRequest,
    _auth: bool = Security(get_admin_auth),
    actor_id: int = Depends(require_staff_actor),
    sessions: SessionStore = Depends(get_sessions),
):
    return _session_response(sessions.start(actor_id, body.mode, **body.data))


@router.delete("/session")
def clear_session(
    _auth: bool = Security(get_admin_auth),
    actor_id: int = Depends(require_staff_actor),
    sessions: SessionStore = Depends(get_sessions),
):
    return {"cleared": sessions.clear(actor_id)}


# ---- Operations ----


@router.post("/ticks/promotion")
def trigger_promotion_tick(
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    notifier: Notifier = Depends(get_app_notifier),
):
    """Run one promotion pass now (same code path as the background loop)."""
    return {"promotion": run_promotion_tick(db, notifier=notifier)}


@router.post("/ticks/reminders")
def trigger_reminder_tick(
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
    notifier: Notifier = Depends(get_app_notifier),
):
    return {"reminders": run_reminder_tick(db, notifier=notifier)}


@router.get("/events")
def get_events(
    limit: int = 100,
    request_id: str | None = None,
    level: str | None = None,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    """
    Get system events with optional filtering.

    Args:
        limit: Maximum number of events to return (default 100, max 1000)
        request_id: Optional booking request ID to filter by
        level: Optional level (INFO, ERROR)
    """
    events = list_events(db, limit=limit, request_id=request_id, level=level)

    return [
        {
            "id": event.id,
            "created_at": event.created_at.isoformat() if event.created_at else None,
            "level": event.level,
            "event_type": event.event_type,
            "request_id": event.request_id,
            "payload": event.payload,
        }
        for event in events
    ]


@router.post("/events/retention-cleanup")
def cleanup_system_events_retention(
    retention_days: int = 90,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    """Delete SystemEvents older than retention_days (default 90)."""
    deleted = cleanup_old_events(db, retention_days=retention_days)
    return {"deleted": deleted, "retention_days": retention_days}
