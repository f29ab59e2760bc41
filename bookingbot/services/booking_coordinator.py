"""
Booking coordinator - every transition that jointly touches a request and the slot pool.

Each operation:
- locks the request row first, then any slot rows it touches (SELECT FOR UPDATE)
- changes status, slot rows and history in ONE transaction (all-or-nothing)
- sends notifications only AFTER commit; a failed send is logged, never rolled back

Deferred requests (conditional / reserved_later) leave their slot in the pool until
approval. The slot row is deleted only by approve and propose_move (candidate), and
put back with its original id by reject, decline_move and confirm_move.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookingbot.constants.statuses import (
    ACTIVE_STATUSES,
    DEFERRED_STATUSES,
    OUTCOME_COMPLETED,
    OUTCOME_NO_SHOW,
    STATUS_APPROVED,
    STATUS_COMPLETED,
    STATUS_MOVE_PENDING,
    STATUS_NO_SHOW,
    STATUS_PENDING,
    STATUS_REJECTED,
    TERMINAL_STATUSES,
)
from bookingbot.core.config import settings
from bookingbot.db.helpers import transaction
from bookingbot.db.models import BookingRequest, Slot
from bookingbot.services import history_log, reference_data, request_ledger, slot_store
from bookingbot.services.errors import (
    BLACKLISTED,
    DUPLICATE_REQUEST,
    INVALID_TRANSITION,
    NOT_STAFF,
    NOT_SUBJECT,
    SLOT_GONE,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from bookingbot.services.messaging import format_request_line
from bookingbot.services.notifier import Notifier, get_notifier
from bookingbot.services.state_machine import lock_request, transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subject:
    """Identity of the client making a request."""

    id: int
    handle: str | None = None
    name: str | None = None


# ---- guards ----


def ensure_staff(actor_id: int | None) -> None:
    """
    actor_id None means the call comes from a trusted caller (scheduler, authenticated
    admin API without a staff header).

    Raises:
        PermissionDeniedError(NOT_STAFF): If actor_id is given and is not a staff id
    """
    if actor_id is not None and actor_id not in settings.staff_id_set:
        raise PermissionDeniedError(f"User {actor_id} is not staff", code=NOT_STAFF)


def _ensure_subject(request: BookingRequest, actor_id: int | None) -> None:
    if actor_id is not None and actor_id != request.subject_id:
        raise PermissionDeniedError(
            f"User {actor_id} cannot answer for request {request.id}", code=NOT_SUBJECT
        )


def _require_status(request: BookingRequest, allowed: tuple[str, ...], action: str) -> None:
    if request.status not in allowed:
        raise ConflictError(
            f"Cannot {action} in status '{request.status}'. Request must be in {list(allowed)}.",
            code=INVALID_TRANSITION,
        )


# ---- snapshots ----


def _slot_fields(prefix: str, slot: Slot) -> dict:
    return {
        f"{prefix}_id": slot.id,
        f"{prefix}_label": slot.label,
        f"{prefix}_start": slot_store.slot_start(slot),
        f"{prefix}_end": slot_store.slot_end(slot),
    }


def _cleared(prefix: str) -> dict:
    return {f"{prefix}_id": None, f"{prefix}_label": None, f"{prefix}_start": None, f"{prefix}_end": None}


def _restore_original(db: Session, request: BookingRequest, now: datetime | None) -> bool:
    return slot_store.restore_slot(
        db,
        request.original_slot_id,
        request.original_slot_label,
        request.original_slot_start,
        request.original_slot_end,
        now=now,
    )


def _restore_move_candidate(db: Session, request: BookingRequest, now: datetime | None) -> bool:
    return slot_store.restore_slot(
        db,
        request.move_slot_id,
        request.move_slot_label,
        request.move_slot_start,
        request.move_slot_end,
        now=now,
    )


# ---- notifications (after commit) ----


def _notify_subject(notifier: Notifier, request: BookingRequest, text: str) -> None:
    try:
        notifier.notify_subject(request.subject_id, text)
    except Exception as e:
        logger.warning(f"Failed to notify subject {request.subject_id} for request {request.id}: {e}")


def _notify_staff(notifier: Notifier, text: str) -> None:
    try:
        notifier.notify_staff(text)
    except Exception as e:
        logger.warning(f"Failed to notify staff: {e}")


# ---- operations ----


def submit(
    db: Session,
    subject: Subject,
    slot_id: str,
    procedure_key: str | None = None,
    notifier: Notifier | None = None,
) -> BookingRequest:
    """
    Create a request for slot_id.

    The earliest open slot gives a pending request; any later slot gives a deferred one
    (settings.deferred_status) and the slot stays in the pool until approval.

    Raises:
        PermissionDeniedError(BLACKLISTED): subject's handle is blacklisted
        NotFoundError: procedure_key given but unknown
        ConflictError(SLOT_GONE): slot no longer in the pool
        ConflictError(DUPLICATE_REQUEST): subject already holds an active request for the slot
    """
    notifier = notifier or get_notifier()

    if reference_data.is_blacklisted(db, subject.handle):
        raise PermissionDeniedError(f"Subject {subject.id} is blacklisted", code=BLACKLISTED)

    procedure = None
    if procedure_key:
        procedure = reference_data.procedure_by_key(db, procedure_key)
        if procedure is None:
            raise NotFoundError(f"Procedure {procedure_key} not found")

    try:
        with transaction(db):
            slot = slot_store.find_slot(db, slot_id, for_update=True)
            if slot is None:
                raise ConflictError(f"Slot {slot_id} is no longer available", code=SLOT_GONE)
            if request_ledger.has_active_request(db, subject.id, slot.id):
                raise ConflictError(
                    f"Subject {subject.id} already has an active request for slot {slot.id}",
                    code=DUPLICATE_REQUEST,
                )

            earliest = slot_store.earliest_slot(db)
            is_earliest = earliest is not None and earliest.id == slot.id
            status = STATUS_PENDING if is_earliest else settings.deferred_status

            request = request_ledger.create_request(
                db,
                subject_id=subject.id,
                subject_handle=subject.handle,
                subject_name=subject.name,
                slot_id=slot.id,
                slot_label=slot.label,
                slot_start=slot_store.slot_start(slot),
                slot_end=slot_store.slot_end(slot),
                procedure_key=procedure.key if procedure else None,
                procedure_name=procedure.name if procedure else None,
                status=status,
            )
    except IntegrityError as e:
        # Concurrent submit won the partial unique index
        raise ConflictError(
            f"Subject {subject.id} already has an active request for slot {slot_id}",
            code=DUPLICATE_REQUEST,
        ) from e

    db.refresh(request)
    logger.info(f"Request {request.id} submitted by {subject.id} for slot {slot_id} as {status}")

    if status == STATUS_PENDING:
        _notify_subject(notifier, request, "Your request has been sent. Please wait for confirmation.")
        _notify_staff(notifier, f"New request: {format_request_line(request)}")
    else:
        _notify_subject(
            notifier,
            request,
            f"The slot {request.slot_label} is reserved for you. Once the earlier slots are taken, "
            "your request will be sent for confirmation automatically.",
        )
        _notify_staff(notifier, f"Later slot reserved ({status}): {format_request_line(request)}")
    return request


def approve(
    db: Session,
    request_id: str,
    actor_id: int | None = None,
    notifier: Notifier | None = None,
) -> BookingRequest:
    """
    pending -> approved. Claims the bound slot (deleted from the pool) and restarts reminders.

    A slot that has already vanished does not block approval.

    Raises:
        NotFoundError: request missing
        ConflictError(INVALID_TRANSITION): request not pending (including already approved)
    """
    ensure_staff(actor_id)
    notifier = notifier or get_notifier()

    with transaction(db):
        request = lock_request(db, request_id)
        _require_status(request, (STATUS_PENDING,), "approve")

        updates = {"reminder_evening_sent": False, "reminder_final_sent": False}
        slot = slot_store.find_slot(db, request.slot_id, for_update=True) if request.slot_id else None
        if slot is not None:
            updates.update(_slot_fields("original_slot", slot))
            updates.update(
                slot_label=slot.label,
                slot_start=slot_store.slot_start(slot),
                slot_end=slot_store.slot_end(slot),
            )
            slot_store.delete_slot_row(db, slot.id)
        else:
            logger.warning(f"Request {request_id} approved but slot {request.slot_id} is already gone")

        transition(db, request, STATUS_APPROVED, **updates)

    db.refresh(request)
    _notify_subject(notifier, request, f"Your booking for {request.slot_label} is confirmed.")
    return request


def reject(
    db: Session,
    request_id: str,
    actor_id: int | None = None,
    reason: str | None = None,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> BookingRequest:
    """
    Any non-terminal status -> rejected.

    Slots this request holds are put back (insert-if-absent): the consumed original
    slot, and the move candidate when move_pending. Rejecting an already rejected
    request is a no-op.

    Raises:
        NotFoundError: request missing
        ConflictError(INVALID_TRANSITION): request completed / no_show
    """
    ensure_staff(actor_id)
    notifier = notifier or get_notifier()

    with transaction(db):
        request = lock_request(db, request_id)
        if request.status == STATUS_REJECTED:
            logger.info(f"Request {request_id} already rejected")
            return request
        _require_status(request, ACTIVE_STATUSES, "reject")

        _restore_original(db, request, now)
        if request.status == STATUS_MOVE_PENDING:
            _restore_move_candidate(db, request, now)

        transition(
            db,
            request,
            STATUS_REJECTED,
            reason=reason,
            prev_status=None,
            **_cleared("original_slot"),
            **_cleared("move_slot"),
        )

    db.refresh(request)
    text = f"Your booking for {request.slot_label} has been cancelled."
    if reason:
        text += f"\nReason: {reason}"
    _notify_subject(notifier, request, text)
    return request


def _resolve(
    db: Session,
    request_id: str,
    to_status: str,
    outcome_label: str,
    actor_id: int | None,
    notifier: Notifier | None,
) -> BookingRequest:
    ensure_staff(actor_id)
    notifier = notifier or get_notifier()

    with transaction(db):
        request = lock_request(db, request_id)
        _require_status(request, (STATUS_APPROVED,), f"mark as {to_status}")
        transition(db, request, to_status)
        history_log.append_entry(
            db,
            subject_id=request.subject_id,
            date_label=request.slot_label,
            procedure_label=request.procedure_name or "Procedure",
            outcome_label=outcome_label,
            request_id=request.id,
        )

    db.refresh(request)
    return request


def complete(
    db: Session,
    request_id: str,
    actor_id: int | None = None,
    notifier: Notifier | None = None,
) -> BookingRequest:
    """approved -> completed, with a history entry. The slot pool is not touched."""
    notifier = notifier or get_notifier()
    request = _resolve(db, request_id, STATUS_COMPLETED, OUTCOME_COMPLETED, actor_id, notifier)
    _notify_subject(notifier, request, f"Your visit on {request.slot_label} is marked as completed.")
    _notify_staff(notifier, f"Completed: {format_request_line(request)}")
    return request


def mark_no_show(
    db: Session,
    request_id: str,
    actor_id: int | None = None,
    notifier: Notifier | None = None,
) -> BookingRequest:
    """approved -> no_show, with a history entry. The slot pool is not touched."""
    notifier = notifier or get_notifier()
    request = _resolve(db, request_id, STATUS_NO_SHOW, OUTCOME_NO_SHOW, actor_id, notifier)
    _notify_subject(notifier, request, f"You missed your visit on {request.slot_label}.")
    _notify_staff(notifier, f"No-show: {format_request_line(request)}")
    return request


def delete_record(db: Session, request_id: str, actor_id: int | None = None) -> None:
    """
    Remove a terminal request from the ledger. No slot side effects.

    Raises:
        NotFoundError: request missing
        ConflictError(INVALID_TRANSITION): request not terminal
    """
    ensure_staff(actor_id)
    with transaction(db):
        request = lock_request(db, request_id)
        _require_status(request, TERMINAL_STATUSES, "delete")
        request_ledger.delete_request(db, request_id)
    logger.info(f"Request {request_id} deleted")


def force_promote(
    db: Session,
    request_id: str,
    actor_id: int | None = None,
    notifier: Notifier | None = None,
    reason: str = "staff override",
) -> BookingRequest:
    """
    conditional / reserved_later -> pending without checking eligibility.

    Raises:
        NotFoundError: request missing
        ConflictError(INVALID_TRANSITION): request not deferred
    """
    ensure_staff(actor_id)
    notifier = notifier or get_notifier()

    with transaction(db):
        request = lock_request(db, request_id)
        _require_status(request, DEFERRED_STATUSES, "promote")
        transition(db, request, STATUS_PENDING, reason=reason)

    db.refresh(request)
    notify_promoted(notifier, request)
    return request


def notify_promoted(notifier: Notifier, request: BookingRequest) -> None:
    _notify_subject(
        notifier,
        request,
        f"Your reservation for {request.slot_label} is now a request awaiting confirmation.",
    )
    _notify_staff(notifier, f"Reservation promoted to request: {format_request_line(request)}")


def propose_move(
    db: Session,
    request_id: str,
    candidate_slot_id: str,
    actor_id: int | None = None,
    notifier: Notifier | None = None,
) -> BookingRequest:
    """
    pending / approved -> move_pending. The candidate slot is removed from the pool
    right away so nobody else can take it while the subject decides.

    Raises:
        NotFoundError: request missing
        ConflictError(INVALID_TRANSITION): request not pending / approved
        ValidationError: candidate is the slot the request is already bound to
        ConflictError(SLOT_GONE): candidate no longer in the pool
    """
    ensure_staff(actor_id)
    notifier = notifier or get_notifier()

    with transaction(db):
        request = lock_request(db, request_id)
        _require_status(request, (STATUS_PENDING, STATUS_APPROVED), "propose a move")
        if candidate_slot_id == request.slot_id:
            raise ValidationError("Candidate slot is the slot the request is already bound to")

        candidate = slot_store.find_slot(db, candidate_slot_id, for_update=True)
        if candidate is None:
            raise ConflictError(f"Slot {candidate_slot_id} is no longer available", code=SLOT_GONE)

        updates = _slot_fields("move_slot", candidate)
        slot_store.delete_slot_row(db, candidate.id)
        transition(db, request, STATUS_MOVE_PENDING, prev_status=request.status, **updates)

    db.refresh(request)
    _notify_subject(
        notifier,
        request,
        f"We propose to move your booking from {request.slot_label} to {request.move_slot_label}. "
        "Do you accept?",
    )
    return request


def confirm_move(
    db: Session,
    request_id: str,
    actor_id: int | None = None,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> BookingRequest:
    """
    move_pending -> previous status, bound to the candidate slot.

    The slot the request held before (original snapshot) goes back to the pool; the
    candidate becomes the new held slot.

    Raises:
        NotFoundError: request missing
        ConflictError(INVALID_TRANSITION): no move pending
        PermissionDeniedError(NOT_SUBJECT): actor is not the request's subject
        ConflictError(DUPLICATE_REQUEST): subject already holds another active request for the candidate
    """
    notifier = notifier or get_notifier()

    try:
        with transaction(db):
            request = lock_request(db, request_id)
            _require_status(request, (STATUS_MOVE_PENDING,), "confirm a move")
            _ensure_subject(request, actor_id)
            target = request.prev_status or STATUS_PENDING

            _restore_original(db, request, now)
            slot_store.delete_slot_row(db, request.move_slot_id)

            updates = {
                "slot_id": request.move_slot_id,
                "slot_label": request.move_slot_label,
                "slot_start": request.move_slot_start,
                "slot_end": request.move_slot_end,
                "original_slot_id": request.move_slot_id,
                "original_slot_label": request.move_slot_label,
                "original_slot_start": request.move_slot_start,
                "original_slot_end": request.move_slot_end,
                "prev_status": None,
                **_cleared("move_slot"),
            }
            if target == STATUS_APPROVED:
                updates.update(reminder_evening_sent=False, reminder_final_sent=False)
            transition(db, request, target, reason="move confirmed", **updates)
    except IntegrityError as e:
        raise ConflictError(
            f"Request {request_id}: subject already has an active request for the new slot",
            code=DUPLICATE_REQUEST,
        ) from e

    db.refresh(request)
    _notify_subject(notifier, request, f"Your booking has been moved to {request.slot_label}.")
    _notify_staff(notifier, f"Move confirmed: {format_request_line(request)}")
    return request


def decline_move(
    db: Session,
    request_id: str,
    actor_id: int | None = None,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> BookingRequest:
    """
    move_pending -> previous status, still bound to the original slot. The candidate
    slot goes back to the pool, unless it has already started or collides with a
    slot created meanwhile (see slot_store.restore_slot).

    Raises:
        NotFoundError: request missing
        ConflictError(INVALID_TRANSITION): no move pending
        PermissionDeniedError(NOT_SUBJECT): actor is not the request's subject
    """
    notifier = notifier or get_notifier()

    with transaction(db):
        request = lock_request(db, request_id)
        _require_status(request, (STATUS_MOVE_PENDING,), "decline a move")
        _ensure_subject(request, actor_id)
        target = request.prev_status or STATUS_PENDING
        declined_label = request.move_slot_label

        _restore_move_candidate(db, request, now)
        transition(db, request, target, reason="move declined", prev_status=None, **_cleared("move_slot"))

    db.refresh(request)
    _notify_staff(
        notifier,
        f"Move to {declined_label} declined: {format_request_line(request)}",
    )
    return request
