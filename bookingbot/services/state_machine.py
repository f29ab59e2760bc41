"""
State machine service - defines allowed request status transitions and the locked transition helper.

This centralizes all status transition logic to ensure consistency and prevent invalid transitions.

- Rows are loaded with SELECT FOR UPDATE and the status is re-checked after locking
- The helper never commits: the caller's transaction decides what else changes with it
- Side effects (notifications) happen AFTER the caller commits
"""

import logging

from sqlalchemy.orm import Session

from bookingbot.constants.statuses import (
    STATUS_APPROVED,
    STATUS_COMPLETED,
    STATUS_CONDITIONAL,
    STATUS_MOVE_PENDING,
    STATUS_NO_SHOW,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_RESERVED_LATER,
    TERMINAL_STATUSES,
)
from bookingbot.db.models import BookingRequest
from bookingbot.services import request_ledger
from bookingbot.services.errors import INVALID_TRANSITION, ConflictError, NotFoundError

logger = logging.getLogger(__name__)

# Define allowed transitions
# Format: {from_status: [allowed_to_statuses]}
ALLOWED_TRANSITIONS = {
    STATUS_PENDING: [
        STATUS_APPROVED,
        STATUS_REJECTED,
        STATUS_MOVE_PENDING,
    ],
    STATUS_CONDITIONAL: [
        STATUS_PENDING,  # Promotion (scheduler or staff override)
        STATUS_REJECTED,
    ],
    STATUS_RESERVED_LATER: [
        STATUS_PENDING,
        STATUS_REJECTED,
    ],
    STATUS_APPROVED: [
        STATUS_COMPLETED,
        STATUS_NO_SHOW,
        STATUS_REJECTED,
        STATUS_MOVE_PENDING,
    ],
    STATUS_MOVE_PENDING: [
        STATUS_PENDING,  # Move confirmed/declined, back to previous status
        STATUS_APPROVED,
        STATUS_REJECTED,
    ],
    STATUS_REJECTED: [
        # Terminal state - no transitions allowed
    ],
    STATUS_COMPLETED: [
        # Terminal state - no transitions allowed
    ],
    STATUS_NO_SHOW: [
        # Terminal state - no transitions allowed
    ],
}

# State semantics (for documentation)
STATE_SEMANTICS = {
    STATUS_PENDING: "Claim on the earliest slot (or promoted), waiting for staff approval",
    STATUS_CONDITIONAL: "Later slot chosen while an earlier one was open; promoted once earlier slots are taken and the threshold window is reached",
    STATUS_RESERVED_LATER: "Later slot chosen; promoted once earlier slots are taken or the fixed window is reached",
    STATUS_APPROVED: "Slot claimed (removed from pool), reminders scheduled",
    STATUS_MOVE_PENDING: "Staff proposed another slot; candidate held until the subject answers",
    STATUS_REJECTED: "Cancelled by staff or auto-rejected - terminal",
    STATUS_COMPLETED: "Visit happened - terminal",
    STATUS_NO_SHOW: "Subject did not come - terminal",
}


def is_transition_allowed(from_status: str, to_status: str) -> bool:
    """
    Check if a status transition is allowed.

    Args:
        from_status: Current status
        to_status: Target status

    Returns:
        True if transition is allowed, False otherwise
    """
    allowed = ALLOWED_TRANSITIONS.get(from_status, [])
    return to_status in allowed


def get_allowed_transitions(from_status: str) -> list[str]:
    return ALLOWED_TRANSITIONS.get(from_status, [])


def is_terminal_state(status: str) -> bool:
    return status in TERMINAL_STATUSES


def get_state_semantics(status: str) -> str | None:
    return STATE_SEMANTICS.get(status)


def lock_request(db: Session, request_id: str) -> BookingRequest:
    """
    Load a request with SELECT FOR UPDATE.

    Raises:
        NotFoundError: If the request does not exist
    """
    request = request_ledger.get_request(db, request_id, for_update=True)
    if request is None:
        raise NotFoundError(f"Request {request_id} not found")
    return request


def ensure_transition(request: BookingRequest, to_status: str) -> None:
    """
    Raises:
        ConflictError(INVALID_TRANSITION): If to_status is not reachable from the current status
    """
    if not is_transition_allowed(request.status, to_status):
        logger.warning(
            f"Invalid status transition attempted: {request.status} -> {to_status} for request {request.id}"
        )
        raise ConflictError(
            f"Invalid status transition: {request.status} -> {to_status}. "
            f"Allowed transitions from {request.status}: {get_allowed_transitions(request.status)}",
            code=INVALID_TRANSITION,
        )


def transition(
    db: Session,
    request: BookingRequest,
    to_status: str,
    reason: str | None = None,
    **updates,
) -> BookingRequest:
    """
    Move a locked request to to_status inside the caller's transaction.

    Args:
        db: Database session
        request: Request loaded via lock_request
        to_status: Target status
        reason: Optional reason, logged only
        **updates: Other columns to set in the same flush

    Returns:
        The same request object

    Raises:
        ConflictError(INVALID_TRANSITION): If the transition is not allowed
    """
    from_status = request.status
    ensure_transition(request, to_status)

    request.status = to_status
    for field, value in updates.items():
        setattr(request, field, value)
    db.flush()

    logger.info(
        f"Request {request.id} transitioned: {from_status} -> {to_status}"
        + (f" (reason: {reason})" if reason else "")
    )
    return request
