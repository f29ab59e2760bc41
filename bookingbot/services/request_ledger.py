"""
Request ledger - persistence boundary for booking requests.

No business rules live here; BookingCoordinator checks invariants before calling in.
Functions do not commit unless stated, so they compose inside one transaction.
"""

import logging
import uuid

from sqlalchemy import delete, exists, select, update
from sqlalchemy.orm import Session

from bookingbot.constants.statuses import TERMINAL_STATUSES
from bookingbot.db.models import BookingRequest
from bookingbot.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


def create_request(db: Session, **fields) -> BookingRequest:
    fields.setdefault("id", str(uuid.uuid4()))
    fields.setdefault("created_at", utc_now())
    fields.setdefault("reminder_evening_sent", False)
    fields.setdefault("reminder_final_sent", False)
    request = BookingRequest(**fields)
    db.add(request)
    db.flush()
    return request


def get_request(db: Session, request_id: str, for_update: bool = False) -> BookingRequest | None:
    """
    Load a request by id.

    Args:
        for_update: lock the row (SELECT ... FOR UPDATE) and bypass the identity map
            so the caller sees the committed status, not a stale copy
    """
    stmt = select(BookingRequest).where(BookingRequest.id == request_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return db.execute(stmt).scalar_one_or_none()


def list_by_status(db: Session, status: str) -> list[BookingRequest]:
    stmt = (
        select(BookingRequest)
        .where(BookingRequest.status == status)
        .order_by(BookingRequest.created_at, BookingRequest.id)
    )
    return list(db.execute(stmt).scalars().all())


def list_for_subject(db: Session, subject_id: int) -> list[BookingRequest]:
    stmt = (
        select(BookingRequest)
        .where(BookingRequest.subject_id == subject_id)
        .order_by(BookingRequest.created_at.desc())
    )
    return list(db.execute(stmt).scalars().all())


def update_request(db: Session, request_id: str, **fields) -> int:
    """Set arbitrary columns. Returns the number of rows touched (0 if missing)."""
    if not fields:
        return 0
    stmt = update(BookingRequest).where(BookingRequest.id == request_id).values(**fields)
    return db.execute(stmt).rowcount


def delete_request(db: Session, request_id: str) -> bool:
    result = db.execute(delete(BookingRequest).where(BookingRequest.id == request_id))
    return bool(result.rowcount)


def has_active_request(db: Session, subject_id: int, slot_id: str) -> bool:
    """True if subject already holds a non-terminal request for slot."""
    stmt = select(
        exists().where(
            BookingRequest.subject_id == subject_id,
            BookingRequest.slot_id == slot_id,
            BookingRequest.status.not_in(TERMINAL_STATUSES),
        )
    )
    return bool(db.execute(stmt).scalar())
