"""
Promotion scheduler - turns deferred requests (conditional / reserved_later) into
pending requests once time and slot availability allow it.

One tick:
1. ONE query reads every deferred request with its bound slot start and whether an
   earlier slot is still open (LEFT JOIN + correlated EXISTS), so every decision in
   the tick sees the same snapshot of the pool.
2. Rows that need action are re-checked under row locks by promote_if_eligible, each
   in its own transaction. A failing row is logged and recorded; the tick goes on.

An "open earlier slot" is any live slot that starts before the bound slot's start,
started or not, the same set submit consults when it grants a slot.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import exists, select
from sqlalchemy.orm import Session, aliased

from bookingbot.constants.event_types import (
    EVENT_PROMOTION_FAILURE,
    EVENT_PROMOTION_REJECTED_SLOT_GONE,
)
from bookingbot.constants.statuses import (
    DEFERRED_STATUSES,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_RESERVED_LATER,
)
from bookingbot.core.config import settings
from bookingbot.db.helpers import transaction
from bookingbot.db.models import BookingRequest, Slot
from bookingbot.services import slot_store, system_event_service
from bookingbot.services.booking_coordinator import notify_promoted
from bookingbot.services.notifier import Notifier, get_notifier
from bookingbot.services.state_machine import lock_request, transition
from bookingbot.utils.datetime_utils import dt_replace_utc, to_utc, utc_now

logger = logging.getLogger(__name__)

# Decisions
DECISION_PROMOTE = "promote"
DECISION_REJECT = "reject"
DECISION_TOO_EARLY = "too_early"
DECISION_EARLIER_OPEN = "earlier_open"
DECISION_STALE = "stale"  # status changed since the tick query


def decide_promotion(
    status: str,
    slot_start: datetime | None,
    has_earlier_open: bool,
    now: datetime,
) -> str:
    """
    Pure promotion rule.

    conditional: promote when now >= start - threshold AND no earlier slot is open.
    reserved_later: promote when no earlier slot is open OR now >= start - window.
    Both: bound slot gone -> reject.
    """
    if status not in DEFERRED_STATUSES:
        return DECISION_STALE
    if slot_start is None:
        return DECISION_REJECT

    start = to_utc(dt_replace_utc(slot_start))
    now = to_utc(now)

    if status == STATUS_RESERVED_LATER:
        window_opens = start - timedelta(hours=settings.reserved_later_window_hours)
        if not has_earlier_open or now >= window_opens:
            return DECISION_PROMOTE
        return DECISION_EARLIER_OPEN

    threshold = start - timedelta(hours=settings.promotion_threshold_hours)
    if now < threshold:
        return DECISION_TOO_EARLY
    if has_earlier_open:
        return DECISION_EARLIER_OPEN
    return DECISION_PROMOTE


def select_deferred_candidates(db: Session, now: datetime) -> list:
    """
    Every deferred request with its live bound slot start (None when the slot is gone)
    and whether an earlier slot is open, in one statement.
    """
    bound = aliased(Slot, name="bound")
    earlier = aliased(Slot, name="earlier")
    earlier_open = (
        exists()
        .where(earlier.start < bound.start)
        .correlate(bound)
    )
    stmt = (
        select(
            BookingRequest.id,
            BookingRequest.status,
            bound.start.label("slot_start"),
            earlier_open.label("has_earlier_open"),
        )
        .select_from(BookingRequest)
        .outerjoin(bound, bound.id == BookingRequest.slot_id)
        .where(BookingRequest.status.in_(DEFERRED_STATUSES))
        .order_by(BookingRequest.created_at, BookingRequest.id)
    )
    return list(db.execute(stmt).all())


def promote_if_eligible(
    db: Session,
    request_id: str,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> str:
    """
    Re-evaluate one deferred request under locks and act on the decision.

    Returns:
        The decision that was applied (DECISION_* constant)
    """
    now = to_utc(now) if now else utc_now()
    notifier = notifier or get_notifier()

    with transaction(db):
        request = lock_request(db, request_id)
        if request.status not in DEFERRED_STATUSES:
            return DECISION_STALE

        slot = slot_store.find_slot(db, request.slot_id, for_update=True) if request.slot_id else None
        start = slot_store.slot_start(slot) if slot is not None else None
        has_earlier_open = start is not None and slot_store.has_open_slot_before(db, start)

        decision = decide_promotion(request.status, start, has_earlier_open, now)
        if decision == DECISION_REJECT:
            transition(db, request, STATUS_REJECTED, reason="bound slot no longer exists")
        elif decision == DECISION_PROMOTE:
            transition(db, request, STATUS_PENDING, reason=f"auto-promotion from {request.status}")
        else:
            return decision

    db.refresh(request)
    if decision == DECISION_REJECT:
        system_event_service.info(
            db,
            EVENT_PROMOTION_REJECTED_SLOT_GONE,
            request_id=request.id,
            payload={"slot_id": request.slot_id},
        )
        try:
            notifier.notify_subject(
                request.subject_id,
                f"Unfortunately the slot {request.slot_label} is no longer available. "
                "Your reservation has been cancelled.",
            )
        except Exception as e:
            logger.warning(f"Failed to notify subject {request.subject_id} for request {request.id}: {e}")
    else:
        notify_promoted(notifier, request)
    return decision


def run_promotion_tick(
    db: Session,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> dict:
    """
    Run one promotion pass.

    Returns:
        dict with checked / promoted / rejected / skipped / failed counts
    """
    summary = {"checked": 0, "promoted": 0, "rejected": 0, "skipped": 0, "failed": 0}
    if not settings.feature_promotion_enabled:
        logger.debug("Promotion feature disabled (feature flag) - skipping tick")
        return summary

    now = to_utc(now) if now else utc_now()
    rows = select_deferred_candidates(db, now)
    # End the read transaction before taking per-row locks
    db.commit()

    for row in rows:
        summary["checked"] += 1
        decision = decide_promotion(row.status, row.slot_start, bool(row.has_earlier_open), now)
        if decision not in (DECISION_PROMOTE, DECISION_REJECT):
            summary["skipped"] += 1
            continue

        try:
            applied = promote_if_eligible(db, row.id, now=now, notifier=notifier)
        except Exception as e:
            db.rollback()
            logger.error(f"Promotion failed for request {row.id}: {type(e).__name__}: {e}")
            system_event_service.error(
                db,
                EVENT_PROMOTION_FAILURE,
                request_id=row.id,
                payload={"status": row.status},
                exc=e,
            )
            summary["failed"] += 1
            continue

        if applied == DECISION_PROMOTE:
            summary["promoted"] += 1
        elif applied == DECISION_REJECT:
            summary["rejected"] += 1
        else:
            summary["skipped"] += 1

    if summary["promoted"] or summary["rejected"] or summary["failed"]:
        logger.info(f"Promotion tick: {summary}")
    return summary
