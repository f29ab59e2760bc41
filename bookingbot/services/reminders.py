"""
Reminder service with idempotency tracking.

Two reminders per approved request:
- evening: fixed local clock time (REMINDER_EVENING_HOUR, default 20:00) on the day
  before the slot's local date
- final: REMINDER_FINAL_MINUTES (default 60) before the slot starts

A reminder is due when trigger <= now < slot start and its flag is unset. The flag is
written only after a successful send, so a failed send is retried next tick. The
request row is held with FOR UPDATE SKIP LOCKED while sending, so two concurrent
ticks never send the same reminder.
"""

import logging
from datetime import UTC, datetime, timedelta

import pytz
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from bookingbot.constants.event_types import EVENT_REMINDER_SEND_FAILURE, reminder_event_type
from bookingbot.constants.statuses import STATUS_APPROVED
from bookingbot.core.config import settings
from bookingbot.db.models import BookingRequest
from bookingbot.services import system_event_service
from bookingbot.services.notifier import Notifier, get_notifier
from bookingbot.services.slot_store import get_timezone
from bookingbot.utils.datetime_utils import dt_replace_utc, to_utc, utc_now

logger = logging.getLogger(__name__)

REMINDER_EVENING = "evening"
REMINDER_FINAL = "final"

# Reminder kind -> flag column
REMINDER_FLAGS = {
    REMINDER_EVENING: "reminder_evening_sent",
    REMINDER_FINAL: "reminder_final_sent",
}


def compute_reminder_times(
    slot_start: datetime, tz: pytz.BaseTzInfo | None = None
) -> dict[str, datetime]:
    """
    Trigger instants (UTC) for both reminders of a slot starting at slot_start.

    The evening trigger is computed on the local calendar, so a slot at 00:30 local
    time gets its evening reminder at 20:00 two UTC dates earlier when needed.
    """
    tz = tz or get_timezone()
    start = to_utc(dt_replace_utc(slot_start))
    day_before = start.astimezone(tz).date() - timedelta(days=1)
    evening_local = tz.localize(
        datetime(day_before.year, day_before.month, day_before.day, settings.reminder_evening_hour, 0)
    )
    return {
        REMINDER_EVENING: evening_local.astimezone(UTC),
        REMINDER_FINAL: start - timedelta(minutes=settings.reminder_final_minutes),
    }


def due_reminders(request: BookingRequest, now: datetime) -> list[str]:
    """Reminder kinds that should be sent for request at now (flag unset, trigger passed, slot not started)."""
    if request.status != STATUS_APPROVED or request.slot_start is None:
        return []
    now = to_utc(now)
    start = to_utc(dt_replace_utc(request.slot_start))
    if now >= start:
        return []

    due = []
    for kind, trigger in compute_reminder_times(start).items():
        if getattr(request, REMINDER_FLAGS[kind]):
            continue
        if trigger <= now:
            due.append(kind)
    return due


def format_reminder(kind: str, request: BookingRequest) -> str:
    what = request.procedure_name or "your visit"
    if kind == REMINDER_EVENING:
        return f"Reminder: you are booked for {what} on {request.slot_label}."
    return f"Your appointment ({what}) starts in {settings.reminder_final_minutes} minutes: {request.slot_label}."


def send_due_reminders(
    db: Session,
    request_id: str,
    now: datetime,
    notifier: Notifier,
) -> dict:
    """
    Send every due reminder for one request under a SKIP LOCKED row lock, then commit
    the flags of the reminders that were actually delivered.

    Returns:
        dict with sent / failed lists of reminder kinds
    """
    result: dict = {"sent": [], "failed": []}
    stmt = (
        select(BookingRequest)
        .where(BookingRequest.id == request_id, BookingRequest.status == STATUS_APPROVED)
        .with_for_update(skip_locked=True)
        .execution_options(populate_existing=True)
    )
    request = db.execute(stmt).scalar_one_or_none()
    if request is None:
        # Locked by a concurrent tick, or no longer approved
        db.rollback()
        return result

    errors: dict[str, Exception] = {}
    for kind in due_reminders(request, now):
        try:
            notifier.notify_subject(request.subject_id, format_reminder(kind, request))
        except Exception as e:
            logger.warning(f"Reminder {kind} for request {request.id} failed: {type(e).__name__}: {e}")
            errors[kind] = e
            result["failed"].append(kind)
            continue
        setattr(request, REMINDER_FLAGS[kind], True)
        result["sent"].append(kind)

    db.commit()

    for kind in result["sent"]:
        logger.info(f"Reminder {kind} sent for request {request_id}")
        system_event_service.info(db, reminder_event_type(kind), request_id=request_id)
    for kind, exc in errors.items():
        system_event_service.error(
            db,
            EVENT_REMINDER_SEND_FAILURE,
            request_id=request_id,
            payload={"kind": kind},
            exc=exc,
        )
    return result


def run_reminder_tick(
    db: Session,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> dict:
    """
    Run one reminder pass over approved requests that still miss a reminder.

    Returns:
        dict with checked / sent / failed counts
    """
    summary = {"checked": 0, "sent": 0, "failed": 0}
    if not settings.feature_reminders_enabled:
        logger.debug("Reminders feature disabled (feature flag) - skipping tick")
        return summary
    if not settings.feature_notifications_enabled:
        # Flags are only set after a real send; leave them for when sends resume
        logger.debug("Notifications disabled (feature flag) - skipping reminder tick")
        return summary

    now = to_utc(now) if now else utc_now()
    notifier = notifier or get_notifier()

    stmt = (
        select(BookingRequest.id)
        .where(
            BookingRequest.status == STATUS_APPROVED,
            BookingRequest.slot_start.is_not(None),
            BookingRequest.slot_start > now,
            or_(
                BookingRequest.reminder_evening_sent.is_(False),
                BookingRequest.reminder_final_sent.is_(False),
            ),
        )
        .order_by(BookingRequest.slot_start)
    )
    request_ids = list(db.execute(stmt).scalars().all())
    db.commit()

    for request_id in request_ids:
        summary["checked"] += 1
        try:
            result = send_due_reminders(db, request_id, now, notifier)
        except Exception as e:
            db.rollback()
            logger.error(f"Reminder processing failed for request {request_id}: {type(e).__name__}: {e}")
            system_event_service.error(db, EVENT_REMINDER_SEND_FAILURE, request_id=request_id, exc=e)
            summary["failed"] += 1
            continue
        summary["sent"] += len(result["sent"])
        summary["failed"] += len(result["failed"])

    if summary["sent"] or summary["failed"]:
        logger.info(f"Reminder tick: {summary}")
    return summary
