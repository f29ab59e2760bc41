"""
Tests for reminder service with idempotency.
"""

from datetime import UTC, datetime, timedelta

from freezegun import freeze_time
from sqlalchemy import select

from bookingbot.constants.event_types import EVENT_REMINDER_SEND_FAILURE
from bookingbot.core.config import settings
from bookingbot.db.models import SystemEvent
from bookingbot.services import booking_coordinator, request_ledger, slot_store
from bookingbot.services.booking_coordinator import Subject
from bookingbot.services.reminders import (
    REMINDER_EVENING,
    REMINDER_FINAL,
    compute_reminder_times,
    due_reminders,
    run_reminder_tick,
)
from tests.helpers.constants import SUBJECT_ID

SUBJECT = Subject(id=SUBJECT_ID, handle="client")

# 02.06.2030 10:00 Moscow (UTC+3)
SLOT_START = datetime(2030, 6, 2, 7, 0, tzinfo=UTC)
# 01.06.2030 20:00 Moscow
EVENING_TRIGGER = datetime(2030, 6, 1, 17, 0, tzinfo=UTC)
FINAL_TRIGGER = SLOT_START - timedelta(hours=1)


def _approved_request(db, start=SLOT_START):
    slot = slot_store.create_slot(
        db, None, start, start + timedelta(hours=1), now=start - timedelta(days=10)
    )
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    return booking_coordinator.approve(db, request.id)


def test_compute_reminder_times():
    times = compute_reminder_times(SLOT_START)
    assert times[REMINDER_EVENING] == EVENING_TRIGGER
    assert times[REMINDER_FINAL] == FINAL_TRIGGER


def test_compute_reminder_times_uses_local_date():
    # 02.06.2030 00:30 Moscow is still 01.06 in UTC; the evening before is 01.06 local
    start = datetime(2030, 6, 1, 21, 30, tzinfo=UTC)
    times = compute_reminder_times(start)
    assert times[REMINDER_EVENING] == datetime(2030, 5, 31, 17, 0, tzinfo=UTC)


def test_no_reminder_before_evening_trigger(db, notifier):
    request = _approved_request(db)

    summary = run_reminder_tick(db, now=EVENING_TRIGGER - timedelta(minutes=1))

    assert summary["sent"] == 0
    assert "Your booking for 02.06.2030 10:00-11:00 is confirmed." in notifier.messages_for(SUBJECT_ID)
    assert not any(m.startswith("Reminder") for m in notifier.messages_for(SUBJECT_ID))
    assert request_ledger.get_request(db, request.id).reminder_evening_sent is False


def test_evening_reminder_sent_exactly_once(db, notifier):
    request = _approved_request(db)

    first = run_reminder_tick(db, now=EVENING_TRIGGER)
    second = run_reminder_tick(db, now=EVENING_TRIGGER + timedelta(minutes=5))

    assert first["sent"] == 1
    assert second["sent"] == 0
    stored = request_ledger.get_request(db, request.id)
    assert stored.reminder_evening_sent is True
    assert stored.reminder_final_sent is False
    reminders = [m for m in notifier.messages_for(SUBJECT_ID) if m.startswith("Reminder")]
    assert len(reminders) == 1


def test_final_reminder_sent_exactly_once_in_last_hour(db, notifier):
    request = _approved_request(db)
    run_reminder_tick(db, now=EVENING_TRIGGER)

    assert run_reminder_tick(db, now=FINAL_TRIGGER - timedelta(minutes=1))["sent"] == 0
    assert run_reminder_tick(db, now=FINAL_TRIGGER)["sent"] == 1
    assert run_reminder_tick(db, now=FINAL_TRIGGER + timedelta(minutes=30))["sent"] == 0

    assert request_ledger.get_request(db, request.id).reminder_final_sent is True
    finals = [m for m in notifier.messages_for(SUBJECT_ID) if "starts in 60 minutes" in m]
    assert len(finals) == 1


def test_no_reminder_after_slot_start(db, notifier):
    request = _approved_request(db)
    assert due_reminders(request, SLOT_START) == []

    summary = run_reminder_tick(db, now=SLOT_START + timedelta(minutes=1))
    assert summary == {"checked": 0, "sent": 0, "failed": 0}


def test_late_approval_sends_both(db):
    _approved_request(db)
    summary = run_reminder_tick(db, now=FINAL_TRIGGER + timedelta(minutes=10))
    assert summary["sent"] == 2


def test_failed_send_is_retried_next_tick(db, notifier):
    request = _approved_request(db)
    notifier.failing_subjects.add(SUBJECT_ID)

    summary = run_reminder_tick(db, now=EVENING_TRIGGER)

    assert summary["failed"] == 1
    assert request_ledger.get_request(db, request.id).reminder_evening_sent is False
    events = db.execute(
        select(SystemEvent).where(SystemEvent.event_type == EVENT_REMINDER_SEND_FAILURE)
    ).scalars().all()
    assert len(events) == 1

    notifier.failing_subjects.clear()
    assert run_reminder_tick(db, now=EVENING_TRIGGER + timedelta(minutes=1))["sent"] == 1
    assert request_ledger.get_request(db, request.id).reminder_evening_sent is True


def test_rejected_request_gets_no_reminders(db):
    request = _approved_request(db)
    booking_coordinator.reject(db, request.id, now=EVENING_TRIGGER - timedelta(hours=1))

    assert run_reminder_tick(db, now=EVENING_TRIGGER)["sent"] == 0


def test_reapproval_restarts_reminders(db, notifier):
    request = _approved_request(db)
    run_reminder_tick(db, now=EVENING_TRIGGER)
    assert request_ledger.get_request(db, request.id).reminder_evening_sent is True

    candidate = slot_store.create_slot(
        db, None, SLOT_START + timedelta(days=1), SLOT_START + timedelta(days=1, hours=1),
        now=EVENING_TRIGGER,
    )
    booking_coordinator.propose_move(db, request.id, candidate.id)
    booking_coordinator.confirm_move(db, request.id, now=EVENING_TRIGGER)

    stored = request_ledger.get_request(db, request.id)
    assert stored.reminder_evening_sent is False
    assert due_reminders(stored, EVENING_TRIGGER + timedelta(days=1)) == [REMINDER_EVENING]


def test_tick_uses_current_time_by_default(db):
    request = _approved_request(db)
    with freeze_time("2030-06-01 17:30:00"):
        summary = run_reminder_tick(db)
    assert summary["sent"] == 1
    assert request_ledger.get_request(db, request.id).reminder_evening_sent is True


def test_reminders_disabled_by_feature_flag(db, monkeypatch):
    _approved_request(db)
    monkeypatch.setattr(settings, "feature_reminders_enabled", False)
    assert run_reminder_tick(db, now=EVENING_TRIGGER)["sent"] == 0


def test_reminders_wait_while_notifications_disabled(db, notifier, monkeypatch):
    request = _approved_request(db)
    monkeypatch.setattr(settings, "feature_notifications_enabled", False)

    assert run_reminder_tick(db, now=EVENING_TRIGGER)["sent"] == 0
    assert request_ledger.get_request(db, request.id).reminder_evening_sent is False

    monkeypatch.setattr(settings, "feature_notifications_enabled", True)
    assert run_reminder_tick(db, now=EVENING_TRIGGER + timedelta(minutes=1))["sent"] == 1
    assert request_ledger.get_request(db, request.id).reminder_evening_sent is True
    reminders = [m for m in notifier.messages_for(SUBJECT_ID) if m.startswith("Reminder")]
    assert len(reminders) == 1
