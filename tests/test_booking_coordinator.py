"""
Tests for BookingCoordinator: submit, approve, reject, resolve, delete, force promote.
"""

import pytest
from sqlalchemy import func, select

from bookingbot.constants.statuses import (
    STATUS_APPROVED,
    STATUS_COMPLETED,
    STATUS_CONDITIONAL,
    STATUS_NO_SHOW,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_RESERVED_LATER,
)
from bookingbot.core.config import settings
from bookingbot.db.models import Slot
from bookingbot.services import booking_coordinator, history_log, reference_data, request_ledger, slot_store
from bookingbot.services.booking_coordinator import Subject
from bookingbot.services.errors import (
    BLACKLISTED,
    DUPLICATE_REQUEST,
    INVALID_TRANSITION,
    NOT_STAFF,
    SLOT_GONE,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from tests.helpers.constants import STAFF_ID, SUBJECT_ID

SUBJECT = Subject(id=SUBJECT_ID, handle="client", name="Client Name")


def _slot_ids(db) -> set[str]:
    return set(db.execute(select(Slot.id)).scalars().all())


def test_submit_earliest_slot_is_pending(db, make_slot, notifier):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)

    assert request.status == STATUS_PENDING
    assert request.slot_label == slot.label
    assert notifier.messages_for(SUBJECT_ID)
    assert notifier.staff_messages


def test_submit_later_slot_is_deferred_and_leaves_slot_open(db, make_slot):
    make_slot(24)
    later = make_slot(48)

    request = booking_coordinator.submit(db, SUBJECT, later.id)

    assert request.status == STATUS_CONDITIONAL
    assert later.id in _slot_ids(db)


def test_submit_later_slot_uses_configured_deferred_status(db, make_slot, monkeypatch):
    monkeypatch.setattr(settings, "deferred_status", STATUS_RESERVED_LATER)
    make_slot(24)
    later = make_slot(48)

    request = booking_coordinator.submit(db, SUBJECT, later.id)
    assert request.status == STATUS_RESERVED_LATER


def test_submit_missing_slot(db):
    with pytest.raises(ConflictError) as exc_info:
        booking_coordinator.submit(db, SUBJECT, "missing")
    assert exc_info.value.code == SLOT_GONE


def test_submit_duplicate_request(db, make_slot):
    slot = make_slot(24)
    booking_coordinator.submit(db, SUBJECT, slot.id)
    with pytest.raises(ConflictError) as exc_info:
        booking_coordinator.submit(db, SUBJECT, slot.id)
    assert exc_info.value.code == DUPLICATE_REQUEST


def test_submit_again_after_rejection_is_allowed(db, make_slot):
    slot = make_slot(24)
    first = booking_coordinator.submit(db, SUBJECT, slot.id)
    booking_coordinator.reject(db, first.id)

    second = booking_coordinator.submit(db, SUBJECT, slot.id)
    assert second.id != first.id


def test_submit_blacklisted(db, make_slot):
    slot = make_slot(24)
    reference_data.add_to_blacklist(db, "@Client")
    with pytest.raises(PermissionDeniedError) as exc_info:
        booking_coordinator.submit(db, SUBJECT, slot.id)
    assert exc_info.value.code == BLACKLISTED
    assert request_ledger.list_for_subject(db, SUBJECT_ID) == []


def test_submit_with_procedure(db, make_slot):
    slot = make_slot(24)
    procedure = reference_data.add_procedure(db, "Mesothreads")
    request = booking_coordinator.submit(db, SUBJECT, slot.id, procedure_key=procedure.key)
    assert request.procedure_name == "Mesothreads"


def test_submit_unknown_procedure(db, make_slot):
    slot = make_slot(24)
    with pytest.raises(NotFoundError):
        booking_coordinator.submit(db, SUBJECT, slot.id, procedure_key="nope")


def test_approve_claims_slot_and_resets_reminders(db, make_slot, notifier):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    request_ledger.update_request(db, request.id, reminder_final_sent=True)
    db.commit()

    approved = booking_coordinator.approve(db, request.id, actor_id=STAFF_ID)

    assert approved.status == STATUS_APPROVED
    assert approved.original_slot_id == slot.id
    assert approved.reminder_evening_sent is False
    assert approved.reminder_final_sent is False
    assert _slot_ids(db) == set()
    assert any("confirmed" in m for m in notifier.messages_for(SUBJECT_ID))


def test_approve_vanished_slot_still_succeeds(db, make_slot):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    slot_store.delete_slot(db, slot.id)

    approved = booking_coordinator.approve(db, request.id)
    assert approved.status == STATUS_APPROVED
    assert approved.original_slot_id is None


def test_approve_twice_is_conflict(db, make_slot):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    booking_coordinator.approve(db, request.id)
    with pytest.raises(ConflictError) as exc_info:
        booking_coordinator.approve(db, request.id)
    assert exc_info.value.code == INVALID_TRANSITION


def test_approve_missing_request(db):
    with pytest.raises(NotFoundError):
        booking_coordinator.approve(db, "missing")


def test_approve_by_non_staff(db, make_slot):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    with pytest.raises(PermissionDeniedError) as exc_info:
        booking_coordinator.approve(db, request.id, actor_id=SUBJECT_ID)
    assert exc_info.value.code == NOT_STAFF
    assert request_ledger.get_request(db, request.id).status == STATUS_PENDING


def test_reject_approved_restores_slot(db, make_slot, notifier):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    booking_coordinator.approve(db, request.id)

    rejected = booking_coordinator.reject(db, request.id, reason="Master is ill")

    assert rejected.status == STATUS_REJECTED
    assert _slot_ids(db) == {slot.id}
    assert any("Master is ill" in m for m in notifier.messages_for(SUBJECT_ID))


def test_double_reject_does_not_duplicate_slot(db, make_slot):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    booking_coordinator.approve(db, request.id)

    booking_coordinator.reject(db, request.id)
    again = booking_coordinator.reject(db, request.id)

    assert again.status == STATUS_REJECTED
    assert db.execute(select(func.count()).select_from(Slot)).scalar() == 1


def test_reject_pending_keeps_open_slot(db, make_slot):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    booking_coordinator.reject(db, request.id)
    assert _slot_ids(db) == {slot.id}


def test_reject_completed_is_conflict(db, make_slot):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    booking_coordinator.approve(db, request.id)
    booking_coordinator.complete(db, request.id)
    with pytest.raises(ConflictError):
        booking_coordinator.reject(db, request.id)


def test_complete_appends_history(db, make_slot, notifier):
    slot = make_slot(24)
    procedure = reference_data.add_procedure(db, "Botulinum therapy")
    request = booking_coordinator.submit(db, SUBJECT, slot.id, procedure_key=procedure.key)
    booking_coordinator.approve(db, request.id)

    completed = booking_coordinator.complete(db, request.id)

    assert completed.status == STATUS_COMPLETED
    entries = history_log.list_for_subject(db, SUBJECT_ID)
    assert len(entries) == 1
    assert entries[0].outcome_label == "Completed"
    assert entries[0].procedure_label == "Botulinum therapy"
    assert entries[0].date_label == slot.label
    assert _slot_ids(db) == set()


def test_mark_no_show_appends_history(db, make_slot):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    booking_coordinator.approve(db, request.id)

    result = booking_coordinator.mark_no_show(db, request.id)

    assert result.status == STATUS_NO_SHOW
    assert history_log.list_for_subject(db, SUBJECT_ID)[0].outcome_label == "No-show"


def test_complete_requires_approved(db, make_slot):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    with pytest.raises(ConflictError):
        booking_coordinator.complete(db, request.id)
    assert history_log.list_for_subject(db, SUBJECT_ID) == []


def test_delete_record_terminal_only(db, make_slot):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    with pytest.raises(ConflictError):
        booking_coordinator.delete_record(db, request.id)

    request_id = request.id
    booking_coordinator.reject(db, request_id)
    booking_coordinator.delete_record(db, request_id)
    assert request_ledger.get_request(db, request_id) is None


def test_force_promote_deferred(db, make_slot, notifier):
    make_slot(24)
    later = make_slot(48)
    request = booking_coordinator.submit(db, SUBJECT, later.id)

    promoted = booking_coordinator.force_promote(db, request.id, actor_id=STAFF_ID)

    assert promoted.status == STATUS_PENDING
    assert any("awaiting confirmation" in m for m in notifier.messages_for(SUBJECT_ID))


def test_force_promote_pending_is_conflict(db, make_slot):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    with pytest.raises(ConflictError):
        booking_coordinator.force_promote(db, request.id)


def test_notification_failure_does_not_undo_transition(db, make_slot, notifier):
    slot = make_slot(24)
    request = booking_coordinator.submit(db, SUBJECT, slot.id)
    notifier.failing_subjects.add(SUBJECT_ID)

    approved = booking_coordinator.approve(db, request.id)

    assert approved.status == STATUS_APPROVED
    assert request_ledger.get_request(db, request.id).status == STATUS_APPROVED
