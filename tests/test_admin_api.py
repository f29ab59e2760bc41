"""
Tests for the admin API: error mapping, staff checks, session context endpoints.
"""

import pytest

from bookingbot.api.dependencies import get_sessions
from bookingbot.constants.statuses import STATUS_APPROVED, STATUS_PENDING
from bookingbot.core.config import settings
from bookingbot.main import app
from bookingbot.services.session_context import SessionStore
from tests.helpers.constants import STAFF_ID, SUBJECT_ID

STAFF = {"X-Staff-Id": str(STAFF_ID)}


def _submit(client, slot_id, subject_id=SUBJECT_ID):
    response = client.post("/requests", json={"subject_id": subject_id, "subject_handle": "client", "slot_id": slot_id})
    assert response.status_code == 201
    return response.json()


def test_create_slot_from_text(client):
    response = client.post("/admin/slots", json={"text": "25.12.2030 10:00-11:30"}, headers=STAFF)
    assert response.status_code == 201
    data = response.json()
    assert data["label"] == "25.12.2030 10:00-11:30"

    listed = client.get("/admin/slots").json()
    assert [s["id"] for s in listed] == [data["id"]]


def test_create_slot_bad_text_is_422(client):
    response = client.post("/admin/slots", json={"text": "25.12.2030 12:00-11:00"}, headers=STAFF)
    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION"


def test_create_overlapping_slot_is_422(client):
    client.post("/admin/slots", json={"text": "25.12.2030 10:00-11:00"}, headers=STAFF)
    response = client.post("/admin/slots", json={"text": "25.12.2030 10:30-11:30"}, headers=STAFF)
    assert response.status_code == 422


def test_create_slot_by_non_staff_is_403(client):
    response = client.post("/admin/slots", json={"text": "25.12.2030 10:00-11:00"}, headers={"X-Staff-Id": "555"})
    assert response.status_code == 403
    assert response.json()["error"] == "NOT_STAFF"


def test_approve_flow(client, make_slot, notifier):
    slot = make_slot(24)
    request = _submit(client, slot.id)
    assert request["status"] == STATUS_PENDING

    response = client.post(f"/admin/requests/{request['id']}/approve", headers=STAFF)
    assert response.status_code == 200
    assert response.json()["status"] == STATUS_APPROVED
    assert client.get("/slots").json() == []

    queue = client.get("/admin/requests", params={"status": STATUS_APPROVED}).json()
    assert [r["id"] for r in queue] == [request["id"]]


def test_approve_twice_is_409(client, make_slot):
    slot = make_slot(24)
    request = _submit(client, slot.id)
    client.post(f"/admin/requests/{request['id']}/approve")

    response = client.post(f"/admin/requests/{request['id']}/approve")
    assert response.status_code == 409
    assert response.json()["error"] == "INVALID_TRANSITION"


def test_approve_missing_request_is_404(client):
    response = client.post("/admin/requests/missing/approve")
    assert response.status_code == 404


def test_list_requests_unknown_status(client):
    assert client.get("/admin/requests", params={"status": "bogus"}).status_code == 422


def test_reject_with_reason_restores_slot(client, make_slot, notifier):
    slot = make_slot(24)
    request = _submit(client, slot.id)
    client.post(f"/admin/requests/{request['id']}/approve")

    response = client.post(f"/admin/requests/{request['id']}/reject", json={"reason": "Day off"})

    assert response.status_code == 200
    assert [s["id"] for s in client.get("/slots").json()] == [slot.id]
    assert any("Day off" in m for m in notifier.messages_for(SUBJECT_ID))


def test_complete_then_history_and_delete(client, make_slot):
    slot = make_slot(24)
    request = _submit(client, slot.id)
    client.post(f"/admin/requests/{request['id']}/approve")
    client.post(f"/admin/requests/{request['id']}/complete")

    history = client.get(f"/subjects/{SUBJECT_ID}/history").json()
    assert [h["outcome_label"] for h in history] == ["Completed"]

    assert client.delete(f"/admin/requests/{request['id']}").status_code == 200
    assert client.get(f"/admin/requests/{request['id']}").status_code == 404


def test_force_promote(client, make_slot):
    make_slot(24)
    later = make_slot(48)
    request = _submit(client, later.id)

    response = client.post(f"/admin/requests/{request['id']}/promote", headers=STAFF)
    assert response.json()["status"] == STATUS_PENDING


def test_reference_data_endpoints(client):
    created = client.post("/admin/procedures", json={"name": "Mesothreads"}, headers=STAFF).json()
    assert created["key"] == "mesothreads"
    assert [p["key"] for p in client.get("/procedures").json()] == ["mesothreads"]

    assert client.post("/admin/blacklist", json={"username": "@Spammer"}).json() == {"username": "spammer"}
    assert client.get("/admin/blacklist").json() == {"usernames": ["spammer"]}

    pattern = client.post("/admin/patterns", json={"name": "Day", "intervals": "10:00-11:00"}).json()
    result = client.post(f"/admin/patterns/{pattern['id']}/apply", json={"date": "2030-06-02"}).json()
    assert result == {"created": 1, "skipped": 0}


def test_blacklisted_submit_is_403(client, make_slot):
    slot = make_slot(24)
    client.post("/admin/blacklist", json={"username": "client"})
    response = client.post("/requests", json={"subject_id": SUBJECT_ID, "subject_handle": "@Client", "slot_id": slot.id})
    assert response.status_code == 403
    assert response.json()["error"] == "BLACKLISTED"


@pytest.fixture
def sessions():
    store = SessionStore(ttl_seconds=60)
    app.dependency_overrides[get_sessions] = lambda: store
    return store


def test_session_endpoints(client, sessions):
    response = client.put("/admin/session", json={"mode": "reject_reason", "data": {"request_id": "r1"}}, headers=STAFF)
    assert response.status_code == 200
    assert response.json()["mode"] == "reject_reason"

    current = client.get("/admin/session", headers=STAFF).json()
    assert current["data"] == {"request_id": "r1"}

    assert client.delete("/admin/session", headers=STAFF).json() == {"cleared": True}
    assert client.get("/admin/session", headers=STAFF).status_code == 404


def test_session_requires_staff_header(client, sessions):
    assert client.get("/admin/session").status_code == 400
    assert client.get("/admin/session", headers={"X-Staff-Id": "555"}).status_code == 403


def test_tick_endpoints(client):
    promotion = client.post("/admin/ticks/promotion").json()["promotion"]
    reminders = client.post("/admin/ticks/reminders").json()["reminders"]
    assert promotion["checked"] == 0
    assert reminders == {"checked": 0, "sent": 0, "failed": 0}


def test_events_endpoint(client, make_slot):
    make_slot(2)
    target = make_slot(5)
    request = _submit(client, target.id)
    client.delete(f"/admin/slots/{target.id}")
    client.post("/admin/ticks/promotion")

    events = client.get("/admin/events", params={"request_id": request["id"]}).json()
    assert [e["event_type"] for e in events] == ["promotion.rejected_slot_gone"]


def test_api_key_enforced_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", "secret")

    assert client.get("/admin/slots").status_code == 401
    assert client.get("/admin/slots", headers={"X-Admin-API-Key": "wrong"}).status_code == 403
    assert client.get("/admin/slots", headers={"X-Admin-API-Key": "secret"}).status_code == 200
    # Public read routes stay open
    assert client.get("/slots").status_code == 200
