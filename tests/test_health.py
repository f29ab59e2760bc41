"""
Tests for health and readiness endpoints.
"""


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["features"]["promotion_enabled"] is True
    assert data["schedulers"]["enabled"] is False


def test_ready(client):
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "database": "connected"}
