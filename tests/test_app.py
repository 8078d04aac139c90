"""Tests for app-level behaviour: health, request ids and log masking."""

from diamondtier.logging_config import MASK, mask_sensitive


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] == "ok"


def test_request_id_is_generated(client):
    response = client.get("/health")
    assert len(response.headers["X-Request-ID"]) == 32


def test_request_id_is_propagated(client):
    response = client.get("/health", headers={"X-Request-ID": "edge-1234"})
    assert response.headers["X-Request-ID"] == "edge-1234"


def test_security_headers(client):
    response = client.get("/")

    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_unknown_route(client):
    assert client.get("/api/admin/does-not-exist").status_code == 404


class TestMaskSensitive:
    def test_credentials_masked(self):
        event = mask_sensitive(None, "info", {"event": "x", "password": "hunter2", "Token": "abc"})

        assert event["password"] == MASK
        assert event["Token"] == MASK
        assert event["event"] == "x"

    def test_email_partially_masked(self):
        event = mask_sensitive(None, "info", {"email": "jane@example.com", "to": "sam@carterlogistics.com"})

        assert event["email"] == f"j{MASK}@example.com"
        assert event["to"] == f"s{MASK}@carterlogistics.com"

    def test_other_values_untouched(self):
        event = mask_sensitive(None, "info", {"code": "ABC123", "email": None})
        assert event == {"code": "ABC123", "email": None}
