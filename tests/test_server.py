"""Tests for the verify/result HTTP endpoints."""

import time

import pytest
from starlette.testclient import TestClient

from conftest import make_payload
from nexid.config import Settings
from nexid.lists import ListSet
from nexid.server import create_app


def poll_until_done(client: TestClient, request_id: str, timeout_s: float = 3.0):
    deadline = time.monotonic() + timeout_s
    while True:
        response = client.get(f"/identity/result/{request_id}")
        if response.status_code == 200 or time.monotonic() > deadline:
            return response
        time.sleep(0.02)


@pytest.fixture
def client():
    return TestClient(create_app(Settings()))


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestVerifySync:
    """Synchronous verification."""

    def test_scenario_a(self, client):
        response = client.post("/identity/verify", json=make_payload())

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "allow"
        assert data["score"] == 77
        assert data["reasons"] == ["ok"]
        assert data["context"] == "login"
        assert data["requestId"]
        assert isinstance(data["timestamp"], int)

    def test_request_ids_are_unique(self, client):
        ids = {client.post("/identity/verify", json=make_payload()).json()["requestId"] for _ in range(5)}
        assert len(ids) == 5

    def test_blocked_ip_from_forwarded_for(self):
        settings = Settings(lists=ListSet(blocked_ips=frozenset({"6.6.6.6"})))
        client = TestClient(create_app(settings))

        response = client.post(
            "/identity/verify",
            json=make_payload(context="checkout"),
            headers={"X-Forwarded-For": " 6.6.6.6 , 10.0.0.9"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "deny"
        assert response.json()["score"] == 10
        assert response.json()["reasons"] == ["blocked_ip"]
        assert response.json()["context"] == "checkout"

    def test_scenario_c(self, client):
        payload = make_payload(page_time_ms=1000, mouse_moves=1, tab_inactive_ms=70000)
        data = client.post("/identity/verify", json=payload).json()

        assert data["status"] == "deny"
        assert data["reasons"] == ["long_inactive_tab", "low_page_time", "low_mouse_activity"]


class TestValidation:
    """Payload validation."""

    @pytest.mark.parametrize("field", [
        "userAgent", "languages", "timezone", "screen", "platform", "sessionId",
        "pageTimeMs", "mouseMoves", "tabInactiveMs", "lastActivityTs", "sdkVersion",
    ])
    def test_missing_snapshot_field(self, client, field):
        payload = make_payload()
        del payload["snapshot"][field]

        response = client.post("/identity/verify", json=payload)

        assert response.status_code == 400
        assert response.json() == {"error": "invalid_payload"}

    def test_unknown_context(self, client):
        response = client.post("/identity/verify", json=make_payload(context="signup"))
        assert response.status_code == 400
        assert response.json() == {"error": "invalid_payload"}

    def test_missing_snapshot(self, client):
        response = client.post("/identity/verify", json={"context": "login"})
        assert response.status_code == 400

    def test_negative_counter(self, client):
        response = client.post("/identity/verify", json=make_payload(mouse_moves=-1))
        assert response.status_code == 400

    def test_not_json(self, client):
        response = client.post(
            "/identity/verify",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "invalid_payload"}

    def test_json_array(self, client):
        response = client.post("/identity/verify", json=[1, 2, 3])
        assert response.status_code == 400

    def test_boolean_counter(self, client):
        response = client.post("/identity/verify", json=make_payload(mouse_moves=True))
        assert response.status_code == 400
        assert response.json() == {"error": "invalid_payload"}

    def test_boolean_screen_size(self, client):
        payload = make_payload(screen={"w": True, "h": 1080, "dpr": 1})
        response = client.post("/identity/verify", json=payload)
        assert response.status_code == 400

    def test_oversized_body(self, client):
        response = client.post("/identity/verify", json=make_payload(userAgent="A" * 200_000))
        assert response.status_code == 400
        assert response.json() == {"error": "invalid_payload"}


class TestAuth:
    """API key and origin checks."""

    @pytest.fixture
    def secured(self):
        settings = Settings(api_key="k-123", allow_origin="https://shop.example.com")
        return TestClient(create_app(settings))

    def test_missing_credentials(self, secured):
        response = secured.post("/identity/verify", json=make_payload())
        assert response.status_code == 401
        assert response.json() == {"error": "unauthorized"}

    def test_wrong_key(self, secured):
        response = secured.post("/identity/verify", json=make_payload(), headers={"X-API-Key": "nope"})
        assert response.status_code == 401

    def test_api_key(self, secured):
        response = secured.post("/identity/verify", json=make_payload(), headers={"X-API-Key": "k-123"})
        assert response.status_code == 200

    def test_allowed_origin(self, secured):
        response = secured.post(
            "/identity/verify",
            json=make_payload(),
            headers={"Origin": "https://shop.example.com"},
        )
        assert response.status_code == 200

    def test_allowed_referer(self, secured):
        response = secured.post(
            "/identity/verify",
            json=make_payload(),
            headers={"Referer": "https://shop.example.com/checkout?step=2"},
        )
        assert response.status_code == 200

    def test_other_origin(self, secured):
        response = secured.post(
            "/identity/verify",
            json=make_payload(),
            headers={"Origin": "https://evil.example.com"},
        )
        assert response.status_code == 401

    def test_auth_checked_before_validation(self, secured):
        response = secured.post("/identity/verify", json={"context": "nope"})
        assert response.status_code == 401

    def test_non_ascii_key_rejected(self, secured):
        response = secured.post(
            "/identity/verify",
            json=make_payload(),
            headers={"X-API-Key": "k\u00e9y".encode("latin-1")},
        )
        assert response.status_code == 401
        assert response.json() == {"error": "unauthorized"}

    def test_non_ascii_configured_key(self):
        client = TestClient(create_app(Settings(api_key="k\u00e9y")))

        ok = client.post("/identity/verify", json=make_payload(), headers={"X-API-Key": "k\u00e9y".encode("utf-8")})
        wrong = client.post("/identity/verify", json=make_payload(), headers={"X-API-Key": "key"})

        assert ok.status_code == 200
        assert wrong.status_code == 401


class TestRateLimit:
    """Per-client rate limiting."""

    @pytest.fixture
    def limited(self):
        return TestClient(create_app(Settings(rate_limit_max=2)))

    def test_rejects_over_limit(self, limited):
        for _ in range(2):
            assert limited.post("/identity/verify", json=make_payload()).status_code == 200

        response = limited.post("/identity/verify", json=make_payload())
        assert response.status_code == 429
        assert response.json() == {"error": "rate_limited"}

    def test_limit_checked_before_validation(self, limited):
        for _ in range(2):
            limited.post("/identity/verify", json={})

        response = limited.post("/identity/verify", json={})
        assert response.status_code == 429

    def test_keyed_by_forwarded_address(self, limited):
        for _ in range(3):
            limited.post("/identity/verify", json=make_payload(), headers={"X-Forwarded-For": "1.1.1.1"})

        response = limited.post("/identity/verify", json=make_payload(), headers={"X-Forwarded-For": "2.2.2.2"})
        assert response.status_code == 200


class TestVerifyAsync:
    """Async mode with polling."""

    @pytest.fixture
    def async_app(self):
        return create_app(Settings(async_delay_ms=50))

    def test_placeholder_then_result(self, async_app):
        """Scenario D."""
        with TestClient(async_app) as client:
            response = client.post("/identity/verify?async=1", json=make_payload())

            assert response.status_code == 202
            placeholder = response.json()
            request_id = placeholder["requestId"]
            assert placeholder == {
                "status": "review",
                "score": 0,
                "reasons": ["processing"],
                "requestId": request_id,
            }

            final = poll_until_done(client, request_id)
            assert final.status_code == 200
            assert final.json()["status"] == "allow"
            assert final.json()["score"] == 77
            assert final.json()["requestId"] == request_id

    def test_header_flag(self, async_app):
        with TestClient(async_app) as client:
            response = client.post("/identity/verify", json=make_payload(), headers={"X-Async": "true"})
            assert response.status_code == 202
            assert response.json()["reasons"] == ["processing"]

    def test_polling_is_idempotent(self, async_app):
        with TestClient(async_app) as client:
            request_id = client.post("/identity/verify?async=1", json=make_payload()).json()["requestId"]
            first = poll_until_done(client, request_id)
            second = client.get(f"/identity/result/{request_id}")

            assert first.status_code == second.status_code == 200
            assert first.content == second.content

    def test_pending_poll_reports_processing(self):
        app = create_app(Settings(async_delay_ms=1000))
        with TestClient(app) as client:
            request_id = client.post("/identity/verify?async=1", json=make_payload()).json()["requestId"]
            response = client.get(f"/identity/result/{request_id}")

            assert response.status_code == 202
            assert response.json() == {"status": "processing", "requestId": request_id}

        # shutdown waits for the job instead of dropping it
        assert app.state.results.get(request_id) is not None

    def test_unknown_id(self, client):
        response = client.get("/identity/result/does-not-exist")
        assert response.status_code == 202
        assert response.json() == {"status": "processing", "requestId": "does-not-exist"}
