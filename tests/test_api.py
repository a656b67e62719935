"""HTTP tests for the Lead Lifecycle Engine API."""

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from api.services import Services
from config.settings import Settings
from database.session import Database
from utils.exceptions import StorePermissionError
from tests.conftest import FakeCallProvider, call_ended_payload

WEBHOOK_HEADERS = {"x-webhook-secret": "hook-secret"}
OPERATOR_HEADERS = {"X-API-Key": "op-key"}
DISPATCH_HEADERS = {"Authorization": "Bearer cron-secret"}


def make_services(tmp_path, **overrides):
    options = dict(
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        webhook_secret="hook-secret",
        dispatch_secret="cron-secret",
        lead_engine_api_key="op-key",
        openai_api_key="",
    )
    options.update(overrides)
    settings = Settings(**options)
    db = Database(settings.database_url) if settings.database_url else None
    return Services(settings, db=db, call_provider=FakeCallProvider())


@pytest.fixture
def services(tmp_path):
    return make_services(tmp_path)


@pytest.fixture
def client(services):
    with TestClient(create_app(services=services)) as client:
        yield client


def create_manual_lead(client, phone="+1 555 000 0001", **fields):
    body = {"customer_name": "Ann Lee", "phone": phone, **fields}
    return client.post("/api/v1/leads/manual", json=body, headers=OPERATOR_HEADERS)


# ── Service endpoints ─────────────────────────────────

class TestServiceEndpoints:
    def test_root(self, client):
        assert client.get("/").json()["status"] == "operational"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["services"]["store"] is True
        assert data["services"]["translation"] is False
        assert data["status"] == "degraded"

    def test_metrics(self, client):
        client.get("/")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "lead_engine_http_requests_total" in response.text


# ── Call-ended webhook ────────────────────────────────

class TestCallEndedWebhook:
    def test_requires_secret(self, client):
        response = client.post("/api/v1/webhooks/call-ended", json=call_ended_payload())
        assert response.status_code == 401
        assert response.json() == {"ok": False, "error": "Invalid webhook secret", "reason": "unauthorized"}

    def test_wrong_secret(self, client):
        response = client.post(
            "/api/v1/webhooks/call-ended", json=call_ended_payload(), headers={"x-webhook-secret": "nope"}
        )
        assert response.status_code == 401

    def test_processes_event(self, client):
        response = client.post("/api/v1/webhooks/call-ended", json=call_ended_payload(), headers=WEBHOOK_HEADERS)
        assert response.status_code == 201
        body = response.json()
        assert body["ok"] is True
        assert body["message"] == "Lead lifecycle processed"
        data = body["data"]
        assert data["stage"] == "visit_scheduled"
        assert data["interest_label"] == "hot"
        assert data["created"] is True
        assert data["follow_up_due_at"].endswith("Z")

    def test_accepts_body_envelope(self, client):
        response = client.post(
            "/api/v1/webhooks/call-ended", json={"body": call_ended_payload()}, headers=WEBHOOK_HEADERS
        )
        assert response.status_code == 201

    def test_invalid_payload(self, client):
        payload = call_ended_payload()
        payload["call_duration"] = "long"
        response = client.post("/api/v1/webhooks/call-ended", json=payload, headers=WEBHOOK_HEADERS)
        assert response.status_code == 400
        body = response.json()
        assert body["reason"] == "invalid_payload"
        assert "call_duration" in body["details"]["fieldErrors"]

    def test_invalid_json(self, client):
        response = client.post(
            "/api/v1/webhooks/call-ended",
            content=b"{not json",
            headers={**WEBHOOK_HEADERS, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["reason"] == "invalid_payload"

    def test_open_when_no_secret_configured(self, tmp_path):
        services = make_services(tmp_path, webhook_secret=None)
        with TestClient(create_app(services=services)) as client:
            response = client.post("/api/v1/webhooks/call-ended", json=call_ended_payload())
        assert response.status_code == 201

    def test_store_not_configured(self, tmp_path):
        services = make_services(tmp_path, database_url=None)
        with TestClient(create_app(services=services)) as client:
            response = client.post("/api/v1/webhooks/call-ended", json=call_ended_payload(), headers=WEBHOOK_HEADERS)
        assert response.status_code == 503
        assert response.json()["reason"] == "store_not_configured"


# ── Dispatch trigger ──────────────────────────────────

class TestCallDispatchJob:
    def test_requires_secret(self, client):
        assert client.post("/api/v1/jobs/call-dispatch").status_code == 401

    @pytest.mark.parametrize("headers", [
        DISPATCH_HEADERS,
        {"x-dispatch-secret": "cron-secret"},
        {"x-cron-secret": "cron-secret"},
    ])
    def test_accepted_credentials(self, client, headers):
        response = client.post("/api/v1/jobs/call-dispatch", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["message"] == "No due follow-ups"

    def test_get_is_supported(self, client):
        assert client.get("/api/v1/jobs/call-dispatch", headers=DISPATCH_HEADERS).status_code == 200

    def test_blank_secret_denies(self, tmp_path):
        services = make_services(tmp_path, dispatch_secret="  ")
        with TestClient(create_app(services=services)) as client:
            response = client.post("/api/v1/jobs/call-dispatch")
        assert response.status_code == 401

    def test_dispatches_manual_lead(self, client, services):
        create_manual_lead(client)
        response = client.post("/api/v1/jobs/call-dispatch", headers=DISPATCH_HEADERS)
        data = response.json()["data"]
        assert data["seeded_follow_ups"] == 1
        assert data["dispatched"] == 1
        assert services.call_provider.requests[0].to_number == "+15550000001"

    def test_unconfigured_provider(self, client, services):
        services.call_provider.configured = False
        response = client.post("/api/v1/jobs/call-dispatch", headers=DISPATCH_HEADERS)
        assert response.status_code == 503
        assert response.json()["reason"] == "outbound_call_not_configured"


# ── Leads ─────────────────────────────────────────────

class TestLeads:
    def test_manual_requires_api_key(self, client):
        response = client.post("/api/v1/leads/manual", json={"customer_name": "Ann", "phone": "+15550000001"})
        assert response.status_code == 401

    def test_manual_create_then_update(self, client):
        first = create_manual_lead(client)
        second = create_manual_lead(client, phone="0015550000001", goal="rent villa")
        assert first.status_code == 201
        assert second.status_code == 200
        assert first.json()["data"]["id"] == second.json()["data"]["id"]
        assert second.json()["data"]["goal"] == "rent villa"

    def test_manual_invalid_phone(self, client):
        response = create_manual_lead(client, phone="12ab")
        assert response.status_code == 400
        assert "phone" in response.json()["details"]["fieldErrors"]

    def test_manual_with_dispatch_now(self, client):
        response = create_manual_lead(client, dispatch_now=True)
        assert response.status_code == 201
        assert response.json()["dispatch"]["ok"] is True
        assert response.json()["dispatch"]["data"]["dispatched"] == 1

    def test_delete(self, client):
        lead_id = create_manual_lead(client).json()["data"]["id"]
        assert client.delete(f"/api/v1/leads/{lead_id}", headers=OPERATOR_HEADERS).status_code == 200
        missing = client.delete(f"/api/v1/leads/{lead_id}", headers=OPERATOR_HEADERS)
        assert missing.status_code == 404
        assert missing.json()["reason"] == "not_found"

    def test_site_visit(self, client):
        lead_id = create_manual_lead(client).json()["data"]["id"]
        response = client.post(
            f"/api/v1/leads/{lead_id}/site-visits",
            json={"status": "scheduled", "scheduled_for": "2026-03-12T10:00:00Z"},
            headers=OPERATOR_HEADERS,
        )
        assert response.status_code == 201
        assert response.json()["data"]["stage"] == "visit_scheduled"

    def test_site_visit_unknown_lead(self, client):
        response = client.post(
            "/api/v1/leads/unknown/site-visits", json={"status": "completed"}, headers=OPERATOR_HEADERS
        )
        assert response.status_code == 404


# ── Dashboard ─────────────────────────────────────────

class TestDashboard:
    def test_metrics(self, client):
        create_manual_lead(client)
        client.post("/api/v1/webhooks/call-ended", json=call_ended_payload(), headers=WEBHOOK_HEADERS)
        body = client.get("/api/v1/dashboard/metrics", headers=OPERATOR_HEADERS).json()
        assert body["degraded"] is False
        data = body["data"]
        assert data["total_leads"] == 2
        assert data["stage_breakdown"]["new"] == 1
        assert data["stage_breakdown"]["visit_scheduled"] == 1
        assert data["interest_breakdown"]["hot"] == 1

    def test_degraded_on_permission_error(self, client, services, monkeypatch):
        async def denied(**kwargs):
            raise StorePermissionError("Unable to count leads: permission denied")

        monkeypatch.setattr(services.store.leads, "count", denied)
        body = client.get("/api/v1/dashboard/metrics", headers=OPERATOR_HEADERS).json()
        assert body["degraded"] is True
        assert body["data"]["total_leads"] == 0
