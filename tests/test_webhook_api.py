"""Tests for the HTTP layer."""

import hashlib
import hmac
import json
import time

import pytest
from fastapi.testclient import TestClient

from models.events import EventKind, EventOutcome
from settings import Config
from storage.record_store import InMemoryRecordStore, SupabaseRecordStore
from webhook_api import app

WEBHOOK_SECRET = "whsec_test"


class RecordingDispatcher:
    """Stands in for EventDispatcher and remembers every envelope."""

    def __init__(self, error=None):
        self.error = error
        self.envelopes = []

    async def dispatch(self, envelope):
        self.envelopes.append(envelope)
        return EventOutcome(kind=EventKind.from_type(envelope.kind), error=self.error)


def sign(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(Config, "SUPABASE_URL", "")
    monkeypatch.setattr(Config, "SUPABASE_KEY", "")
    monkeypatch.setattr(Config, "STRIPE_WEBHOOK_SECRET", "")
    with TestClient(app) as test_client:
        yield test_client


class TestWebhookEndpoint:

    @pytest.mark.parametrize("event_type", [
        "payment_intent.created",
        "payment_intent.payment_failed",
        "payment_intent.succeeded",
        "charge.succeeded",
        "charge.failed",
        "checkout.session.completed",
        "invoice.paid",
    ])
    def test_acknowledges_every_kind(self, client, event_type):
        dispatcher = RecordingDispatcher()
        client.app.state.dispatcher = dispatcher

        response = client.post("/stripe_webhooks", json={
            "type": event_type,
            "data": {"object": {"id": "obj_1"}},
        })

        assert response.status_code == 200
        assert response.text == "Received webhook"
        [envelope] = dispatcher.envelopes
        assert envelope.kind == event_type
        assert envelope.payload["id"] == "obj_1"

    def test_pipeline_failure_still_acknowledged(self, client):
        client.app.state.dispatcher = RecordingDispatcher(error="StoreError: outage")

        response = client.post("/stripe_webhooks", json={"type": "charge.succeeded"})

        assert response.status_code == 200
        assert response.text == "Received webhook"

    def test_invalid_json_rejected(self, client):
        dispatcher = RecordingDispatcher()
        client.app.state.dispatcher = dispatcher

        response = client.post(
            "/stripe_webhooks",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert dispatcher.envelopes == []

    def test_charge_reaches_the_record_store(self, client):
        payload = {
            "type": "charge.succeeded",
            "data": {"object": {
                "id": "cus_1",
                "billing_details": {"email": "a@b.com", "name": "A B", "address": {"country": "NL"}},
                "amount_captured": 2500,
                "receipt_url": "http://r",
                "status": "succeeded",
            }},
        }

        response = client.post("/stripe_webhooks", json=payload)

        assert response.status_code == 200
        store = client.app.state.dispatcher.records.store
        [row] = store.rows("stripe_customer_data")
        assert row["amount_total"] == 25.0
        assert row["paid"] is True


class TestSignatureVerification:

    def test_valid_signature_accepted(self, client, monkeypatch):
        monkeypatch.setattr(Config, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
        dispatcher = RecordingDispatcher()
        client.app.state.dispatcher = dispatcher
        payload = json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": "checkout.session.completed",
            "data": {"object": {"payment_link": "plink_1", "customer_details": {"email": "a@b.com"}}},
        })

        response = client.post(
            "/stripe_webhooks",
            content=payload,
            headers={"Content-Type": "application/json", "Stripe-Signature": sign(payload)},
        )

        assert response.status_code == 200
        [envelope] = dispatcher.envelopes
        assert envelope.kind == "checkout.session.completed"
        assert envelope.payload["payment_link"] == "plink_1"
        assert envelope.payload["customer_details"]["email"] == "a@b.com"

    def test_bad_signature_rejected(self, client, monkeypatch):
        monkeypatch.setattr(Config, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
        dispatcher = RecordingDispatcher()
        client.app.state.dispatcher = dispatcher
        payload = json.dumps({"type": "charge.succeeded"})

        response = client.post(
            "/stripe_webhooks",
            content=payload,
            headers={"Content-Type": "application/json", "Stripe-Signature": sign(payload, "whsec_other")},
        )

        assert response.status_code == 400
        assert dispatcher.envelopes == []

    def test_missing_signature_rejected(self, client, monkeypatch):
        monkeypatch.setattr(Config, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)

        response = client.post("/stripe_webhooks", json={"type": "charge.succeeded"})

        assert response.status_code == 400


class TestServiceEndpoints:

    def test_health(self, client):
        response = client.get("/stripe_webhooks/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["pipeline_ready"] is True
        assert body["record_store"] == "in_memory"
        assert body["webhook_secret_configured"] is False

    def test_health_reports_the_store_in_use(self, client):
        client.app.state.record_store = SupabaseRecordStore("https://project.supabase.co", "service-key")

        body = client.get("/stripe_webhooks/health").json()

        assert body["record_store"] == "supabase"

    def test_health_without_store(self, client):
        client.app.state.record_store = None

        body = client.get("/stripe_webhooks/health").json()

        assert body["record_store"] == "unavailable"

    def test_lifespan_store_backs_the_dispatcher(self, client):
        store = client.app.state.record_store

        assert isinstance(store, InMemoryRecordStore)
        assert client.app.state.dispatcher.records.store is store

    def test_metrics(self, client):
        client.post("/stripe_webhooks", json={"type": "charge.failed"})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "stripe_sync_webhook_events_total" in response.text

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["webhook"] == "/stripe_webhooks"

    def test_dispatcher_missing_returns_503(self, client):
        client.app.state.dispatcher = None

        response = client.post("/stripe_webhooks", json={"type": "charge.failed"})

        assert response.status_code == 503
