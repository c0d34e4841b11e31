"""
TicketLink - Incident Correlator API Tests
==========================================
"""

import pytest
from fastapi.testclient import TestClient

import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, os.path.dirname(__file__))

from src.core.correlation_loop import CorrelationLoop
from src.core.ticket_store import TicketStoreError

from test_incident_correlator import FakeTicketStore, candidate, problem


@pytest.fixture
def store():
    return FakeTicketStore(
        problems=[problem(100, "PT - TVP Down for all users")],
        candidates=[candidate(201, "Page not loading at all")],
    )


@pytest.fixture
def client(store):
    """TestClient without lifespan, wired to a loop over the fake store."""
    from src.main import app

    app.state.correlation_loop = CorrelationLoop(store)
    app.state.polling_task = None
    return TestClient(app)


class TestHealth:
    """Tests for health endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready_reports_loop_state(self, client):
        response = client.get("/ready")

        body = response.json()
        assert body["polling_active"] is False
        assert body["active_incidents"] == 0
        assert body["cycles_completed"] == 0


class TestCycleEndpoints:
    """Tests for triggering cycles and reading their results."""

    def test_trigger_cycle_then_list_incidents(self, client, store):
        response = client.post("/api/v1/cycles")

        assert response.status_code == 200
        report = response.json()
        assert report["discovered"] == [100]
        assert report["links"] == {"201": 100}

        incidents = client.get("/api/v1/incidents").json()
        assert incidents["total"] == 1
        assert incidents["incidents"][0]["incident_id"] == 100
        assert incidents["incidents"][0]["linked_count"] == 1
        assert incidents["incidents"][0]["profile"]["pattern_name"] == "platform_down"
        assert store.linked == [(201, 100)]

    def test_get_incident_not_found(self, client):
        response = client.get("/api/v1/incidents/999")

        assert response.status_code == 404

    def test_events_after_cycle(self, client):
        client.post("/api/v1/cycles")

        events = client.get("/api/v1/events", params={"limit": 2}).json()

        assert events["total"] == 2
        assert [e["kind"] for e in events["events"]] == ["ticket_matched", "cycle_summary"]

    def test_store_failure_returns_bad_gateway(self, client, store):
        store.link_error = TicketStoreError("Zendesk API 500", status_code=500)

        response = client.post("/api/v1/cycles")

        assert response.status_code == 502

    def test_failed_manual_cycle_is_recorded(self, client, store):
        store.link_error = TicketStoreError("Zendesk API 500", status_code=500)

        client.post("/api/v1/cycles")

        assert client.get("/ready").json()["cycles_failed"] == 1
        last = client.get("/api/v1/events", params={"limit": 1}).json()["events"][0]
        assert last["kind"] == "cycle_failed"
        assert last["stage"] == "scan"
        assert "Zendesk API 500" in last["error"]
