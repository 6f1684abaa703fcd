"""
Unit tests for Shipment Relay FastAPI endpoints.

Tests cover:
- Ingress (single object, array, malformed bodies)
- Health check (healthy/degraded/unhealthy)
- Dispatch endpoints (stats, last cycle, manual run)
- Error handlers
"""

from contextlib import asynccontextmanager
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from apps.shipment_relay.dispatcher import ShipmentDispatcher
from apps.shipment_relay.shipment_queue import ShipmentQueue


@pytest.fixture()
def test_client():
    """FastAPI test client with the dispatch loop disabled."""

    @asynccontextmanager
    async def mock_lifespan(app):
        yield

    with patch("apps.shipment_relay.main.lifespan", mock_lifespan):
        from apps.shipment_relay.main import app

        return TestClient(app, raise_server_exceptions=False)


@pytest.fixture()
def queue():
    """Fresh module-level queue for each test."""
    fresh = ShipmentQueue()
    with patch("apps.shipment_relay.main.shipment_queue", fresh):
        yield fresh


@pytest.fixture()
def dispatcher(queue, account_directory, gateway):
    active = ShipmentDispatcher(queue, account_directory, gateway)
    with (
        patch("apps.shipment_relay.main.dispatcher", active),
        patch("apps.shipment_relay.main.directory", account_directory),
    ):
        yield active


SHIPMENT = {
    "source_id": "21633-100",
    "tracking_number": "1Z999AA10123456784",
    "carrier_code": "UPS",
    "shipment_method": "Ground",
}


class TestIngress:
    def test_single_object_is_queued(self, test_client, queue):
        response = test_client.post("/", json=SHIPMENT)

        assert response.status_code == 202
        assert response.json() == {
            "message": "Shipments queued for processing",
            "queued": 1,
            "queue_depth": 1,
        }
        [event] = queue.drain()
        assert event.external_reference == "21633-100"
        assert event.tracking_number == "1Z999AA10123456784"

    def test_array_is_queued_in_order(self, test_client, queue):
        second = {**SHIPMENT, "source_id": "40348-7", "tracking_number": "9400"}

        response = test_client.post("/", json=[SHIPMENT, second])

        assert response.status_code == 202
        assert response.json()["queued"] == 2
        assert [e.external_reference for e in queue.drain()] == ["21633-100", "40348-7"]

    def test_depth_accumulates_across_requests(self, test_client, queue):
        test_client.post("/", json=SHIPMENT)
        response = test_client.post("/", json=[SHIPMENT, SHIPMENT])

        assert response.json()["queue_depth"] == 3

    def test_invalid_json_rejected(self, test_client, queue):
        response = test_client.post(
            "/", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request payload"
        assert len(queue) == 0

    @pytest.mark.parametrize("body", ["just a string", 42, True])
    def test_non_shipment_body_rejected(self, test_client, queue, body):
        response = test_client.post("/", json=body)

        assert response.status_code == 400
        assert "shipment object or an array" in response.json()["detail"]
        assert len(queue) == 0

    def test_invalid_item_rejects_whole_request(self, test_client, queue):
        bad = {"source_id": "21633-101"}

        response = test_client.post("/", json=[SHIPMENT, bad])

        assert response.status_code == 400
        body = response.json()
        assert body["errors"][0]["loc"] == [1, "tracking_number"]
        assert len(queue) == 0

    def test_unexpected_error_returns_500(self, test_client):
        broken = Mock()
        broken.enqueue.side_effect = RuntimeError("queue exploded")

        with patch("apps.shipment_relay.main.shipment_queue", broken):
            response = test_client.post("/", json=SHIPMENT)

        assert response.status_code == 500
        assert response.json() == {"message": "Internal Server Error", "error": "queue exploded"}

    def test_unexpected_error_echoes_trace_id(self, test_client):
        broken = Mock()
        broken.enqueue.side_effect = RuntimeError("queue exploded")

        with patch("apps.shipment_relay.main.shipment_queue", broken):
            response = test_client.post("/", json=SHIPMENT, headers={"X-Trace-ID": "t-1"})

        assert response.status_code == 500
        assert response.headers["X-Trace-ID"] == "t-1"

    def test_numeric_tracking_number_is_accepted(self, test_client, queue):
        response = test_client.post(
            "/", json={"source_id": "21633-1", "tracking_number": 1234567}
        )

        assert response.status_code == 202
        [event] = queue.drain()
        assert event.tracking_number == "1234567"


class TestHealthCheck:
    def test_unhealthy_before_startup(self, test_client, queue):
        with (
            patch("apps.shipment_relay.main.dispatcher", None),
            patch("apps.shipment_relay.main.directory", None),
        ):
            response = test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["scheduler_running"] is False
        assert data["configured_accounts"] == 0

    def test_degraded_when_loop_stopped(self, test_client, dispatcher):
        response = test_client.get("/health")

        data = response.json()
        assert data["status"] == "degraded"
        assert data["configured_accounts"] == 3
        assert data["accounts_missing_credentials"] == 1
        assert data["last_cycle_at"] is None

    def test_healthy_when_loop_running(self, test_client, dispatcher, monkeypatch):
        monkeypatch.setattr(dispatcher, "_running", True)

        response = test_client.get("/health")

        assert response.json()["status"] == "healthy"

    def test_reports_queue_depth(self, test_client, dispatcher, queue, make_event):
        queue.enqueue([make_event("21633-1"), make_event("21633-2")])

        assert test_client.get("/health").json()["queue_depth"] == 2


class TestDispatchEndpoints:
    def test_endpoints_unavailable_before_startup(self, test_client):
        with patch("apps.shipment_relay.main.dispatcher", None):
            assert test_client.get("/api/v1/dispatch/stats").status_code == 503
            assert test_client.get("/api/v1/dispatch/last").status_code == 503
            assert test_client.post("/api/v1/dispatch/run").status_code == 503

    def test_last_cycle_not_found(self, test_client, dispatcher):
        response = test_client.get("/api/v1/dispatch/last")

        assert response.status_code == 404
        assert response.json()["detail"] == "No dispatch cycle has run yet"

    def test_run_with_empty_queue(self, test_client, dispatcher, gateway):
        response = test_client.post("/api/v1/dispatch/run")

        assert response.status_code == 200
        assert response.json() == {"status": "empty", "result": None}
        assert gateway.resolve_calls == []

    def test_run_dispatches_queued_shipments(self, test_client, dispatcher, gateway):
        test_client.post("/", json=[SHIPMENT, {**SHIPMENT, "source_id": "99999-1"}])

        response = test_client.post("/api/v1/dispatch/run")

        data = response.json()
        assert data["status"] == "completed"
        assert data["result"]["num_drained"] == 2
        kinds = [o["failure_kind"] for o in data["result"]["outcomes"]]
        assert "invalid_account" in kinds
        assert [s.order_id for s in gateway.submitted_for("21633")] == ["order-100"]

        last = test_client.get("/api/v1/dispatch/last")
        assert last.status_code == 200
        assert last.json()["cycle_id"] == data["result"]["cycle_id"]

    def test_run_skipped_while_cycle_in_progress(self, test_client, dispatcher, monkeypatch):
        monkeypatch.setattr(
            ShipmentDispatcher, "cycle_in_progress", property(lambda self: True)
        )

        async def no_cycle():
            return None

        monkeypatch.setattr(dispatcher, "trigger", no_cycle)

        response = test_client.post("/api/v1/dispatch/run")

        assert response.json()["status"] == "skipped"

    def test_stats(self, test_client, dispatcher):
        response = test_client.get("/api/v1/dispatch/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["running"] is False
        assert data["concurrency_limit"] == 10
        assert data["cycles_completed"] == 0


class TestMetricsEndpoint:
    def test_exposes_relay_metrics(self, test_client):
        response = test_client.get("/metrics/")

        assert response.status_code == 200
        assert "shipment_relay_shipments_enqueued_total" in response.text
        assert "shipment_relay_dispatch_cycles_total" in response.text
        assert "shipment_relay_resolutions_in_flight" in response.text
