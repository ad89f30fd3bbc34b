"""Tests de la API REST y del endpoint WebSocket."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from scalpgate.container import Container
from scalpgate.presentation.api import routes
from scalpgate.shared.config.settings import Settings


@pytest.fixture
def container() -> Container:
    return Container(settings=Settings(feed_live_enabled=False, feed_seed=7))


@pytest.fixture
def client(container):
    routes.init_routes(
        container.ws_manager,
        container.feed,
        container.scheduler,
        container.risk_store,
        container.calendar,
        indicator_state=container.indicator_state,
    )
    app = FastAPI()
    app.include_router(routes.router)
    with TestClient(app) as test_client:
        yield test_client
    routes.init_routes(None, None, None, None, None)


def test_health(client) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "scalpgate"}


def test_status_reports_components(client) -> None:
    data = client.get("/api/status").json()
    assert data["feed"]["mode"] == "synthetic"
    assert data["scheduler"]["running"] is False
    assert set(data["market"]) == {"is_open", "session", "is_liquid_window", "time_ist", "minutes_to_close"}
    assert data["websocket"]["clients"] == 0


def test_market_status(client) -> None:
    data = client.get("/api/market/status").json()
    assert {"session", "is_liquid_window", "event_filter", "upcoming_events", "next_expiry"} <= set(data)
    assert data["event_filter"]["status"] in {"CLEAR", "CAUTION", "BLOCKED"}


class TestRiskEndpoints:
    def test_emergency_stop_and_resume(self, client) -> None:
        response = client.post("/api/risk/emergency-stop", json={"reason": "drawdown"})
        assert response.json() == {"emergency_stop": True, "reason": "drawdown"}

        risk = client.get("/api/risk").json()
        assert risk["emergency_stop"] is True
        assert risk["emergency_reason"] == "drawdown"

        assert client.post("/api/risk/resume").status_code == 200
        second = client.post("/api/risk/resume")
        assert second.status_code == 409
        assert second.json()["detail"]["error"] == "RISK_VIOLATION"

    def test_default_reason(self, client, container) -> None:
        client.post("/api/risk/emergency-stop", json={})
        assert container.risk_store.snapshot().emergency_reason == "manual"


class TestFeedEndpoint:
    def test_toggle_live_mode(self, client, container) -> None:
        assert client.post("/api/feed/live", json={"enabled": True}).json()["mode"] == "live"
        assert container.feed.is_live
        assert client.post("/api/feed/live", json={"enabled": False}).json()["mode"] == "synthetic"

    def test_invalid_body(self, client) -> None:
        assert client.post("/api/feed/live", json={}).status_code == 422


class TestSignals:
    def test_recent_signals_empty(self, client) -> None:
        assert client.get("/api/signals/recent").json() == {"count": 0, "signals": []}

    def test_count_is_bounded(self, client) -> None:
        assert client.get("/api/signals/recent", params={"count": 0}).status_code == 422


def test_uninitialised_components_return_503() -> None:
    routes.init_routes(None, None, None, None, None)
    app = FastAPI()
    app.include_router(routes.router)
    with TestClient(app) as test_client:
        assert test_client.get("/api/risk").status_code == 503
        assert test_client.get("/api/status").status_code == 503


def test_websocket_subscribe_ack(client, container) -> None:
    with client.websocket_connect("/ws/signals") as ws:
        ws.send_json({"subscribe": "nifty"})
        assert ws.receive_json() == {"type": "subscribed", "instrument": "NIFTY"}
        assert container.ws_manager.client_count == 1
