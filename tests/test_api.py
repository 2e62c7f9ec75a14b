"""
test_api.py — Control surface, listings and health endpoint.

The app is built with in-memory collaborators and auto-start disabled,
then driven through FastAPI's TestClient (which runs the lifespan).
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from message_sender.core.config import DeliveryConfig
from message_sender.main import create_app
from message_sender.messages.models import Message, MessageStatus

from tests.conftest import FakeCache, FakeStore, ScriptedSender


def _sent(mid: int) -> Message:
    return Message(
        id=mid, phone_number=f"+8490000000{mid}", content=f"msg {mid}",
        status=MessageStatus.SENT, sent_at=datetime(2025, 10, 19, tzinfo=timezone.utc),
    )


@pytest.fixture
def store() -> FakeStore:
    msgs = [_sent(i) for i in range(1, 6)]
    msgs.append(Message(id=6, phone_number="+1", content="nope", status=MessageStatus.FAILED))
    return FakeStore(msgs)


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def client(store, cache):
    app = create_app(
        repository=store,
        cache=cache,
        sender=ScriptedSender(),
        config=DeliveryConfig(send_interval=60.0),
        auto_start=False,
    )
    with TestClient(app) as c:
        yield c


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Scheduler control
# ═══════════════════════════════════════════════════════════════════════════

class TestSchedulerEndpoints:

    def test_status_initially_stopped(self, client):
        r = client.get("/api/v1/scheduler/status")
        assert r.status_code == 200
        assert r.json()["running"] is False

    def test_start_and_stop(self, client):
        r = client.post("/api/v1/scheduler/start")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "success"
        assert body["message"] == "Scheduler started successfully"
        assert "time" in body
        assert client.get("/api/v1/scheduler/status").json()["running"] is True

        r = client.post("/api/v1/scheduler/stop")
        assert r.status_code == 200
        assert r.json()["message"] == "Scheduler stopped successfully"
        assert client.get("/api/v1/scheduler/status").json()["running"] is False

    def test_repeated_start_and_stop_succeed(self, client):
        assert client.post("/api/v1/scheduler/start").status_code == 200
        assert client.post("/api/v1/scheduler/start").status_code == 200
        assert client.post("/api/v1/scheduler/stop").status_code == 200
        assert client.post("/api/v1/scheduler/stop").status_code == 200

    def test_request_id_echoed(self, client):
        r = client.get("/api/v1/scheduler/status", headers={"X-Request-ID": "req-123"})
        assert r.headers["X-Request-ID"] == "req-123"
        assert r.headers["X-Process-Time"].endswith("ms")


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Listings
# ═══════════════════════════════════════════════════════════════════════════

class TestMessageListing:

    def test_sent_default_pagination(self, client):
        body = client.get("/api/v1/messages/sent").json()
        assert body["pagination"] == {
            "limit": 10, "offset": 0, "count": 5, "total": 5, "has_more": False,
        }
        assert all(m["status"] == "sent" for m in body["data"])

    def test_sent_page_has_more(self, client):
        body = client.get("/api/v1/messages/sent?limit=2&offset=1").json()
        assert body["pagination"]["count"] == 2
        assert body["pagination"]["has_more"] is True
        assert [m["id"] for m in body["data"]] == [2, 3]

    def test_invalid_params_fall_back(self, client):
        body = client.get("/api/v1/messages/sent?limit=abc&offset=-4").json()
        assert body["pagination"]["limit"] == 10
        assert body["pagination"]["offset"] == 0

    def test_zero_limit_falls_back(self, client):
        body = client.get("/api/v1/messages/sent?limit=0").json()
        assert body["pagination"]["limit"] == 10

    def test_failed_listing(self, client):
        body = client.get("/api/v1/messages/failed").json()
        assert body["pagination"]["total"] == 1
        assert body["data"][0]["content"] == "nope"
        assert body["data"][0]["sent_at"] is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Health
# ═══════════════════════════════════════════════════════════════════════════

class TestHealth:

    def test_healthy(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "healthy"
        assert body["services"]["database"] == "healthy"
        assert body["services"]["redis"] == "healthy"
        assert body["services"]["scheduler"] == "stopped"

    def test_database_down_is_503(self, client, store):
        store.ping_error = True
        r = client.get("/health")
        assert r.status_code == 503
        assert r.json()["status"] == "unhealthy"
        assert r.json()["services"]["database"].startswith("unhealthy")

    def test_cache_down_is_degraded(self, client, cache):
        cache.healthy = False
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "degraded"

    def test_scheduler_running_reported(self, client):
        client.post("/api/v1/scheduler/start")
        assert client.get("/health").json()["services"]["scheduler"] == "running"
