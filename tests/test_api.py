"""
Tests for the HTTP surface
"""

import time
from datetime import date

import pytest
from fastapi.testclient import TestClient

from dashboard_metrics import main


@pytest.fixture
def client():
    main.registry.sessions.clear()
    main._background_tasks.clear()
    main.store.write_collection("rooms", [{"status": "Occupée", "category": "Standard"}, {"status": "Disponible"}])
    main.store.write_collection("clients", [{"name": "Awa", "createdBy": "alice"}])
    main.store.write_collection(
        "bills",
        [{"amount": "2500", "date": date.today().isoformat(), "motif": "Nuitée", "createdBy": "alice"}],
    )
    main.store.write_collection("reservations", [])
    with TestClient(main.app) as test_client:
        yield test_client
    main.registry.sessions.clear()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestRecords:
    def test_stats(self, client):
        body = client.get("/records/stats").json()
        assert body["collections"]["rooms"] == 2
        assert body["storage"]["backend"] == "memory"

    def test_unknown_collection(self, client):
        response = client.post("/records/invoices", json={"payload": {"amount": "1"}})
        assert response.status_code == 404

    def test_append_refreshes_open_dashboards(self, client):
        client.get("/dashboard")
        response = client.post("/records/rooms", json={"payload": {"status": "Occupée"}})
        assert response.status_code == 200
        assert response.json()["inserted"]["id"]

        body = client.get("/dashboard").json()
        assert body["data"]["occupied_rooms"] == 2
        assert body["data"]["total_rooms"] == 3


class TestDashboard:
    def test_first_read_is_fully_refined(self, client):
        body = client.get("/dashboard").json()

        assert body["state"] == "refined"
        assert body["data"]["occupancy_rate"] == 50
        assert body["data"]["today_revenue"] == 2500
        assert body["data"]["monthly_revenue"] == 2500
        assert body["data"]["daily_stats"]["nuitee"] == {"count": 1, "amount": 2500}
        assert len(body["data"]["weekly_reservations"]) == 7
        assert list(body["data"]["rooms_by_category"]) == ["Standard"]
        assert not any(body["loading"].values())

    def test_scoped_read(self, client):
        body = client.get("/dashboard", params={"username": "bob", "role": "user"}).json()
        assert body["data"]["total_clients"] == 0
        assert body["data"]["today_revenue"] == 0

        stats = client.get("/cache/stats").json()
        assert "dashboard_bob:own" in stats["sessions"]

    def test_refresh(self, client):
        client.get("/dashboard", params={"username": "alice", "role": "user"})
        main.store.append("clients", {"name": "Fatou", "createdBy": "alice"})

        response = client.post("/dashboard/refresh", params={"username": "alice", "role": "user"})
        body = response.json()
        assert body["status"] == "completed"
        assert body["snapshot"]["data"]["total_clients"] == 2

    def test_refresh_async(self, client):
        response = client.post("/dashboard/refresh", params={"async_mode": True})
        assert response.json() == {"status": "scheduled"}

    def test_role_does_not_share_bundle(self, client):
        main.store.append("clients", {"name": "Moussa", "createdBy": "bob"})
        admin = client.get("/dashboard", params={"username": "alice", "role": "admin"}).json()
        user = client.get("/dashboard", params={"username": "alice", "role": "user"}).json()

        assert admin["data"]["total_rooms"] == user["data"]["total_rooms"] == 2
        assert admin["data"]["total_clients"] == 2
        assert user["data"]["total_clients"] == 1
        assert "dashboard_alice" in client.get("/cache/stats").json()["sessions"]
        assert "dashboard_alice:own" in client.get("/cache/stats").json()["sessions"]

    def test_scheduled_refresh_runs_to_completion(self, client, monkeypatch):
        done = []

        async def fake_refresh(scope):
            done.append(scope.username)

        monkeypatch.setattr(main, "_refresh", fake_refresh)
        response = client.post("/dashboard/refresh", params={"username": "carol", "async_mode": True})
        assert response.json() == {"status": "scheduled"}

        deadline = time.monotonic() + 2
        while (not done or main._background_tasks) and time.monotonic() < deadline:
            time.sleep(0.01)

        assert done == ["carol"]
        assert not main._background_tasks


class TestCache:
    def test_clear(self, client):
        client.get("/dashboard")
        assert client.get("/cache/stats").json()["cache"]["size"] == 1

        assert client.delete("/cache").json() == {"invalidated": 1}
        assert client.get("/cache/stats").json()["cache"]["size"] == 0
