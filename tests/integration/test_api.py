"""
Integration tests for the HTTP API.

Tests cover:
- Health reporting for configured and unconfigured stores
- Read routes (rooms, filter, stats, materials, logs)
- Mutation routes with role headers
- Error mapping to HTTP statuses
"""

import pytest
from fastapi.testclient import TestClient

from cellarsync.api import create_app
from cellarsync.config import AppConfig, StoreBackend, StoreConfig
from cellarsync.main import Server
from cellarsync.store import InMemoryRoomStore

API = "/api/v1"


@pytest.fixture
def store():
    return InMemoryRoomStore(seed_room_count=3)


@pytest.fixture
def client(store):
    config = AppConfig(store=StoreConfig(backend=StoreBackend.MEMORY))
    app = create_app(server=Server(config, store=store))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def unconfigured_client():
    app = create_app(server=Server(AppConfig()))
    with TestClient(app) as client:
        yield client


def first_room_id(client):
    return client.get(f"{API}/rooms").json()[0]["id"]


class TestHealth:
    """Tests for the health endpoint."""

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "sync": "active"}

    def test_unconfigured_reports_setup_notice(self, unconfigured_client):
        response = unconfigured_client.get("/health")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "config_error"
        assert "STORE_BACKEND" in body["notice"]

    def test_unconfigured_refuses_reads(self, unconfigured_client):
        response = unconfigured_client.get(f"{API}/rooms")

        assert response.status_code == 503
        assert response.json()["detail"]["error_code"] == "CONFIGURATION_ERROR"


class TestReadRoutes:
    """Tests for the read-only views."""

    def test_list_rooms(self, client):
        rooms = client.get(f"{API}/rooms").json()

        assert [r["name"] for r in rooms] == ["Room 1", "Room 2", "Room 3"]
        assert rooms[0]["temperature"] == 20
        assert rooms[0]["inventory"] == {}
        assert rooms[0]["is_fermenting"] is False

    def test_filter_rooms(self, client):
        rooms = client.get(f"{API}/rooms", params={"q": "room 2"}).json()
        assert [r["name"] for r in rooms] == ["Room 2"]

    def test_stats(self, client):
        assert client.get(f"{API}/stats").json() == {
            "total_rooms": 3,
            "active_fermentation": 0,
            "total_items": 0,
        }

    def test_materials(self, client):
        materials = client.get(f"{API}/materials").json()
        assert materials[:2] == ["تفاح", "سكر"]
        assert len(materials) == 7

    def test_logs_empty(self, client):
        assert client.get(f"{API}/logs").json() == []

    def test_logs_limit_validated(self, client):
        assert client.get(f"{API}/logs", params={"limit": 0}).status_code == 422


class TestMutationRoutes:
    """Tests for the mutation endpoints."""

    def test_admin_adds_room(self, client):
        response = client.post(
            f"{API}/rooms", json={"name": "Barrel Room"}, headers={"X-Role": "Admin"}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["action"] == "room created"
        assert body["details"] == "new room created"

        names = [r["name"] for r in client.get(f"{API}/rooms").json()]
        assert "Barrel Room" in names
        assert len(client.get(f"{API}/logs").json()) == 1

    def test_guest_is_default_role(self, client, store):
        response = client.post(f"{API}/rooms", json={"name": "Sneaky"})

        assert response.status_code == 403
        assert response.json()["error_code"] == "ACCESS_DENIED"
        assert store.get_log_count() == 0

    def test_unknown_role_header(self, client):
        response = client.post(f"{API}/rooms", json={"name": "X"}, headers={"X-Role": "Owner"})
        assert response.status_code == 400

    def test_empty_name_is_validation_error(self, client):
        response = client.post(f"{API}/rooms", json={"name": "  "}, headers={"X-Role": "Admin"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_missing_body_field(self, client):
        response = client.post(f"{API}/rooms", json={}, headers={"X-Role": "Admin"})
        assert response.status_code == 422

    def test_adjust_stock(self, client):
        room_id = first_room_id(client)

        response = client.post(
            f"{API}/rooms/{room_id}/stock",
            json={"material": "سكر", "delta": 10},
            headers={"X-Role": "Admin"},
        )

        assert response.status_code == 200
        assert response.json()["details"] == "سكر: 0 → 10"
        (entry,) = client.get(f"{API}/logs").json()
        assert entry["action"] == "stock in"
        assert entry["user_role"] == "Admin"
        assert entry["room_name"] == "Room 1"
        room = client.get(f"{API}/rooms").json()[0]
        assert room["inventory"] == {"سكر": 10}

    def test_stock_clamped(self, client):
        room_id = first_room_id(client)

        response = client.post(
            f"{API}/rooms/{room_id}/stock",
            json={"material": "ماء", "delta": -3},
            headers={"X-Role": "Auditor"},
        )

        assert response.json()["action"] == "stock out"
        assert response.json()["details"] == "ماء: 0 → 0"

    def test_update_temperature(self, client):
        room_id = first_room_id(client)

        response = client.put(
            f"{API}/rooms/{room_id}/temperature",
            json={"temperature": 14.5},
            headers={"X-Role": "Guest"},
        )

        assert response.status_code == 200
        assert response.json()["details"] == "20° → 14.5°"
        assert client.get(f"{API}/rooms").json()[0]["temperature"] == 14.5

    def test_rename_room_admin_only(self, client):
        room_id = first_room_id(client)

        denied = client.put(f"{API}/rooms/{room_id}/name", json={"name": "Vault"})
        allowed = client.put(
            f"{API}/rooms/{room_id}/name", json={"name": "Vault"}, headers={"X-Role": "Admin"}
        )

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert client.get(f"{API}/rooms").json()[0]["name"] == "Vault"

    def test_toggle_fermentation(self, client):
        room_id = first_room_id(client)

        started = client.post(f"{API}/rooms/{room_id}/fermentation/toggle")
        assert started.json()["action"] == "fermentation started"
        assert client.get(f"{API}/stats").json()["active_fermentation"] == 1

        stopped = client.post(f"{API}/rooms/{room_id}/fermentation/toggle")
        assert stopped.json()["action"] == "fermentation stopped"
        assert client.get(f"{API}/stats").json()["active_fermentation"] == 0

    def test_unknown_room(self, client):
        response = client.post(f"{API}/rooms/missing/fermentation/toggle")

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_write_failure_maps_to_502(self, client, store):
        room_id = first_room_id(client)
        store.inject_failure(ConnectionError("offline"), operation="update_room_fields")

        response = client.put(
            f"{API}/rooms/{room_id}/temperature",
            json={"temperature": 3},
            headers={"X-Role": "Admin"},
        )

        assert response.status_code == 502
        assert response.json()["error_code"] == "WRITE_FAILED"
        assert client.get(f"{API}/logs").json() == []
