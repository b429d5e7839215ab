"""
Integration tests for the GPS API.

The full application is built with create_app and an in-memory store, then
driven through FastAPI's TestClient.
"""
import asyncio
from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from config.settings import Settings
from errors.exceptions import store_unavailable
from main import create_app
from storage.memory import InMemoryTelemetryStore, InMemoryVehicleDirectory
from tests.factories import TRUCK, VAN, make_entry

pytestmark = pytest.mark.integration


def _settings(**overrides) -> Settings:
    values = {"retention_enabled": False, "rate_limit_enabled": False, **overrides}
    return Settings(_env_file=None, **values)


@pytest.fixture
def store() -> InMemoryTelemetryStore:
    return InMemoryTelemetryStore()


@pytest.fixture
def app(store):
    return create_app(
        settings=_settings(),
        vehicle_directory=InMemoryVehicleDirectory([TRUCK, VAN]),
        telemetry_store=store,
    )


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def _post(client: TestClient, **fields):
    payload = {
        "vehicleReference": 1,
        "latitude": -6.2,
        "longitude": 106.8,
        "speed": 80,
        "timestamp": "2025-07-16T10:00:00",
        **fields,
    }
    return client.post("/api/gps", json=payload)


class TestSubmitGpsLog:
    """POST /api/gps"""

    def test_saves_log(self, client, store):
        response = _post(client)

        assert response.status_code == 200
        assert response.json() == {
            "message": "GPS log saved successfully",
            "data": {
                "vehicleReference": 1,
                "latitude": -6.2,
                "longitude": 106.8,
                "speed": 80.0,
                "timestamp": "2025-07-16T10:00:00",
            },
        }
        assert len(store) == 1

    def test_out_of_range_latitude(self, client, store):
        response = _post(client, latitude=95)

        assert response.status_code == 400
        assert response.json() == {
            "message": "Validation failed",
            "errors": {"latitude": "Latitude must be between -90 and 90"},
        }
        assert len(store) == 0

    def test_every_invalid_field_is_reported(self, client):
        response = client.post("/api/gps", json={"latitude": 200, "speed": -5})

        assert response.status_code == 400
        assert set(response.json()["errors"]) == {
            "vehicleReference", "latitude", "longitude", "speed", "timestamp",
        }

    def test_timestamp_without_utc_equivalent(self, client, store):
        response = _post(client, timestamp="0001-01-01T00:30:00+01:00")

        assert response.status_code == 400
        assert response.json()["errors"] == {"timestamp": "Timestamp is out of range"}
        assert len(store) == 0

    @pytest.mark.parametrize("vehicle_reference", [True, "1"])
    def test_vehicle_reference_must_be_a_json_integer(self, client, store, vehicle_reference):
        response = _post(client, vehicleReference=vehicle_reference)

        assert response.status_code == 400
        assert list(response.json()["errors"]) == ["vehicleReference"]
        assert len(store) == 0

    def test_unknown_vehicle(self, client, store):
        response = _post(client, vehicleReference=99)

        assert response.status_code == 404
        assert response.json() == {"message": "Vehicle not found"}
        assert len(store) == 0

    def test_store_failure_is_generic_500(self, app):
        failing_store = AsyncMock()
        failing_store.insert.side_effect = store_unavailable("index(gps_logs)", ConnectionError("refused"))
        app.state.ingestion_service.store = failing_store

        response = _post(TestClient(app))

        assert response.status_code == 500
        assert response.json() == {"message": "Unexpected error"}

    def test_unexpected_exception_is_generic_500(self, app):
        failing_store = AsyncMock()
        failing_store.insert.side_effect = RuntimeError("driver crashed")
        app.state.ingestion_service.store = failing_store

        response = _post(TestClient(app, raise_server_exceptions=False))

        assert response.status_code == 500
        assert response.json() == {"message": "Unexpected error"}
        assert "X-Request-ID" in response.headers


class TestLastLocation:
    """GET /api/vehicles/{vehicle_id}/last-location"""

    def test_returns_latest_with_vehicle(self, client):
        _post(client, timestamp="2025-07-16T10:00:00")
        _post(client, timestamp="2025-07-16T10:05:00", speed=120)
        _post(client, timestamp="2025-07-16T09:55:00")

        response = client.get("/api/vehicles/1/last-location")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Last known location retrieved"
        assert body["data"]["id"] == 2
        assert body["data"]["timestamp"] == "2025-07-16T10:05:00"
        assert body["data"]["speedViolation"] is True
        assert body["data"]["vehicle"] == {
            "id": 1, "plateNumber": "B1234XYZ", "name": "Truk 1", "type": "Truck",
        }

    def test_vehicle_without_logs(self, client):
        response = client.get("/api/vehicles/2/last-location")

        assert response.status_code == 404
        assert response.json() == {"message": "No GPS log found"}

    def test_unknown_vehicle(self, client):
        response = client.get("/api/vehicles/99/last-location")

        assert response.status_code == 404
        assert response.json() == {"message": "Vehicle not found"}

    def test_non_numeric_vehicle_id(self, client):
        response = client.get("/api/vehicles/truck-1/last-location")

        assert response.status_code == 400
        assert list(response.json()["errors"]) == ["vehicle_id"]


class TestHistory:
    """GET /api/vehicles/{vehicle_id}/history"""

    @pytest.fixture
    def seeded_client(self, client):
        for minute in range(13):
            _post(client, timestamp=f"2025-07-16T10:{minute:02d}:00", speed=95 + minute)
        return client

    def test_first_page(self, seeded_client):
        response = seeded_client.get("/api/vehicles/1/history", params={
            "from": "2025-07-16T00:00:00", "to": "2025-07-16T23:59:59",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "GPS history retrieved"
        assert (body["currentPage"], body["totalItems"], body["totalPages"]) == (1, 13, 2)
        assert len(body["data"]) == 10
        assert body["data"][0]["timestamp"] == "2025-07-16T10:00:00"

    def test_second_page(self, seeded_client):
        response = seeded_client.get("/api/vehicles/1/history", params={
            "from": "2025-07-16T00:00:00", "to": "2025-07-16T23:59:59", "page": 2, "size": 10,
        })

        body = response.json()
        assert body["currentPage"] == 2
        assert [r["id"] for r in body["data"]] == [11, 12, 13]
        assert [r["speedViolation"] for r in body["data"]] == [True, True, True]

    def test_bounds_are_inclusive(self, seeded_client):
        response = seeded_client.get("/api/vehicles/1/history", params={
            "from": "2025-07-16T10:03:00", "to": "2025-07-16T10:05:00",
        })

        assert response.json()["totalItems"] == 3

    def test_from_after_to_is_empty(self, seeded_client):
        response = seeded_client.get("/api/vehicles/1/history", params={
            "from": "2025-07-17T00:00:00", "to": "2025-07-16T00:00:00",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["data"] == []
        assert (body["totalItems"], body["totalPages"]) == (0, 0)

    def test_missing_range_is_validation_error(self, client):
        response = client.get("/api/vehicles/1/history", params={"to": "2025-07-16T00:00:00"})

        assert response.status_code == 400
        assert list(response.json()["errors"]) == ["from"]

    @pytest.mark.parametrize("params,field", [
        ({"page": 0}, "page"),
        ({"size": 0}, "size"),
        ({"size": 101}, "size"),
        ({"page": "first"}, "page"),
        ({"page": 101, "size": 100}, "page"),
    ])
    def test_invalid_paging(self, client, params, field):
        response = client.get("/api/vehicles/1/history", params={
            "from": "2025-07-16T00:00:00", "to": "2025-07-16T23:59:59", **params,
        })

        assert response.status_code == 400
        assert response.json()["message"] == "Validation failed"
        assert field in response.json()["errors"]

    @pytest.mark.parametrize("bound,value", [
        ("from", "0001-01-01T00:30:00+01:00"),
        ("to", "9999-12-31T23:30:00-01:00"),
    ])
    def test_bound_without_utc_equivalent(self, client, bound, value):
        params = {"from": "2025-07-16T00:00:00", "to": "2025-07-16T23:59:59", bound: value}

        response = client.get("/api/vehicles/1/history", params=params)

        assert response.status_code == 400
        assert response.json() == {
            "message": "Validation failed",
            "errors": {bound: "Timestamp is out of range"},
        }

    def test_unknown_vehicle(self, client):
        response = client.get("/api/vehicles/99/history", params={
            "from": "2025-07-16T00:00:00", "to": "2025-07-16T23:59:59",
        })

        assert response.status_code == 404
        assert response.json() == {"message": "Vehicle not found"}


class TestEndToEndScenario:
    """Ingest, query and expire the logs of truck B1234XYZ."""

    def test_full_lifecycle(self, app, client, store):
        assert _post(client, speed=80, timestamp="2025-07-16T10:00:00").status_code == 200
        assert _post(client, speed=120, timestamp="2025-07-16T10:05:00").status_code == 200

        latest = client.get("/api/vehicles/1/last-location").json()["data"]
        assert latest["speed"] == 120
        assert latest["speedViolation"] is True

        history = client.get("/api/vehicles/1/history", params={
            "from": "2025-07-16T09:00:00", "to": "2025-07-16T11:00:00",
        }).json()
        assert [r["speedViolation"] for r in history["data"]] == [False, True]

        # Both logs are far older than the 30-day retention window
        result = asyncio.run(app.state.retention_sweeper.sweep())
        assert result.deleted == 2
        assert asyncio.run(app.state.retention_sweeper.sweep()).deleted == 0

        response = client.get("/api/vehicles/1/last-location")
        assert response.status_code == 404
        assert response.json() == {"message": "No GPS log found"}


class TestApplicationSurface:

    def test_health_endpoints(self, client):
        assert client.get("/health").json()["status"] == "ok"
        assert client.get("/health/live").json()["status"] == "alive"

        ready = client.get("/health/ready")
        assert ready.status_code == 200
        assert ready.json()["dependencies"][0]["name"] == "telemetry_store"

    def test_readiness_503_when_store_down(self, app):
        app.state.health_check_service.store = AsyncMock(health_check=AsyncMock(return_value=False))

        response = TestClient(app).get("/health/ready")

        assert response.status_code == 503
        assert response.json()["failure_reasons"][0]["dependency"] == "telemetry_store"

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/vehicles/99/last-location", headers={"X-Request-ID": "req-e2e"})

        assert response.headers["X-Request-ID"] == "req-e2e"

    def test_openapi_documents_routes(self, app):
        paths = app.openapi()["paths"]

        assert paths["/api/gps"]["post"]["summary"] == "Submit new GPS log"
        assert paths["/api/vehicles/{vehicle_id}/last-location"]["get"]["summary"] == "Get last known GPS location"
        assert paths["/api/vehicles/{vehicle_id}/history"]["get"]["summary"] == "Get GPS history"

    def test_rate_limit(self, store):
        app = create_app(
            settings=_settings(rate_limit_enabled=True, rate_limit_requests_per_minute=2),
            vehicle_directory=InMemoryVehicleDirectory([TRUCK]),
            telemetry_store=store,
        )
        client = TestClient(app)

        statuses = [client.get("/api/vehicles/1/last-location").status_code for _ in range(3)]

        assert statuses == [404, 404, 429]
        assert client.get("/api/vehicles/1/last-location").json() == {"message": "Too many requests"}

    def test_lifespan_starts_and_stops_scheduler(self, store):
        app = create_app(
            settings=_settings(retention_enabled=True),
            vehicle_directory=InMemoryVehicleDirectory([TRUCK]),
            telemetry_store=store,
        )
        scheduler = app.state.retention_scheduler

        with TestClient(app):
            assert scheduler.is_running

        assert not scheduler.is_running

    def test_seed_file_populates_memory_directory(self, tmp_path):
        seed = tmp_path / "vehicles.json"
        seed.write_text('[{"id": 7, "plateNumber": "L7777AA", "name": "Truk 7", "type": "Truck"}]')
        app = create_app(settings=_settings(vehicles_seed_file=str(seed)))
        client = TestClient(app)

        assert _post(client, vehicleReference=7).status_code == 200
        assert client.get("/api/vehicles/7/last-location").json()["data"]["vehicle"]["plateNumber"] == "L7777AA"

    def test_records_inserted_directly_are_served(self, client, store):
        asyncio.run(store.insert(make_entry(timestamp=datetime(2025, 7, 16, 8, 0))))

        response = client.get("/api/vehicles/1/last-location")

        assert response.json()["data"]["timestamp"] == "2025-07-16T08:00:00"
