"""Tests for API endpoints.

OpenAPI checks use client_no_db. Everything else runs against the in-memory
SQLite database through the client fixture.
"""
import uuid

import pytest

from stormwatch.domain.services.alert_service import AlertService
from stormwatch.domain.services.device_service import DeviceService
from stormwatch.domain.services.reading_service import ReadingService
from stormwatch.domain.services.weather_service import WeatherService
from stormwatch.utils.timeutils import HOUR_MS, now_ms

SEGMENTS = "/api/road-segments"


def create_segment(client, name="Elias Angeles St", coordinates=None, status="clear"):
    response = client.post(f"{SEGMENTS}/", json={
        "name": name,
        "coordinates": coordinates or [[13.6220, 123.1950], [13.6231, 123.1961]],
        "roadType": "secondary",
        "status": status,
    })
    assert response.status_code == 201
    return response.json()


class TestOpenAPISchema:
    """Tests for API documentation - no database required."""

    def test_openapi_schema_available(self, client_no_db):
        response = client_no_db.get("/openapi.json")
        assert response.status_code == 200
        schema = response.json()
        assert "openapi" in schema
        assert "paths" in schema

    def test_api_routes_registered(self, client_no_db):
        paths = client_no_db.get("/openapi.json").json()["paths"]

        assert "/health" in paths
        assert "/api/road-segments/viewport" in paths
        assert "/api/road-segments/cells" in paths
        assert "/api/road-segments/cells/updates" in paths
        assert "/api/readings/" in paths
        assert "/api/predictions/device/{device_id}/generate" in paths
        assert "/api/alerts/active" in paths
        assert "/api/weather/recent" in paths


# =============================================================================
# ROAD SEGMENTS
# =============================================================================

class TestRoadSegmentsAPI:
    """Tests for the road segment endpoints."""

    def test_create_derives_spatial_fields(self, client):
        data = create_segment(client)

        assert data["gridCell"] == "13.62_123.19"
        assert data["minLat"] == 13.6220
        assert data["maxLng"] == 123.1961
        assert data["status"] == "clear"
        assert data["createdAt"] == data["updatedAt"]

    def test_create_rejects_bad_coordinates(self, client):
        response = client.post(f"{SEGMENTS}/", json={
            "name": "Broken",
            "coordinates": [[13.62], [13.63, 123.20]],
        })
        assert response.status_code == 400

    def test_create_requires_two_points(self, client):
        response = client.post(f"{SEGMENTS}/", json={"name": "Stub", "coordinates": [[13.62, 123.19]]})
        assert response.status_code == 422

    def test_get_by_id_and_missing(self, client):
        created = create_segment(client)

        assert client.get(f"{SEGMENTS}/{created['id']}").json()["name"] == "Elias Angeles St"
        assert client.get(f"{SEGMENTS}/{uuid.uuid4()}").status_code == 404

    def test_viewport(self, client):
        inside = create_segment(client)
        create_segment(client, name="Far Road", coordinates=[[13.70, 123.30], [13.71, 123.31]])

        response = client.get(f"{SEGMENTS}/viewport", params={
            "minLat": 13.62, "maxLat": 13.63, "minLng": 123.19, "maxLng": 123.20,
        })

        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == [inside["id"]]

    def test_viewport_rejects_inverted_bounds(self, client):
        response = client.get(f"{SEGMENTS}/viewport", params={
            "minLat": 13.63, "maxLat": 13.62, "minLng": 123.19, "maxLng": 123.20,
        })
        assert response.status_code == 400

    def test_radius(self, client):
        near = create_segment(client)
        create_segment(client, name="Far Road", coordinates=[[13.70, 123.30], [13.71, 123.31]])

        response = client.get(f"{SEGMENTS}/radius", params={"lat": 13.6218, "lng": 123.1948, "radiusMeters": 500})

        assert [s["id"] for s in response.json()] == [near["id"]]

    def test_cells_and_updates(self, client):
        created = create_segment(client)

        cells = client.post(f"{SEGMENTS}/cells", json={"gridCells": ["13.62_123.19", "0.00_0.00"]}).json()
        assert [s["id"] for s in cells["segments"]] == [created["id"]]
        assert sorted(cells["cells"]) == ["0.00_0.00", "13.62_123.19"]

        stale = client.post(f"{SEGMENTS}/cells/updates", json={
            "gridCells": ["13.62_123.19"], "sinceTimestamp": created["updatedAt"],
        }).json()
        assert stale["segments"] == []

        client.patch(f"{SEGMENTS}/{created['id']}/status", json={"status": "flooded"})
        fresh = client.post(f"{SEGMENTS}/cells/updates", json={
            "gridCells": ["13.62_123.19"], "sinceTimestamp": created["updatedAt"] - 1,
        }).json()
        assert [s["status"] for s in fresh["segments"]] == ["flooded"]

    def test_empty_cells_request(self, client):
        before = now_ms()
        data = client.post(f"{SEGMENTS}/cells", json={"gridCells": []}).json()

        assert (data["segments"], data["cells"]) == ([], [])
        assert data["serverTime"] >= before

    def test_world_viewport_rejected_with_413(self, client):
        response = client.get(f"{SEGMENTS}/viewport", params={
            "minLat": -90, "maxLat": 90, "minLng": -180, "maxLng": 180,
        })
        assert response.status_code == 413
        assert "grid cells" in response.json()["detail"]

    def test_polar_radius_rejected_with_413(self, client):
        response = client.get(f"{SEGMENTS}/radius", params={"lat": 90, "lng": 0, "radiusMeters": 500})
        assert response.status_code == 413

    def test_too_many_cells_rejected_with_413(self, client, monkeypatch):
        from stormwatch.core.config import settings
        monkeypatch.setattr(settings, "MAX_CELLS_PER_QUERY", 1)

        response = client.post(f"{SEGMENTS}/cells", json={"gridCells": ["13.62_123.19", "13.63_123.19"]})
        assert response.status_code == 413

    def test_bulk_import_skips_single_point_rows(self, client):
        response = client.post(f"{SEGMENTS}/bulk-import", json={"segments": [
            {"osmId": "p", "name": "Point", "coordinates": [[13.6, 123.2]]},
        ]})
        assert response.json() == {"imported": 0, "skipped": 1, "total": 1}

    def test_status_update_and_filter(self, client):
        created = create_segment(client)

        response = client.patch(f"{SEGMENTS}/{created['id']}/status", json={"status": "risk"})
        assert response.status_code == 200
        assert response.json()["updatedAt"] >= created["updatedAt"]

        risky = client.get(f"{SEGMENTS}/status/risk").json()
        assert [s["id"] for s in risky] == [created["id"]]

    def test_status_update_rejects_unknown_status(self, client):
        created = create_segment(client)
        response = client.patch(f"{SEGMENTS}/{created['id']}/status", json={"status": "closed"})
        assert response.status_code == 422

    def test_status_update_missing_segment(self, client):
        response = client.patch(f"{SEGMENTS}/{uuid.uuid4()}/status", json={"status": "risk"})
        assert response.status_code == 404

    def test_delete(self, client):
        created = create_segment(client)

        assert client.delete(f"{SEGMENTS}/{created['id']}").status_code == 204
        assert client.delete(f"{SEGMENTS}/{created['id']}").status_code == 404

    def test_bulk_import_counts_skips(self, client):
        response = client.post(f"{SEGMENTS}/bulk-import", json={"segments": [
            {"osmId": "w1", "name": "A", "coordinates": [[13.62, 123.19], [13.63, 123.20]]},
            {"osmId": "w1", "name": "A again", "coordinates": [[13.62, 123.19], [13.63, 123.20]]},
            {"osmId": "w2", "name": "Empty", "coordinates": []},
        ]})

        assert response.status_code == 200
        assert response.json() == {"imported": 1, "skipped": 2, "total": 3}

    def test_bulk_import_over_limit(self, client, monkeypatch):
        from stormwatch.core.config import settings
        monkeypatch.setattr(settings, "MAX_DOCUMENTS_PER_CALL", 1)

        response = client.post(f"{SEGMENTS}/bulk-import", json={"segments": [
            {"name": "A", "coordinates": [[13.62, 123.19], [13.63, 123.20]]},
            {"name": "B", "coordinates": [[13.62, 123.19], [13.63, 123.20]]},
        ]})
        assert response.status_code == 413

    def test_pagination(self, client):
        for i in range(3):
            create_segment(client, name=f"Road {i}")

        first = client.get(f"{SEGMENTS}/", params={"limit": 2}).json()
        assert len(first["page"]) == 2
        assert first["isDone"] is False

        second = client.get(f"{SEGMENTS}/", params={"limit": 2, "cursor": first["continueCursor"]}).json()
        assert len(second["page"]) == 1
        assert second["isDone"] is True

    def test_migrate_without_body(self, client):
        create_segment(client)
        response = client.post(f"{SEGMENTS}/migrate-spatial-fields")

        assert response.status_code == 200
        data = response.json()
        assert data["updated"] == 0
        assert data["skipped"] == 1
        assert data["isDone"] is True

    def test_clear_batch(self, client):
        for i in range(3):
            create_segment(client, name=f"Road {i}")

        first = client.post(f"{SEGMENTS}/clear-batch", params={"limit": 2}).json()
        assert first == {"deleted": 2, "hasMore": True}
        second = client.post(f"{SEGMENTS}/clear-batch", params={"limit": 2}).json()
        assert second == {"deleted": 1, "hasMore": False}


# =============================================================================
# DEVICES
# =============================================================================

@pytest.fixture
def device(test_db):
    return DeviceService(test_db).create(
        name="Naga River Gauge",
        location=[13.6218, 123.1948],
        influence_radius=500,
        is_enabled=True,
    )


class TestDevicesAPI:
    def test_list_hides_api_key(self, client, device):
        data = client.get("/api/devices/").json()

        assert len(data) == 1
        assert data[0]["name"] == "Naga River Gauge"
        assert data[0]["influenceRadius"] == 500
        assert "apiKey" not in data[0]

    def test_get_and_missing(self, client, device):
        assert client.get(f"/api/devices/{device.id}").json()["id"] == str(device.id)
        assert client.get(f"/api/devices/{uuid.uuid4()}").status_code == 404

    def test_affecting_point(self, client, device):
        near = client.get("/api/devices/affecting-point", params={"lat": 13.6220, "lng": 123.1950}).json()
        far = client.get("/api/devices/affecting-point", params={"lat": 13.70, "lng": 123.30}).json()

        assert [d["id"] for d in near] == [str(device.id)]
        assert far == []


# =============================================================================
# PREDICTIONS
# =============================================================================

class TestPredictionsAPI:
    def test_generate_without_readings_returns_empty(self, client, device):
        response = client.post(f"/api/predictions/device/{device.id}/generate")
        assert response.status_code == 200
        assert response.json() == []

    def test_generate_missing_device(self, client):
        assert client.post(f"/api/predictions/device/{uuid.uuid4()}/generate").status_code == 404

    def test_generate_and_read_back(self, client, test_db, device):
        ReadingService(test_db).create(device_id=device.id, reading_type="water_level", value=30.0, unit="cm")

        generated = client.post(f"/api/predictions/device/{device.id}/generate").json()
        assert sorted(p["timeHorizon"] for p in generated) == ["1h", "2h", "4h", "8h"]
        assert generated[0]["metadata"]["currentLevel"] == 30.0

        latest = client.get(f"/api/predictions/device/{device.id}/latest").json()
        assert [p["timeHorizon"] for p in latest] == ["1h", "2h", "4h", "8h"]
        assert len(client.get("/api/predictions/valid").json()) == 4
        assert len(client.get("/api/predictions/horizon/4h").json()) == 1

    def test_unknown_horizon_rejected(self, client):
        assert client.get("/api/predictions/horizon/3h").status_code == 422

    def test_propagate_updates_roads(self, client, test_db, device):
        segment = create_segment(client)
        ReadingService(test_db).create(device_id=device.id, reading_type="water_level", value=60.0, unit="cm")
        client.post(f"/api/predictions/device/{device.id}/generate")
        client.patch(f"{SEGMENTS}/{segment['id']}/status", json={"status": "clear"})

        response = client.post(f"/api/predictions/device/{device.id}/propagate")

        assert response.status_code == 200
        data = response.json()
        assert data["updated"] == 1
        assert data["status"] == "flooded"
        assert data["deviceName"] == "Naga River Gauge"
        assert client.get(f"{SEGMENTS}/{segment['id']}").json()["status"] == "flooded"

    def test_propagate_missing_device(self, client):
        assert client.post(f"/api/predictions/device/{uuid.uuid4()}/propagate").status_code == 404

    def test_delete_expired(self, client, test_db, device):
        from stormwatch.domain.services.prediction_service import PredictionService
        PredictionService(test_db).upsert(
            device_id=device.id, time_horizon="1h", flood_probability=0.3, severity="medium",
            predicted_at=now_ms() - 2 * HOUR_MS, valid_until=now_ms() - HOUR_MS,
            predicted_water_level=20.0,
        )
        assert client.delete("/api/predictions/expired").json() == {"deleted": 1}


# =============================================================================
# ALERTS AND WEATHER
# =============================================================================

class TestAlertsAPI:
    def test_active_and_dismiss(self, client, test_db, device):
        alert = AlertService(test_db).upsert_for_device(device, "high", 60.0, now_ms() + HOUR_MS)

        active = client.get("/api/alerts/active").json()
        assert [a["id"] for a in active] == [str(alert.id)]
        assert active[0]["severity"] == "danger"
        assert active[0]["affectedDeviceIds"] == [str(device.id)]

        response = client.patch(f"/api/alerts/{alert.id}/status", json={"isActive": False})
        assert response.status_code == 200
        assert client.get("/api/alerts/active").json() == []
        assert len(client.get("/api/alerts/").json()) == 1

    def test_by_severity(self, client, test_db, device):
        AlertService(test_db).upsert_for_device(device, "critical", 120.0, now_ms() + HOUR_MS)

        assert len(client.get("/api/alerts/severity/critical").json()) == 1
        assert client.get("/api/alerts/severity/warning").json() == []
        assert client.get("/api/alerts/severity/extreme").status_code == 422

    def test_dismiss_missing_alert(self, client):
        assert client.patch(f"/api/alerts/{uuid.uuid4()}/status", json={"isActive": False}).status_code == 404


class TestWeatherAPI:
    def test_recent_weather(self, client, test_db):
        WeatherService(test_db).store({
            "latitude": 13.6218, "longitude": 123.1948, "temperature": 27.5, "humidity": 88.0,
            "rainfall_1h": 4.2, "weather_condition": "Rain", "fetched_at": now_ms(),
        })
        WeatherService(test_db).store({
            "latitude": 13.6218, "longitude": 123.1948, "temperature": 27.5, "humidity": 88.0,
            "weather_condition": "Clear", "fetched_at": now_ms() - 48 * HOUR_MS,
        })

        data = client.get("/api/weather/recent", params={"hours": 24}).json()

        assert len(data) == 1
        assert data[0]["rainfall1h"] == 4.2
        assert data[0]["weatherCondition"] == "Rain"
