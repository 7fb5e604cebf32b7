"""
Tests for the weather client and the background maintenance jobs.
"""
import asyncio
from unittest.mock import AsyncMock

import httpx

from stormwatch.domain.services.alert_service import AlertService
from stormwatch.domain.services.device_service import DeviceService
from stormwatch.domain.services.prediction_service import PredictionService
from stormwatch.domain.services.scheduler import StormWatchScheduler
from stormwatch.domain.services.weather_service import WeatherService
from stormwatch.infrastructure.weather_client import OpenWeatherClient, parse_current_weather
from stormwatch.utils.timeutils import HOUR_MS, MINUTE_MS, now_ms

OPENWEATHER_PAYLOAD = {
    "weather": [{"main": "Rain", "description": "moderate rain"}],
    "main": {"temp": 26.4, "humidity": 91},
    "wind": {"speed": 3.1},
    "clouds": {"all": 90},
    "rain": {"1h": 4.5},
}


# =============================================================================
# WEATHER CLIENT
# =============================================================================

class TestWeatherClient:
    def test_parse_current_weather(self):
        data = parse_current_weather(OPENWEATHER_PAYLOAD, 13.62, 123.19)

        assert data["weather_condition"] == "Rain"
        assert data["humidity"] == 91
        assert data["rainfall_1h"] == 4.5
        assert data["rainfall_3h"] is None
        assert data["cloud_coverage"] == 90
        assert data["latitude"] == 13.62

    def test_parse_dry_weather(self):
        data = parse_current_weather({"weather": [{"main": "Clear"}], "main": {"temp": 30, "humidity": 60}}, 0, 0)
        assert data["rainfall_1h"] is None
        assert data["weather_description"] == ""

    def test_fetch_current_sends_metric_request(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(dict(request.url.params))
            return httpx.Response(200, json=OPENWEATHER_PAYLOAD)

        client = OpenWeatherClient(api_key="owm-key", transport=httpx.MockTransport(handler))
        data = asyncio.run(client.fetch_current(13.62, 123.19))

        assert data["weather_condition"] == "Rain"
        assert seen[0]["appid"] == "owm-key"
        assert seen[0]["units"] == "metric"
        assert seen[0]["lat"] == "13.62"

    def test_fetch_current_error_returns_none(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"message": "Invalid API key"}))
        client = OpenWeatherClient(api_key="bad", transport=transport)
        assert asyncio.run(client.fetch_current(13.62, 123.19)) is None

    def test_disabled_without_key(self):
        client = OpenWeatherClient(api_key="")
        assert client.enabled is False
        assert asyncio.run(client.fetch_current(13.62, 123.19)) is None


# =============================================================================
# SCHEDULED JOBS
# =============================================================================

class TestSchedulerJobs:
    def test_refresh_weather_stores_sample(self, test_db, session_factory):
        weather_client = OpenWeatherClient(api_key="owm-key")
        weather_client.fetch_current = AsyncMock(return_value=parse_current_weather(OPENWEATHER_PAYLOAD, 13.62, 123.19))
        scheduler = StormWatchScheduler(session_factory=session_factory, weather_client=weather_client)

        assert asyncio.run(scheduler.refresh_weather()) is True
        samples = WeatherService(test_db).get_recent_weather(1)
        assert [s.weather_condition for s in samples] == ["Rain"]

    def test_refresh_weather_without_data(self, test_db, session_factory):
        weather_client = OpenWeatherClient(api_key="")
        scheduler = StormWatchScheduler(session_factory=session_factory, weather_client=weather_client)

        assert asyncio.run(scheduler.refresh_weather()) is False
        assert WeatherService(test_db).get_recent_weather(24) == []

    def test_sweeps(self, test_db, session_factory):
        device = DeviceService(test_db).create(name="Tabuco Gauge", location=[13.6145, 123.1862], is_enabled=True)
        PredictionService(test_db).upsert(
            device_id=device.id, time_horizon="1h", flood_probability=0.7, severity="high",
            predicted_at=now_ms() - 2 * HOUR_MS, valid_until=now_ms() - HOUR_MS, predicted_water_level=55.0,
        )
        AlertService(test_db).upsert_for_device(device, "high", 55.0, now_ms() - 1)
        device.is_alive = True
        device.last_seen = now_ms() - 90 * MINUTE_MS
        test_db.commit()

        scheduler = StormWatchScheduler(session_factory=session_factory, weather_client=OpenWeatherClient(api_key=""))

        assert asyncio.run(scheduler.purge_expired_predictions()) == 1
        assert asyncio.run(scheduler.expire_alerts()) == 1
        assert asyncio.run(scheduler.mark_offline_devices()) == 1

    def test_sweep_errors_are_logged(self, session_factory):
        scheduler = StormWatchScheduler(session_factory=session_factory, weather_client=OpenWeatherClient(api_key=""))

        def broken(db):
            raise RuntimeError("db down")

        assert scheduler._run_sweep("Broken", broken) == 0

    def test_start_and_stop_registers_jobs(self, session_factory):
        scheduler = StormWatchScheduler(session_factory=session_factory, weather_client=OpenWeatherClient(api_key=""))

        async def scenario():
            scheduler.start()
            job_ids = sorted(job.id for job in scheduler.scheduler.get_jobs())
            running = scheduler.running
            scheduler.stop()
            return job_ids, running

        job_ids, running = asyncio.run(scenario())

        assert running is True
        assert job_ids == ["alert_sweep", "device_liveness", "prediction_sweep", "weather_refresh"]
        assert scheduler.running is False
