"""
OpenWeatherMap client.

Fetches current conditions for a point and normalises them into the fields of
the shared weather pool. Returns None on any failure; callers treat missing
weather as "no weather impact".
"""

import httpx
import logging
from typing import Dict, Optional

from ..core.config import settings
from ..utils.timeutils import now_ms

logger = logging.getLogger(__name__)


def parse_current_weather(payload: Dict, latitude: float, longitude: float) -> Dict:
    """Map an OpenWeatherMap /weather response onto weather_data columns."""
    main = payload.get("main", {})
    rain = payload.get("rain") or {}
    conditions = payload.get("weather") or [{}]
    return {
        "latitude": latitude,
        "longitude": longitude,
        "temperature": main.get("temp", 0.0),
        "humidity": main.get("humidity", 0.0),
        "rainfall_1h": rain.get("1h"),
        "rainfall_3h": rain.get("3h"),
        "weather_condition": conditions[0].get("main", "Unknown"),
        "weather_description": conditions[0].get("description", ""),
        "wind_speed": payload.get("wind", {}).get("speed", 0.0),
        "cloud_coverage": payload.get("clouds", {}).get("all", 0.0),
        "fetched_at": now_ms(),
    }


class OpenWeatherClient:
    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.api_key = settings.OPENWEATHER_API_KEY if api_key is None else api_key
        self.base_url = base_url or settings.OPENWEATHER_BASE_URL
        self.timeout = timeout or settings.OPENWEATHER_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def fetch_current(self, latitude: float, longitude: float) -> Optional[Dict]:
        """
        Current weather at a point.

        Returns:
            Dict ready for WeatherService.store, or None if disabled or the call failed
        """
        if not self.enabled:
            logger.info("OPENWEATHER_API_KEY not set, skipping weather fetch")
            return None

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.get(
                    self.base_url,
                    params={
                        "lat": latitude,
                        "lon": longitude,
                        "appid": self.api_key,
                        "units": "metric",
                    },
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return parse_current_weather(response.json(), latitude, longitude)

        except httpx.HTTPStatusError as e:
            logger.error(f"OpenWeatherMap returned error {e.response.status_code}: {e.response.text}")
            return None
        except httpx.TimeoutException:
            logger.error(f"OpenWeatherMap request timed out after {self.timeout}s")
            return None
        except Exception as e:
            logger.error(f"OpenWeatherMap request failed: {e}")
            return None
