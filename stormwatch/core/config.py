from pydantic_settings import BaseSettings, NoDecode
from pydantic import field_validator
from typing import List, Union
from typing_extensions import Annotated
import json

class Settings(BaseSettings):
    PROJECT_NAME: str = "StormWatch API"
    API_V1_STR: str = "/api"

    # Database - set DATABASE_URL to a postgresql:// URL in production
    DATABASE_URL: str = "sqlite:///./stormwatch.db"

    # CORS Configuration
    # BACKEND_CORS_ORIGINS=https://url1.com,https://url2.com (comma-separated)
    # OR: BACKEND_CORS_ORIGINS=["https://url1.com"] (JSON array)
    BACKEND_CORS_ORIGINS: Annotated[List[str], NoDecode] = [
        "http://localhost:5173",
        "http://localhost:8000",
    ]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS origins from various formats: JSON array, comma-separated, or single URL."""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            if v.startswith("["):
                try:
                    parsed = json.loads(v)
                    if isinstance(parsed, list):
                        return parsed
                except json.JSONDecodeError:
                    pass
            if "," in v:
                return [url.strip() for url in v.split(",") if url.strip()]
            if v.strip():
                return [v.strip()]
        return []

    @property
    def is_production(self) -> bool:
        return self.DATABASE_URL.startswith("postgresql") and "localhost" not in self.DATABASE_URL

    LOG_LEVEL: str = "INFO"

    # Spatial indexing
    DEFAULT_INFLUENCE_RADIUS_M: float = 500.0

    # Bulk operation ceilings (documents per call)
    MAX_DOCUMENTS_PER_CALL: int = 5000
    MIGRATION_BATCH_SIZE: int = 500
    CLEAR_BATCH_SIZE: int = 5000
    MAX_CELLS_PER_QUERY: int = 2500  # grid cells fanned out by one viewport/radius query

    # Prediction engine inputs
    PREDICTION_HISTORY_HOURS: int = 2
    PREDICTION_HISTORY_LIMIT: int = 12
    WEATHER_LOOKBACK_HOURS: int = 24

    # OpenWeatherMap (shared weather pool for the monitored city)
    OPENWEATHER_API_KEY: str = ""
    OPENWEATHER_BASE_URL: str = "https://api.openweathermap.org/data/2.5/weather"
    OPENWEATHER_TIMEOUT_SECONDS: float = 15.0
    WEATHER_LATITUDE: float = 13.6218      # Naga City, Philippines
    WEATHER_LONGITUDE: float = 123.1948

    # Background jobs (minutes)
    SCHEDULER_ENABLED: bool = True
    WEATHER_REFRESH_MINUTES: int = 15
    PREDICTION_SWEEP_MINUTES: int = 60
    ALERT_SWEEP_MINUTES: int = 30
    DEVICE_OFFLINE_MINUTES: int = 30

    class Config:
        case_sensitive = True
        env_file = ".env"

settings = Settings()
