"""
Shared weather pool. Samples are city-wide and not tied to any device.
"""
from sqlalchemy.orm import Session
from typing import Dict, List
import logging

from ...infrastructure import models
from ...utils.timeutils import hours_ago_ms

logger = logging.getLogger(__name__)


class WeatherService:
    def __init__(self, db: Session):
        self.db = db

    def get_recent_weather(self, hours: float = 24) -> List[models.WeatherData]:
        """Samples fetched in the last `hours`, newest first."""
        since = hours_ago_ms(hours)
        return self.db.query(models.WeatherData).filter(
            models.WeatherData.fetched_at >= since
        ).order_by(models.WeatherData.fetched_at.desc()).all()

    def store(self, data: Dict) -> models.WeatherData:
        sample = models.WeatherData(**data)
        self.db.add(sample)
        self.db.commit()
        logger.info(
            f"Stored weather sample: {sample.weather_condition}, "
            f"rain1h={sample.rainfall_1h}, humidity={sample.humidity}"
        )
        return sample
