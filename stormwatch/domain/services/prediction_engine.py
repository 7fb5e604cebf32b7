"""
Flood prediction engine.

For one device:
1. Load context: water_level readings from the last 2 hours (newest is the
   current level, up to 12 most recent form the trend history) and the shared
   weather pool from the last 24 hours.
2. Trend factor (cm/hour): least-squares slope of level against hours since
   the first historical reading.
3. Weather factor (cm/hour): rainfall from the newest weather sample scaled by
   a condition multiplier and a humidity boost.
4. Project each horizon: level = max(0, current + (trend + weather) * hours).
5. Upsert one prediction per (device, horizon), then propagate to roads.

Safe to run concurrently for different devices. For the same device the last
write wins on each (device, horizon) row.
"""
from dataclasses import dataclass, field
from sqlalchemy.orm import Session
from typing import List, Optional, Sequence, Tuple
from uuid import UUID
import logging

from ...core.config import settings
from ...infrastructure import models
from ...utils.timeutils import HOUR_MS, now_ms
from ..errors import NotFoundError
from .prediction_service import (
    HORIZON_HOURS,
    PredictionService,
    flood_probability_from_height,
    severity_from_height,
)
from .propagation_service import PropagationResult, PropagationService
from .reading_service import ReadingService
from .weather_service import WeatherService

logger = logging.getLogger(__name__)

CONDITION_MULTIPLIERS = {
    "Thunderstorm": 1.5,
    "HeavyRain": 1.8,
    "Rain": 1.2,
    "Drizzle": 1.1,
    "Clouds": 1.0,
    "Clear": 0.9,
}
HUMIDITY_BOOST_THRESHOLD = 80
HUMIDITY_BOOST = 1.1


@dataclass
class PredictionContext:
    current_reading: Optional[models.SensorReading]
    historical_readings: List[models.SensorReading]  # oldest first
    weather: List[models.WeatherData]  # newest first


@dataclass
class PredictionRun:
    predictions: List[models.Prediction]
    propagation: Optional[PropagationResult] = None
    metadata: dict = field(default_factory=dict)


def calculate_trend_factor(points: Sequence[Tuple[int, float]]) -> float:
    """
    OLS slope in cm/hour over (timestamp_ms, value) pairs.

    Returns 0 for fewer than 2 points or when every timestamp is equal.
    """
    n = len(points)
    if n < 2:
        return 0.0

    first_ts = points[0][0]
    xs = [(ts - first_ts) / HOUR_MS for ts, _ in points]
    ys = [value for _, value in points]

    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))
    sum_x2 = sum(x * x for x in xs)

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def calculate_weather_factor(sample: Optional[models.WeatherData]) -> float:
    if sample is None:
        return 0.0

    factor = 0.0
    if sample.rainfall_1h is not None:
        factor += sample.rainfall_1h * 0.2
    if sample.rainfall_3h is not None:
        factor += (sample.rainfall_3h / 3) * 0.15

    factor *= CONDITION_MULTIPLIERS.get(sample.weather_condition, 1.0)

    if sample.humidity is not None and sample.humidity > HUMIDITY_BOOST_THRESHOLD:
        factor *= HUMIDITY_BOOST
    return factor


def project_water_level(current_level: float, trend_factor: float, weather_factor: float, hours: float) -> float:
    return max(0.0, current_level + trend_factor * hours + weather_factor * hours)


class PredictionEngine:
    def __init__(self, db: Session):
        self.db = db
        self.readings = ReadingService(db)
        self.weather = WeatherService(db)
        self.predictions = PredictionService(db)

    def load_context(self, device_id: UUID) -> PredictionContext:
        recent = self.readings.get_recent_by_type(
            device_id, "water_level", settings.PREDICTION_HISTORY_HOURS
        )
        current = recent[0] if recent else None
        historical = list(reversed(recent[:settings.PREDICTION_HISTORY_LIMIT]))

        try:
            weather = self.weather.get_recent_weather(settings.WEATHER_LOOKBACK_HOURS)
        except Exception as e:
            logger.warning(f"Weather unavailable for device {device_id}, using no weather impact: {e}")
            weather = []

        return PredictionContext(current_reading=current, historical_readings=historical, weather=weather)

    def generate(self, device_id: UUID) -> Optional[PredictionRun]:
        """
        Run one prediction cycle for a device and cascade into propagation.

        Returns None (no-op) when the device has no recent water level reading.

        Raises:
            NotFoundError: device does not exist
        """
        device = self.db.get(models.IoTDevice, device_id)
        if not device:
            raise NotFoundError("Device", device_id)

        context = self.load_context(device_id)
        if context.current_reading is None:
            logger.info(f"No recent water level reading for device {device.name}, skipping prediction")
            return None

        current_level = context.current_reading.value
        trend_factor = calculate_trend_factor(
            [(r.timestamp, r.value) for r in context.historical_readings]
        )
        weather_factor = calculate_weather_factor(context.weather[0] if context.weather else None)

        metadata = {
            "currentLevel": current_level,
            "trendFactor": trend_factor,
            "weatherFactor": weather_factor,
            "historicalReadingsCount": len(context.historical_readings),
            "weatherDataCount": len(context.weather),
        }

        now = now_ms()
        saved = []
        for horizon, hours in HORIZON_HOURS.items():
            level = project_water_level(current_level, trend_factor, weather_factor, hours)
            saved.append(self.predictions.upsert(
                device_id=device_id,
                time_horizon=horizon,
                flood_probability=flood_probability_from_height(level),
                severity=severity_from_height(level),
                predicted_at=now,
                valid_until=now + hours * HOUR_MS,
                predicted_water_level=level,
                metadata=metadata,
                commit=False,
            ))
        self.db.commit()

        logger.info(
            f"Prediction cycle for {device.name}: current={current_level:.1f}cm "
            f"trend={trend_factor:.2f}cm/h weather={weather_factor:.2f} "
            f"8h={saved[-1].predicted_water_level:.1f}cm ({saved[-1].severity})"
        )

        propagation = PropagationService(self.db).propagate(device_id)
        return PredictionRun(predictions=saved, propagation=propagation, metadata=metadata)


def run_prediction_cycle(session_factory, device_id: UUID) -> None:
    """Background entry point: own session, errors logged not raised."""
    db = session_factory()
    try:
        PredictionEngine(db).generate(device_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Prediction cycle failed for device {device_id}: {e}", exc_info=True)
    finally:
        db.close()
