"""
Prediction storage and the shared height -> risk mappings.

Severity by predicted water height (cm):
- low:      < 20
- medium:   20 - 50
- high:     50 - 100
- critical: >= 100

Lower bounds are inclusive. Flood probability is piecewise linear over the
same bands and continuous at 20/50/100 (0.30, 0.70, 0.95).
"""
from sqlalchemy.orm import Session
from typing import Dict, List, Optional
from uuid import UUID
import logging

from ...infrastructure import models
from ...utils.timeutils import now_ms

logger = logging.getLogger(__name__)

SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2, "critical": 3}

# Passability thresholds (cm)
VEHICLE_IMPASSABLE_CM = 30
HUMAN_IMPASSABLE_CM = 50

HORIZON_HOURS = {"1h": 1, "2h": 2, "4h": 4, "8h": 8}


def severity_from_height(height: float) -> str:
    if height < 20:
        return "low"
    if height < 50:
        return "medium"
    if height < 100:
        return "high"
    return "critical"


def flood_probability_from_height(height: float) -> float:
    if height >= 100:
        probability = 0.95
    elif height >= 50:
        probability = 0.70 + (height - 50) / 50 * 0.25
    elif height >= 20:
        probability = 0.30 + (height - 20) / 30 * 0.40
    else:
        probability = height / 20 * 0.30
    return min(1.0, max(0.0, probability))


def passability_from_height(height: float) -> Dict[str, bool]:
    """True means passable."""
    return {
        "vehicles": height < VEHICLE_IMPASSABLE_CM,
        "humans": height < HUMAN_IMPASSABLE_CM,
    }


class PredictionService:
    def __init__(self, db: Session):
        self.db = db

    def upsert(
        self,
        device_id: UUID,
        time_horizon: str,
        flood_probability: float,
        severity: str,
        predicted_at: int,
        valid_until: int,
        predicted_water_level: Optional[float] = None,
        metadata: Optional[dict] = None,
        commit: bool = True,
    ) -> models.Prediction:
        """Create or overwrite the single prediction for (device_id, time_horizon)."""
        if time_horizon not in HORIZON_HOURS:
            raise ValueError(f"Invalid time horizon: {time_horizon}")

        existing = self.db.query(models.Prediction).filter(
            models.Prediction.device_id == device_id,
            models.Prediction.time_horizon == time_horizon,
        ).first()

        if existing:
            existing.flood_probability = flood_probability
            existing.predicted_water_level = predicted_water_level
            existing.severity = severity
            existing.predicted_at = predicted_at
            existing.valid_until = valid_until
            existing.extra_metadata = metadata
            prediction = existing
        else:
            prediction = models.Prediction(
                device_id=device_id,
                time_horizon=time_horizon,
                flood_probability=flood_probability,
                predicted_water_level=predicted_water_level,
                severity=severity,
                predicted_at=predicted_at,
                valid_until=valid_until,
                extra_metadata=metadata,
            )
            self.db.add(prediction)

        if commit:
            self.db.commit()
        else:
            self.db.flush()
        return prediction

    def get_all(self) -> List[models.Prediction]:
        return self.db.query(models.Prediction).all()

    def get_by_device(self, device_id: UUID) -> List[models.Prediction]:
        return self.db.query(models.Prediction).filter(
            models.Prediction.device_id == device_id
        ).all()

    def get_valid_for_device(self, device_id: UUID, now: Optional[int] = None) -> List[models.Prediction]:
        """Non-expired predictions for a device."""
        if now is None:
            now = now_ms()
        return self.db.query(models.Prediction).filter(
            models.Prediction.device_id == device_id,
            models.Prediction.valid_until >= now,
        ).all()

    def get_latest_by_device(self, device_id: UUID) -> List[models.Prediction]:
        """Newest non-expired prediction per horizon, in horizon order."""
        latest: Dict[str, models.Prediction] = {}
        for prediction in self.get_valid_for_device(device_id):
            existing = latest.get(prediction.time_horizon)
            if existing is None or prediction.predicted_at > existing.predicted_at:
                latest[prediction.time_horizon] = prediction
        return [latest[h] for h in HORIZON_HOURS if h in latest]

    def get_by_horizon(self, time_horizon: str) -> List[models.Prediction]:
        return self.db.query(models.Prediction).filter(
            models.Prediction.time_horizon == time_horizon
        ).all()

    def get_valid(self) -> List[models.Prediction]:
        return self.db.query(models.Prediction).filter(
            models.Prediction.valid_until >= now_ms()
        ).all()

    def delete_expired(self) -> int:
        """Purge predictions past valid_until. Returns count deleted."""
        count = self.db.query(models.Prediction).filter(
            models.Prediction.valid_until < now_ms()
        ).delete(synchronize_session=False)
        self.db.commit()
        if count:
            logger.info(f"Deleted {count} expired predictions")
        return count
