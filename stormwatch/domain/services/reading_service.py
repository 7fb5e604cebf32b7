from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from ...infrastructure import models
from ...utils.timeutils import hours_ago_ms, now_ms

logger = logging.getLogger(__name__)


class ReadingService:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        device_id: UUID,
        reading_type: str,
        value: float,
        unit: str,
        timestamp: Optional[int] = None,
        metadata: Optional[dict] = None,
    ) -> models.SensorReading:
        if reading_type not in models.READING_TYPES:
            raise ValueError(f"Invalid reading type: {reading_type}")
        reading = models.SensorReading(
            device_id=device_id,
            reading_type=reading_type,
            value=value,
            unit=unit,
            timestamp=timestamp if timestamp is not None else now_ms(),
            extra_metadata=metadata,
        )
        self.db.add(reading)
        self.db.commit()
        self.db.refresh(reading)
        return reading

    def get_by_device(self, device_id: UUID, limit: Optional[int] = None) -> List[models.SensorReading]:
        """Newest first."""
        query = self.db.query(models.SensorReading).filter(
            models.SensorReading.device_id == device_id
        ).order_by(models.SensorReading.timestamp.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def get_recent_by_type(
        self, device_id: UUID, reading_type: str, hours: float
    ) -> List[models.SensorReading]:
        """Readings of one type from the last `hours`, newest first."""
        since = hours_ago_ms(hours)
        return self.db.query(models.SensorReading).filter(
            models.SensorReading.device_id == device_id,
            models.SensorReading.reading_type == reading_type,
            models.SensorReading.timestamp >= since,
        ).order_by(models.SensorReading.timestamp.desc()).all()

    def get_by_time_range(self, device_id: UUID, start: int, end: int) -> List[models.SensorReading]:
        return self.db.query(models.SensorReading).filter(
            models.SensorReading.device_id == device_id,
            models.SensorReading.timestamp >= start,
            models.SensorReading.timestamp <= end,
        ).order_by(models.SensorReading.timestamp.asc()).all()

    def delete_older_than(self, cutoff: int) -> int:
        count = self.db.query(models.SensorReading).filter(
            models.SensorReading.timestamp < cutoff
        ).delete(synchronize_session=False)
        self.db.commit()
        if count:
            logger.info(f"Deleted {count} sensor readings older than {cutoff}")
        return count
