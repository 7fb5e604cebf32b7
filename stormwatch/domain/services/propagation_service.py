"""
Propagates a device's flood predictions onto the road network.

The device's worst valid prediction picks a road status, every segment within
its influence radius is set to that status (manual overrides included), and
the device's alert is created or escalated.
"""
from dataclasses import dataclass, field
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from ...infrastructure import models
from ..errors import NotFoundError
from .alert_service import AlertService
from .prediction_service import PredictionService, SEVERITY_RANK, severity_from_height
from .road_segment_service import RoadSegmentService

logger = logging.getLogger(__name__)

ROAD_STATUS_FOR = {
    "critical": "flooded",
    "high": "flooded",
    "medium": "risk",
    "low": "clear",
}


@dataclass
class PropagationResult:
    updated: int
    device_id: UUID
    device_name: Optional[str] = None
    severity: Optional[str] = None
    status: Optional[str] = None
    max_water_level: Optional[float] = None
    message: Optional[str] = None
    road_ids: List[UUID] = field(default_factory=list)


class PropagationService:
    def __init__(self, db: Session):
        self.db = db
        self.predictions = PredictionService(db)
        self.roads = RoadSegmentService(db)
        self.alerts = AlertService(db)

    def propagate(self, device_id: UUID) -> PropagationResult:
        """
        Apply the device's current predictions to nearby roads.

        Raises:
            NotFoundError: device does not exist
            BatchTooLargeError: influence area spans too many grid cells (nothing is written)
        """
        device = self.db.get(models.IoTDevice, device_id)
        if not device:
            raise NotFoundError("Device", device_id)

        predictions = [
            p for p in self.predictions.get_valid_for_device(device_id)
            if p.predicted_water_level is not None
        ]
        if not predictions:
            return PropagationResult(
                updated=0,
                device_id=device_id,
                device_name=device.name,
                message="No valid predictions with water level",
            )

        worst = max(
            predictions,
            key=lambda p: (
                SEVERITY_RANK[severity_from_height(p.predicted_water_level)],
                p.predicted_water_level,
            ),
        )
        max_level = worst.predicted_water_level
        severity = severity_from_height(max_level)
        status = ROAD_STATUS_FOR[severity]

        segments = self.roads.within_radius(
            device.latitude, device.longitude, device.influence_radius
        )
        for segment in segments:
            self.roads.update_status(segment.id, status, commit=False)

        road_ids = [segment.id for segment in segments]
        self.alerts.upsert_for_device(
            device,
            severity=severity,
            water_level=max_level,
            valid_until=worst.valid_until,
            road_ids=road_ids,
            commit=False,
        )
        self.db.commit()

        logger.info(
            f"Propagated {severity} ({max_level:.1f}cm) from device {device.name}: "
            f"{len(segments)} road segments set to {status}"
        )
        return PropagationResult(
            updated=len(segments),
            device_id=device_id,
            device_name=device.name,
            severity=severity,
            status=status,
            max_water_level=max_level,
            message=f"Updated {len(segments)} road segments to {status}",
            road_ids=road_ids,
        )
