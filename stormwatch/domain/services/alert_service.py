"""
Alert service for flood alerts raised by device predictions.

One active alert per device. New predictions refresh its message and may
escalate its severity; they never downgrade it.
"""
from sqlalchemy.orm import Session
from uuid import UUID
from typing import List, Optional, Sequence
import logging

from ...infrastructure import models
from ...utils.timeutils import now_ms
from ..errors import NotFoundError
from .prediction_service import passability_from_height

logger = logging.getLogger(__name__)

ALERT_SEVERITY_RANK = {"info": 0, "warning": 1, "danger": 2, "critical": 3}

# Prediction severity -> alert severity. "low" raises nothing.
ALERT_SEVERITY_FOR = {"medium": "warning", "high": "danger", "critical": "critical"}


def build_alert_message(water_level: float) -> str:
    message = f"Flood height predicted: {water_level:.0f}cm"
    passability = passability_from_height(water_level)
    impassable = [user for user in ("vehicles", "humans") if not passability[user]]
    if water_level > 0 and impassable:
        message += f" - Road impassable for {' and '.join(impassable)}"
    return message


class AlertService:
    def __init__(self, db: Session):
        self.db = db

    def get_all(self, limit: int = 100) -> List[models.Alert]:
        return self.db.query(models.Alert).order_by(
            models.Alert.created_at.desc()
        ).limit(limit).all()

    def get_active(self) -> List[models.Alert]:
        """Active alerts that have not yet expired, newest first."""
        now = now_ms()
        alerts = self.db.query(models.Alert).filter(
            models.Alert.is_active == True
        ).order_by(models.Alert.created_at.desc()).all()
        return [a for a in alerts if a.expires_at is None or a.expires_at > now]

    def get_by_severity(self, severity: str) -> List[models.Alert]:
        return self.db.query(models.Alert).filter(
            models.Alert.severity == severity
        ).order_by(models.Alert.created_at.desc()).all()

    def get_active_for_device(self, device_id: UUID) -> Optional[models.Alert]:
        # affected_device_ids is a JSON list; membership is checked here rather
        # than in SQL so the query runs the same on SQLite and Postgres.
        key = str(device_id)
        for alert in self.get_active():
            if key in (alert.affected_device_ids or []):
                return alert
        return None

    def create(
        self,
        title: str,
        message: str,
        severity: str,
        affected_device_ids: Sequence[str],
        affected_road_ids: Optional[Sequence[str]] = None,
        expires_at: Optional[int] = None,
        commit: bool = True,
    ) -> models.Alert:
        if severity not in ALERT_SEVERITY_RANK:
            raise ValueError(f"Invalid alert severity: {severity}")
        now = now_ms()
        alert = models.Alert(
            title=title,
            message=message,
            severity=severity,
            affected_device_ids=[str(d) for d in affected_device_ids],
            affected_road_ids=[str(r) for r in affected_road_ids] if affected_road_ids else None,
            is_active=True,
            starts_at=now,
            expires_at=expires_at,
            created_at=now,
        )
        self.db.add(alert)
        if commit:
            self.db.commit()
        else:
            self.db.flush()
        return alert

    def upsert_for_device(
        self,
        device: models.IoTDevice,
        severity: str,
        water_level: float,
        valid_until: int,
        road_ids: Sequence[UUID] = (),
        commit: bool = True,
    ) -> Optional[models.Alert]:
        """
        Create or escalate the device's active alert.

        Returns the alert touched, or None when severity is "low".
        """
        alert_severity = ALERT_SEVERITY_FOR.get(severity)
        if alert_severity is None:
            return None

        message = build_alert_message(water_level)
        road_keys = [str(r) for r in road_ids]
        alert = self.get_active_for_device(device.id)

        if alert is None:
            alert = self.create(
                title=f"Flood Alert: {device.name}",
                message=message,
                severity=alert_severity,
                affected_device_ids=[str(device.id)],
                affected_road_ids=road_keys,
                expires_at=valid_until,
                commit=False,
            )
            logger.info(f"Created {alert_severity} alert for device {device.id} ({device.name})")
        else:
            if ALERT_SEVERITY_RANK[alert_severity] > ALERT_SEVERITY_RANK.get(alert.severity, 0):
                logger.info(f"Escalating alert {alert.id}: {alert.severity} -> {alert_severity}")
                alert.severity = alert_severity
            alert.message = message
            merged = list(alert.affected_road_ids or [])
            merged.extend(r for r in road_keys if r not in merged)
            alert.affected_road_ids = merged
            if alert.expires_at is None or valid_until > alert.expires_at:
                alert.expires_at = valid_until

        if commit:
            self.db.commit()
        return alert

    def set_active(self, alert_id: UUID, is_active: bool) -> models.Alert:
        alert = self.db.get(models.Alert, alert_id)
        if not alert:
            raise NotFoundError("Alert", alert_id)
        alert.is_active = is_active
        self.db.commit()
        return alert

    def remove(self, alert_id: UUID) -> None:
        alert = self.db.get(models.Alert, alert_id)
        if not alert:
            raise NotFoundError("Alert", alert_id)
        self.db.delete(alert)
        self.db.commit()

    def deactivate_expired(self) -> int:
        """Mark active alerts past expires_at inactive. Returns count changed."""
        now = now_ms()
        expired = self.db.query(models.Alert).filter(
            models.Alert.is_active == True,
            models.Alert.expires_at.isnot(None),
            models.Alert.expires_at <= now,
        ).all()
        for alert in expired:
            alert.is_active = False
        self.db.commit()
        if expired:
            logger.info(f"Deactivated {len(expired)} expired alerts")
        return len(expired)
