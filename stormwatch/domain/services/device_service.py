"""
IoT device registry: lookup by API key, liveness tracking and point-of-influence queries.
"""
from sqlalchemy.orm import Session
from typing import List, Optional, Sequence
from uuid import UUID
import logging
import secrets

from ...core.config import settings
from ...infrastructure import models
from ...utils.timeutils import MINUTE_MS, now_ms
from ..errors import NotFoundError
from ..geo.grid import haversine_distance

logger = logging.getLogger(__name__)


def generate_api_key() -> str:
    return secrets.token_urlsafe(32)


class DeviceService:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        name: str,
        location: Sequence[float],
        device_type: str = "water_level",
        capabilities: Optional[List[str]] = None,
        owner: Optional[str] = None,
        influence_radius: Optional[float] = None,
        is_enabled: bool = False,
        api_key: Optional[str] = None,
    ) -> models.IoTDevice:
        """
        Register a device. Devices start disabled until an operator enables
        them; seed data passes is_enabled=True.
        """
        if device_type not in models.DEVICE_TYPES:
            raise ValueError(f"Invalid device type: {device_type}")
        now = now_ms()
        device = models.IoTDevice(
            name=name,
            device_type=device_type,
            capabilities=capabilities or [device_type],
            owner=owner,
            api_key=api_key or generate_api_key(),
            location=[float(location[0]), float(location[1])],
            influence_radius=influence_radius or settings.DEFAULT_INFLUENCE_RADIUS_M,
            is_alive=False,
            is_enabled=is_enabled,
            created_at=now,
            updated_at=now,
        )
        self.db.add(device)
        self.db.commit()
        self.db.refresh(device)
        logger.info(f"Registered device {device.id} ({name}) at {device.location}")
        return device

    def get(self, device_id: UUID) -> Optional[models.IoTDevice]:
        return self.db.get(models.IoTDevice, device_id)

    def get_by_api_key(self, api_key: str) -> Optional[models.IoTDevice]:
        if not api_key:
            return None
        return self.db.query(models.IoTDevice).filter(
            models.IoTDevice.api_key == api_key
        ).first()

    def list_all(self) -> List[models.IoTDevice]:
        return self.db.query(models.IoTDevice).order_by(models.IoTDevice.name).all()

    def get_alive(self) -> List[models.IoTDevice]:
        return self.db.query(models.IoTDevice).filter(
            models.IoTDevice.is_alive == True
        ).all()

    def devices_affecting_point(self, lat: float, lng: float) -> List[models.IoTDevice]:
        """Devices whose influence radius covers (lat, lng)."""
        return [
            device for device in self.list_all()
            if haversine_distance(lat, lng, device.latitude, device.longitude) <= device.influence_radius
        ]

    def update_last_seen(self, device_id: UUID, commit: bool = True) -> models.IoTDevice:
        device = self.get(device_id)
        if not device:
            raise NotFoundError("Device", device_id)
        now = now_ms()
        device.last_seen = now
        device.is_alive = True
        device.updated_at = now
        if commit:
            self.db.commit()
        return device

    def set_enabled(self, device_id: UUID, is_enabled: bool) -> models.IoTDevice:
        device = self.get(device_id)
        if not device:
            raise NotFoundError("Device", device_id)
        device.is_enabled = is_enabled
        device.updated_at = now_ms()
        self.db.commit()
        logger.info(f"Device {device_id} {'enabled' if is_enabled else 'disabled'}")
        return device

    def regenerate_api_key(self, device_id: UUID) -> str:
        """Replace the device's API key. The old key stops working immediately."""
        device = self.get(device_id)
        if not device:
            raise NotFoundError("Device", device_id)
        device.api_key = generate_api_key()
        device.updated_at = now_ms()
        self.db.commit()
        logger.info(f"Regenerated API key for device {device_id}")
        return device.api_key

    def mark_stale_devices(self, max_silence_minutes: Optional[int] = None) -> int:
        """Flag devices silent for longer than max_silence_minutes as not alive."""
        if max_silence_minutes is None:
            max_silence_minutes = settings.DEVICE_OFFLINE_MINUTES
        cutoff = now_ms() - max_silence_minutes * MINUTE_MS
        stale = self.db.query(models.IoTDevice).filter(
            models.IoTDevice.is_alive == True,
            (models.IoTDevice.last_seen == None) | (models.IoTDevice.last_seen < cutoff),
        ).all()
        for device in stale:
            device.is_alive = False
        self.db.commit()
        if stale:
            logger.info(f"Marked {len(stale)} devices offline (silent > {max_silence_minutes} min)")
        return len(stale)
