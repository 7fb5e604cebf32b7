from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
import logging

from ..infrastructure.database import get_db
from ..infrastructure import models
from ..domain.models import DeviceResponse
from ..domain.services.device_service import DeviceService
from .deps import get_device_from_api_key

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=List[DeviceResponse])
def list_devices(db: Session = Depends(get_db)):
    try:
        return DeviceService(db).list_all()
    except Exception as e:
        logger.error(f"Error listing devices: {e}")
        raise HTTPException(status_code=500, detail="Failed to list devices")


@router.get("/affecting-point", response_model=List[DeviceResponse])
def get_devices_affecting_point(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    db: Session = Depends(get_db),
):
    """Devices whose influence radius covers the given point."""
    try:
        return DeviceService(db).devices_affecting_point(lat, lng)
    except Exception as e:
        logger.error(f"Error finding devices affecting ({lat}, {lng}): {e}")
        raise HTTPException(status_code=500, detail="Failed to find devices")


@router.get("/{device_id}", response_model=DeviceResponse)
def get_device(device_id: UUID, db: Session = Depends(get_db)):
    device = DeviceService(db).get(device_id)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    return device


@router.post("/heartbeat")
def device_heartbeat(
    device: models.IoTDevice = Depends(get_device_from_api_key),
    db: Session = Depends(get_db),
):
    """Device ping: marks the device alive and refreshes lastSeen."""
    try:
        device = DeviceService(db).update_last_seen(device.id)
        return {"success": True, "deviceId": str(device.id), "lastSeen": device.last_seen}
    except Exception as e:
        logger.error(f"Error recording heartbeat for device {device.id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to record heartbeat")
