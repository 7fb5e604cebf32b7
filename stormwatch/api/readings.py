from fastapi import APIRouter, BackgroundTasks, HTTPException, Depends, Query
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
import logging

from ..infrastructure.database import get_db, get_session_factory
from ..infrastructure import models
from ..domain.models import IngestResponse, ReadingCreate, ReadingResponse
from ..domain.services.device_service import DeviceService
from ..domain.services.prediction_engine import run_prediction_cycle
from ..domain.services.reading_service import ReadingService
from .deps import get_device_from_api_key

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/", response_model=IngestResponse, status_code=201)
def ingest_reading(
    reading: ReadingCreate,
    background_tasks: BackgroundTasks,
    device: models.IoTDevice = Depends(get_device_from_api_key),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """
    Ingest a sensor reading from a device.

    Authentication: X-API-Key header identifies the device. A deviceId in the
    body is optional and must match the key's device.

    Returns:
    - 201: Reading stored; a prediction cycle for the device is scheduled
    - 401: Missing or invalid API key
    - 403: Device disabled, or deviceId does not match the key
    """
    if reading.device_id is not None and reading.device_id != device.id:
        raise HTTPException(status_code=403, detail="deviceId does not match API key")

    try:
        stored = ReadingService(db).create(
            device_id=device.id,
            reading_type=reading.reading_type,
            value=reading.value,
            unit=reading.unit,
            timestamp=reading.timestamp,
            metadata=reading.metadata,
        )
        DeviceService(db).update_last_seen(device.id)
    except Exception as e:
        logger.error(f"Error storing reading for device {device.id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to store reading")

    background_tasks.add_task(run_prediction_cycle, session_factory, device.id)
    logger.debug(f"Stored {reading.reading_type} reading {stored.id} from device {device.name}")

    return IngestResponse(reading_id=stored.id, device_id=device.id)


@router.get("/device/{device_id}", response_model=List[ReadingResponse])
def get_device_readings(
    device_id: UUID,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """Reading history for a device, newest first."""
    try:
        return ReadingService(db).get_by_device(device_id, limit=limit)
    except Exception as e:
        logger.error(f"Error fetching readings for device {device_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch readings")
