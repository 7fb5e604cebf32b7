"""
Flood prediction endpoints.

Predictions are produced per device for the 1h/2h/4h/8h horizons and
overwritten on every cycle. Expired rows are filtered from reads and purged
by the scheduler.
"""
from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
import logging

from ..infrastructure.database import get_db
from ..domain.errors import StormWatchError
from ..domain.models import PredictionResponse, PropagationResponse, TimeHorizon
from ..domain.services.prediction_engine import PredictionEngine
from ..domain.services.prediction_service import PredictionService
from ..domain.services.propagation_service import PropagationService
from .deps import to_http_exception

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/device/{device_id}", response_model=List[PredictionResponse])
def get_device_predictions(device_id: UUID, db: Session = Depends(get_db)):
    try:
        return PredictionService(db).get_by_device(device_id)
    except Exception as e:
        logger.error(f"Error fetching predictions for device {device_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch predictions")


@router.get("/device/{device_id}/latest", response_model=List[PredictionResponse])
def get_latest_device_predictions(device_id: UUID, db: Session = Depends(get_db)):
    """Newest non-expired prediction for each horizon."""
    try:
        return PredictionService(db).get_latest_by_device(device_id)
    except Exception as e:
        logger.error(f"Error fetching latest predictions for device {device_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch predictions")


@router.get("/valid", response_model=List[PredictionResponse])
def get_valid_predictions(db: Session = Depends(get_db)):
    try:
        return PredictionService(db).get_valid()
    except Exception as e:
        logger.error(f"Error fetching valid predictions: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch predictions")


@router.get("/horizon/{time_horizon}", response_model=List[PredictionResponse])
def get_predictions_by_horizon(time_horizon: TimeHorizon, db: Session = Depends(get_db)):
    try:
        return PredictionService(db).get_by_horizon(time_horizon)
    except Exception as e:
        logger.error(f"Error fetching {time_horizon} predictions: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch predictions")


@router.post("/device/{device_id}/generate", response_model=List[PredictionResponse])
def generate_predictions(device_id: UUID, db: Session = Depends(get_db)):
    """
    Run a prediction cycle now. Returns the saved predictions, or an empty
    list when the device has no water level reading in the last 2 hours.
    """
    try:
        run = PredictionEngine(db).generate(device_id)
        return run.predictions if run else []
    except StormWatchError as e:
        db.rollback()
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error generating predictions for device {device_id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to generate predictions")


@router.post("/device/{device_id}/propagate", response_model=PropagationResponse)
def propagate_predictions(device_id: UUID, db: Session = Depends(get_db)):
    """Re-apply the device's current predictions to nearby road segments."""
    try:
        return PropagationService(db).propagate(device_id)
    except StormWatchError as e:
        db.rollback()
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error propagating predictions for device {device_id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to propagate predictions")


@router.delete("/expired")
def delete_expired_predictions(db: Session = Depends(get_db)):
    try:
        deleted = PredictionService(db).delete_expired()
        return {"deleted": deleted}
    except Exception as e:
        logger.error(f"Error deleting expired predictions: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to delete expired predictions")
