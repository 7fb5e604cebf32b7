from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
import logging

from ..infrastructure.database import get_db
from ..domain.errors import StormWatchError
from ..domain.models import AlertResponse, AlertSeverity, AlertStatusUpdate
from ..domain.services.alert_service import AlertService
from .deps import to_http_exception

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=List[AlertResponse])
def list_alerts(limit: int = Query(100, ge=1, le=500), db: Session = Depends(get_db)):
    try:
        return AlertService(db).get_all(limit=limit)
    except Exception as e:
        logger.error(f"Error listing alerts: {e}")
        raise HTTPException(status_code=500, detail="Failed to list alerts")


@router.get("/active", response_model=List[AlertResponse])
def get_active_alerts(db: Session = Depends(get_db)):
    try:
        return AlertService(db).get_active()
    except Exception as e:
        logger.error(f"Error fetching active alerts: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch alerts")


@router.get("/severity/{severity}", response_model=List[AlertResponse])
def get_alerts_by_severity(severity: AlertSeverity, db: Session = Depends(get_db)):
    try:
        return AlertService(db).get_by_severity(severity)
    except Exception as e:
        logger.error(f"Error fetching {severity} alerts: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch alerts")


@router.patch("/{alert_id}/status", response_model=AlertResponse)
def update_alert_status(alert_id: UUID, update: AlertStatusUpdate, db: Session = Depends(get_db)):
    """Activate or dismiss an alert."""
    try:
        return AlertService(db).set_active(alert_id, update.is_active)
    except StormWatchError as e:
        db.rollback()
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating alert {alert_id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to update alert")
