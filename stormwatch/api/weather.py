from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.orm import Session
from typing import List
import logging

from ..infrastructure.database import get_db
from ..domain.models import WeatherResponse
from ..domain.services.weather_service import WeatherService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/recent", response_model=List[WeatherResponse])
def get_recent_weather(hours: float = Query(24, gt=0, le=168), db: Session = Depends(get_db)):
    """Shared weather samples from the last `hours`, newest first."""
    try:
        return WeatherService(db).get_recent_weather(hours)
    except Exception as e:
        logger.error(f"Error fetching recent weather: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch weather")
