"""
Shared dependencies for FastAPI routes: device authentication by API key and
domain error mapping.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ..domain.errors import BatchTooLargeError, InvalidGeometryError, NotFoundError, StormWatchError
from ..domain.services.device_service import DeviceService
from ..infrastructure.database import get_db
from ..infrastructure.models import IoTDevice


def get_device_from_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    db: Session = Depends(get_db),
) -> IoTDevice:
    """
    Resolve the calling device from its X-API-Key header.

    Raises:
        HTTPException: 401 if the key is missing or unknown, 403 if the device is disabled
    """
    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-API-Key header",
        )

    device = DeviceService(db).get_by_api_key(x_api_key)
    if not device:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    if not device.is_enabled:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Device is disabled",
        )

    return device


def to_http_exception(error: StormWatchError) -> HTTPException:
    """Map a domain error onto its HTTP status."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, InvalidGeometryError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, BatchTooLargeError):
        return HTTPException(status_code=413, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
