from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from ..infrastructure.database import get_db
from ..domain.errors import StormWatchError
from ..domain.geo.grid import Bounds
from ..domain.models import (
    BulkImportRequest,
    BulkImportResult,
    ClearBatchResult,
    GridCellsRequest,
    GridCellsResponse,
    GridCellUpdatesRequest,
    MigrationRequest,
    MigrationResult,
    RoadSegmentCreate,
    RoadSegmentPage,
    RoadSegmentResponse,
    RoadStatus,
    RoadStatusUpdate,
)
from ..domain.services.road_segment_service import RoadSegmentService
from .deps import to_http_exception

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=RoadSegmentPage)
def list_road_segments(
    status: Optional[RoadStatus] = Query(None),
    cursor: Optional[str] = Query(None),
    limit: int = Query(100, ge=1),
    db: Session = Depends(get_db),
):
    """Paginated scan ordered by id. Pass continueCursor back as cursor until isDone."""
    try:
        return RoadSegmentService(db).paginate(limit=limit, cursor=cursor, status=status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error listing road segments: {e}")
        raise HTTPException(status_code=500, detail="Failed to list road segments")


@router.get("/viewport", response_model=List[RoadSegmentResponse])
def get_viewport_segments(
    min_lat: float = Query(..., alias="minLat", ge=-90, le=90),
    max_lat: float = Query(..., alias="maxLat", ge=-90, le=90),
    min_lng: float = Query(..., alias="minLng", ge=-180, le=180),
    max_lng: float = Query(..., alias="maxLng", ge=-180, le=180),
    db: Session = Depends(get_db),
):
    """Segments whose bounding box intersects the viewport."""
    if min_lat > max_lat or min_lng > max_lng:
        raise HTTPException(status_code=400, detail="Viewport minimums must not exceed maximums")
    try:
        bounds = Bounds(min_lat=min_lat, max_lat=max_lat, min_lng=min_lng, max_lng=max_lng)
        return RoadSegmentService(db).by_viewport(bounds)
    except StormWatchError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching viewport segments: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch viewport segments")


@router.get("/radius", response_model=List[RoadSegmentResponse])
def get_segments_within_radius(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_meters: float = Query(..., alias="radiusMeters", gt=0),
    db: Session = Depends(get_db),
):
    """Segments with at least one coordinate within radiusMeters of (lat, lng)."""
    try:
        return RoadSegmentService(db).within_radius(lat, lng, radius_meters)
    except StormWatchError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching segments within radius: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch segments within radius")


@router.post("/cells", response_model=GridCellsResponse)
def get_segments_by_cells(request: GridCellsRequest, db: Session = Depends(get_db)):
    """Segments for a set of grid cells (incremental map loading)."""
    try:
        return RoadSegmentService(db).by_grid_cells(request.grid_cells)
    except StormWatchError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching segments for {len(request.grid_cells)} cells: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch grid cells")


@router.post("/cells/updates", response_model=GridCellsResponse)
def get_cell_updates(request: GridCellUpdatesRequest, db: Session = Depends(get_db)):
    """Segments in the cells updated after sinceTimestamp."""
    try:
        return RoadSegmentService(db).updates_for_cells(request.grid_cells, request.since_timestamp)
    except StormWatchError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching cell updates: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch grid cell updates")


@router.get("/status/{status}", response_model=List[RoadSegmentResponse])
def get_segments_by_status(status: RoadStatus, db: Session = Depends(get_db)):
    try:
        return RoadSegmentService(db).by_status(status)
    except Exception as e:
        logger.error(f"Error fetching segments by status {status}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch road segments")


@router.get("/{segment_id}", response_model=RoadSegmentResponse)
def get_road_segment(segment_id: UUID, db: Session = Depends(get_db)):
    segment = RoadSegmentService(db).by_id(segment_id)
    if not segment:
        raise HTTPException(status_code=404, detail="Road segment not found")
    return segment


@router.post("/", response_model=RoadSegmentResponse, status_code=201)
def create_road_segment(segment: RoadSegmentCreate, db: Session = Depends(get_db)):
    """Create a segment; spatial fields are derived from coordinates."""
    try:
        return RoadSegmentService(db).create(
            name=segment.name,
            coordinates=segment.coordinates,
            road_type=segment.road_type,
            status=segment.status,
        )
    except StormWatchError as e:
        db.rollback()
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating road segment: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create road segment")


@router.post("/bulk-import", response_model=BulkImportResult)
def bulk_import_segments(request: BulkImportRequest, db: Session = Depends(get_db)):
    """
    Import one batch of segments. Duplicate osmIds and rows with bad geometry
    are skipped and counted. Batches over the per-call limit get 413; the
    caller should split them.
    """
    try:
        return RoadSegmentService(db).bulk_import(request.segments)
    except StormWatchError as e:
        db.rollback()
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error importing {len(request.segments)} road segments: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to import road segments")


@router.patch("/{segment_id}/status", response_model=RoadSegmentResponse)
def update_road_status(segment_id: UUID, update: RoadStatusUpdate, db: Session = Depends(get_db)):
    """Manual status override. The next prediction cycle for a nearby device replaces it."""
    try:
        return RoadSegmentService(db).update_status(segment_id, update.status)
    except StormWatchError as e:
        db.rollback()
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating road segment {segment_id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to update road segment")


@router.delete("/{segment_id}", status_code=204)
def delete_road_segment(segment_id: UUID, db: Session = Depends(get_db)):
    try:
        RoadSegmentService(db).remove(segment_id)
    except StormWatchError as e:
        db.rollback()
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error deleting road segment {segment_id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to delete road segment")


@router.post("/clear-batch", response_model=ClearBatchResult)
def clear_road_segments(limit: Optional[int] = Query(None, ge=1), db: Session = Depends(get_db)):
    """Delete one batch of segments. Repeat while hasMore."""
    try:
        return RoadSegmentService(db).clear_batch(limit)
    except Exception as e:
        logger.error(f"Error clearing road segments: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to clear road segments")


@router.post("/migrate-spatial-fields", response_model=MigrationResult)
def migrate_spatial_fields(request: Optional[MigrationRequest] = None, db: Session = Depends(get_db)):
    """Backfill spatial fields on one page of segments. Repeat with continueCursor until isDone."""
    request = request or MigrationRequest()
    try:
        return RoadSegmentService(db).migrate_spatial_fields(request.cursor, request.limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error migrating spatial fields: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to migrate spatial fields")
