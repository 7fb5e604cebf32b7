"""
Road segment spatial store.

Wraps the road_segments table with grid-cell indexed lookups, viewport and
radius queries, and the cursor-driven bulk operations (import, migrate,
clear). Bulk calls process one bounded batch and return a continuation; the
caller loops until done.
"""
from sqlalchemy.orm import Session
from sqlalchemy import select
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID
import logging

from ...core.config import settings
from ...infrastructure import models
from ...utils.timeutils import now_ms
from ..errors import BatchTooLargeError, InvalidGeometryError, NotFoundError
from ..geo.grid import (
    Bounds,
    bounds_intersect,
    cells_covering,
    count_cells_covering,
    compute_spatial_fields,
    is_within_radius,
    radius_bounds,
)

logger = logging.getLogger(__name__)

CELL_QUERY_CHUNK = 500  # grid cells per IN (...) lookup


def _segment_bounds(segment: models.RoadSegment) -> Bounds:
    return Bounds(
        min_lat=segment.min_lat,
        max_lat=segment.max_lat,
        min_lng=segment.min_lng,
        max_lng=segment.max_lng,
    )


def _parse_cursor(cursor: Optional[str]) -> Optional[UUID]:
    if not cursor:
        return None
    try:
        return UUID(cursor)
    except ValueError:
        raise ValueError(f"Invalid pagination cursor: {cursor!r}")


class RoadSegmentService:
    def __init__(self, db: Session):
        self.db = db

    def _clamp_limit(self, limit: Optional[int], default: int) -> int:
        if limit is None or limit <= 0:
            limit = default
        return min(limit, settings.MAX_DOCUMENTS_PER_CALL)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def by_id(self, segment_id: UUID) -> Optional[models.RoadSegment]:
        return self.db.get(models.RoadSegment, segment_id)

    def by_status(self, status: str) -> List[models.RoadSegment]:
        return self.db.query(models.RoadSegment).filter(
            models.RoadSegment.status == status
        ).all()

    def by_grid_cell(self, cell: str) -> List[models.RoadSegment]:
        return self.db.query(models.RoadSegment).filter(
            models.RoadSegment.grid_cell == cell
        ).all()

    def _check_cell_count(self, count: int) -> None:
        if count > settings.MAX_CELLS_PER_QUERY:
            raise BatchTooLargeError(count, settings.MAX_CELLS_PER_QUERY, unit="grid cells")

    def _fetch_cells(self, cells: Iterable[str]) -> Dict[UUID, models.RoadSegment]:
        """
        Indexed lookups over the grid_cell column, CELL_QUERY_CHUNK cells per
        query, deduplicated by id.

        Raises:
            BatchTooLargeError: more than MAX_CELLS_PER_QUERY distinct cells
        """
        distinct = sorted(set(cells))
        self._check_cell_count(len(distinct))

        unique: Dict[UUID, models.RoadSegment] = {}
        for start in range(0, len(distinct), CELL_QUERY_CHUNK):
            chunk = distinct[start:start + CELL_QUERY_CHUNK]
            rows = self.db.query(models.RoadSegment).filter(
                models.RoadSegment.grid_cell.in_(chunk)
            ).order_by(models.RoadSegment.id).all()
            for segment in rows:
                unique.setdefault(segment.id, segment)
        return unique

    def by_grid_cells(self, cells: Sequence[str]) -> Dict:
        """
        Segments for the requested cells (incremental loading). Echoes the
        cells back with server_time, the server clock read before the lookup.
        """
        server_time = now_ms()
        cells = list(cells)
        if not cells:
            return {"segments": [], "cells": [], "server_time": server_time}
        segments = list(self._fetch_cells(cells).values())
        return {"segments": segments, "cells": cells, "server_time": server_time}

    def updates_for_cells(self, cells: Sequence[str], since_timestamp: Optional[int] = None) -> Dict:
        """
        Segments in the cells changed after since_timestamp (staleness
        reconciliation). Clients pass back the server_time of their previous
        response so both sides of the comparison use the server clock.
        """
        server_time = now_ms()
        cells = list(cells)
        if not cells:
            return {"segments": [], "cells": [], "server_time": server_time}

        segments = self._fetch_cells(cells).values()
        if since_timestamp is not None:
            segments = [s for s in segments if s.updated_at > since_timestamp]
        return {"segments": list(segments), "cells": cells, "server_time": server_time}

    def paginate(
        self, limit: Optional[int] = None, cursor: Optional[str] = None, status: Optional[str] = None
    ) -> Dict:
        """
        Keyset pagination ordered by id. The cursor is the last id of the
        previous page; is_done is set once a page comes back short.
        """
        limit = self._clamp_limit(limit, 100)
        after = _parse_cursor(cursor)

        stmt = select(models.RoadSegment).order_by(models.RoadSegment.id)
        if status:
            stmt = stmt.where(models.RoadSegment.status == status)
        if after is not None:
            stmt = stmt.where(models.RoadSegment.id > after)

        rows = list(self.db.scalars(stmt.limit(limit + 1)))
        is_done = len(rows) <= limit
        page = rows[:limit]
        continue_cursor = str(page[-1].id) if page else cursor

        return {"page": page, "continue_cursor": continue_cursor, "is_done": is_done}

    # ------------------------------------------------------------------
    # Spatial queries
    # ------------------------------------------------------------------

    def by_viewport(self, bounds: Bounds) -> List[models.RoadSegment]:
        """
        Cell fan-out prefilter, then exact bounding box intersection.
        Segments without spatial fields are not returned until migrated.

        Raises:
            BatchTooLargeError: bounds span more than MAX_CELLS_PER_QUERY cells
        """
        self._check_cell_count(count_cells_covering(bounds))
        candidates = self._fetch_cells(cells_covering(bounds))
        return [
            segment for segment in candidates.values()
            if segment.has_spatial_fields and bounds_intersect(_segment_bounds(segment), bounds)
        ]

    def within_radius(self, lat: float, lng: float, radius_meters: float) -> List[models.RoadSegment]:
        """Segments with any coordinate within radius_meters of (lat, lng)."""
        candidates = self.by_viewport(radius_bounds(lat, lng, radius_meters))
        return [
            segment for segment in candidates
            if is_within_radius(segment.coordinates, lat, lng, radius_meters)
        ]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        coordinates: List[List[float]],
        road_type: Optional[str] = None,
        status: str = "clear",
        osm_id: Optional[str] = None,
    ) -> models.RoadSegment:
        """
        Create a single segment. Invalid geometry propagates as
        InvalidGeometryError; the caller must supply valid coordinates.
        """
        spatial_fields = compute_spatial_fields(coordinates)
        now = now_ms()
        segment = models.RoadSegment(
            name=name,
            coordinates=coordinates,
            road_type=road_type,
            status=status,
            osm_id=osm_id,
            created_at=now,
            updated_at=now,
            **spatial_fields,
        )
        self.db.add(segment)
        self.db.commit()
        self.db.refresh(segment)
        logger.info(f"Created road segment {segment.id} ({name}) in cell {segment.grid_cell}")
        return segment

    def _osm_id_exists(self, osm_id: str) -> bool:
        return self.db.query(models.RoadSegment.id).filter(
            models.RoadSegment.osm_id == osm_id
        ).first() is not None

    def bulk_import(self, segments: Sequence) -> Dict[str, int]:
        """
        Insert a batch of segments with spatial fields computed up front.

        Rows are deduplicated by osm_id within the batch and against stored
        rows (indexed lookup). Rows without osm_id are always inserted. Rows
        with bad geometry are skipped and counted, never fatal.

        Raises:
            BatchTooLargeError: batch above MAX_DOCUMENTS_PER_CALL (caller chunks)
        """
        if len(segments) > settings.MAX_DOCUMENTS_PER_CALL:
            raise BatchTooLargeError(len(segments), settings.MAX_DOCUMENTS_PER_CALL)

        now = now_ms()
        imported = 0
        skipped = 0
        inserted_in_batch = set()

        for item in segments:
            osm_id = item.osm_id
            if osm_id and (osm_id in inserted_in_batch or self._osm_id_exists(osm_id)):
                skipped += 1
                continue

            try:
                spatial_fields = compute_spatial_fields(item.coordinates)
            except InvalidGeometryError as e:
                logger.warning(f"Skipping import of '{item.name}' (osm_id={osm_id}): {e}")
                skipped += 1
                continue

            self.db.add(models.RoadSegment(
                osm_id=osm_id,
                name=item.name,
                coordinates=item.coordinates,
                road_type=item.road_type,
                status="clear",
                created_at=now,
                updated_at=now,
                **spatial_fields,
            ))
            if osm_id:
                inserted_in_batch.add(osm_id)
            imported += 1

        self.db.commit()
        logger.info(f"Bulk import: {imported} imported, {skipped} skipped of {len(segments)}")
        return {"imported": imported, "skipped": skipped, "total": len(segments)}

    def migrate_spatial_fields(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> Dict:
        """
        Backfill grid_cell and bounding box on one page of rows.

        Idempotent: rows that already carry spatial fields are skipped. A row
        whose geometry cannot be processed is counted as skipped.
        """
        limit = self._clamp_limit(limit, settings.MIGRATION_BATCH_SIZE)
        result = self.paginate(limit=limit, cursor=cursor)

        updated = 0
        skipped = 0
        for segment in result["page"]:
            if segment.has_spatial_fields:
                skipped += 1
                continue
            try:
                spatial_fields = compute_spatial_fields(segment.coordinates or [])
            except InvalidGeometryError as e:
                logger.warning(f"Error migrating segment {segment.id}: {e}")
                skipped += 1
                continue
            for field, value in spatial_fields.items():
                setattr(segment, field, value)
            updated += 1

        self.db.commit()
        logger.info(
            f"Spatial migration batch: updated={updated} skipped={skipped} "
            f"processed={len(result['page'])} done={result['is_done']}"
        )
        return {
            "updated": updated,
            "skipped": skipped,
            "processed": len(result["page"]),
            "continue_cursor": result["continue_cursor"],
            "is_done": result["is_done"],
        }

    def update_status(self, segment_id: UUID, status: str, commit: bool = True) -> models.RoadSegment:
        """Set status and bump updated_at."""
        if status not in models.ROAD_STATUSES:
            raise ValueError(f"Invalid road status: {status}")
        segment = self.by_id(segment_id)
        if not segment:
            raise NotFoundError("Road segment", segment_id)

        segment.status = status
        segment.updated_at = now_ms()
        if commit:
            self.db.commit()
        return segment

    def remove(self, segment_id: UUID) -> None:
        segment = self.by_id(segment_id)
        if not segment:
            raise NotFoundError("Road segment", segment_id)
        self.db.delete(segment)
        self.db.commit()

    def clear_batch(self, limit: Optional[int] = None) -> Dict:
        """Delete up to limit segments. Call repeatedly until has_more is False."""
        limit = self._clamp_limit(limit, settings.CLEAR_BATCH_SIZE)
        rows = self.db.query(models.RoadSegment).limit(limit).all()
        for row in rows:
            self.db.delete(row)
        self.db.commit()
        logger.info(f"Cleared {len(rows)} road segments")
        return {"deleted": len(rows), "has_more": len(rows) == limit}
