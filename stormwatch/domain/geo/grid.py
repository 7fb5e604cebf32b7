"""
Grid cell spatial indexing.

Road segments are bucketed into fixed 0.01 degree cells (~1.1km at the equator)
keyed by the floor of each axis, e.g. "13.62_123.19". Viewport and radius
queries enumerate the covering cells, look each one up through the grid_cell
index, then post-filter by exact bounding box (and haversine for radius).

Pure functions; no I/O.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Sequence, Set
import math

from ..errors import InvalidGeometryError

GRID_SIZE = 0.01
EARTH_RADIUS_M = 6_371_000
METERS_PER_DEGREE = 111_000

# cos(lat) floor for the degree-box approximation; only reached near the poles
_MIN_COS_LAT = 1e-6


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned lat/lng box, inclusive on every side."""
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "min_lat": self.min_lat,
            "max_lat": self.max_lat,
            "min_lng": self.min_lng,
            "max_lng": self.max_lng,
        }


def grid_cell(lat: float, lng: float, size: float = GRID_SIZE) -> str:
    """Grid cell key for a point, both components fixed to 2 decimals."""
    grid_lat = math.floor(lat / size) * size
    grid_lng = math.floor(lng / size) * size
    return f"{grid_lat:.2f}_{grid_lng:.2f}"


def _validate_point(point) -> tuple:
    try:
        if len(point) < 2:
            raise InvalidGeometryError(f"Coordinate must be a [lat, lng] pair, got {point!r}")
        lat = float(point[0])
        lng = float(point[1])
    except (TypeError, ValueError):
        raise InvalidGeometryError(f"Coordinate must be a [lat, lng] pair, got {point!r}")
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidGeometryError(f"Coordinate must be finite, got {point!r}")
    return lat, lng


def bounding_box(coordinates: Sequence[Sequence[float]]) -> Bounds:
    """
    Single-pass min/max over all points.

    Raises:
        InvalidGeometryError: if coordinates is empty or a point is malformed
    """
    if not coordinates:
        raise InvalidGeometryError("Coordinates array cannot be empty")

    min_lat, min_lng = _validate_point(coordinates[0])
    max_lat, max_lng = min_lat, min_lng

    for point in coordinates[1:]:
        lat, lng = _validate_point(point)
        if lat < min_lat:
            min_lat = lat
        elif lat > max_lat:
            max_lat = lat
        if lng < min_lng:
            min_lng = lng
        elif lng > max_lng:
            max_lng = lng

    return Bounds(min_lat=min_lat, max_lat=max_lat, min_lng=min_lng, max_lng=max_lng)


def compute_spatial_fields(coordinates: Sequence[Sequence[float]]) -> Dict:
    """
    Derived spatial columns for a road segment. The grid cell comes from the
    first coordinate; the bounding box covers all of them.

    Raises:
        InvalidGeometryError: fewer than 2 points or a malformed point
    """
    if coordinates and len(coordinates) < 2:
        raise InvalidGeometryError("Road segment needs at least 2 coordinates")
    bbox = bounding_box(coordinates)
    first_lat, first_lng = _validate_point(coordinates[0])
    return {
        "grid_cell": grid_cell(first_lat, first_lng),
        **bbox.to_dict(),
    }


def _cell_index_range(bounds: Bounds, size: float) -> tuple:
    return (
        math.floor(bounds.min_lat / size),
        math.ceil(bounds.max_lat / size),
        math.floor(bounds.min_lng / size),
        math.ceil(bounds.max_lng / size),
    )


def count_cells_covering(bounds: Bounds, size: float = GRID_SIZE) -> int:
    """Size of cells_covering(bounds) without building the set."""
    lat_start, lat_end, lng_start, lng_end = _cell_index_range(bounds, size)
    return (lat_end - lat_start + 1) * (lng_end - lng_start + 1)


def cells_covering(bounds: Bounds, size: float = GRID_SIZE) -> Set[str]:
    """
    Every grid cell whose range intersects bounds.

    Steps from floor(min) to ceil(max) on each axis, so the cells holding both
    corners are always included. Iterates on integer cell indices so repeated
    float addition cannot drift past a boundary.
    """
    lat_start, lat_end, lng_start, lng_end = _cell_index_range(bounds, size)

    cells = set()
    for lat_index in range(lat_start, lat_end + 1):
        for lng_index in range(lng_start, lng_end + 1):
            cells.add(f"{lat_index * size:.2f}_{lng_index * size:.2f}")
    return cells


def expand_bounds(bounds: Bounds, buffer: float = 0.2) -> Bounds:
    """Grow each side by buffer * span of that axis (0.2 = 20%)."""
    lat_range = bounds.max_lat - bounds.min_lat
    lng_range = bounds.max_lng - bounds.min_lng
    return Bounds(
        min_lat=bounds.min_lat - lat_range * buffer,
        max_lat=bounds.max_lat + lat_range * buffer,
        min_lng=bounds.min_lng - lng_range * buffer,
        max_lng=bounds.max_lng + lng_range * buffer,
    )


def bounds_intersect(segment_bounds: Bounds, query: Bounds) -> bool:
    return (
        segment_bounds.min_lat <= query.max_lat
        and segment_bounds.max_lat >= query.min_lat
        and segment_bounds.min_lng <= query.max_lng
        and segment_bounds.max_lng >= query.min_lng
    )


def radius_bounds(lat: float, lng: float, radius_m: float) -> Bounds:
    """
    Approximate degree box around a point: 1 degree of latitude ~ 111km and
    1 degree of longitude ~ 111km * cos(lat). Degrades near the poles.

    The box is clipped to [-90, 90] x [-180, 180]; once the longitude
    half-span reaches 180 degrees it covers every longitude. Boxes crossing
    the antimeridian are clipped, not wrapped.
    """
    lat_degrees = radius_m / METERS_PER_DEGREE
    cos_lat = max(abs(math.cos(math.radians(lat))), _MIN_COS_LAT)
    lng_degrees = radius_m / (METERS_PER_DEGREE * cos_lat)

    if lng_degrees >= 180:
        min_lng, max_lng = -180.0, 180.0
    else:
        min_lng = max(lng - lng_degrees, -180.0)
        max_lng = min(lng + lng_degrees, 180.0)

    return Bounds(
        min_lat=max(lat - lat_degrees, -90.0),
        max_lat=min(lat + lat_degrees, 90.0),
        min_lng=min_lng,
        max_lng=max_lng,
    )


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def is_within_radius(
    coordinates: Iterable[Sequence[float]], lat: float, lng: float, radius_m: float
) -> bool:
    """True if any point of the polyline lies within radius_m of (lat, lng)."""
    for point in coordinates:
        if haversine_distance(lat, lng, point[0], point[1]) <= radius_m:
            return True
    return False
