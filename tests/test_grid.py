"""
Tests for grid cell indexing and spatial helpers.

Tests cover:
- Grid cell keys (determinism, flooring, negative coordinates)
- Bounding boxes and geometry validation
- Covering cells for a bounds and their count
- Haversine distance and radius boxes (clipped at the poles and antimeridian)
"""
import math
import pytest

from stormwatch.domain.errors import InvalidGeometryError
from stormwatch.domain.geo.grid import (
    Bounds,
    bounding_box,
    bounds_intersect,
    cells_covering,
    compute_spatial_fields,
    count_cells_covering,
    expand_bounds,
    grid_cell,
    haversine_distance,
    is_within_radius,
    radius_bounds,
)


# =============================================================================
# GRID CELLS
# =============================================================================

class TestGridCell:
    """Tests for grid_cell keys."""

    def test_floors_both_axes(self):
        assert grid_cell(13.6218, 123.1948) == "13.62_123.19"

    def test_negative_coordinates_floor_down(self):
        assert grid_cell(-0.005, -0.005) == "-0.01_-0.01"

    def test_is_deterministic(self):
        """Same input gives the same key on every call."""
        points = [(13.6218, 123.1948), (0.1 + 0.2, 0.3), (-33.8688, 151.2093), (13.6299999, 123.19999)]
        for lat, lng in points:
            keys = {grid_cell(lat, lng) for _ in range(50)}
            assert len(keys) == 1

    def test_key_has_two_decimals(self):
        lat_part, lng_part = grid_cell(5, 10).split("_")
        assert lat_part == "5.00"
        assert lng_part == "10.00"


# =============================================================================
# BOUNDING BOXES
# =============================================================================

class TestBoundingBox:
    """Tests for bounding_box and compute_spatial_fields."""

    def test_bounds_cover_all_points(self):
        bbox = bounding_box([[13.62, 123.19], [13.60, 123.21], [13.63, 123.18]])
        assert bbox == Bounds(min_lat=13.60, max_lat=13.63, min_lng=123.18, max_lng=123.21)

    def test_single_point(self):
        bbox = bounding_box([[1.5, 2.5]])
        assert bbox.min_lat == bbox.max_lat == 1.5
        assert bbox.min_lng == bbox.max_lng == 2.5

    def test_empty_coordinates_rejected(self):
        with pytest.raises(InvalidGeometryError):
            bounding_box([])

    @pytest.mark.parametrize("bad_point", [[1.0], ["a", 2.0], [float("nan"), 1.0], None])
    def test_malformed_point_rejected(self, bad_point):
        with pytest.raises(InvalidGeometryError):
            bounding_box([[13.6, 123.1], bad_point])

    def test_grid_cell_uses_first_coordinate(self):
        fields = compute_spatial_fields([[13.6218, 123.1948], [13.6550, 123.2250]])
        assert fields["grid_cell"] == "13.62_123.19"
        assert fields["max_lat"] == 13.6550
        assert fields["max_lng"] == 123.2250

    def test_single_point_segment_rejected(self):
        with pytest.raises(InvalidGeometryError):
            compute_spatial_fields([[13.6, 123.2]])


# =============================================================================
# COVERING CELLS
# =============================================================================

class TestCellsCovering:
    """Tests for cells_covering."""

    @pytest.mark.parametrize("bounds", [
        Bounds(13.6005, 13.6495, 123.1705, 123.2195),
        Bounds(13.62, 13.62, 123.19, 123.19),
        Bounds(-0.015, 0.015, -0.015, 0.015),
        Bounds(13.6218, 13.6229, 123.1948, 123.1951),
    ])
    def test_includes_corner_cells(self, bounds):
        cells = cells_covering(bounds)
        assert grid_cell(bounds.min_lat, bounds.min_lng) in cells
        assert grid_cell(bounds.max_lat, bounds.max_lng) in cells

    def test_covers_every_interior_point_cell(self):
        bounds = Bounds(13.601, 13.639, 123.171, 123.209)
        cells = cells_covering(bounds)
        steps = 20
        for i in range(steps + 1):
            for j in range(steps + 1):
                lat = bounds.min_lat + (bounds.max_lat - bounds.min_lat) * i / steps
                lng = bounds.min_lng + (bounds.max_lng - bounds.min_lng) * j / steps
                assert grid_cell(lat, lng) in cells

    @pytest.mark.parametrize("bounds", [
        Bounds(13.6005, 13.6495, 123.1705, 123.2195),
        Bounds(13.62, 13.62, 123.19, 123.19),
        Bounds(-0.015, 0.015, -0.015, 0.015),
    ])
    def test_count_matches_enumeration(self, bounds):
        assert count_cells_covering(bounds) == len(cells_covering(bounds))

    def test_count_of_world_is_large(self):
        assert count_cells_covering(Bounds(-90.0, 90.0, -180.0, 180.0)) > 600_000_000


# =============================================================================
# BOUNDS HELPERS
# =============================================================================

class TestBoundsHelpers:
    def test_expand_bounds_grows_each_side(self):
        expanded = expand_bounds(Bounds(10.0, 11.0, 20.0, 22.0), buffer=0.2)
        assert expanded.min_lat == pytest.approx(9.8)
        assert expanded.max_lat == pytest.approx(11.2)
        assert expanded.min_lng == pytest.approx(19.6)
        assert expanded.max_lng == pytest.approx(22.4)

    def test_bounds_intersect_touching_edges(self):
        assert bounds_intersect(Bounds(0, 1, 0, 1), Bounds(1, 2, 1, 2))

    def test_bounds_disjoint(self):
        assert not bounds_intersect(Bounds(0, 1, 0, 1), Bounds(1.5, 2, 0, 1))


# =============================================================================
# DISTANCES
# =============================================================================

class TestHaversine:
    def test_zero_distance(self):
        assert haversine_distance(13.6218, 123.1948, 13.6218, 123.1948) == 0

    def test_one_degree_latitude(self):
        # 2 * pi * 6371000 / 360
        assert haversine_distance(0, 0, 1, 0) == pytest.approx(111_194.9, abs=1)

    def test_nearby_point_in_naga(self):
        distance = haversine_distance(13.6218, 123.1948, 13.6220, 123.1950)
        assert 25 < distance < 35

    def test_within_radius_any_point(self):
        coords = [[13.70, 123.30], [13.6220, 123.1950]]
        assert is_within_radius(coords, 13.6218, 123.1948, 500)
        assert not is_within_radius(coords[:1], 13.6218, 123.1948, 500)

    def test_radius_bounds_contains_circle(self):
        lat, lng, radius = 13.6218, 123.1948, 500
        box = radius_bounds(lat, lng, radius)
        for bearing in range(0, 360, 15):
            # Point ~radius meters away along the bearing
            d_lat = radius * math.cos(math.radians(bearing)) / 111_320
            d_lng = radius * math.sin(math.radians(bearing)) / (111_320 * math.cos(math.radians(lat)))
            assert box.min_lat <= lat + d_lat <= box.max_lat
            assert box.min_lng <= lng + d_lng <= box.max_lng

    def test_radius_bounds_near_pole_is_finite(self):
        box = radius_bounds(90.0, 0.0, 1000)
        assert math.isfinite(box.min_lng) and math.isfinite(box.max_lng)

    def test_radius_bounds_clipped_to_world(self):
        box = radius_bounds(90.0, 0.0, 500)
        assert (box.min_lng, box.max_lng) == (-180.0, 180.0)
        assert box.max_lat == 90.0
        assert box.min_lat == pytest.approx(90.0 - 500 / 111_000)

    def test_radius_bounds_clips_at_antimeridian(self):
        box = radius_bounds(0.0, 179.999, 5000)
        assert box.max_lng == 180.0
        assert box.min_lng < 179.999
