"""
Map client helpers.

Incrementally loads road segments by grid cell and keeps them fresh by polling.

Usage:
    from stormwatch.client import GridCellCache, HttpRoadSegmentFetcher
    from stormwatch.domain.geo.grid import Bounds

    cache = GridCellCache(HttpRoadSegmentFetcher("http://localhost:8000"))
    await cache.set_viewport(Bounds(13.60, 13.64, 123.17, 123.22))
    cache.start_polling()
    visible = cache.segments
    ...
    await cache.stop_polling()
"""

from .fetchers import RoadSegmentFetcher, HttpRoadSegmentFetcher
from .grid_cell_cache import GridCellCache

__all__ = [
    "RoadSegmentFetcher",
    "HttpRoadSegmentFetcher",
    "GridCellCache",
]
