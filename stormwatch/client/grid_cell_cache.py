"""
Client-side grid-cell cache for map views.

Tracks which grid cells have been loaded and keeps every fetched segment keyed
by id. A viewport change fetches only the cells not loaded yet (the viewport is
expanded by a buffer first so panning rarely shows a gap). A polling task
re-queries loaded cells for segments updated since the last check.

Viewport fetches and staleness polls may overlap. Both go through merge(),
which keeps whichever copy of a segment has the newer updated_at, so results
converge regardless of arrival order.

The staleness watermark is the server's clock (server_time on each response)
because updated_at is stamped by the server. The local clock is only a
fallback for servers that omit it.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Set
from uuid import UUID

from ..domain.geo.grid import Bounds, bounds_intersect, cells_covering, expand_bounds
from ..domain.models import RoadSegmentResponse
from ..utils.timeutils import now_ms
from .fetchers import RoadSegmentFetcher

logger = logging.getLogger(__name__)

DEFAULT_BUFFER = 0.2
DEFAULT_UPDATE_CHECK_INTERVAL = 30.0  # seconds


def _segment_bounds(segment: RoadSegmentResponse) -> Optional[Bounds]:
    if None in (segment.min_lat, segment.max_lat, segment.min_lng, segment.max_lng):
        return None
    return Bounds(
        min_lat=segment.min_lat,
        max_lat=segment.max_lat,
        min_lng=segment.min_lng,
        max_lng=segment.max_lng,
    )


class GridCellCache:
    def __init__(
        self,
        fetcher: RoadSegmentFetcher,
        buffer: float = DEFAULT_BUFFER,
        update_check_interval: float = DEFAULT_UPDATE_CHECK_INTERVAL,
    ):
        self.fetcher = fetcher
        self.buffer = buffer
        self.update_check_interval = update_check_interval

        self.loaded_cells: Set[str] = set()
        self._segment_cache: Dict[UUID, RoadSegmentResponse] = {}
        self._in_flight: Set[str] = set()
        self._pending_fetches = 0
        self._generation = 0  # bumped by clear(); responses from older generations are dropped
        self._viewport: Optional[Bounds] = None
        self._visible: List[RoadSegmentResponse] = []
        self._last_check = now_ms()
        self._poll_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def segments(self) -> List[RoadSegmentResponse]:
        """Cached segments intersecting the current (unexpanded) viewport."""
        return list(self._visible)

    @property
    def viewport(self) -> Optional[Bounds]:
        return self._viewport

    @property
    def is_initial_load(self) -> bool:
        return not self.loaded_cells and self._pending_fetches > 0

    @property
    def is_fetching(self) -> bool:
        return bool(self.loaded_cells) and self._pending_fetches > 0

    @property
    def loaded_cell_count(self) -> int:
        return len(self.loaded_cells)

    @property
    def total_cached_segments(self) -> int:
        return len(self._segment_cache)

    @property
    def last_check(self) -> int:
        """Sent as sinceTimestamp on the next staleness pass."""
        return self._last_check

    def _recompute_visible(self):
        if self._viewport is None:
            self._visible = []
            return
        visible = []
        for segment in self._segment_cache.values():
            bounds = _segment_bounds(segment)
            if bounds is not None and bounds_intersect(bounds, self._viewport):
                visible.append(segment)
        self._visible = visible

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def merge(self, segments: Sequence[RoadSegmentResponse]) -> int:
        """
        Keep a fetched segment only if its id is new or its updated_at is
        strictly newer than the cached copy. Returns the number kept.
        """
        changed = 0
        for segment in segments:
            cached = self._segment_cache.get(segment.id)
            if cached is None or segment.updated_at > cached.updated_at:
                self._segment_cache[segment.id] = segment
                changed += 1
        if changed:
            self._recompute_visible()
        return changed

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def set_viewport(self, bounds: Bounds) -> List[str]:
        """
        Show a new viewport and load any cells it needs.

        Returns the cells requested. Empty when everything was cached or when
        clear() ran while the fetch was outstanding.
        """
        self._viewport = bounds
        self._recompute_visible()

        needed = cells_covering(expand_bounds(bounds, self.buffer))
        missing = sorted(needed - self.loaded_cells - self._in_flight)
        if not missing:
            return []

        generation = self._generation
        self._in_flight.update(missing)
        self._pending_fetches += 1
        try:
            response = await self.fetcher.fetch_cells(missing)
        except Exception as e:
            # Cells stay unloaded so the next viewport change retries them
            logger.error(f"Failed to load {len(missing)} grid cells: {e}")
            return []
        finally:
            if generation == self._generation:
                self._pending_fetches -= 1
                self._in_flight.difference_update(missing)

        if generation != self._generation:
            logger.debug(f"Dropped {len(missing)} cells fetched before clear()")
            return []

        self.merge(response.segments)
        self.loaded_cells.update(missing)
        if response.server_time is not None:
            # Updates stamped before this load are already in the response
            self._last_check = min(self._last_check, response.server_time)
        logger.debug(f"Loaded {len(missing)} cells, {len(response.segments)} segments")
        return missing

    async def refresh_stale(self) -> int:
        """
        One staleness pass over every loaded cell. Returns the number of
        segments merged.

        The next watermark is the response's server_time, so updated_at is
        always compared against the server clock. Without it the local time
        at the start of the pass is used.
        """
        if not self.loaded_cells:
            return 0

        generation = self._generation
        check_started = now_ms()
        response = await self.fetcher.fetch_updates(sorted(self.loaded_cells), self._last_check)
        if generation != self._generation:
            return 0

        if response.server_time is not None:
            self._last_check = response.server_time
        else:
            self._last_check = check_started
        changed = self.merge(response.segments)
        if changed:
            logger.debug(f"Staleness check merged {changed} updated segments")
        return changed

    async def _poll(self):
        while True:
            await asyncio.sleep(self.update_check_interval)
            try:
                await self.refresh_stale()
            except Exception as e:
                logger.warning(f"Staleness check failed: {e}")

    def start_polling(self):
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll())

    async def stop_polling(self):
        if self._poll_task is None:
            return
        self._poll_task.cancel()
        try:
            await self._poll_task
        except asyncio.CancelledError:
            pass
        self._poll_task = None

    def clear(self):
        """
        Forget every loaded cell and cached segment. Fetches still
        outstanding are discarded when they complete.
        """
        self._generation += 1
        self.loaded_cells.clear()
        self._segment_cache.clear()
        self._in_flight.clear()
        self._pending_fetches = 0
        self._last_check = now_ms()
        self._recompute_visible()
