"""
Road segment fetchers used by the grid-cell cache.

Fetchers return the whole GridCellsResponse so the cache can read the
server's clock (server_time) alongside the segments.
"""

import httpx
import logging
from typing import Optional, Protocol, Sequence

from ..domain.models import GridCellsResponse

logger = logging.getLogger(__name__)


class RoadSegmentFetcher(Protocol):
    async def fetch_cells(self, cells: Sequence[str]) -> GridCellsResponse:
        ...

    async def fetch_updates(
        self, cells: Sequence[str], since_timestamp: Optional[int]
    ) -> GridCellsResponse:
        ...


class HttpRoadSegmentFetcher:
    """
    Fetches segments from the StormWatch API.

    Args:
        base_url: API root, e.g. "http://localhost:8000"
        client: optional shared httpx.AsyncClient (the caller owns its lifetime)
    """

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.client = client
        self.timeout = timeout

    async def _post(self, path: str, payload: dict) -> GridCellsResponse:
        url = f"{self.base_url}/api/road-segments{path}"
        if self.client is not None:
            response = await self.client.post(url, json=payload, timeout=self.timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        return GridCellsResponse.model_validate(response.json())

    async def fetch_cells(self, cells: Sequence[str]) -> GridCellsResponse:
        return await self._post("/cells", {"gridCells": list(cells)})

    async def fetch_updates(
        self, cells: Sequence[str], since_timestamp: Optional[int]
    ) -> GridCellsResponse:
        return await self._post(
            "/cells/updates",
            {"gridCells": list(cells), "sinceTimestamp": since_timestamp},
        )
