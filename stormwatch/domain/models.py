from pydantic import BaseModel, Field, ConfigDict, AliasChoices
from pydantic.alias_generators import to_camel
from typing import Optional, List, Any, Literal
from uuid import UUID

# Field names on the wire are camelCase (gridCell, minLat, updatedAt, ...);
# other collaborators depend on them. Python code uses snake_case.

RoadStatus = Literal["clear", "risk", "flooded"]
ReadingType = Literal["water_level", "rainfall", "flow_rate", "temperature", "humidity"]
DeviceType = Literal["water_level", "rain_gauge", "flow_meter", "multi_sensor"]
TimeHorizon = Literal["1h", "2h", "4h", "8h"]
Severity = Literal["low", "medium", "high", "critical"]
AlertSeverity = Literal["info", "warning", "danger", "critical"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ============================================================================
# ROAD SEGMENTS
# ============================================================================

class RoadSegmentResponse(CamelModel):
    """Road segment as exposed to map clients"""
    id: UUID
    name: str
    coordinates: List[List[float]]
    road_type: Optional[str] = None
    status: RoadStatus
    created_at: int
    updated_at: int
    grid_cell: Optional[str] = None
    min_lat: Optional[float] = None
    max_lat: Optional[float] = None
    min_lng: Optional[float] = None
    max_lng: Optional[float] = None
    osm_id: Optional[str] = None


class RoadSegmentCreate(CamelModel):
    """Request DTO for manual road segment entry"""
    name: str = Field(..., min_length=1, max_length=200)
    coordinates: List[List[float]] = Field(..., min_length=2)
    road_type: Optional[str] = None
    status: RoadStatus = "clear"


class RoadSegmentImport(CamelModel):
    """One row of a bulk import (geometry is checked per row, bad rows are skipped)"""
    osm_id: Optional[str] = None
    name: str
    coordinates: List[List[float]]
    road_type: Optional[str] = None


class BulkImportRequest(CamelModel):
    segments: List[RoadSegmentImport]


class BulkImportResult(CamelModel):
    imported: int
    skipped: int
    total: int


class MigrationRequest(CamelModel):
    cursor: Optional[str] = None
    limit: Optional[int] = Field(None, ge=1)


class MigrationResult(CamelModel):
    updated: int
    skipped: int
    processed: int
    continue_cursor: Optional[str] = None
    is_done: bool


class ClearBatchResult(CamelModel):
    deleted: int
    has_more: bool


class RoadSegmentPage(CamelModel):
    page: List[RoadSegmentResponse]
    continue_cursor: Optional[str] = None
    is_done: bool


class GridCellsRequest(CamelModel):
    grid_cells: List[str]


class GridCellUpdatesRequest(CamelModel):
    grid_cells: List[str]
    since_timestamp: Optional[int] = None


class GridCellsResponse(CamelModel):
    segments: List[RoadSegmentResponse]
    cells: List[str]
    server_time: Optional[int] = None  # Server clock at query start; use as the next sinceTimestamp


class RoadStatusUpdate(CamelModel):
    status: RoadStatus


# ============================================================================
# DEVICES AND READINGS
# ============================================================================

class DeviceResponse(CamelModel):
    """IoT device (API key excluded)"""
    id: UUID
    name: str
    device_type: DeviceType
    capabilities: List[str] = []
    owner: Optional[str] = None
    location: List[float]
    influence_radius: float
    is_alive: bool
    is_enabled: bool
    last_seen: Optional[int] = None
    created_at: int
    updated_at: int


class ReadingCreate(CamelModel):
    """Request DTO for IoT sensor data ingestion"""
    device_id: Optional[UUID] = None  # Derived from the API key when omitted
    reading_type: ReadingType
    value: float
    unit: str = Field(..., min_length=1, max_length=16)
    timestamp: Optional[int] = Field(None, ge=0)
    metadata: Optional[dict] = None


class ReadingResponse(CamelModel):
    id: UUID
    device_id: UUID
    reading_type: ReadingType
    value: float
    unit: str
    timestamp: int


class IngestResponse(CamelModel):
    success: bool = True
    reading_id: UUID
    device_id: UUID


# ============================================================================
# PREDICTIONS, ALERTS, WEATHER
# ============================================================================

class PredictionResponse(CamelModel):
    id: UUID
    device_id: UUID
    time_horizon: TimeHorizon
    flood_probability: float
    predicted_water_level: Optional[float] = None
    severity: Severity
    predicted_at: int
    valid_until: int
    metadata: Optional[dict[str, Any]] = Field(
        None,
        validation_alias=AliasChoices("extra_metadata", "metadata"),
        serialization_alias="metadata",
    )


class PropagationResponse(CamelModel):
    updated: int
    device_id: UUID
    device_name: Optional[str] = None
    severity: Optional[Severity] = None
    status: Optional[RoadStatus] = None
    max_water_level: Optional[float] = None
    message: Optional[str] = None


class AlertResponse(CamelModel):
    id: UUID
    title: str
    message: str
    severity: AlertSeverity
    affected_device_ids: List[str]
    affected_road_ids: Optional[List[str]] = None
    is_active: bool
    starts_at: int
    expires_at: Optional[int] = None
    created_at: int


class AlertStatusUpdate(CamelModel):
    is_active: bool


class WeatherResponse(CamelModel):
    humidity: float
    rainfall_1h: Optional[float] = Field(None, alias="rainfall1h")
    rainfall_3h: Optional[float] = Field(None, alias="rainfall3h")
    weather_condition: str
    fetched_at: int
    temperature: Optional[float] = None
    weather_description: Optional[str] = None
