from sqlalchemy import (
    Column, String, Float, BigInteger, Boolean, ForeignKey, Index, UniqueConstraint, JSON, Uuid,
)
from sqlalchemy.orm import relationship
from .database import Base
from ..utils.timeutils import now_ms
import uuid


ROAD_STATUSES = ("clear", "risk", "flooded")
READING_TYPES = ("water_level", "rainfall", "flow_rate", "temperature", "humidity")
DEVICE_TYPES = ("water_level", "rain_gauge", "flow_meter", "multi_sensor")
TIME_HORIZONS = ("1h", "2h", "4h", "8h")
PREDICTION_SEVERITIES = ("low", "medium", "high", "critical")
ALERT_SEVERITIES = ("info", "warning", "danger", "critical")


class RoadSegment(Base):
    """
    Road segment polyline. Spatial fields (grid_cell + bounding box) are derived
    from coordinates and left NULL on rows that predate the spatial migration;
    such rows are invisible to viewport and radius queries until migrated.
    """
    __tablename__ = "road_segments"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    coordinates = Column(JSON, nullable=False)  # [[lat, lng], ...]
    road_type = Column(String, nullable=True)
    status = Column(String(16), nullable=False, default="clear", index=True)
    osm_id = Column(String, nullable=True, index=True)  # External dedup key
    created_at = Column(BigInteger, nullable=False, default=now_ms)
    updated_at = Column(BigInteger, nullable=False, default=now_ms)

    # Spatial index fields
    grid_cell = Column(String(32), nullable=True, index=True)
    min_lat = Column(Float, nullable=True)
    max_lat = Column(Float, nullable=True)
    min_lng = Column(Float, nullable=True)
    max_lng = Column(Float, nullable=True)

    @property
    def has_spatial_fields(self) -> bool:
        return (
            self.grid_cell is not None
            and self.min_lat is not None
            and self.max_lat is not None
            and self.min_lng is not None
            and self.max_lng is not None
        )


class IoTDevice(Base):
    __tablename__ = "iot_devices"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    device_type = Column(String(32), nullable=False, default="water_level", index=True)
    capabilities = Column(JSON, default=list)
    owner = Column(String, nullable=True)
    api_key = Column(String(128), unique=True, nullable=False, index=True)
    location = Column(JSON, nullable=False)  # [lat, lng]
    influence_radius = Column(Float, nullable=False, default=500.0)  # meters
    is_alive = Column(Boolean, default=True, index=True)
    is_enabled = Column(Boolean, default=True)
    last_seen = Column(BigInteger, nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(BigInteger, nullable=False, default=now_ms)
    updated_at = Column(BigInteger, nullable=False, default=now_ms)

    readings = relationship("SensorReading", back_populates="device", cascade="all, delete-orphan")

    @property
    def latitude(self) -> float:
        return float(self.location[0])

    @property
    def longitude(self) -> float:
        return float(self.location[1])


class SensorReading(Base):
    __tablename__ = "sensor_readings"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    device_id = Column(Uuid(as_uuid=True), ForeignKey("iot_devices.id", ondelete="CASCADE"), nullable=False)
    reading_type = Column(String(32), nullable=False, index=True)
    value = Column(Float, nullable=False)
    unit = Column(String(16), nullable=False)
    timestamp = Column(BigInteger, nullable=False, default=now_ms, index=True)
    extra_metadata = Column("metadata", JSON, nullable=True)

    device = relationship("IoTDevice", back_populates="readings")

    __table_args__ = (
        Index('idx_sensor_readings_device_timestamp', 'device_id', 'timestamp'),
    )


class WeatherData(Base):
    """Shared weather pool for the monitored city (not tied to a device)."""
    __tablename__ = "weather_data"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    temperature = Column(Float, nullable=False)
    humidity = Column(Float, nullable=False)
    rainfall_1h = Column(Float, nullable=True)
    rainfall_3h = Column(Float, nullable=True)
    weather_condition = Column(String(32), nullable=False)
    weather_description = Column(String, nullable=False, default="")
    wind_speed = Column(Float, default=0.0)
    cloud_coverage = Column(Float, default=0.0)
    fetched_at = Column(BigInteger, nullable=False, default=now_ms, index=True)


class Prediction(Base):
    """At most one row per (device_id, time_horizon); writes are upserts."""
    __tablename__ = "predictions"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    device_id = Column(Uuid(as_uuid=True), ForeignKey("iot_devices.id", ondelete="CASCADE"), nullable=False, index=True)
    time_horizon = Column(String(4), nullable=False, index=True)
    flood_probability = Column(Float, nullable=False)
    predicted_water_level = Column(Float, nullable=True)  # cm
    severity = Column(String(16), nullable=False)
    predicted_at = Column(BigInteger, nullable=False)
    valid_until = Column(BigInteger, nullable=False, index=True)
    extra_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint('device_id', 'time_horizon', name='uq_predictions_device_horizon'),
    )


class Alert(Base):
    """Flood alert aggregating affected devices and roads. One active alert per device."""
    __tablename__ = "alerts"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    severity = Column(String(16), nullable=False, index=True)
    affected_device_ids = Column(JSON, nullable=False, default=list)  # [str(uuid), ...]
    affected_road_ids = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, index=True)
    starts_at = Column(BigInteger, nullable=False, default=now_ms)
    expires_at = Column(BigInteger, nullable=True)
    created_at = Column(BigInteger, nullable=False, default=now_ms)
