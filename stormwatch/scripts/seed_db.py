"""
Seed the database with demo devices, roads and a water level history around
Naga City.

Run: python -m stormwatch.scripts.seed_db
"""
from stormwatch.infrastructure.database import SessionLocal, engine, Base
from stormwatch.infrastructure import models
from stormwatch.domain.models import RoadSegmentImport
from stormwatch.domain.services.device_service import DeviceService
from stormwatch.domain.services.reading_service import ReadingService
from stormwatch.domain.services.road_segment_service import RoadSegmentService
from stormwatch.utils.timeutils import MINUTE_MS, now_ms

DEMO_DEVICES = [
    {"name": "Naga River Gauge - Centro", "location": [13.6218, 123.1948], "influence_radius": 500},
    {"name": "Bicol River Gauge - Tabuco", "location": [13.6145, 123.1862], "influence_radius": 700},
    {"name": "Mayon Ave Rain Gauge", "location": [13.6302, 123.2011], "influence_radius": 400,
     "device_type": "rain_gauge"},
]

DEMO_ROADS = [
    RoadSegmentImport(osm_id="demo-1", name="Elias Angeles St", road_type="secondary",
                      coordinates=[[13.6220, 123.1950], [13.6231, 123.1961], [13.6240, 123.1970]]),
    RoadSegmentImport(osm_id="demo-2", name="Panganiban Dr", road_type="primary",
                      coordinates=[[13.6210, 123.1930], [13.6200, 123.1915]]),
    RoadSegmentImport(osm_id="demo-3", name="Magsaysay Ave", road_type="primary",
                      coordinates=[[13.6290, 123.1990], [13.6305, 123.2015], [13.6318, 123.2040]]),
    RoadSegmentImport(osm_id="demo-4", name="Tabuco Bridge Rd", road_type="tertiary",
                      coordinates=[[13.6140, 123.1860], [13.6150, 123.1872]]),
]


def seed_data():
    print("Seeding Database...")

    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        devices = DeviceService(db)
        if db.query(models.IoTDevice).count() == 0:
            print("Creating Devices...")
            for spec in DEMO_DEVICES:
                device = devices.create(is_enabled=True, **spec)
                print(f"  {device.name}: api key {device.api_key}")

        print("Importing Roads...")
        result = RoadSegmentService(db).bulk_import(DEMO_ROADS)
        print(f"  imported={result['imported']} skipped={result['skipped']}")

        gauge = db.query(models.IoTDevice).filter_by(name=DEMO_DEVICES[0]["name"]).first()
        if gauge and not ReadingService(db).get_by_device(gauge.id, limit=1):
            print("Creating Water Level History...")
            now = now_ms()
            for i, level in enumerate([8.0, 10.5, 13.0, 15.5]):
                ReadingService(db).create(
                    device_id=gauge.id,
                    reading_type="water_level",
                    value=level,
                    unit="cm",
                    timestamp=now - (3 - i) * 20 * MINUTE_MS,
                )

        print("Seeding Complete!")
    except Exception as e:
        print(f"Error seeding data: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_data()
