"""
Import road segments from a JSON file.

The file holds a list of {"osmId", "name", "coordinates", "roadType"} objects
(e.g. an OpenStreetMap export). Rows are imported in chunks below the per-call
limit; existing osmIds are skipped, so the script can be re-run safely.

Run: python -m stormwatch.scripts.import_roads roads-data.json [--chunk-size 500]
"""
import json
from pathlib import Path

from stormwatch.core.config import settings
from stormwatch.infrastructure.database import SessionLocal, engine, Base
from stormwatch.domain.models import RoadSegmentImport
from stormwatch.domain.services.road_segment_service import RoadSegmentService


def load_segments(path: Path) -> list:
    with open(path, encoding="utf-8") as f:
        rows = json.load(f)
    return [RoadSegmentImport.model_validate(row) for row in rows]


def import_roads(path: Path, chunk_size: int) -> dict:
    segments = load_segments(path)
    chunk_size = min(chunk_size, settings.MAX_DOCUMENTS_PER_CALL)
    print(f"Importing {len(segments)} road segments from {path} in chunks of {chunk_size}...")

    Base.metadata.create_all(bind=engine)
    totals = {"imported": 0, "skipped": 0, "total": 0}

    db = SessionLocal()
    try:
        service = RoadSegmentService(db)
        for start in range(0, len(segments), chunk_size):
            result = service.bulk_import(segments[start:start + chunk_size])
            for key in totals:
                totals[key] += result[key]
            print(f"[OK] Chunk {start // chunk_size + 1}: imported={result['imported']} skipped={result['skipped']}")
    finally:
        db.close()

    print(f"\n[SUCCESS] Imported {totals['imported']}, skipped {totals['skipped']} of {totals['total']}")
    return totals


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Import road segments from JSON")
    parser.add_argument("path", type=Path, help="JSON file with road segments")
    parser.add_argument("--chunk-size", type=int, default=500, help="Segments per batch")
    args = parser.parse_args()

    import_roads(args.path, args.chunk_size)
