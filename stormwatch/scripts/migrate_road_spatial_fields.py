"""
Migration: backfill grid_cell and bounding box columns on road_segments.

Rows imported before spatial indexing have NULL spatial fields and do not
show up in viewport or radius queries. This walks the table page by page
until done. Already-migrated rows are skipped, so re-running is safe.

Run: python -m stormwatch.scripts.migrate_road_spatial_fields [--batch-size 500]
"""
from stormwatch.core.config import settings
from stormwatch.infrastructure.database import SessionLocal
from stormwatch.domain.services.road_segment_service import RoadSegmentService


def migrate(batch_size: int) -> dict:
    print("Starting migration: road segment spatial fields...")
    totals = {"updated": 0, "skipped": 0, "processed": 0}
    cursor = None

    db = SessionLocal()
    try:
        service = RoadSegmentService(db)
        while True:
            result = service.migrate_spatial_fields(cursor=cursor, limit=batch_size)
            for key in totals:
                totals[key] += result[key]
            print(f"[OK] Batch: updated={result['updated']} skipped={result['skipped']}")
            if result["is_done"]:
                break
            cursor = result["continue_cursor"]
    finally:
        db.close()

    print(
        f"\n[SUCCESS] Migration completed: {totals['updated']} updated, "
        f"{totals['skipped']} skipped, {totals['processed']} processed"
    )
    return totals


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Backfill road segment spatial fields")
    parser.add_argument("--batch-size", type=int, default=settings.MIGRATION_BATCH_SIZE, help="Rows per batch")
    args = parser.parse_args()

    migrate(args.batch_size)
