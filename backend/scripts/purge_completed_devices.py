import argparse
from datetime import date

from db.base import Base
from db.session import SessionLocal, engine
from services.retention_service import RETENTION_DAYS, sweep_completed_devices


def main():
    parser = argparse.ArgumentParser(
        description=f"Purge devices fully paid more than {RETENTION_DAYS} days ago."
    )
    parser.add_argument("--dry-run", action="store_true", help="List eligible devices without deleting.")
    parser.add_argument("--today", help="Reference date (YYYY-MM-DD), defaults to today.")
    args = parser.parse_args()

    today = date.fromisoformat(args.today) if args.today else date.today()

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        device_ids = sweep_completed_devices(db, today=today, dry_run=args.dry_run)
    finally:
        db.close()

    verb = "Eligible" if args.dry_run else "Purged"
    print(f"{verb} devices: {len(device_ids)}")
    for device_id in device_ids:
        print(f"  {device_id}")


if __name__ == "__main__":
    main()
