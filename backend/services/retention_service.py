import logging
import threading
from datetime import date, datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from db.session import SessionLocal
from services.commission_store import CommissionStore
from services.lifecycle.rows import group_by_device
from services.lifecycle.schedule import TOTAL_MONTHS, parse_date

logger = logging.getLogger(__name__)

RETENTION_DAYS = 90
SWEEP_INTERVAL_HOURS = 24
SWEEP_JOB_ID = "retention_sweep"

_sweep_lock = threading.Lock()


def _is_received_payment(record) -> bool:
    return (
        record.month_number is not None
        and record.amount > 0
        and record.payment_received is not False
    )


def find_completed_devices(records, today: date) -> list[str]:
    """
    Devices whose six payments all arrived and whose last one is older
    than the retention window.
    """
    completed = []
    for device_id, device_rows in group_by_device(records).items():
        paid = [r for r in device_rows if _is_received_payment(r)]
        months = {r.month_number for r in paid}
        if not all(m in months for m in range(1, TOTAL_MONTHS + 1)):
            continue

        final_dates = [parse_date(r.payment_date) for r in paid if r.month_number == TOTAL_MONTHS]
        final_dates = [d for d in final_dates if d is not None]
        if not final_dates:
            continue
        if (today - max(final_dates)).days > RETENTION_DAYS:
            completed.append(device_id)
    return completed


def sweep_completed_devices(db: Session, today: date | None = None, dry_run: bool = False) -> list[str]:
    today = today or date.today()
    store = CommissionStore(db)
    device_ids = find_completed_devices(store.snapshot().records, today)

    if dry_run:
        logger.info("RETENTION: dry run, %s devices eligible", len(device_ids))
        return device_ids

    deleted = store.purge_devices(device_ids)
    logger.info("RETENTION: purged devices=%s rows=%s", len(device_ids), deleted)
    return device_ids


def run_retention_sweep(today: date | None = None, session_factory=SessionLocal) -> list[str] | None:
    if not _sweep_lock.acquire(blocking=False):
        logger.warning("RETENTION: previous sweep still running, skipping")
        return None

    db = None
    try:
        db = session_factory()
        return sweep_completed_devices(db, today=today)
    except Exception:
        if db is not None:
            db.rollback()
        logger.exception("RETENTION: sweep failed")
        return None
    finally:
        if db is not None:
            db.close()
        _sweep_lock.release()


def start_retention_scheduler(session_factory=SessionLocal, paused: bool = False) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        run_retention_sweep,
        IntervalTrigger(hours=SWEEP_INTERVAL_HOURS),
        kwargs={"session_factory": session_factory},
        id=SWEEP_JOB_ID,
        name="Purge completed devices",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
        next_run_time=datetime.now(timezone.utc),
    )
    scheduler.start(paused=paused)
    logger.info("RETENTION: scheduler started, interval=%sh", SWEEP_INTERVAL_HOURS)
    return scheduler


def stop_retention_scheduler(scheduler: BackgroundScheduler | None) -> None:
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("RETENTION: scheduler stopped")
