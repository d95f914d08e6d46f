from datetime import date, datetime, timedelta, timezone

from services import retention_service
from services.retention_service import (
    SWEEP_JOB_ID,
    find_completed_devices,
    run_retention_sweep,
    start_retention_scheduler,
    stop_retention_scheduler,
    sweep_completed_devices,
)

TODAY = date(2025, 12, 1)


def _complete_device(record, device_id, final_paid_on, received=True):
    rows = []
    for month in range(1, 6):
        rows.append(record(device_id=device_id, month_number=month, payment_date=f"2025-0{month + 1}-01"))
    rows.append(
        record(
            device_id=device_id,
            month_number=6,
            payment_date=final_paid_on.isoformat(),
            payment_received=received,
        )
    )
    return rows


def test_device_paid_out_91_days_ago_is_purged(store, db, record):
    store.add_transactions(_complete_device(record, "old", TODAY - timedelta(days=91)))
    store.add_transactions(_complete_device(record, "recent", TODAY - timedelta(days=89)))

    purged = sweep_completed_devices(db, today=TODAY)

    assert purged == ["old"]
    assert store.records_for_device("old") == []
    assert len(store.records_for_device("recent")) == 6


def test_exactly_ninety_days_is_kept(store, db, record):
    store.add_transactions(_complete_device(record, "edge", TODAY - timedelta(days=90)))

    assert sweep_completed_devices(db, today=TODAY) == []


def test_incomplete_or_unreceived_devices_are_kept(store, db, record):
    rows = _complete_device(record, "gap", TODAY - timedelta(days=200))
    store.add_transactions([r for r in rows if r["month_number"] != 4])
    store.add_transactions(_complete_device(record, "unreceived", TODAY - timedelta(days=200), received=False))

    assert sweep_completed_devices(db, today=TODAY) == []


def test_dry_run_deletes_nothing(store, db, record):
    store.add_transactions(_complete_device(record, "old", TODAY - timedelta(days=120)))

    assert sweep_completed_devices(db, today=TODAY, dry_run=True) == ["old"]
    assert len(store.records_for_device("old")) == 6


def test_find_completed_uses_latest_final_payment(make_row):
    rows = [make_row("x", month_number=m, amount=45, payment_date="2025-06-01") for m in range(1, 7)]
    rows.append(make_row("x", month_number=6, amount=10, payment_date="2025-11-20"))

    assert find_completed_devices(rows, TODAY) == []


def test_run_retention_sweep_uses_own_session(store, record, session_factory):
    store.add_transactions(_complete_device(record, "old", TODAY - timedelta(days=100)))

    assert run_retention_sweep(today=TODAY, session_factory=session_factory) == ["old"]


def test_run_retention_sweep_logs_and_swallows_failures(caplog):
    class BrokenSession:
        def __init__(self):
            self.closed = False

        def query(self, *args, **kwargs):
            raise RuntimeError("db down")

        def rollback(self):
            pass

        def close(self):
            self.closed = True

    session = BrokenSession()

    assert run_retention_sweep(today=TODAY, session_factory=lambda: session) is None
    assert session.closed
    assert "sweep failed" in caplog.text


def test_failing_session_factory_releases_the_lock(store, record, session_factory, caplog):
    def unavailable():
        raise RuntimeError("pool exhausted")

    assert run_retention_sweep(today=TODAY, session_factory=unavailable) is None
    assert "sweep failed" in caplog.text
    assert not retention_service._sweep_lock.locked()

    store.add_transactions(_complete_device(record, "old", TODAY - timedelta(days=100)))
    assert run_retention_sweep(today=TODAY, session_factory=session_factory) == ["old"]


def test_sweep_is_skipped_while_another_is_running(store, record, session_factory, caplog):
    store.add_transactions(_complete_device(record, "old", TODAY - timedelta(days=100)))

    assert retention_service._sweep_lock.acquire(blocking=False)
    try:
        assert run_retention_sweep(today=TODAY, session_factory=session_factory) is None
    finally:
        retention_service._sweep_lock.release()

    assert "still running" in caplog.text
    assert len(store.records_for_device("old")) == 6


def test_scheduler_runs_daily_starting_now(session_factory):
    scheduler = start_retention_scheduler(session_factory=session_factory, paused=True)
    try:
        job = scheduler.get_job(SWEEP_JOB_ID)

        assert job.trigger.interval == timedelta(hours=24)
        assert job.max_instances == 1
        assert job.coalesce is True
        assert abs(job.next_run_time - datetime.now(timezone.utc)) < timedelta(minutes=1)
        assert job.kwargs == {"session_factory": session_factory}
    finally:
        stop_retention_scheduler(scheduler)

    assert not scheduler.running
