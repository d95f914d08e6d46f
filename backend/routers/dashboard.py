# routers/dashboard.py

import math
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from routers.params import sanitize_range
from services.commission_store import CommissionStore, get_store
from services.lifecycle import (
    DashboardMetrics,
    MetricsFilters,
    SummaryFilters,
    annotation_counts,
    build_device_summaries,
    compute_metrics,
    derive_alerts,
    filter_alerts,
)
from services.lifecycle.alerts import ALERT_TYPES, SEVERITY_ORDER
from services.lifecycle.classifier import ANNOTATION_FLAGS, SUMMARY_CATEGORIES
from services.lifecycle.metrics import METRIC_CATEGORIES

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _check_choice(name: str, value: str | None, allowed) -> str | None:
    value = _blank_to_none(value)
    if value is not None and value not in allowed:
        raise HTTPException(
            status_code=400,
            detail=f"{name} must be one of: {', '.join(sorted(allowed))}",
        )
    return value


@router.get("/summaries")
def device_summaries(
    store_name: str | None = Query(None, alias="store"),
    sale_type: str | None = Query(None),
    from_date: str | None = Query(None),
    to_date: str | None = Query(None),
    category: str | None = Query(None),
    search: str | None = Query(None),
    flag: str | None = Query(None),
    include_inactive: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=500),
    store: CommissionStore = Depends(get_store),
):
    snapshot = store.snapshot()
    filters = SummaryFilters(
        store=_blank_to_none(store_name),
        sale_type=_blank_to_none(sale_type),
        date_range=sanitize_range(from_date, to_date),
        category=_check_choice("category", category, SUMMARY_CATEGORIES),
        search=_blank_to_none(search),
        flag=_check_choice("flag", flag, ANNOTATION_FLAGS),
        include_inactive=include_inactive,
        annotations=snapshot.annotations,
    )
    summaries = build_device_summaries(snapshot.records, filters=filters, today=date.today())

    total = len(summaries)
    start = (page - 1) * page_size
    items = summaries[start : start + page_size]
    return {
        "items": [s.to_dict() for s in items],
        "total": total,
        "page": page,
        "page_size": page_size,
        "pages": math.ceil(total / page_size) if total else 0,
    }


@router.get("/alerts")
def alerts(
    alert_type: str | None = Query(None, alias="type"),
    severity: str | None = Query(None),
    store_name: str | None = Query(None, alias="store"),
    search: str | None = Query(None),
    from_date: str | None = Query(None),
    to_date: str | None = Query(None),
    store: CommissionStore = Depends(get_store),
):
    today = date.today()
    snapshot = store.snapshot()
    summaries = build_device_summaries(snapshot.records, today=today)
    derived = derive_alerts(summaries, snapshot.annotations, today=today)

    store_name = _blank_to_none(store_name)
    devices = None
    if store_name is not None:
        devices = {r.device_id for r in snapshot.records if r.store == store_name}

    filtered = filter_alerts(
        derived,
        alert_type=_check_choice("type", alert_type, ALERT_TYPES),
        severity=_check_choice("severity", severity, SEVERITY_ORDER),
        devices=devices,
        search=search,
        date_range=sanitize_range(from_date, to_date),
    )
    counts = {name: sum(1 for a in filtered if a.severity == name) for name in SEVERITY_ORDER}
    return {"items": [a.to_dict() for a in filtered], "total": len(filtered), "by_severity": counts}


@router.get("/metrics")
def metrics(
    from_date: str | None = Query(None),
    to_date: str | None = Query(None),
    store_name: str | None = Query(None, alias="store"),
    category: str | None = Query(None),
    store: CommissionStore = Depends(get_store),
):
    today = date.today()
    snapshot = store.snapshot()
    filters = MetricsFilters(
        date_range=sanitize_range(from_date, to_date),
        store=_blank_to_none(store_name),
        category=_check_choice("category", category, METRIC_CATEGORIES),
    )
    summaries = build_device_summaries(snapshot.records, today=today)
    result: DashboardMetrics = compute_metrics(snapshot.records, summaries, filters=filters, today=today)

    payload = result.to_dict()
    payload["annotations"] = annotation_counts(snapshot.annotations)
    return payload


@router.get("/stores")
def stores(store: CommissionStore = Depends(get_store)):
    return {"stores": store.list_stores()}
