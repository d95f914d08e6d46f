# services/lifecycle/metrics.py

from dataclasses import asdict, dataclass
from datetime import date

import pandas as pd

from services.lifecycle.classifier import MISSING, DeviceSummary, is_outstanding
from services.lifecycle.rows import TRANSACTION_FIELDS, AnnotationRow
from services.lifecycle.schedule import parse_date

METRIC_CATEGORIES = {"earned", "withheld"}


@dataclass
class MetricsFilters:
    date_range: tuple[date, date] | None = None
    store: str | None = None
    category: str | None = None


@dataclass
class DashboardMetrics:
    total_earned: float
    total_withheld: float
    net_commission: float
    unique_imeis: int
    negative_count: int
    overdue_payments: int
    missing_months: int
    current_period: str

    def to_dict(self) -> dict:
        return asdict(self)


def _short_date(value: date) -> str:
    return f"{value:%b} {value.day}, {value.year}"


def period_label(date_range: tuple[date, date] | None, today: date | None = None) -> str:
    if date_range is not None:
        start, end = date_range
        return f"{_short_date(start)} - {_short_date(end)}"
    today = today or date.today()
    return f"{today:%B %Y}"


def _records_frame(records) -> pd.DataFrame:
    rows = [{name: getattr(r, name) for name in TRANSACTION_FIELDS} for r in records]
    df = pd.DataFrame(rows, columns=list(TRANSACTION_FIELDS))
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0.0).astype(float)
    return df


def _paid_within(value, start: date, end: date) -> bool:
    paid_on = parse_date(value)
    return paid_on is not None and start <= paid_on <= end


def _apply_filters(df: pd.DataFrame, filters: MetricsFilters) -> pd.DataFrame:
    if filters.date_range is not None:
        start, end = filters.date_range
        in_range = pd.Series(
            [_paid_within(value, start, end) for value in df["payment_date"]],
            index=df.index,
            dtype=bool,
        )
        df = df[in_range]

    if filters.store and filters.store.strip():
        df = df[(df["store"] == filters.store).astype(bool)]

    if filters.category == "earned":
        df = df[df["amount"] > 0]
    elif filters.category == "withheld":
        df = df[df["amount"] < 0]
    return df


def compute_metrics(
    records,
    summaries: list[DeviceSummary],
    filters: MetricsFilters | None = None,
    today: date | None = None,
) -> DashboardMetrics:
    """
    Dashboard totals.

    Money totals honour `filters` over active records; overdue and missing
    counts always cover every active device summary, so the caller passes
    unfiltered summaries.
    """
    filters = filters or MetricsFilters()
    active = [r for r in records if r.is_active]

    total_earned = 0.0
    total_withheld = 0.0
    unique_imeis = 0
    negative_count = 0

    if active:
        df = _apply_filters(_records_frame(active), filters)
        if not df.empty:
            amounts = df["amount"]
            total_earned = float(amounts[amounts > 0].sum())
            total_withheld = abs(float(amounts[amounts < 0].sum()))
            unique_imeis = int(df["device_id"].nunique())
            negative_count = int((amounts < 0).sum())

    overdue_payments = 0
    missing_months = 0
    for summary in summaries:
        if not summary.is_active:
            continue
        for month in summary.months_status:
            if is_outstanding(month.status):
                overdue_payments += 1
            if month.status == MISSING:
                missing_months += 1

    return DashboardMetrics(
        total_earned=total_earned,
        total_withheld=total_withheld,
        net_commission=total_earned - total_withheld,
        unique_imeis=unique_imeis,
        negative_count=negative_count,
        overdue_payments=overdue_payments,
        missing_months=missing_months,
        current_period=period_label(filters.date_range, today=today),
    )


def annotation_counts(annotations: dict[str, AnnotationRow]) -> dict[str, int]:
    values = list(annotations.values())
    return {
        "notes": sum(1 for a in values if (a.notes or "").strip()),
        "suspended": sum(1 for a in values if a.suspended),
        "deactivated": sum(1 for a in values if a.deactivated),
        "blacklisted": sum(1 for a in values if a.blacklisted),
        "byod_swap": sum(1 for a in values if a.byod_swap),
    }
