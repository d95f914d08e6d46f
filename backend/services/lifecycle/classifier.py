# services/lifecycle/classifier.py

from dataclasses import dataclass, field
from datetime import date

from services.lifecycle.rows import AnnotationRow, TransactionRow, canonical_record, group_by_device
from services.lifecycle.schedule import TOTAL_MONTHS, parse_date, payment_schedule

PAID = "paid"
OVERDUE = "overdue"
PENDING = "pending"
MISSING = "missing"

OUTSTANDING_STATUSES = frozenset({OVERDUE, MISSING})

SUMMARY_CATEGORIES = {"overdue", "withheld"}
ANNOTATION_FLAGS = {"notes", "suspended", "deactivated", "status", "blacklisted", "byod_swap", "withholding_resolved"}


def is_outstanding(status: str) -> bool:
    """Single overdue/missing predicate shared by alerts and metrics."""
    return status in OUTSTANDING_STATUSES


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class MonthStatus:
    month: int
    expected_date: date | None
    status: str
    actual_date: str | None = None
    amount: float | None = None
    record_id: int | None = None
    payment_received: bool | None = None

    def to_dict(self) -> dict:
        return {
            "month": self.month,
            "expected_date": _iso(self.expected_date),
            "status": self.status,
            "actual_date": self.actual_date,
            "amount": self.amount,
            "record_id": self.record_id,
            "payment_received": self.payment_received,
        }


@dataclass
class DeviceSummary:
    device_id: str
    activation_date: date
    sale_type: str
    rep_username: str | None
    store: str | None
    months_status: list[MonthStatus]
    total_earned: float
    total_withheld: float
    net_amount: float
    alert_count: int
    is_active: bool

    def month(self, number: int) -> MonthStatus:
        return self.months_status[number - 1]

    def to_dict(self) -> dict:
        return {
            "imei": self.device_id,
            "activation_date": _iso(self.activation_date),
            "sale_type": self.sale_type,
            "rep_username": self.rep_username,
            "store": self.store,
            "months_status": [m.to_dict() for m in self.months_status],
            "total_earned": self.total_earned,
            "total_withheld": self.total_withheld,
            "net_amount": self.net_amount,
            "alert_count": self.alert_count,
            "is_active": self.is_active,
        }


@dataclass
class SummaryFilters:
    store: str | None = None
    sale_type: str | None = None
    date_range: tuple[date, date] | None = None
    category: str | None = None
    search: str | None = None
    flag: str | None = None
    include_inactive: bool = False
    annotations: dict[str, AnnotationRow] = field(default_factory=dict)


def totals(records: list[TransactionRow]) -> tuple[float, float, float]:
    earned = sum(r.amount for r in records if r.amount > 0)
    withheld = abs(sum(r.amount for r in records if r.amount < 0))
    return earned, withheld, earned - withheld


def classify_device(records: list[TransactionRow], today: date | None = None) -> DeviceSummary | None:
    """
    Build the 6-slot payment timeline of one device.

    Returns None when the device has no resolvable activation date.
    """
    canonical = canonical_record(records)
    if canonical is None:
        return None
    activation = parse_date(canonical.activation_date)
    if activation is None:
        return None
    today = today or date.today()

    paid_by_month: dict[int, list[TransactionRow]] = {}
    for record in records:
        if record.month_number is not None and record.amount > 0:
            paid_by_month.setdefault(record.month_number, []).append(record)

    schedule = payment_schedule(activation)
    months_status: list[MonthStatus] = []
    for month in range(1, TOTAL_MONTHS + 1):
        due = schedule[month - 1]
        payments = paid_by_month.get(month)

        if payments:
            first = payments[0]
            months_status.append(
                MonthStatus(
                    month=month,
                    expected_date=due,
                    status=PAID,
                    actual_date=first.payment_date or None,
                    amount=sum(p.amount for p in payments),
                    record_id=first.id,
                    payment_received=first.payment_received,
                )
            )
            continue

        if due is not None and due < today:
            later_paid = any(m > month for m in paid_by_month)
            status = MISSING if later_paid else OVERDUE
        else:
            status = PENDING
        months_status.append(MonthStatus(month=month, expected_date=due, status=status))

    earned, withheld, net = totals(records)
    alert_count = sum(1 for m in months_status if is_outstanding(m.status))
    if withheld > 0:
        alert_count += 1

    return DeviceSummary(
        device_id=canonical.device_id,
        activation_date=activation,
        sale_type=canonical.sale_type,
        rep_username=canonical.rep_username,
        store=canonical.store,
        months_status=months_status,
        total_earned=earned,
        total_withheld=withheld,
        net_amount=net,
        alert_count=alert_count,
        is_active=canonical.is_active,
    )


def _matches_flag(annotation: AnnotationRow | None, flag: str) -> bool:
    if annotation is None:
        return False
    if flag == "notes":
        return bool((annotation.notes or "").strip())
    if flag == "status":
        return annotation.suspended or annotation.deactivated
    return bool(getattr(annotation, flag, False))


def build_device_summaries(
    records,
    filters: SummaryFilters | None = None,
    today: date | None = None,
) -> list[DeviceSummary]:
    filters = filters or SummaryFilters()
    today = today or date.today()

    rows = [r for r in records if r.is_active or filters.include_inactive]
    if filters.store and filters.store.strip():
        rows = [r for r in rows if r.store == filters.store]
    if filters.sale_type and filters.sale_type.strip():
        rows = [r for r in rows if r.sale_type == filters.sale_type]

    search = (filters.search or "").strip().lower()

    summaries: list[DeviceSummary] = []
    for device_id, device_rows in group_by_device(rows).items():
        if search and search not in device_id.lower():
            continue
        if filters.flag and not _matches_flag(filters.annotations.get(device_id), filters.flag):
            continue

        summary = classify_device(device_rows, today=today)
        if summary is None:
            continue

        if filters.date_range is not None:
            start, end = filters.date_range
            if not start <= summary.activation_date <= end:
                continue
        if filters.category == "overdue" and not any(is_outstanding(m.status) for m in summary.months_status):
            continue
        if filters.category == "withheld" and summary.total_withheld <= 0:
            continue

        summaries.append(summary)

    summaries.sort(key=lambda s: s.activation_date, reverse=True)
    return summaries
