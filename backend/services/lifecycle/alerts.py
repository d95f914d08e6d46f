# services/lifecycle/alerts.py

from dataclasses import dataclass
from datetime import date

from services.lifecycle.classifier import MISSING, OVERDUE, DeviceSummary
from services.lifecycle.rows import AnnotationRow

SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}
ALERT_TYPES = {"sequence_gap", "overdue", "negative"}
HIGH_SEVERITY_OVERDUE_DAYS = 30


@dataclass
class Alert:
    id: str
    device_id: str
    type: str
    severity: str
    message: str
    activation_date: date
    expected_month: int | None = None
    expected_date: date | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "imei": self.device_id,
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "expected_month": self.expected_month,
            "expected_date": self.expected_date.isoformat() if self.expected_date else None,
            "activation_date": self.activation_date.isoformat(),
        }


def derive_alerts(
    summaries: list[DeviceSummary],
    annotations: dict[str, AnnotationRow] | None = None,
    today: date | None = None,
) -> list[Alert]:
    annotations = annotations or {}
    today = today or date.today()
    alerts: list[Alert] = []

    for summary in summaries:
        for month in summary.months_status:
            if month.status != MISSING:
                continue
            # sequence_gap ids are keyed on the month status: "{imei}-missing-{m}"
            alerts.append(
                Alert(
                    id=f"{summary.device_id}-missing-{month.month}",
                    device_id=summary.device_id,
                    type="sequence_gap",
                    severity="high",
                    message=f"Month {month.month} payment missing (later months received)",
                    activation_date=summary.activation_date,
                    expected_month=month.month,
                    expected_date=month.expected_date,
                )
            )

        for month in summary.months_status:
            if month.status != OVERDUE:
                continue
            days_overdue = (today - month.expected_date).days
            alerts.append(
                Alert(
                    id=f"{summary.device_id}-overdue-{month.month}",
                    device_id=summary.device_id,
                    type="overdue",
                    severity="high" if days_overdue > HIGH_SEVERITY_OVERDUE_DAYS else "medium",
                    message=f"Month {month.month} payment overdue by {days_overdue} days",
                    activation_date=summary.activation_date,
                    expected_month=month.month,
                    expected_date=month.expected_date,
                )
            )

        annotation = annotations.get(summary.device_id)
        resolved = annotation is not None and annotation.withholding_resolved
        if summary.total_withheld > 0 and not resolved:
            alerts.append(
                Alert(
                    id=f"{summary.device_id}-negative",
                    device_id=summary.device_id,
                    type="negative",
                    severity="medium",
                    message=f"Withholding/clawback detected: -${summary.total_withheld:.2f}",
                    activation_date=summary.activation_date,
                )
            )

    # sorted() is stable, so per-device order survives within a severity
    return sorted(alerts, key=lambda a: SEVERITY_ORDER[a.severity])


def filter_alerts(
    alerts: list[Alert],
    alert_type: str | None = None,
    severity: str | None = None,
    devices: set[str] | None = None,
    search: str | None = None,
    date_range: tuple[date, date] | None = None,
) -> list[Alert]:
    out = list(alerts)
    if alert_type and alert_type.strip():
        out = [a for a in out if a.type == alert_type]
    if severity and severity.strip():
        out = [a for a in out if a.severity == severity]
    if devices is not None:
        out = [a for a in out if a.device_id in devices]
    if search and search.strip():
        needle = search.strip().lower()
        out = [a for a in out if needle in a.device_id.lower()]
    if date_range is not None:
        start, end = date_range
        out = [a for a in out if start <= a.activation_date <= end]
    return out
