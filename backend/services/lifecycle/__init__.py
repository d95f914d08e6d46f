# services/lifecycle/__init__.py

from services.lifecycle.alerts import Alert, derive_alerts, filter_alerts
from services.lifecycle.classifier import (
    MISSING,
    OVERDUE,
    PAID,
    PENDING,
    DeviceSummary,
    MonthStatus,
    SummaryFilters,
    build_device_summaries,
    classify_device,
    is_outstanding,
)
from services.lifecycle.metrics import DashboardMetrics, MetricsFilters, annotation_counts, compute_metrics
from services.lifecycle.rows import AnnotationRow, TransactionRow
from services.lifecycle.schedule import expected_date, parse_date
