from datetime import date

from services.lifecycle import MetricsFilters, annotation_counts, build_device_summaries, compute_metrics
from services.lifecycle.rows import AnnotationRow

TODAY = date(2025, 3, 1)


def _metrics(rows, filters=None):
    summaries = build_device_summaries(rows, today=TODAY)
    return compute_metrics(rows, summaries, filters=filters, today=TODAY)


def _rows(make_row):
    return [
        make_row("111", store="North", payment_date="2025-01-09", amount=45, month_number=1),
        make_row("111", store="North", payment_date="2025-02-15", amount=-15),
        make_row("222", store="South", payment_date="2025-02-20", amount=60, month_number=1, activation_date="2025-02-10"),
        make_row("333", store="South", payment_date="2025-01-10", amount=100, month_number=1, is_active=False),
    ]


def test_totals_over_active_records(make_row):
    metrics = _metrics(_rows(make_row))

    assert metrics.total_earned == 105
    assert metrics.total_withheld == 15
    assert metrics.net_commission == 90
    assert metrics.unique_imeis == 2
    assert metrics.negative_count == 1
    assert metrics.current_period == "March 2025"


def test_overdue_counts_come_from_active_summaries(make_row):
    metrics = _metrics(_rows(make_row))

    # device 111: month 2 due 2025-02-10 is overdue
    assert metrics.overdue_payments == 1
    assert metrics.missing_months == 0


def test_date_range_filter_is_inclusive(make_row):
    filters = MetricsFilters(date_range=(date(2025, 2, 15), date(2025, 2, 20)))

    metrics = _metrics(_rows(make_row), filters)

    assert metrics.total_earned == 60
    assert metrics.total_withheld == 15
    assert metrics.current_period == "Feb 15, 2025 - Feb 20, 2025"
    assert metrics.overdue_payments == 1


def test_store_and_category_filters(make_row):
    rows = _rows(make_row)

    south = _metrics(rows, MetricsFilters(store="South"))
    withheld = _metrics(rows, MetricsFilters(category="withheld"))

    assert south.total_earned == 60
    assert south.unique_imeis == 1
    assert withheld.total_earned == 0
    assert withheld.total_withheld == 15
    assert withheld.negative_count == 1


def test_empty_input_gives_zero_metrics():
    metrics = compute_metrics([], [], today=TODAY)

    assert metrics.total_earned == 0
    assert metrics.unique_imeis == 0
    assert metrics.overdue_payments == 0


def test_annotation_counts():
    annotations = {
        "1": AnnotationRow(device_id="1", notes="hi", suspended=True),
        "2": AnnotationRow(device_id="2", notes=" ", blacklisted=True, byod_swap=True),
        "3": AnnotationRow(device_id="3", deactivated=True),
    }

    assert annotation_counts(annotations) == {
        "notes": 1,
        "suspended": 1,
        "deactivated": 1,
        "blacklisted": 1,
        "byod_swap": 1,
    }
