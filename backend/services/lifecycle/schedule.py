# services/lifecycle/schedule.py

from datetime import date, datetime, timedelta

import pandas as pd

TOTAL_MONTHS = 6
FIRST_PAYMENT_OFFSET_DAYS = 8
PAYMENT_INTERVAL_DAYS = 40


def parse_date(value) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.date()


def expected_date(activation_date, month: int) -> date | None:
    """
    Due date of scheduled payment `month` (1-6).

    Month 1 is due 8 days after activation, every later month
    (month - 1) * 40 days after activation. Returns None when the
    activation date cannot be resolved; callers treat that device
    as having no schedule.
    """
    if month < 1 or month > TOTAL_MONTHS:
        return None
    activated = parse_date(activation_date)
    if activated is None:
        return None
    if month == 1:
        return activated + timedelta(days=FIRST_PAYMENT_OFFSET_DAYS)
    return activated + timedelta(days=(month - 1) * PAYMENT_INTERVAL_DAYS)


def payment_schedule(activation_date) -> list[date] | None:
    if parse_date(activation_date) is None:
        return None
    return [expected_date(activation_date, month) for month in range(1, TOTAL_MONTHS + 1)]
